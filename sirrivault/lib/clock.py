"""Timestamp helpers. All persisted times are timezone-aware UTC ISO-8601."""
from __future__ import annotations
from datetime import datetime, timezone
from typing import Callable, Optional

Clock = Callable[[], datetime]


def utcnow() -> datetime:
	return datetime.now(timezone.utc)

def to_iso(dt: Optional[datetime]) -> Optional[str]:
	return dt.isoformat() if dt is not None else None

def as_utc(dt: datetime) -> datetime:
	"""Naive datetimes are taken to be UTC."""
	return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)

def from_iso(value: Optional[str]) -> Optional[datetime]:
	if not value: return None
	return as_utc(datetime.fromisoformat(value))
