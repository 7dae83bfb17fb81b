"""Notification contracts.

The core only ever produces events; what happens to them is up to the sink.
`NotificationSink` receives owner-facing messages, `ContactNotifier` delivers
emergency notices to trusted contacts. Both are fire-and-forget: the managers
never branch on whether delivery worked.
"""
from __future__ import annotations
import logging
from enum import Enum
from typing import TYPE_CHECKING, List, Protocol, Tuple

if TYPE_CHECKING:
	from .emergency import TrustedContact

log = logging.getLogger(__name__)


class Severity(str, Enum):
	INFO = 'info'
	SUCCESS = 'success'
	WARNING = 'warning'
	ERROR = 'error'


class NotificationSink(Protocol):
	def notify(self, message: str, severity: Severity = Severity.INFO) -> None: ...


class ContactNotifier(Protocol):
	def deliver(self, contact: 'TrustedContact', message: str) -> None: ...


_LEVELS = {Severity.INFO: logging.INFO, Severity.SUCCESS: logging.INFO, Severity.WARNING: logging.WARNING, Severity.ERROR: logging.ERROR}

class LogSink:
	def notify(self, message: str, severity: Severity = Severity.INFO) -> None:
		log.log(_LEVELS[Severity(severity)], '[%s] %s', Severity(severity).value, message)


class NullSink:
	def notify(self, message: str, severity: Severity = Severity.INFO) -> None:
		pass


class RecordingSink:
	"""Keeps events in memory; handy for embedding callers that render later."""

	def __init__(self):
		self.events: List[Tuple[str, Severity]] = []

	def notify(self, message: str, severity: Severity = Severity.INFO) -> None:
		self.events.append((message, Severity(severity)))


class LogContactNotifier:
	"""Stand-in delivery channel: records the notice in the log only."""

	def deliver(self, contact: 'TrustedContact', message: str) -> None:
		log.info('Notifying %s via %s: %s', contact.name, contact.channel, message)
