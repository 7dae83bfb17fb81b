"""Trusted contacts and the emergency-access (dead-man's switch) state machine.

States: inactive -> pending -> active, and back to inactive only through an
explicit owner revoke. Pending and active differ only by elapsed time:

	is_access_granted(now) := mode in {pending, active}
	                          and now >= activated_at + recovery_delay

This predicate is recomputed on every call and never cached. The stored mode
may still read `pending` after the delay has passed until `refresh()` runs;
access decisions do not depend on that.

Contacts are referenced by id only. A request from a removed contact simply
fails the lookup.
"""
from __future__ import annotations
import logging, re, secrets
from dataclasses import dataclass, asdict
from datetime import datetime, timedelta
from enum import Enum
from typing import Dict, Iterable, List, Optional
from config.settings import (
	CONTACT_CHANNELS, TRUST_LEVELS, DEFAULT_RECOVERY_DELAY_HOURS, MIN_RECOVERY_DELAY_HOURS,
	MAX_RECOVERY_DELAY_HOURS, ENABLED_NOTIFY_CHANNELS, LEGACY_EXPORT_VERSION
)
from .clock import Clock, as_utc, utcnow, to_iso, from_iso
from .errors import InvalidContact, NoTrustedContacts, NotActive, NotFound, ValidationError
from .notify import ContactNotifier, LogContactNotifier, NotificationSink, NullSink, Severity
from .storage import KeyValueStore

log = logging.getLogger(__name__)

CONTACTS_NS = 'contacts'
EMERGENCY_NS = 'emergency'
SETTINGS_KEY = 'settings'

_EMAIL_RE = re.compile(r'^[^@\s]+@[^@\s]+\.[A-Za-z]{2,}$')
_PHONE_RE = re.compile(r'^\+?[0-9 ()\-.]+$')


class Mode(str, Enum):
	INACTIVE = 'inactive'
	PENDING = 'pending'
	ACTIVE = 'active'


def validate_address(channel: str, address: str) -> str:
	address = (address or '').strip()
	if channel == 'email':
		if not _EMAIL_RE.match(address): raise InvalidContact(f'Invalid email address: {address!r}')
	elif channel == 'phone':
		digits = sum(c.isdigit() for c in address)
		if not _PHONE_RE.match(address) or not 7 <= digits <= 15:
			raise InvalidContact(f'Invalid phone number: {address!r}')
	else:
		raise InvalidContact(f'Unknown contact channel: {channel!r}')
	return address


@dataclass
class TrustedContact:
	id: str
	name: str
	relationship: str
	channel: str
	address: str
	trust_level: str
	added_at: str
	verified: bool = False


@dataclass
class EmergencySettings:
	recovery_delay_hours: int = DEFAULT_RECOVERY_DELAY_HOURS
	law_enforcement_access_allowed: bool = True
	mode: str = Mode.INACTIVE.value
	activated_at: Optional[str] = None
	updated_at: Optional[str] = None

	@property
	def activated(self) -> Optional[datetime]:
		return from_iso(self.activated_at)

	@property
	def access_available_at(self) -> Optional[datetime]:
		if self.mode == Mode.INACTIVE.value or self.activated is None: return None
		return self.activated + timedelta(hours=self.recovery_delay_hours)


@dataclass(frozen=True)
class EmergencyStatus:
	mode: Mode
	stored_mode: Mode
	activated_at: Optional[datetime]
	access_available_at: Optional[datetime]
	remaining: Optional[timedelta]
	recovery_delay_hours: int


@dataclass(frozen=True)
class AccessDecision:
	granted: bool
	contact_id: str
	remaining: Optional[timedelta] = None
	reason: str = ''

	def __bool__(self) -> bool:
		return self.granted


class EmergencyAccessController:
	def __init__(self, store: KeyValueStore, sink: NotificationSink | None = None,
			notifier: ContactNotifier | None = None, clock: Clock = utcnow,
			enabled_channels: Iterable[str] = ENABLED_NOTIFY_CHANNELS):
		self.store = store
		self.sink = sink or NullSink()
		self.notifier = notifier or LogContactNotifier()
		self.clock = clock
		self.enabled_channels = frozenset(enabled_channels)

	# --- contacts ---

	def _load_contact(self, contact_id: str) -> TrustedContact:
		raw = self.store.get_json(CONTACTS_NS, contact_id)
		if raw is None: raise NotFound('Contact', contact_id)
		return TrustedContact(**raw)

	def add_contact(self, name: str, relationship: str, channel: str, address: str, trust_level: str = 'medium') -> TrustedContact:
		if not name or not name.strip(): raise InvalidContact('Contact name is required')
		if channel not in CONTACT_CHANNELS: raise InvalidContact(f'Unknown contact channel: {channel!r}')
		if trust_level not in TRUST_LEVELS: raise InvalidContact(f'Unknown trust level: {trust_level!r}')
		address = validate_address(channel, address)
		now = self.clock()
		contact = TrustedContact(
			id=f"contact_{int(now.timestamp() * 1000)}_{secrets.token_hex(5)}",
			name=name.strip(), relationship=(relationship or '').strip().lower(),
			channel=channel, address=address, trust_level=trust_level,
			added_at=now.isoformat(), verified=False,
		)
		self.store.put_json(CONTACTS_NS, contact.id, asdict(contact))
		log.info('Trusted contact %s added', contact.id)
		self.sink.notify(f'Trusted contact "{contact.name}" added successfully', Severity.SUCCESS)
		return contact

	def remove_contact(self, contact_id: str) -> None:
		contact = self._load_contact(contact_id)
		self.store.delete(CONTACTS_NS, contact_id)
		log.info('Trusted contact %s removed', contact_id)
		self.sink.notify(f'{contact.name} removed from trusted contacts', Severity.WARNING)

	def get_contact(self, contact_id: str) -> TrustedContact:
		return self._load_contact(contact_id)

	def list_contacts(self) -> List[TrustedContact]:
		contacts = [self._load_contact(k) for k in self.store.list_keys(CONTACTS_NS)]
		return sorted(contacts, key=lambda c: (c.added_at, c.id))

	def mark_verified(self, contact_id: str) -> TrustedContact:
		"""Hook for the out-of-band verification step. The only way to set `verified`."""
		contact = self._load_contact(contact_id)
		if not contact.verified:
			contact.verified = True
			self.store.put_json(CONTACTS_NS, contact.id, asdict(contact))
			log.info('Trusted contact %s verified', contact_id)
		return contact

	# --- settings / state machine ---

	def settings(self) -> EmergencySettings:
		raw = self.store.get_json(EMERGENCY_NS, SETTINGS_KEY)
		return EmergencySettings(**raw) if raw else EmergencySettings()

	def _save(self, settings: EmergencySettings) -> None:
		settings.updated_at = self.clock().isoformat()
		self.store.put_json(EMERGENCY_NS, SETTINGS_KEY, asdict(settings))

	def is_access_granted(self, now: Optional[datetime] = None) -> bool:
		now = as_utc(now or self.clock())
		available = self.settings().access_available_at
		return available is not None and now >= available

	def evaluate(self, now: Optional[datetime] = None) -> EmergencyStatus:
		"""State as of `now`. Reads only; nothing is written."""
		now = as_utc(now or self.clock())
		s = self.settings()
		available = s.access_available_at
		if available is None:
			mode, remaining = Mode.INACTIVE, None
		elif now >= available:
			mode, remaining = Mode.ACTIVE, timedelta(0)
		else:
			mode, remaining = Mode.PENDING, available - now
		return EmergencyStatus(mode, Mode(s.mode), s.activated, available, remaining, s.recovery_delay_hours)

	def refresh(self, now: Optional[datetime] = None) -> EmergencyStatus:
		"""Persist the pending -> active promotion once the delay has passed."""
		status = self.evaluate(now)
		if status.mode is Mode.ACTIVE and status.stored_mode is Mode.PENDING:
			s = self.settings()
			s.mode = Mode.ACTIVE.value
			self._save(s)
			log.info('Emergency access is now active')
			self.sink.notify('Emergency access is now available to trusted contacts', Severity.WARNING)
		return status

	def activate(self, now: Optional[datetime] = None) -> EmergencySettings:
		contacts = self.list_contacts()
		if not contacts:
			self.sink.notify('Please add at least one trusted contact before activating emergency mode', Severity.WARNING)
			raise NoTrustedContacts()
		s = self.settings()
		if s.mode != Mode.INACTIVE.value:
			log.info('Emergency mode already %s since %s', s.mode, s.activated_at)
			return s
		now = as_utc(now or self.clock())
		s.mode = Mode.PENDING.value
		s.activated_at = to_iso(now)
		self._save(s)
		log.warning('Emergency mode activated; access opens after %d hours', s.recovery_delay_hours)
		self.sink.notify('Emergency mode activated! Trusted contacts will be notified.', Severity.SUCCESS)
		self._notify_contacts(contacts, s)
		return s

	def _notify_contacts(self, contacts: List[TrustedContact], s: EmergencySettings) -> None:
		message = (f'Emergency access to a SirriVault has been activated. '
			f'Access becomes available at {to_iso(s.access_available_at)} unless the owner revokes it.')
		for contact in contacts:
			if contact.channel not in self.enabled_channels:
				log.debug('Skipping %s: channel %s disabled', contact.id, contact.channel)
				continue
			try:
				self.notifier.deliver(contact, message)
			except Exception:
				log.exception('Delivering emergency notice to %s failed', contact.id)

	def request_access(self, contact_id: str, now: Optional[datetime] = None) -> AccessDecision:
		"""Decide an access request from a trusted contact.

		Trust level is advisory and not checked here.
		"""
		now = as_utc(now or self.clock())
		try:
			contact = self._load_contact(contact_id)
		except NotFound:
			log.warning('Emergency access request from unknown contact %s', contact_id)
			return AccessDecision(False, contact_id, None, 'unknown contact')
		available = self.settings().access_available_at
		if available is None:
			log.info('Emergency access request from %s while inactive', contact_id)
			return AccessDecision(False, contact_id, None, 'emergency mode inactive')
		if now >= available:
			log.warning('Emergency access granted to %s', contact_id)
			self.sink.notify(f'Emergency access granted to {contact.name}', Severity.SUCCESS)
			return AccessDecision(True, contact_id, timedelta(0), 'granted')
		remaining = available - now
		self.sink.notify(f'Emergency access available to {contact.name} in {_hours_ceil(remaining)} hours', Severity.INFO)
		return AccessDecision(False, contact_id, remaining, 'recovery delay not elapsed')

	def revoke(self, now: Optional[datetime] = None) -> EmergencySettings:
		s = self.settings()
		if s.mode == Mode.INACTIVE.value:
			raise NotActive()
		s.mode = Mode.INACTIVE.value
		s.activated_at = None
		self._save(s)
		log.warning('Emergency mode revoked by owner')
		self.sink.notify('Emergency mode revoked', Severity.WARNING)
		return s

	def set_recovery_delay(self, hours: int) -> EmergencySettings:
		"""Change the delay. Applies to an already-recorded activation as well."""
		if isinstance(hours, bool) or not isinstance(hours, int):
			raise ValidationError('Recovery delay must be a whole number of hours')
		if not MIN_RECOVERY_DELAY_HOURS <= hours <= MAX_RECOVERY_DELAY_HOURS:
			raise ValidationError(f'Recovery delay must be {MIN_RECOVERY_DELAY_HOURS}-{MAX_RECOVERY_DELAY_HOURS} hours')
		s = self.settings()
		s.recovery_delay_hours = hours
		self._save(s)
		self.sink.notify(f'Recovery delay updated to {hours} hours', Severity.SUCCESS)
		return s

	def set_law_enforcement_access(self, enabled: bool) -> EmergencySettings:
		s = self.settings()
		s.law_enforcement_access_allowed = bool(enabled)
		self._save(s)
		self.sink.notify(f"Law enforcement access {'enabled' if enabled else 'disabled'}",
			Severity.SUCCESS if enabled else Severity.WARNING)
		return s

	def legacy_stats(self) -> Dict[str, object]:
		contacts = self.list_contacts(); s = self.settings()
		return {
			'totalContacts': len(contacts),
			'verifiedContacts': sum(1 for c in contacts if c.verified),
			'emergencyMode': s.mode != Mode.INACTIVE.value,
			'recoveryDelay': s.recovery_delay_hours,
		}

	def export_legacy_data(self, now: Optional[datetime] = None) -> Dict[str, object]:
		return {
			'trustedContacts': [asdict(c) for c in self.list_contacts()],
			'emergencySettings': asdict(self.settings()),
			'exportDate': to_iso(as_utc(now or self.clock())),
			'version': LEGACY_EXPORT_VERSION,
		}


def _hours_ceil(delta: timedelta) -> int:
	return max(0, -(-int(delta.total_seconds()) // 3600))
