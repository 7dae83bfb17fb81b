"""TOTP authenticator for linked accounts.

Codes are never stored. Every call recomputes them from the shared secret and
the wall-clock time it is given, so a late or skipped refresh can only delay
what is displayed, never make it wrong.
"""
from __future__ import annotations
import logging, secrets, threading
from dataclasses import dataclass, asdict
from datetime import datetime, timedelta
from typing import Callable, List, Optional
from config.settings import OTP_TIME_STEP, RECENT_USE_HOURS
from .clock import Clock, as_utc, utcnow, from_iso
from .crypto import VaultCrypto, decode_secret, normalize_secret, seconds_remaining
from .errors import NotFound, ValidationError
from .notify import NotificationSink, NullSink, Severity
from .storage import KeyValueStore

log = logging.getLogger(__name__)

ACCOUNTS_NS = 'authenticator'


@dataclass
class AuthenticatorAccount:
	id: str
	label: str
	issuer: str
	shared_secret: str
	added_at: str
	last_used_at: str

	def __repr__(self) -> str:
		return f"AuthenticatorAccount(id={self.id!r}, label={self.label!r}, issuer={self.issuer!r})"


@dataclass(frozen=True)
class AccountCode:
	account: AuthenticatorAccount
	code: str
	seconds_remaining: int


class AuthenticatorRegistry:
	def __init__(self, store: KeyValueStore, crypto: VaultCrypto | None = None, sink: NotificationSink | None = None,
			clock: Clock = utcnow, time_step: int = OTP_TIME_STEP):
		self.store = store
		self.crypto = crypto or VaultCrypto()
		self.sink = sink or NullSink()
		self.clock = clock
		self.time_step = time_step

	def _load(self, account_id: str) -> AuthenticatorAccount:
		raw = self.store.get_json(ACCOUNTS_NS, account_id)
		if raw is None: raise NotFound('Account', account_id)
		return AuthenticatorAccount(**raw)

	def _accounts(self) -> List[AuthenticatorAccount]:
		accounts = [self._load(k) for k in self.store.list_keys(ACCOUNTS_NS)]
		return sorted(accounts, key=lambda a: (a.added_at, a.id))

	def _code(self, account: AuthenticatorAccount, at: datetime) -> str:
		return self.crypto.derive_otp(decode_secret(account.shared_secret), self.time_step, 0, at.timestamp())

	def add_account(self, label: str, secret: str, issuer: str = 'Custom') -> AuthenticatorAccount:
		if not label or not label.strip(): raise ValidationError('Account label is required')
		decode_secret(secret)
		now = self.clock()
		account = AuthenticatorAccount(
			id=f"account_{int(now.timestamp() * 1000)}_{secrets.token_hex(5)}",
			label=label.strip(), issuer=(issuer or 'Custom').strip(),
			shared_secret=normalize_secret(secret),
			added_at=now.isoformat(), last_used_at=now.isoformat(),
		)
		self.store.put_json(ACCOUNTS_NS, account.id, asdict(account))
		log.info('Authenticator account %s added', account.id)
		self.sink.notify(f'Account "{account.label}" added successfully', Severity.SUCCESS)
		return account

	def remove_account(self, account_id: str) -> None:
		account = self._load(account_id)
		self.store.delete(ACCOUNTS_NS, account_id)
		log.info('Authenticator account %s removed', account_id)
		self.sink.notify(f'Account "{account.label}" deleted', Severity.WARNING)

	def get_account(self, account_id: str) -> AuthenticatorAccount:
		return self._load(account_id)

	def list_accounts(self, at: Optional[datetime] = None) -> List[AccountCode]:
		at = as_utc(at or self.clock())
		remaining = seconds_remaining(self.time_step, at.timestamp())
		return [AccountCode(a, self._code(a, at), remaining) for a in self._accounts()]

	def current_code_for(self, account_id: str, at: Optional[datetime] = None) -> str:
		return self._code(self._load(account_id), as_utc(at or self.clock()))

	def use_code(self, account_id: str, at: Optional[datetime] = None) -> str:
		"""Return the current code and record the account as just used."""
		at = as_utc(at or self.clock())
		account = self._load(account_id)
		code = self._code(account, at)
		account.last_used_at = at.isoformat()
		self.store.put_json(ACCOUNTS_NS, account.id, asdict(account))
		return code

	def account_stats(self, at: Optional[datetime] = None) -> dict:
		cutoff = as_utc(at or self.clock()) - timedelta(hours=RECENT_USE_HOURS)
		accounts = self._accounts()
		return {'total': len(accounts), 'recent': sum(1 for a in accounts if from_iso(a.last_used_at) > cutoff)}


class OtpRefresher:
	"""Background thread that re-lists codes at every time-step boundary.

	It carries no state that matters for correctness: each tick asks the
	registry for a fresh snapshot as of the current clock.
	"""

	def __init__(self, registry: AuthenticatorRegistry, callback: Callable[[List[AccountCode]], None],
			clock: Clock | None = None):
		self.registry = registry
		self.callback = callback
		self.clock = clock or registry.clock
		self._stop_event = threading.Event()
		self._thread: Optional[threading.Thread] = None

	@property
	def is_running(self) -> bool:
		return self._thread is not None and self._thread.is_alive()

	def start(self) -> None:
		if self.is_running:
			return
		self._stop_event.clear()
		self._thread = threading.Thread(target=self._run, name='otp-refresher', daemon=True)
		self._thread.start()

	def stop(self) -> None:
		self._stop_event.set()
		if self._thread is not None:
			self._thread.join(timeout=5)
			self._thread = None

	def tick(self) -> float:
		"""Publish one snapshot; returns seconds until the next step boundary."""
		now = self.clock()
		try:
			self.callback(self.registry.list_accounts(now))
		except Exception:
			log.exception('OTP refresh callback failed')
		step = self.registry.time_step
		return step - (now.timestamp() % step)

	def _run(self) -> None:
		while not self._stop_event.is_set():
			wait = self.tick()
			self._stop_event.wait(wait)
