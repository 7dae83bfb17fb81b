"""Composition root.

Builds one store, one crypto engine and the three managers, and hands each
manager its collaborators explicitly. The caller owns the lifecycle through
`start()` / `shutdown()`; nothing here is a module-level singleton.
"""
from __future__ import annotations
import logging
from pathlib import Path
from typing import Callable, List, Optional
from config.settings import STORE_QUOTA_BYTES, OTP_TIME_STEP, store_path
from . import auth
from .authenticator import AccountCode, AuthenticatorRegistry, OtpRefresher
from .clock import Clock, utcnow
from .crypto import VaultCrypto
from .emergency import EmergencyAccessController
from .errors import AuthError
from .notify import ContactNotifier, LogSink, NotificationSink
from .storage import FileKeyValueStore, KeyValueStore
from .vault import VaultStore

log = logging.getLogger(__name__)


class SirriVault:
	def __init__(self, store: KeyValueStore, crypto: VaultCrypto | None = None, sink: NotificationSink | None = None,
			notifier: ContactNotifier | None = None, clock: Clock = utcnow, time_step: int = OTP_TIME_STEP):
		self.store = store
		self.crypto = crypto or VaultCrypto()
		self.sink = sink or LogSink()
		self.clock = clock
		self.authenticator = AuthenticatorRegistry(store, self.crypto, self.sink, clock, time_step)
		self.emergency = EmergencyAccessController(store, self.sink, notifier, clock)
		self._vault: Optional[VaultStore] = None
		self._refresher: Optional[OtpRefresher] = None

	@classmethod
	def open(cls, path: Path | str | None = None, **kwargs) -> 'SirriVault':
		return cls(FileKeyValueStore(Path(path) if path else store_path(), STORE_QUOTA_BYTES), **kwargs)

	@property
	def initialised(self) -> bool:
		return auth.is_initialised(self.store)

	def init(self, password: str) -> VaultStore:
		key = auth.enroll(self.store, password, self.crypto)
		self._vault = VaultStore(self.store, key, self.crypto, self.sink, self.clock)
		return self._vault

	def unlock(self, password: str) -> VaultStore:
		key = auth.unlock(self.store, password, self.crypto)
		self._vault = VaultStore(self.store, key, self.crypto, self.sink, self.clock)
		return self._vault

	@property
	def vault(self) -> VaultStore:
		if self._vault is None: raise AuthError('Vault is locked')
		return self._vault

	def lock(self) -> None:
		self._vault = None

	def start(self, on_codes: Callable[[List[AccountCode]], None] | None = None) -> None:
		"""Start the OTP refresher and promote emergency state if its delay passed."""
		self.emergency.refresh()
		if on_codes is not None and self._refresher is None:
			self._refresher = OtpRefresher(self.authenticator, on_codes, self.clock)
			self._refresher.start()

	def shutdown(self) -> None:
		if self._refresher is not None:
			self._refresher.stop()
			self._refresher = None
		self.lock()
		log.debug('SirriVault shut down')
