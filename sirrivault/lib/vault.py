"""Encrypted item store.

Items are encrypted with the owner's vault key before they are written and
decrypted only on an explicit read or export. One item is one record in the
`vault` namespace, ciphertext included, so adding and deleting are single
atomic writes.
"""
from __future__ import annotations
import base64, binascii, logging, secrets, threading
from dataclasses import dataclass, asdict, replace
from datetime import datetime
from pathlib import Path
from typing import List, Optional
from config.settings import ITEM_KINDS, MAX_FILE_SIZE
from .clock import Clock, utcnow, from_iso
from .crypto import VaultCrypto
from .errors import (
	AuthenticationFailure, IntegrityError, NotFound, StorageError, ValidationError
)
from .notify import NotificationSink, NullSink, Severity
from .storage import KeyValueStore
from . import auth

log = logging.getLogger(__name__)

VAULT_NS = 'vault'
SEQ_KEY = 'vault_seq'


@dataclass
class VaultItem:
	id: str
	display_name: str
	kind: str
	size_bytes: int
	uploaded_at: str
	last_accessed_at: str
	seq: int = 0
	ciphertext: Optional[bytes] = None

	def to_record(self) -> dict:
		rec = asdict(self)
		rec['ciphertext'] = base64.b64encode(self.ciphertext or b'').decode('ascii')
		return rec

	@classmethod
	def from_record(cls, raw: dict, decode: bool = True) -> 'VaultItem':
		"""Build an item from its stored record.

		With `decode=False` the ciphertext is left out, so metadata of a
		damaged record can still be listed and deleted.
		"""
		raw = dict(raw)
		if not decode:
			raw['ciphertext'] = None
		else:
			try:
				raw['ciphertext'] = base64.b64decode(raw.get('ciphertext', ''), validate=True)
			except (binascii.Error, ValueError) as e:
				raise IntegrityError(f"Item {raw.get('id')} has undecodable ciphertext") from e
		raw.setdefault('seq', 0)
		return cls(**raw)

	def metadata(self) -> 'VaultItem':
		return replace(self, ciphertext=None)

	@property
	def uploaded(self) -> Optional[datetime]:
		return from_iso(self.uploaded_at)


@dataclass(frozen=True)
class UsageSummary:
	item_count: int
	total_bytes: int


def new_item_id(now: datetime) -> str:
	return f"file_{int(now.timestamp() * 1000)}_{secrets.token_hex(5)}"


class VaultStore:
	def __init__(self, store: KeyValueStore, key: bytes, crypto: VaultCrypto | None = None,
			sink: NotificationSink | None = None, clock: Clock = utcnow):
		self.store = store
		self.crypto = crypto or VaultCrypto()
		self.sink = sink or NullSink()
		self.clock = clock
		self._key = key
		self._seq_lock = threading.Lock()

	def _next_seq(self) -> int:
		with self._seq_lock:
			meta = self.store.get_json(auth.META_NS, SEQ_KEY) or {}
			last = meta.get('last', 0) + 1
			self.store.put_json(auth.META_NS, SEQ_KEY, {'last': last})
			return last

	def _load(self, item_id: str, decode: bool = True) -> VaultItem:
		raw = self.store.get_json(VAULT_NS, item_id)
		if raw is None: raise NotFound('Item', item_id)
		return VaultItem.from_record(raw, decode)

	def add_item(self, payload: bytes, name: str, kind: str = 'document') -> VaultItem:
		"""Encrypt `payload` and persist it as a new item.

		Nothing is written unless encryption succeeded; the item becomes
		visible with the single record write.
		"""
		if kind not in ITEM_KINDS: raise ValidationError(f'Invalid item kind: {kind}')
		if not name or not name.strip(): raise ValidationError('Item name is required')
		if len(payload) > MAX_FILE_SIZE: raise ValidationError('File too large')
		ciphertext = self.crypto.encrypt(payload, self._key)
		now = self.clock()
		item = VaultItem(new_item_id(now), name.strip(), kind, len(payload), now.isoformat(), now.isoformat(), self._next_seq(), ciphertext)
		self.store.put_json(VAULT_NS, item.id, item.to_record())
		log.info('Stored item %s (%s, %d bytes)', item.id, kind, item.size_bytes)
		self.sink.notify(f'File "{item.display_name}" encrypted and stored securely', Severity.SUCCESS)
		return item.metadata()

	def add_file(self, path: Path | str, kind: str = 'document', name: str | None = None) -> VaultItem:
		path = Path(path)
		if not path.is_file(): raise ValidationError(f'File not found: {path}')
		if path.stat().st_size > MAX_FILE_SIZE: raise ValidationError('File too large')
		try:
			data = path.read_bytes()
		except OSError as e:
			raise ValidationError(f'Cannot read {path}: {e}') from e
		return self.add_item(data, name or path.name, kind)

	def get_item(self, item_id: str) -> VaultItem:
		return self._load(item_id, decode=False)

	def read_item(self, item_id: str) -> bytes:
		item = self._load(item_id)
		try:
			plaintext = self.crypto.decrypt(item.ciphertext, self._key)
		except AuthenticationFailure:
			if not self._key_is_owner_key():
				raise AuthenticationFailure('Wrong vault key')
			log.error('Item %s failed authentication; possible tampering or corruption', item_id)
			self.sink.notify(f'"{item.display_name}" failed its integrity check', Severity.ERROR)
			raise IntegrityError(f'Item {item_id} failed integrity check')
		item.last_accessed_at = self.clock().isoformat()
		self.store.put_json(VAULT_NS, item.id, item.to_record())
		log.info('Item %s read', item_id)
		return plaintext

	def export_item(self, item_id: str, dest: Path | str) -> Path:
		dest = Path(dest)
		name = self._load(item_id, decode=False).display_name
		data = self.read_item(item_id)
		if dest.is_dir():
			dest = dest / Path(name).name
		try:
			dest.write_bytes(data)
		except OSError as e:
			raise StorageError(f'Export failed: {e}') from e
		return dest

	def _key_is_owner_key(self) -> bool:
		owner = auth.load_owner(self.store)
		# Without owner metadata there is nothing to compare against
		return owner is None or self.crypto.verify_master_key(self._key, owner.verification)

	def delete_item(self, item_id: str) -> None:
		item = self._load(item_id, decode=False)
		self.store.delete(VAULT_NS, item_id)
		log.info('Item %s deleted', item_id)
		self.sink.notify(f'"{item.display_name}" permanently deleted', Severity.WARNING)

	def list_items(self, query: str | None = None) -> List[VaultItem]:
		items = [self._load(k, decode=False) for k in self.store.list_keys(VAULT_NS)]
		items.sort(key=lambda i: (i.seq, i.uploaded_at), reverse=True)
		if query:
			q = query.lower()
			items = [i for i in items if q in i.display_name.lower() or q in i.kind.lower()]
		return items

	def usage_summary(self) -> UsageSummary:
		items = self.list_items()
		return UsageSummary(len(items), sum(i.size_bytes for i in items))

	def clear_all(self) -> int:
		keys = self.store.list_keys(VAULT_NS)
		for k in keys:
			self.store.delete(VAULT_NS, k)
		if keys:
			self.sink.notify(f'All {len(keys)} files deleted from vault', Severity.WARNING)
		else:
			self.sink.notify('Vault is already empty', Severity.INFO)
		return len(keys)
