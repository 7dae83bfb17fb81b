"""Key-value persistence layer.

Every subsystem persists through the same four-call contract:

	get(namespace, key) -> bytes | None
	put(namespace, key, data)
	delete(namespace, key)
	list_keys(namespace) -> set[str]

`FileKeyValueStore` keeps one file per key under `<root>/<namespace>/` and
replaces it atomically, so readers see either the old or the new record and
never a torn one. Writers in the same process are serialised by a lock. If
several processes share one root directory the consistency model is
last-writer-wins per key; nothing coordinates them.
"""
from __future__ import annotations
import contextlib, json, os, re, threading, logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, Optional, Set
from .errors import StorageError

log = logging.getLogger(__name__)

_NAME_RE = re.compile(r'^[A-Za-z0-9_.-]{1,128}$')
SUFFIX = '.json'


def _check_name(name: str) -> str:
	if not _NAME_RE.match(name) or name in ('.', '..'):
		raise StorageError(f'Invalid store name: {name!r}')
	return name


class KeyValueStore(ABC):
	@abstractmethod
	def get(self, namespace: str, key: str) -> Optional[bytes]: ...

	@abstractmethod
	def put(self, namespace: str, key: str, data: bytes) -> None: ...

	@abstractmethod
	def delete(self, namespace: str, key: str) -> None: ...

	@abstractmethod
	def list_keys(self, namespace: str) -> Set[str]: ...

	def get_json(self, namespace: str, key: str) -> Optional[Dict[str, Any]]:
		raw = self.get(namespace, key)
		if raw is None: return None
		try:
			return json.loads(raw.decode('utf-8'))
		except (UnicodeDecodeError, json.JSONDecodeError) as e:
			raise StorageError(f'Corrupt record {namespace}/{key}: {e}') from e

	def put_json(self, namespace: str, key: str, obj: Dict[str, Any]) -> None:
		self.put(namespace, key, json.dumps(obj, sort_keys=True).encode('utf-8'))


class MemoryKeyValueStore(KeyValueStore):
	"""Process-local store; not durable. Used by tests and throwaway sessions."""

	def __init__(self, quota_bytes: Optional[int] = None):
		self._data: Dict[str, Dict[str, bytes]] = {}
		self._lock = threading.Lock()
		self.quota_bytes = quota_bytes

	def get(self, namespace, key):
		with self._lock:
			return self._data.get(_check_name(namespace), {}).get(_check_name(key))

	def put(self, namespace, key, data):
		ns = _check_name(namespace); k = _check_name(key)
		with self._lock:
			if self.quota_bytes is not None:
				used = sum(len(v) for n in self._data.values() for kk, v in n.items()) - len(self._data.get(ns, {}).get(k, b''))
				if used + len(data) > self.quota_bytes:
					raise StorageError('Storage quota exceeded')
			self._data.setdefault(ns, {})[k] = bytes(data)

	def delete(self, namespace, key):
		with self._lock:
			self._data.get(_check_name(namespace), {}).pop(_check_name(key), None)

	def list_keys(self, namespace):
		with self._lock:
			return set(self._data.get(_check_name(namespace), {}))


class FileKeyValueStore(KeyValueStore):
	def __init__(self, root: Path | str, quota_bytes: Optional[int] = None):
		self.root = Path(root)
		self.quota_bytes = quota_bytes
		self._lock = threading.Lock()

	def exists(self) -> bool:
		return self.root.is_dir()

	def _path(self, namespace: str, key: str) -> Path:
		return self.root / _check_name(namespace) / (_check_name(key) + SUFFIX)

	def get(self, namespace, key):
		path = self._path(namespace, key)
		try:
			return path.read_bytes()
		except FileNotFoundError:
			return None
		except OSError as e:
			raise StorageError(f'Read failed for {namespace}/{key}: {e}') from e

	def put(self, namespace, key, data):
		path = self._path(namespace, key)
		with self._lock:
			if self.quota_bytes is not None:
				current = path.stat().st_size if path.exists() else 0
				if self.usage_bytes() - current + len(data) > self.quota_bytes:
					raise StorageError('Storage quota exceeded')
			tmp = path.with_suffix('.tmp')
			try:
				path.parent.mkdir(parents=True, exist_ok=True)
				with open(tmp, 'wb') as f:
					f.write(data)
					f.flush()
					os.fsync(f.fileno())
				os.replace(tmp, path)
			except OSError as e:
				with contextlib.suppress(OSError): tmp.unlink(missing_ok=True)
				raise StorageError(f'Write failed for {namespace}/{key}: {e}') from e
		log.debug('Stored %s/%s (%d bytes)', namespace, key, len(data))

	def delete(self, namespace, key):
		path = self._path(namespace, key)
		with self._lock:
			try:
				path.unlink(missing_ok=True)
			except OSError as e:
				raise StorageError(f'Delete failed for {namespace}/{key}: {e}') from e

	def list_keys(self, namespace):
		folder = self.root / _check_name(namespace)
		if not folder.is_dir(): return set()
		try:
			return {p.name[:-len(SUFFIX)] for p in folder.iterdir() if p.name.endswith(SUFFIX)}
		except OSError as e:
			raise StorageError(f'List failed for {namespace}: {e}') from e

	def usage_bytes(self) -> int:
		if not self.root.is_dir(): return 0
		return sum(p.stat().st_size for p in self.root.rglob('*' + SUFFIX) if p.is_file())
