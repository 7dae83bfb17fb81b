"""Owner credentials: master-password enrolment and unlock.

The master password is stored only as a bcrypt hash. The vault key is derived
from the password with PBKDF2 and a random salt kept next to the hash, along
with a verification token (a known plaintext encrypted under the key) that
lets the vault tell a wrong key apart from a tampered item.
"""
from __future__ import annotations
import base64, hashlib, logging
from dataclasses import dataclass, asdict
from typing import Optional
import bcrypt
from config.settings import DEFAULT_ITERATIONS
from .clock import utcnow
from .crypto import VaultCrypto
from .errors import AuthError
from .storage import KeyValueStore

log = logging.getLogger(__name__)

META_NS = 'meta'
OWNER_KEY = 'owner'
FORMAT_VERSION = '1.0'


@dataclass
class OwnerRecord:
	password_hash: str
	salt: str
	iterations: int
	verification: str
	created: str
	version: str = FORMAT_VERSION


def _bcrypt_input(password: str) -> bytes:
	# bcrypt only reads 72 bytes; a fixed-size digest keeps long passphrases whole
	return base64.b64encode(hashlib.sha256(password.encode('utf-8')).digest())

def hash_password(password: str) -> str:
	if not password: raise AuthError('Empty password')
	return bcrypt.hashpw(_bcrypt_input(password), bcrypt.gensalt()).decode('ascii')

def verify_password(password: str, hashed: str) -> bool:
	try:
		return bcrypt.checkpw(_bcrypt_input(password), hashed.encode('ascii'))
	except ValueError:
		return False


def load_owner(store: KeyValueStore) -> Optional[OwnerRecord]:
	raw = store.get_json(META_NS, OWNER_KEY)
	return OwnerRecord(**raw) if raw else None

def is_initialised(store: KeyValueStore) -> bool:
	return store.get(META_NS, OWNER_KEY) is not None

def enroll(store: KeyValueStore, password: str, crypto: VaultCrypto | None = None, iterations: int = DEFAULT_ITERATIONS) -> bytes:
	"""Create owner credentials and return the derived vault key."""
	if is_initialised(store): raise AuthError('Vault exists')
	if not password: raise AuthError('Empty password')
	crypto = crypto or VaultCrypto()
	salt = crypto.generate_salt()
	key = crypto.derive_key(password, salt, iterations)
	rec = OwnerRecord(hash_password(password), salt.hex(), iterations, crypto.generate_master_key_verification(key), utcnow().isoformat())
	store.put_json(META_NS, OWNER_KEY, asdict(rec))
	log.info('Owner credentials created')
	return key

def unlock(store: KeyValueStore, password: str, crypto: VaultCrypto | None = None) -> bytes:
	rec = load_owner(store)
	if rec is None: raise AuthError('Vault not initialised')
	if not verify_password(password, rec.password_hash):
		log.warning('Unlock attempt with wrong master password')
		raise AuthError('Invalid password')
	crypto = crypto or VaultCrypto()
	key = crypto.derive_key(password, bytes.fromhex(rec.salt), rec.iterations)
	if not crypto.verify_master_key(key, rec.verification):
		raise AuthError('Key verification failed; owner record may be corrupt')
	return key
