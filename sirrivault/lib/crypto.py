"""Cryptographic utilities: AES-GCM items, PBKDF2 keys, RFC 6238 codes, password strength."""
from __future__ import annotations
import base64, binascii, secrets, time
from typing import Optional, Tuple
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.primitives.twofactor.hotp import HOTP
from cryptography.hazmat.backends import default_backend
from config.settings import (
	DEFAULT_ITERATIONS, SALT_LENGTH, KEY_LENGTH, NONCE_LENGTH, AUTH_TAG_LENGTH,
	OTP_TIME_STEP, OTP_DIGITS, MIN_SECRET_BYTES
)
from .errors import AuthenticationFailure, EncryptionError, InsecureRandomError, InvalidSecret, ValidationError

VERIFICATION_TEXT = b"SIRRIVAULT_MASTER_KEY_VERIFICATION"


def _random_bytes(n: int) -> bytes:
	try:
		return secrets.token_bytes(n)
	except NotImplementedError as e:  # os.urandom has no backing source
		raise InsecureRandomError(f'No secure random source: {e}') from e


def decode_secret(secret: str) -> bytes:
	"""Decode a base32 shared secret as typed or pasted by a user.

	Spaces and hyphens are ignored, case is folded and missing padding is
	restored. Raises InvalidSecret if the result is not base32 or is shorter
	than MIN_SECRET_BYTES.
	"""
	cleaned = normalize_secret(secret)
	if not cleaned:
		raise InvalidSecret('Secret is empty')
	try:
		raw = base64.b32decode(cleaned + '=' * (-len(cleaned) % 8), casefold=True)
	except (binascii.Error, ValueError):
		raise InvalidSecret('Secret is not valid base32')
	if len(raw) < MIN_SECRET_BYTES:
		raise InvalidSecret(f'Secret too short ({len(raw)} bytes, need {MIN_SECRET_BYTES})')
	return raw

def normalize_secret(secret: str) -> str:
	return ''.join(secret.split()).replace('-', '').rstrip('=').upper()


class VaultCrypto:
	def __init__(self):
		self._backend = default_backend()

	def generate_salt(self) -> bytes:
		return _random_bytes(SALT_LENGTH)

	def secure_random_key(self, length: int = KEY_LENGTH) -> bytes:
		if length <= 0: raise ValueError('Key length must be positive')
		return _random_bytes(length)

	def derive_key(self, password: str, salt: bytes, iterations: int = DEFAULT_ITERATIONS) -> bytes:
		if not password:
			raise ValidationError("Password empty")
		kdf = PBKDF2HMAC(algorithm=hashes.SHA256(), length=KEY_LENGTH, salt=salt, iterations=iterations, backend=self._backend)
		return kdf.derive(password.encode())

	def encrypt(self, data: bytes, key: bytes) -> bytes:
		"""AES-256-GCM with a fresh random nonce; returns nonce + ciphertext + tag."""
		if len(key) != KEY_LENGTH: raise EncryptionError("Bad key length")
		nonce = _random_bytes(NONCE_LENGTH)
		try:
			enc = Cipher(algorithms.AES(key), modes.GCM(nonce), backend=self._backend).encryptor()
			ct = enc.update(data) + enc.finalize()
		except (TypeError, ValueError) as e:
			raise EncryptionError(f"Encrypt failed: {e}") from e
		return nonce + ct + enc.tag

	def decrypt(self, blob: bytes, key: bytes) -> bytes:
		if len(key) != KEY_LENGTH: raise AuthenticationFailure("Bad key length")
		if len(blob) < NONCE_LENGTH + AUTH_TAG_LENGTH: raise AuthenticationFailure("Ciphertext too short")
		nonce = blob[:NONCE_LENGTH]; tag = blob[-AUTH_TAG_LENGTH:]; ct = blob[NONCE_LENGTH:-AUTH_TAG_LENGTH]
		dec = Cipher(algorithms.AES(key), modes.GCM(nonce, tag), backend=self._backend).decryptor()
		try:
			return dec.update(ct) + dec.finalize()
		except InvalidTag:
			raise AuthenticationFailure("Ciphertext failed authentication")

	def generate_master_key_verification(self, key: bytes) -> str:
		return base64.b64encode(self.encrypt(VERIFICATION_TEXT, key)).decode('ascii')

	def verify_master_key(self, key: bytes, token: str) -> bool:
		try:
			return self.decrypt(base64.b64decode(token), key) == VERIFICATION_TEXT
		except (AuthenticationFailure, binascii.Error, ValueError):
			return False

	def derive_otp(self, shared_secret: bytes, time_step: int = OTP_TIME_STEP, skew_steps: int = 0, at: Optional[float] = None) -> str:
		"""RFC 6238 TOTP (HMAC-SHA1, dynamic truncation, 6 digits)."""
		if time_step <= 0: raise ValueError('time_step must be positive')
		now = time.time() if at is None else at
		counter = int(now // time_step) + skew_steps
		if counter < 0: raise ValueError('Time counter would be negative')
		hotp = HOTP(shared_secret, OTP_DIGITS, hashes.SHA1(), backend=self._backend, enforce_key_length=False)
		return hotp.generate(counter).decode('ascii')

	def otp_for_secret(self, secret: str, time_step: int = OTP_TIME_STEP, at: Optional[float] = None) -> str:
		return self.derive_otp(decode_secret(secret), time_step, 0, at)


def seconds_remaining(time_step: int = OTP_TIME_STEP, at: Optional[float] = None) -> int:
	"""Seconds left in the current step, derived from wall-clock time only."""
	now = time.time() if at is None else at
	return time_step - int(now % time_step)

def format_code(code: str) -> str:
	half = len(code) // 2
	return f"{code[:half]} {code[half:]}"


_CHAR_CLASSES = (
	('lowercase', str.islower),
	('uppercase', str.isupper),
	('digits', str.isdigit),
	('symbols', lambda c: not c.isalnum()),
)
_COMMON_FRAGMENTS = ('password', 'qwerty', '1234', 'abc', 'letmein', 'vault', 'sirri')
_STRENGTH_LABELS = ((80, 'Very Strong'), (60, 'Strong'), (40, 'Moderate'), (20, 'Weak'), (0, 'Very Weak'))

def check_password_strength(password: str) -> Tuple[int, str]:
	"""Score a master password 0-100 and say what would improve it."""
	hints = []
	length = len(password)
	if length >= 16: score = 40
	elif length >= 12: score = 30
	elif length >= 8: score = 20; hints.append('Use 12+ chars')
	else: score = 0; hints.append('Too short (min 8)')
	missing = [name for name, test in _CHAR_CLASSES if not any(test(c) for c in password)]
	score += 15 * (len(_CHAR_CLASSES) - len(missing))
	if missing: hints.append('Add ' + '/'.join(missing))
	if any(f in password.lower() for f in _COMMON_FRAGMENTS):
		score -= 20; hints.append('Avoid common words and sequences')
	if length and len(set(password)) < length * 0.6:
		score -= 10; hints.append('Too many repeated characters')
	score = max(0, min(100, score))
	label = next(name for floor, name in _STRENGTH_LABELS if score >= floor)
	return score, f"{label} ({score}/100)" + (' - ' + ', '.join(hints) if hints else '')
