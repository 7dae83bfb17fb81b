"""Error taxonomy shared by the vault, authenticator and emergency-access code."""
from __future__ import annotations


class VaultError(Exception):
	"""Base class for every error the core raises."""


class ValidationError(VaultError):
	"""Bad input shape. Raised before any state is touched."""

class InvalidSecret(ValidationError): ...
class InvalidContact(ValidationError): ...


class CryptoError(VaultError): ...
class EncryptionError(CryptoError): ...

class AuthenticationFailure(CryptoError):
	"""Ciphertext failed authentication, or the key is wrong."""

class IntegrityError(CryptoError):
	"""A stored item failed authentication under a verified key.

	Means the record was tampered with or corrupted, not that it is missing.
	"""

class InsecureRandomError(CryptoError):
	"""No cryptographically secure random source is available."""


class StorageError(VaultError): ...
class AuthError(VaultError): ...

class NotFound(VaultError):
	def __init__(self, kind: str, ident: str):
		super().__init__(f'{kind} not found: {ident}')
		self.kind = kind; self.ident = ident


class EmergencyError(VaultError): ...

class NoTrustedContacts(EmergencyError):
	def __init__(self):
		super().__init__('Add at least one trusted contact before activating emergency mode')

class NotActive(EmergencyError):
	def __init__(self):
		super().__init__('Emergency mode is not active')
