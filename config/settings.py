"""Project configuration settings.

Constants shared by the vault, authenticator and emergency-access code.
Paths are resolved at call time through `store_path()` so that tests and
wrappers can point `VAULT_PATH` somewhere else after import.
"""

from pathlib import Path
import os

# Security / crypto
DEFAULT_ITERATIONS = 200_000
SALT_LENGTH = 32
KEY_LENGTH = 32  # AES-256
NONCE_LENGTH = 12  # GCM nonce
AUTH_TAG_LENGTH = 16  # GCM tag length

# Store
DEFAULT_STORE_PATH = Path("vault_data")
STORE_QUOTA_BYTES = int(os.environ.get("VAULT_QUOTA_BYTES", 0)) or None

# Vault items
ITEM_KINDS = {"document": "Document", "photo": "Photo", "video": "Video", "audio": "Audio"}
MAX_FILE_SIZE = 50 * 1024 * 1024  # 50MB

# Authenticator
OTP_TIME_STEP = int(os.environ.get("VAULT_OTP_STEP", 30))
OTP_DIGITS = 6
MIN_SECRET_BYTES = 10  # 80 bits
RECENT_USE_HOURS = 24

# Emergency access
DEFAULT_RECOVERY_DELAY_HOURS = 48
MIN_RECOVERY_DELAY_HOURS = 1
MAX_RECOVERY_DELAY_HOURS = 24 * 365
CONTACT_CHANNELS = ("phone", "email")
TRUST_LEVELS = ("low", "medium", "high")
ENABLED_NOTIFY_CHANNELS = tuple(
	c.strip() for c in os.environ.get("VAULT_NOTIFY_CHANNELS", "phone,email").split(",") if c.strip()
)
LEGACY_EXPORT_VERSION = "1.0"

# Logging
LOG_LEVEL = os.environ.get("VAULT_LOG_LEVEL", "WARNING")
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

# Backup
BACKUP_PREFIX = "vault_"


def store_path() -> Path:
	env_path = os.environ.get("VAULT_PATH")
	return Path(env_path) if env_path else DEFAULT_STORE_PATH


__all__ = [
	'DEFAULT_ITERATIONS', 'SALT_LENGTH', 'KEY_LENGTH', 'NONCE_LENGTH', 'AUTH_TAG_LENGTH',
	'DEFAULT_STORE_PATH', 'STORE_QUOTA_BYTES', 'ITEM_KINDS', 'MAX_FILE_SIZE',
	'OTP_TIME_STEP', 'OTP_DIGITS', 'MIN_SECRET_BYTES', 'RECENT_USE_HOURS',
	'DEFAULT_RECOVERY_DELAY_HOURS', 'MIN_RECOVERY_DELAY_HOURS', 'MAX_RECOVERY_DELAY_HOURS',
	'CONTACT_CHANNELS', 'TRUST_LEVELS', 'ENABLED_NOTIFY_CHANNELS', 'LEGACY_EXPORT_VERSION',
	'LOG_LEVEL', 'LOG_FORMAT', 'BACKUP_PREFIX', 'store_path'
]
