"""Configuration package for SirriVault.

Everything lives in `config.settings`; this module re-exports it so callers
can write `from config import OTP_TIME_STEP`.
"""

from config.settings import *  # noqa: F401,F403
from config.settings import __all__  # noqa: F401
