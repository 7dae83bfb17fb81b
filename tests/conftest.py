from datetime import datetime, timedelta, timezone
import pytest
from sirrivault.lib.crypto import VaultCrypto
from sirrivault.lib.notify import RecordingSink
from sirrivault.lib.storage import MemoryKeyValueStore


class FakeClock:
    """Clock that only moves when told to."""

    def __init__(self, start):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, **kw):
        self.now += timedelta(**kw)


@pytest.fixture
def clock():
    return FakeClock(datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc))

@pytest.fixture
def store():
    return MemoryKeyValueStore()

@pytest.fixture
def sink():
    return RecordingSink()

@pytest.fixture
def crypto():
    return VaultCrypto()

@pytest.fixture
def key(crypto):
    return crypto.secure_random_key()
