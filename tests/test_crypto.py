import pytest
from sirrivault.lib import crypto as crypto_mod
from sirrivault.lib.crypto import (
    VaultCrypto, check_password_strength, decode_secret, format_code, seconds_remaining
)
from sirrivault.lib.errors import AuthenticationFailure, InsecureRandomError, InvalidSecret, ValidationError

RFC_SECRET = b'12345678901234567890'
RFC_SECRET_B32 = 'GEZDGNBVGY3TQOJQGEZDGNBVGY3TQOJQ'


def test_derive_key_consistency():
    c = VaultCrypto()
    salt = c.generate_salt()
    k1 = c.derive_key('secret', salt, 1000)
    k2 = c.derive_key('secret', salt, 1000)
    assert k1 == k2 and len(k1) == 32
    assert c.derive_key('secret', c.generate_salt(), 1000) != k1

def test_encrypt_decrypt_various_sizes(crypto, key):
    for payload in [b'', b'a', b'hello world', b'x'*1024, bytes(range(256))*64]:
        blob = crypto.encrypt(payload, key)
        assert blob != payload and len(blob) == len(payload) + 28
        assert crypto.decrypt(blob, key) == payload

def test_fresh_nonce_per_call(crypto, key):
    a = crypto.encrypt(b'same', key); b = crypto.encrypt(b'same', key)
    assert a[:12] != b[:12]
    assert a != b

def test_every_bit_flip_is_detected(crypto, key):
    blob = crypto.encrypt(b'top secret', key)
    for i in range(len(blob) * 8):
        tampered = bytearray(blob)
        tampered[i // 8] ^= 1 << (i % 8)
        with pytest.raises(AuthenticationFailure):
            crypto.decrypt(bytes(tampered), key)

def test_decrypt_wrong_key(crypto, key):
    blob = crypto.encrypt(b'data', key)
    with pytest.raises(AuthenticationFailure):
        crypto.decrypt(blob, crypto.secure_random_key())

def test_decrypt_truncated(crypto, key):
    with pytest.raises(AuthenticationFailure):
        crypto.decrypt(crypto.encrypt(b'data', key)[:20], key)

def test_master_key_verification(crypto, key):
    token = crypto.generate_master_key_verification(key)
    assert crypto.verify_master_key(key, token)
    assert not crypto.verify_master_key(crypto.secure_random_key(), token)
    assert not crypto.verify_master_key(key, 'not base64!')

def test_secure_random_key_length(crypto):
    assert len(crypto.secure_random_key(16)) == 16
    assert crypto.secure_random_key() != crypto.secure_random_key()

def test_missing_random_source_is_reported(monkeypatch, crypto):
    def broken(n):
        raise NotImplementedError('no urandom')
    monkeypatch.setattr(crypto_mod.secrets, 'token_bytes', broken)
    with pytest.raises(InsecureRandomError):
        crypto.secure_random_key()


@pytest.mark.parametrize('at,expected', [
    (59, '287082'),
    (1111111109, '081804'),
    (1111111111, '050471'),
    (1234567890, '005924'),
    (2000000000, '279037'),
    (20000000000, '353130'),
])
def test_rfc6238_vectors(crypto, at, expected):
    assert crypto.derive_otp(RFC_SECRET, 30, 0, at) == expected
    assert crypto.otp_for_secret(RFC_SECRET_B32, 30, at) == expected

def test_otp_with_80_bit_secret(crypto):
    assert crypto.otp_for_secret('GEZDGNBVGY3TQOJQ', 30, 59) == '263420'

def test_otp_stable_within_window_and_changes_after(crypto):
    assert crypto.derive_otp(RFC_SECRET, 30, 0, 60) == crypto.derive_otp(RFC_SECRET, 30, 0, 89.9)
    assert crypto.derive_otp(RFC_SECRET, 30, 0, 59) != crypto.derive_otp(RFC_SECRET, 30, 0, 60)

def test_otp_skew_steps(crypto):
    assert crypto.derive_otp(RFC_SECRET, 30, 1, 59) == crypto.derive_otp(RFC_SECRET, 30, 0, 60)
    assert crypto.derive_otp(RFC_SECRET, 30, -1, 59) == '755224'

def test_decode_secret_normalises_input():
    assert decode_secret('gezd gnbv gy3t qojq') == b'1234567890'
    assert decode_secret(RFC_SECRET_B32 + '====') == RFC_SECRET

@pytest.mark.parametrize('bad', ['', 'not*base32!', 'GEZDGNBV', '18181818'])
def test_decode_secret_rejects(bad):
    with pytest.raises(InvalidSecret):
        decode_secret(bad)

def test_seconds_remaining_follows_wall_clock():
    assert seconds_remaining(30, 59) == 1
    assert seconds_remaining(30, 60) == 30
    assert seconds_remaining(30, 75.5) == 15

def test_format_code():
    assert format_code('287082') == '287 082'

@pytest.mark.parametrize('pwd,expected_min', [
    ('weak', 0),
    ('Stronger12!', 60),
    ('VeryStr0ng#Passphrase', 80)
])
def test_password_strength_scores(pwd, expected_min):
    score, feedback = check_password_strength(pwd)
    assert score >= expected_min
    assert f'({score}/100)' in feedback

def test_password_strength_flags_short():
    score, feedback = check_password_strength('abc')
    assert score < 40 and 'Too short' in feedback

def test_derive_key_rejects_empty_password(crypto):
    with pytest.raises(ValidationError):
        crypto.derive_key('', crypto.generate_salt(), 1000)

def test_password_strength_names_missing_classes():
    score, feedback = check_password_strength('lowercaseonlyphrase')
    assert 'Add uppercase/digits/symbols' in feedback
    assert score < 60
