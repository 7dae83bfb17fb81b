import json
import pytest
from sirrivault.lib import auth
from sirrivault.lib.errors import AuthenticationFailure, IntegrityError, NotFound, ValidationError
from sirrivault.lib.notify import Severity
from sirrivault.lib.vault import VAULT_NS, VaultStore

@pytest.fixture
def owner_key(store, crypto):
    return auth.enroll(store, 'Correct-Horse-9', crypto, iterations=1000)

@pytest.fixture
def vault(store, owner_key, crypto, sink, clock):
    return VaultStore(store, owner_key, crypto, sink, clock)

def tamper(store, item_id):
    rec = json.loads(store.get(VAULT_NS, item_id))
    rec['ciphertext'] = rec['ciphertext'][:-4] + ('AAAA' if not rec['ciphertext'].endswith('AAAA') else 'BBBB')
    store.put(VAULT_NS, item_id, json.dumps(rec).encode())

def test_add_and_read_roundtrip(vault, clock):
    item = vault.add_item(b'passport scan', 'passport.pdf')
    assert item.id.startswith('file_') and item.kind == 'document'
    assert item.size_bytes == len(b'passport scan')
    assert item.ciphertext is None
    clock.advance(hours=1)
    assert vault.read_item(item.id) == b'passport scan'
    again = vault.get_item(item.id)
    assert again.last_accessed_at == clock().isoformat()
    assert again.uploaded_at != again.last_accessed_at

def test_ciphertext_at_rest(vault, store):
    item = vault.add_item(b'very private words', 'notes.txt')
    assert b'very private words' not in store.get(VAULT_NS, item.id)

def test_add_notifies_success(vault, sink):
    vault.add_item(b'x', 'a.txt')
    assert sink.events[-1][1] is Severity.SUCCESS

def test_invalid_kind_and_name(vault, store):
    with pytest.raises(ValidationError):
        vault.add_item(b'x', 'a.bin', kind='spreadsheet')
    with pytest.raises(ValidationError):
        vault.add_item(b'x', '   ')
    assert store.list_keys(VAULT_NS) == set()

def test_read_missing_item(vault):
    with pytest.raises(NotFound):
        vault.read_item('file_0_nope')

def test_delete_twice(vault):
    item = vault.add_item(b'x', 'a.txt')
    vault.delete_item(item.id)
    with pytest.raises(NotFound):
        vault.delete_item(item.id)
    with pytest.raises(NotFound):
        vault.read_item(item.id)

def test_tampered_item_is_integrity_error(vault, store, sink):
    item = vault.add_item(b'important', 'will.pdf')
    tamper(store, item.id)
    with pytest.raises(IntegrityError):
        vault.read_item(item.id)
    assert sink.events[-1][1] is Severity.ERROR

def test_undecodable_record_is_integrity_error(vault, store):
    item = vault.add_item(b'important', 'will.pdf')
    rec = json.loads(store.get(VAULT_NS, item.id))
    rec['ciphertext'] = '***'
    store.put(VAULT_NS, item.id, json.dumps(rec).encode())
    with pytest.raises(IntegrityError):
        vault.read_item(item.id)

def test_wrong_key_is_authentication_failure(vault, store, crypto, clock):
    item = vault.add_item(b'important', 'will.pdf')
    other = VaultStore(store, crypto.secure_random_key(), crypto, clock=clock)
    with pytest.raises(AuthenticationFailure):
        other.read_item(item.id)

def test_list_newest_first_and_filter(vault, clock):
    a = vault.add_item(b'1', 'Alpha.txt')
    b = vault.add_item(b'22', 'beta.jpg', kind='photo')
    c = vault.add_item(b'333', 'gamma.txt')
    assert [i.id for i in vault.list_items()] == [c.id, b.id, a.id]
    assert [i.id for i in vault.list_items('ALPHA')] == [a.id]
    assert [i.id for i in vault.list_items('photo')] == [b.id]
    assert vault.list_items('zzz') == []

def test_usage_summary_and_clear(vault, sink):
    assert vault.usage_summary().item_count == 0
    vault.add_item(b'abc', 'a'); vault.add_item(b'defgh', 'b')
    usage = vault.usage_summary()
    assert (usage.item_count, usage.total_bytes) == (2, 8)
    assert vault.clear_all() == 2
    assert vault.list_items() == []
    assert vault.clear_all() == 0
    assert sink.events[-1] == ('Vault is already empty', Severity.INFO)

def test_add_file_and_export(vault, tmp_path):
    src = tmp_path / 'photo.png'
    src.write_bytes(b'\x89PNG data')
    item = vault.add_file(src, kind='photo')
    assert item.display_name == 'photo.png'
    out_dir = tmp_path / 'out'; out_dir.mkdir()
    target = vault.export_item(item.id, out_dir)
    assert target == out_dir / 'photo.png'
    assert target.read_bytes() == b'\x89PNG data'

def test_add_file_missing(vault, tmp_path):
    with pytest.raises(ValidationError):
        vault.add_file(tmp_path / 'absent.txt')

def _break_record(store, item_id):
    rec = json.loads(store.get(VAULT_NS, item_id))
    rec['ciphertext'] = '***'
    store.put(VAULT_NS, item_id, json.dumps(rec).encode())

def test_damaged_record_does_not_block_listing(vault, store):
    good = vault.add_item(b'fine', 'ok.txt')
    bad = vault.add_item(b'broken', 'bad.txt')
    _break_record(store, bad.id)
    assert {i.id for i in vault.list_items()} == {good.id, bad.id}
    assert vault.usage_summary().item_count == 2
    assert vault.get_item(bad.id).display_name == 'bad.txt'
    assert vault.read_item(good.id) == b'fine'

def test_damaged_record_can_be_deleted(vault, store):
    bad = vault.add_item(b'broken', 'bad.txt')
    _break_record(store, bad.id)
    vault.delete_item(bad.id)
    assert vault.list_items() == []
