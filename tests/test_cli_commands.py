import re
from click.testing import CliRunner
from sirrivault.cli.commands import cli

PW = ['--password', 'Correct-Horse-9']

def _init(monkeypatch, tmp_path):
    monkeypatch.setenv('VAULT_PATH', str(tmp_path / 'store'))
    runner = CliRunner()
    r = runner.invoke(cli, ['init'], input='Correct-Horse-9\nCorrect-Horse-9\n')
    assert r.exit_code == 0
    return runner

def _id(prefix, output):
    return re.search(rf'({prefix}_\d+_[0-9a-f]+)', output).group(1)

def test_cli_init_and_info(monkeypatch, tmp_path):
    runner = _init(monkeypatch, tmp_path)
    r = runner.invoke(cli, ['info'] + PW)
    assert r.exit_code == 0
    assert '"items": 0' in r.output
    assert '"totalContacts": 0' in r.output

def test_cli_init_twice_needs_force(monkeypatch, tmp_path):
    runner = _init(monkeypatch, tmp_path)
    again = runner.invoke(cli, ['init'] + PW)
    assert again.exit_code == 1
    assert 'Error: Vault exists' in again.output
    forced = runner.invoke(cli, ['init', '--force'] + PW)
    assert forced.exit_code == 0

def test_cli_wrong_password(monkeypatch, tmp_path):
    runner = _init(monkeypatch, tmp_path)
    r = runner.invoke(cli, ['list', '--password', 'nope'])
    assert r.exit_code == 1
    assert 'Invalid password' in r.output

def test_cli_add_list_read_delete(monkeypatch, tmp_path):
    runner = _init(monkeypatch, tmp_path)
    note = tmp_path / 'will.txt'
    note.write_text('Leave the piano to Ben')
    add = runner.invoke(cli, ['add', str(note)] + PW)
    assert add.exit_code == 0
    item_id = _id('file', add.output)
    lst = runner.invoke(cli, ['list'] + PW)
    assert 'will.txt' in lst.output
    read = runner.invoke(cli, ['read', item_id] + PW)
    assert 'Leave the piano to Ben' in read.output
    usage = runner.invoke(cli, ['usage'] + PW)
    assert '1 files, 22 bytes' in usage.output
    dele = runner.invoke(cli, ['delete', item_id, '--yes'] + PW)
    assert dele.exit_code == 0
    missing = runner.invoke(cli, ['read', item_id] + PW)
    assert missing.exit_code == 1
    assert 'Item not found' in missing.output

def test_cli_export(monkeypatch, tmp_path):
    runner = _init(monkeypatch, tmp_path)
    src = tmp_path / 'photo.png'
    src.write_bytes(b'\x89PNG\x00\xff')
    item_id = _id('file', runner.invoke(cli, ['add', str(src), '--kind', 'photo'] + PW).output)
    out = tmp_path / 'restored.png'
    r = runner.invoke(cli, ['export', item_id, str(out)] + PW)
    assert r.exit_code == 0
    assert out.read_bytes() == b'\x89PNG\x00\xff'

def test_cli_otp(monkeypatch, tmp_path):
    runner = _init(monkeypatch, tmp_path)
    add = runner.invoke(cli, ['otp', 'add', '--label', 'GitHub', '--secret', 'GEZDGNBVGY3TQOJQGEZDGNBVGY3TQOJQ'] + PW)
    assert add.exit_code == 0
    account_id = _id('account', add.output)
    code = runner.invoke(cli, ['otp', 'code', account_id] + PW)
    assert re.search(r'^\d{6}$', code.output, re.M)
    assert 'GitHub' in runner.invoke(cli, ['otp', 'list'] + PW).output
    bad = runner.invoke(cli, ['otp', 'add', '--label', 'Bank', '--secret', 'nope!'] + PW)
    assert bad.exit_code == 1
    assert 'base32' in bad.output

def test_cli_emergency_flow(monkeypatch, tmp_path):
    runner = _init(monkeypatch, tmp_path)
    none = runner.invoke(cli, ['emergency', 'activate', '--yes'] + PW)
    assert none.exit_code == 1
    assert 'trusted contact' in none.output
    add = runner.invoke(cli, ['contacts', 'add', '--name', 'Amina', '--relationship', 'sister',
                              '--channel', 'email', '--address', 'amina@example.com'] + PW)
    assert add.exit_code == 0
    contact_id = _id('contact', add.output)
    act = runner.invoke(cli, ['emergency', 'activate', '--yes'] + PW)
    assert act.exit_code == 0
    assert 'Mode: pending' in act.output
    req = runner.invoke(cli, ['emergency', 'request', contact_id])
    assert req.exit_code == 2
    assert 'recovery delay not elapsed' in req.output
    status = runner.invoke(cli, ['emergency', 'status'] + PW)
    assert 'Mode: pending' in status.output
    assert 'Recovery delay: 48 hours' in status.output
    rev = runner.invoke(cli, ['emergency', 'revoke'] + PW)
    assert 'Mode: inactive' in rev.output
    req = runner.invoke(cli, ['emergency', 'request', contact_id])
    assert 'emergency mode inactive' in req.output

def test_cli_emergency_delay_validation(monkeypatch, tmp_path):
    runner = _init(monkeypatch, tmp_path)
    r = runner.invoke(cli, ['emergency', 'delay', '0'] + PW)
    assert r.exit_code == 1
    assert 'Recovery delay must be' in r.output

def test_cli_legacy_export(monkeypatch, tmp_path):
    runner = _init(monkeypatch, tmp_path)
    out = tmp_path / 'legacy.json'
    r = runner.invoke(cli, ['emergency', 'export', '--dest', str(out)] + PW)
    assert r.exit_code == 0
    assert '"version": "1.0"' in out.read_text()

def test_cli_long_master_password(monkeypatch, tmp_path):
    monkeypatch.setenv('VAULT_PATH', str(tmp_path / 'store'))
    runner = CliRunner()
    long_pw = ['--password', 'x' * 80 + 'A1!']
    r = runner.invoke(cli, ['init'] + long_pw)
    assert r.exit_code == 0
    assert 'Vault created' in r.output
    assert runner.invoke(cli, ['usage'] + long_pw).exit_code == 0
    wrong = runner.invoke(cli, ['usage', '--password', 'x' * 80 + 'A1?'])
    assert wrong.exit_code == 1
    assert 'Invalid password' in wrong.output
