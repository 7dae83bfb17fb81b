"""CLI commands implemented with click.

Owner commands prompt for the master password and unlock the vault before
doing anything. `emergency request` is the only command a trusted contact
runs; it needs no password.
"""
from __future__ import annotations
import json, logging, shutil, functools
from datetime import datetime
from pathlib import Path
import click
from config.settings import ITEM_KINDS, CONTACT_CHANNELS, TRUST_LEVELS, LOG_LEVEL, LOG_FORMAT, store_path
from sirrivault.lib.app import SirriVault
from sirrivault.lib.crypto import check_password_strength, format_code
from sirrivault.lib.errors import VaultError
from sirrivault.lib.notify import Severity

_COLORS = {Severity.INFO: 'cyan', Severity.SUCCESS: 'green', Severity.WARNING: 'yellow', Severity.ERROR: 'red'}


class EchoSink:
	def notify(self, message: str, severity: Severity = Severity.INFO) -> None:
		click.secho(message, fg=_COLORS[Severity(severity)], err=severity == Severity.ERROR)


def _app() -> SirriVault:
	return SirriVault.open(store_path(), sink=EchoSink())

def _owner(password: str) -> SirriVault:
	app = _app()
	app.unlock(password)
	app.start()
	return app

def handle_errors(fn):
	@functools.wraps(fn)
	def wrapper(*args, **kwargs):
		try:
			return fn(*args, **kwargs)
		except VaultError as e:
			click.echo(f'Error: {e}')
			raise SystemExit(1)
	return wrapper

def password_option(fn):
	return click.option('--password', prompt=True, hide_input=True)(fn)

def _when(value: str | None) -> str:
	if not value: return '-'
	return datetime.fromisoformat(value).strftime('%Y-%m-%d %H:%M')


@click.group()
@click.option('--log-level', default=LOG_LEVEL, show_default=True, help='Logging level.')
def cli(log_level):
	"""SirriVault: encrypted files, authenticator codes and emergency access."""
	logging.basicConfig(level=log_level.upper(), format=LOG_FORMAT)

@cli.command()
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True)
@click.option('--force', is_flag=True, help='Recreate if vault already exists.')
@handle_errors
def init(password, force):
	"""Initialise a new encrypted vault (use --force to recreate)."""
	root = store_path()
	if force and root.exists():
		shutil.rmtree(root)
	app = _app()
	app.init(password)
	score, fb = check_password_strength(password)
	if score < 60:
		click.secho(f'Warning: weak master password: {fb}', fg='yellow')
	click.echo('Vault created.')

@cli.command('pw-strength')
@click.argument('password')
def pw_strength_cmd(password):
	score, fb = check_password_strength(password)
	click.echo(f"Score: {score} -> {fb}")

@cli.command()
@password_option
@handle_errors
def info(password):
	"""Show store location and a summary of each subsystem."""
	app = _owner(password)
	usage = app.vault.usage_summary()
	out = {
		'path': str(store_path()),
		'items': usage.item_count,
		'totalBytes': usage.total_bytes,
		'authenticator': app.authenticator.account_stats(),
		'legacy': app.emergency.legacy_stats(),
	}
	click.echo(json.dumps(out, indent=2))

# --- vault items ---

@cli.command('add')
@click.argument('path', type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option('--kind', type=click.Choice(sorted(ITEM_KINDS)), default='document', show_default=True)
@click.option('--name', default=None, help='Display name (defaults to the file name).')
@password_option
@handle_errors
def add_item(path, kind, name, password):
	"""Encrypt a file into the vault."""
	item = _owner(password).vault.add_file(path, kind, name)
	click.echo(f'Added {item.id}.')

@cli.command('list')
@click.option('--query', '-q', default=None, help='Filter by name or kind.')
@password_option
@handle_errors
def list_items(query, password):
	items = _owner(password).vault.list_items(query)
	if not items:
		click.echo(f'No files found matching "{query}"' if query else 'Your vault is empty.')
	for i in items:
		click.echo(f"{i.id}: {i.display_name} [{i.kind}] {i.size_bytes} B  uploaded {_when(i.uploaded_at)}  accessed {_when(i.last_accessed_at)}")

@cli.command('read')
@click.argument('item_id')
@password_option
@handle_errors
def read_item(item_id, password):
	"""Print a text item to the terminal."""
	data = _owner(password).vault.read_item(item_id)
	try:
		click.echo(data.decode('utf-8'))
	except UnicodeDecodeError:
		click.echo('Binary content; use `export` to write it to a file.')

@cli.command('export')
@click.argument('item_id')
@click.argument('dest', type=click.Path(path_type=Path))
@password_option
@handle_errors
def export_item(item_id, dest, password):
	"""Decrypt an item to a local file."""
	out = _owner(password).vault.export_item(item_id, dest)
	click.echo(f'Exported to {out}')

@cli.command('delete')
@click.argument('item_id')
@password_option
@click.option('--yes', is_flag=True, help='Do not ask for confirmation.')
@handle_errors
def delete_item(item_id, password, yes):
	"""Permanently delete an item."""
	vault = _owner(password).vault
	item = vault.get_item(item_id)
	if not yes and not click.confirm(f'Permanently delete "{item.display_name}"? This cannot be undone.'):
		click.echo('Aborted.')
		return
	vault.delete_item(item_id)

@cli.command('usage')
@password_option
@handle_errors
def usage(password):
	u = _owner(password).vault.usage_summary()
	click.echo(f'{u.item_count} files, {u.total_bytes} bytes')

@cli.command('clear')
@password_option
@click.option('--yes', is_flag=True, help='Do not ask for confirmation.')
@handle_errors
def clear(password, yes):
	"""Delete every item in the vault."""
	vault = _owner(password).vault
	count = vault.usage_summary().item_count
	if count and not yes and not click.confirm(f'Delete all {count} files? This cannot be undone.'):
		click.echo('Aborted.')
		return
	vault.clear_all()

# --- authenticator ---

@cli.group()
def otp():
	"""Authenticator codes for linked accounts."""

@otp.command('add')
@password_option
@click.option('--label', prompt=True)
@click.option('--secret', prompt=True, hide_input=True, help='Base32 shared secret.')
@click.option('--issuer', default='Custom', show_default=True)
@handle_errors
def otp_add(password, label, secret, issuer):
	account = _owner(password).authenticator.add_account(label, secret, issuer)
	click.echo(f'Account {account.id} added.')

@otp.command('list')
@password_option
@handle_errors
def otp_list(password):
	for row in _owner(password).authenticator.list_accounts():
		a = row.account
		click.echo(f"{a.id}: {a.label} ({a.issuer})  {format_code(row.code)}  {row.seconds_remaining}s  last used {_when(a.last_used_at)}")

@otp.command('code')
@click.argument('account_id')
@password_option
@handle_errors
def otp_code(account_id, password):
	"""Print the current code and mark the account as used."""
	click.echo(_owner(password).authenticator.use_code(account_id))

@otp.command('remove')
@click.argument('account_id')
@password_option
@click.option('--yes', is_flag=True)
@handle_errors
def otp_remove(account_id, password, yes):
	reg = _owner(password).authenticator
	account = reg.get_account(account_id)
	if not yes and not click.confirm(f'Are you sure you want to delete "{account.label}"?'):
		click.echo('Aborted.')
		return
	reg.remove_account(account_id)

@otp.command('stats')
@password_option
@handle_errors
def otp_stats(password):
	click.echo(json.dumps(_owner(password).authenticator.account_stats()))

# --- trusted contacts ---

@cli.group()
def contacts():
	"""Trusted contacts for emergency access."""

@contacts.command('add')
@password_option
@click.option('--name', prompt=True)
@click.option('--relationship', prompt=True)
@click.option('--channel', type=click.Choice(CONTACT_CHANNELS), default='phone', show_default=True)
@click.option('--address', prompt='Phone number or email address')
@click.option('--trust', type=click.Choice(TRUST_LEVELS), default='medium', show_default=True)
@handle_errors
def contacts_add(password, name, relationship, channel, address, trust):
	c = _owner(password).emergency.add_contact(name, relationship, channel, address, trust)
	click.echo(f'Contact {c.id} added.')

@contacts.command('list')
@password_option
@handle_errors
def contacts_list(password):
	for c in _owner(password).emergency.list_contacts():
		state = 'verified' if c.verified else 'pending'
		click.echo(f"{c.id}: {c.name} ({c.relationship}) {c.channel}:{c.address} trust={c.trust_level} {state}")

@contacts.command('remove')
@click.argument('contact_id')
@password_option
@click.option('--yes', is_flag=True)
@handle_errors
def contacts_remove(contact_id, password, yes):
	em = _owner(password).emergency
	c = em.get_contact(contact_id)
	if not yes and not click.confirm(f'Remove {c.name} from trusted contacts?'):
		click.echo('Aborted.')
		return
	em.remove_contact(contact_id)

@contacts.command('verify')
@click.argument('contact_id')
@password_option
@handle_errors
def contacts_verify(contact_id, password):
	"""Record that a contact passed out-of-band verification."""
	c = _owner(password).emergency.mark_verified(contact_id)
	click.echo(f'{c.name} verified.')

# --- emergency access ---

@cli.group()
def emergency():
	"""Emergency access (dead-man's switch)."""

@emergency.command('activate')
@password_option
@click.option('--yes', is_flag=True)
@handle_errors
def emergency_activate(password, yes):
	em = _owner(password).emergency
	if not yes and not click.confirm('Activate emergency mode? Trusted contacts can access your vault after the recovery delay.'):
		click.echo('Aborted.')
		return
	s = em.activate()
	click.echo(f'Mode: {s.mode}, access opens {_when(s.access_available_at.isoformat())}')

@emergency.command('revoke')
@password_option
@handle_errors
def emergency_revoke(password):
	_owner(password).emergency.revoke()
	click.echo('Mode: inactive')

@emergency.command('status')
@password_option
@handle_errors
def emergency_status(password):
	st = _owner(password).emergency.evaluate()
	click.echo(f'Mode: {st.mode.value}')
	click.echo(f'Recovery delay: {st.recovery_delay_hours} hours')
	if st.activated_at:
		click.echo(f'Activated: {_when(st.activated_at.isoformat())}')
		click.echo(f'Access opens: {_when(st.access_available_at.isoformat())}')

@emergency.command('request')
@click.argument('contact_id')
@handle_errors
def emergency_request(contact_id):
	"""Request emergency access as a trusted contact."""
	decision = _app().emergency.request_access(contact_id)
	if decision.granted:
		click.echo('Granted')
		return
	msg = f'Denied ({decision.reason})'
	if decision.remaining is not None:
		msg += f'; remaining {decision.remaining}'
	click.echo(msg)
	raise SystemExit(2)

@emergency.command('delay')
@click.argument('hours', type=int)
@password_option
@handle_errors
def emergency_delay(hours, password):
	_owner(password).emergency.set_recovery_delay(hours)

@emergency.command('law-enforcement')
@click.option('--enable/--disable', default=True)
@password_option
@handle_errors
def emergency_law_enforcement(enable, password):
	_owner(password).emergency.set_law_enforcement_access(enable)

@emergency.command('export')
@click.option('--dest', type=click.Path(dir_okay=False, path_type=Path), default=None, help='Write to file instead of stdout.')
@password_option
@handle_errors
def emergency_export(dest, password):
	"""Export trusted contacts and emergency settings as JSON."""
	data = json.dumps(_owner(password).emergency.export_legacy_data(), indent=2)
	if dest is None:
		click.echo(data)
		return
	dest.write_text(data, encoding='utf-8')
	click.echo(f'Legacy data exported to {dest}')
