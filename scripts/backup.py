"""Simple backup utility script.

Copies the whole store directory (records stay encrypted) to a timestamped
folder.

Usage (from repo root):
  python -m scripts.backup --dest backups/
"""
from __future__ import annotations
import shutil
from datetime import datetime
from pathlib import Path
import click
from config import settings

def backup_store(source: Path, dest: Path) -> Path:
	stamp = datetime.now().strftime('%Y%m%d_%H%M%S')
	target = dest / f"{settings.BACKUP_PREFIX}{stamp}"
	dest.mkdir(parents=True, exist_ok=True)
	shutil.copytree(source, target, ignore=shutil.ignore_patterns('*.tmp'))
	return target

@click.command()
@click.option('--dest', type=click.Path(file_okay=False, path_type=Path), default=Path('backups'), help='Destination directory for backups.')
def main(dest: Path):
	source = settings.store_path()
	if not source.is_dir():
		click.echo(f"No vault at {source}; nothing to backup.")
		raise SystemExit(1)
	click.echo(f"Backup written: {backup_store(source, dest)}")

if __name__ == '__main__':  # pragma: no cover
	main()
