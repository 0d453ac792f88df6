"""CLI script to load apps, concepts and lectures from a JSON file.

The file holds `{"apps": [...], "concepts": [...], "lectures": [...]}`
using the same field names as the admin forms.

Usage: python scripts/import_catalog.py catalog.json [--dry-run]
"""
import sys
import argparse
import json
import pathlib
# Ensure `backend/` is on sys.path so `jmkcms` imports work when running this script directly
ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))
from jmkcms.database import get_document_store
from jmkcms import services


def main(path: str, dry_run: bool = False) -> int:
    """Import the catalog file into the configured document store.

    Results are printed to stdout; the exit code is 1 when any item failed.
    """
    source = pathlib.Path(path)
    if not source.exists():
        print(f'Catalog file not found at {source}')
        return 1
    payload = json.loads(source.read_text(encoding='utf-8'))
    svc = services.CatalogImportService(get_document_store())
    result = svc.import_catalog(payload, dry_run=dry_run)
    for section, count in result['created'].items():
        print(f'{section}: created {count}')
    for err in result['errors']:
        print(f"error in {err['section']}[{err['index']}]: {err['error']}")
    if dry_run:
        print('Dry run: nothing was written')
    return 1 if result['errors'] else 0


if __name__ == '__main__':
    parser = argparse.ArgumentParser()
    parser.add_argument('path', help='JSON file with apps/concepts/lectures lists')
    parser.add_argument('--dry-run', action='store_true', help='Validate only, do not write')
    args = parser.parse_args()
    sys.exit(main(args.path, dry_run=args.dry_run))
