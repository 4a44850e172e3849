#!/usr/bin/env python
"""
Load an equipment CSV into the configured database.

Usage:
    python scripts/import_catalog.py path/to/equipment.csv
"""
import sys
from pathlib import Path

# Add src to path
src_path = Path(__file__).parent.parent / 'src'
sys.path.insert(0, str(src_path))

from rental_booking.config.settings import get_settings
from rental_booking.data.import_catalog import import_catalog
from rental_booking.stores.sql import SqlStore


def main():
    if len(sys.argv) != 2:
        print(__doc__)
        sys.exit(2)

    settings = get_settings()
    store = SqlStore(settings.database_url, busy_timeout_ms=settings.sqlite_busy_timeout_ms)

    print("=" * 60)
    print("EQUIPMENT CATALOG IMPORT")
    print("=" * 60)

    report = import_catalog(sys.argv[1], store, verbose=True)

    if report["status"] != "success":
        print("\n❌ IMPORT FAILED")
        for error in report["errors"]:
            print(f"  ERROR: {error}")
        sys.exit(1)

    for warning in report["warnings"]:
        print(f"  WARNING: {warning}")

    print()
    print("Summary:")
    print(f"  Rows read: {report['metrics']['rows_read']}")
    print(f"  Loaded: {report['metrics']['rows_loaded']}")
    print(f"  Rejected: {report['metrics']['rows_rejected']}")
    print(f"  Duplicates removed: {report['metrics']['duplicates_removed']}")


if __name__ == "__main__":
    main()
