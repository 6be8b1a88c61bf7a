"""CLI: Delete price/volume snapshots older than the retention window.

Example:
    python src/main_purge.py --days 90
"""
from __future__ import annotations

import argparse
from datetime import datetime, timezone

from config import get_ingest_settings, load_env_file
from db.db_conn import DbConn
from db.snapshot_store import SnapshotStore, StoreUnavailable


def parse_args() -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Purge expired snapshots")
    p.add_argument("--days", type=int, default=None, help="Retention in days (default SNAPSHOT_RETENTION_DAYS)")
    p.add_argument("--echo", action="store_true", help="Enable SQLAlchemy engine echo")
    return p.parse_args()


def main() -> int:
    load_env_file()
    args = parse_args()
    days = args.days or get_ingest_settings().retention_days

    try:
        store = SnapshotStore(DbConn(echo=args.echo), retention_days=days)
    except ValueError as exc:
        print(str(exc))
        return 2

    try:
        removed = store.purge_expired(datetime.now(timezone.utc))
    except StoreUnavailable as exc:
        print(f"Purge failed: {exc}")
        return 1

    print(f"Removed {removed} snapshots older than {days} days")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
