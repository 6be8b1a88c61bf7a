"""CLI: Test database connectivity and report snapshot status.

Reads configuration from resources/.env via config.load_env_file().
Performs a simple SELECT 1 using SQLAlchemy, prints the current Alembic
revision if available, and the newest stored snapshots plus API usage.
"""
from __future__ import annotations

import argparse

from sqlalchemy.exc import SQLAlchemyError

from config import load_env_file, get_database_url
from db.db_conn import DbConn
from db.snapshot_store import SnapshotStore, StoreUnavailable


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Test DB connection")
    parser.add_argument("--echo", action="store_true", help="Enable SQLAlchemy engine echo")
    parser.add_argument(
        "--create-tables",
        action="store_true",
        help="Create missing tables from ORM metadata (local SQLite; use Alembic for PostgreSQL)",
    )
    return parser.parse_args()


def main() -> int:
    load_env_file()

    url = get_database_url()
    if not url:
        print("DATABASE_URL not set or incomplete DB_* variables. Check resources/.env.")
        return 2

    args = parse_args()
    try:
        db = DbConn(db_url=url, echo=args.echo)
    except Exception as exc:
        print(f"Failed to configure engine: {exc}")
        return 2

    ok = db.test_connection()
    print(f"Connection test: {'OK' if ok else 'FAILED'}")
    if not ok:
        return 1

    if args.create_tables:
        db.create_all()
        print("Tables created (if missing).")

    rev = db.get_alembic_revision()
    if rev:
        print(f"Alembic revision: {rev}")
    else:
        print("Alembic revision: not found (no alembic_version table)")

    store = SnapshotStore(db)
    try:
        latest_price = store.latest("price")
        latest_volume = store.latest("volume")
        with db.session_scope() as s:
            usage = store.usage.get(s)
            usage_line = (
                f"API calls today={usage.api_calls_today} month={usage.api_calls_month} "
                f"(reset {usage.last_reset_date.isoformat()})"
                if usage is not None
                else "API usage: none recorded"
            )
    except (StoreUnavailable, SQLAlchemyError) as exc:
        print(f"Snapshot tables unreadable: {exc}")
        return 1

    print(f"Latest price snapshot: {latest_price.timestamp.isoformat() if latest_price else 'none'}")
    print(f"Latest volume snapshot: {latest_volume.timestamp.isoformat() if latest_volume else 'none'}")
    print(usage_line)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
