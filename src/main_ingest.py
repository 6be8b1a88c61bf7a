"""CLI: Run the CoinGecko ingestion cycle and persist snapshots.

Fetches spot prices, enrichment and tickers via CoinGeckoClient and
inserts one price and one volume snapshot per cycle.

Example:
    python src/main_ingest.py
    python src/main_ingest.py --loop --interval 15
"""
from __future__ import annotations

import argparse
import time

from api.coingecko_client import CoinGeckoClient, ProviderError
from config import get_ingest_settings, get_tracked_assets, load_env_file
from db.db_conn import DbConn
from db.snapshot_store import SnapshotStore, StoreUnavailable
from pipeline.ingest_cycle import IngestionCycle
from pipeline.snapshot_builder import SnapshotBuildError


def parse_args() -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Ingest CoinGecko market snapshots into DB")
    p.add_argument("--loop", action="store_true", help="Keep running, one cycle per interval")
    p.add_argument("--interval", dest="interval_min", type=float, default=None,
                   help="Minutes between cycles with --loop (default FETCH_INTERVAL_MINUTES)")
    p.add_argument("--no-purge", dest="no_purge", action="store_true", help="Skip the retention purge after storing")
    p.add_argument("--echo", action="store_true", help="Enable SQLAlchemy engine echo")
    return p.parse_args()


def run_once(cycle: IngestionCycle) -> int:
    try:
        result = cycle.run()
    except (ProviderError, SnapshotBuildError, StoreUnavailable) as exc:
        print(f"Ingestion cycle failed: {exc}")
        return 1

    print(
        f"Stored prices={result.prices_stored} volumes={result.volumes_stored} at {result.timestamp.isoformat()} "
        f"(price={result.home_usd:.6f} USD, exchanges={result.exchange_count}, "
        f"enriched={result.enriched}, api_calls={result.api_calls}, purged={result.purged})"
    )
    return 0


def main() -> int:
    load_env_file()
    args = parse_args()
    settings = get_ingest_settings()

    try:
        db = DbConn(echo=args.echo)
    except ValueError as exc:
        print(str(exc))
        return 2

    cycle = IngestionCycle(
        client=CoinGeckoClient(),
        store=SnapshotStore(db, retention_days=settings.retention_days),
        assets=get_tracked_assets(),
        max_exchanges=settings.max_stored_exchanges,
        purge_expired=not args.no_purge,
    )

    if not args.loop:
        return run_once(cycle)

    interval_sec = 60.0 * (args.interval_min or settings.fetch_interval_minutes)
    try:
        while True:
            started = time.monotonic()
            run_once(cycle)
            time.sleep(max(0.0, interval_sec - (time.monotonic() - started)))
    except KeyboardInterrupt:
        print("Ingestion loop stopped.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
