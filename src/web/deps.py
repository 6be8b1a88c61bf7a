"""Shared FastAPI dependencies (store, queries, ingestion cycle)."""
from __future__ import annotations

from typing import Optional

from fastapi import Depends, HTTPException

from api.coingecko_client import CoinGeckoClient
from analytics.queries import DashboardQueries
from config import get_ingest_settings, get_tracked_assets, load_env_file, IngestSettings
from db.db_conn import DbConn
from db.snapshot_store import SnapshotStore
from pipeline.ingest_cycle import IngestionCycle

# Load environment variables so DbConn can read DB settings.
load_env_file()

_store: Optional[SnapshotStore] = None
_client: Optional[CoinGeckoClient] = None


def get_settings() -> IngestSettings:
    return get_ingest_settings()


def get_store(settings: IngestSettings = Depends(get_settings)) -> SnapshotStore:
    """Provide the process-wide snapshot store (lazy init)."""
    global _store

    if _store is None:
        try:
            _store = SnapshotStore(DbConn(), retention_days=settings.retention_days)
        except ValueError as exc:
            raise HTTPException(status_code=503, detail=str(exc))
    return _store


def get_queries(store: SnapshotStore = Depends(get_store)) -> DashboardQueries:
    return DashboardQueries(store)


def get_client() -> CoinGeckoClient:
    """One client per process so its rate limiter covers every cycle."""
    global _client

    if _client is None:
        _client = CoinGeckoClient()
    return _client


def get_ingestion_cycle(
    store: SnapshotStore = Depends(get_store),
    client: CoinGeckoClient = Depends(get_client),
    settings: IngestSettings = Depends(get_settings),
) -> IngestionCycle:
    return IngestionCycle(
        client=client,
        store=store,
        assets=get_tracked_assets(),
        max_exchanges=settings.max_stored_exchanges,
    )
