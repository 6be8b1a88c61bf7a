from __future__ import annotations

import hmac
from typing import Optional

from fastapi import APIRouter, Depends, Header
from pydantic import BaseModel

from api.coingecko_client import ProviderError
from config import IngestSettings
from db.snapshot_store import StoreUnavailable
from logger import get_logger
from pipeline.ingest_cycle import IngestionCycle
from pipeline.snapshot_builder import SnapshotBuildError
from web.deps import get_ingestion_cycle, get_settings
from web.responses import fail

router = APIRouter(prefix="/api/cron", tags=["cron"])
log = get_logger("cron")


class FetchDataResult(BaseModel):
    success: bool
    prices_stored: int
    volumes_stored: int
    api_calls: int = 0
    error: Optional[str] = None


BEARER_PREFIX = "Bearer "


def _authorized(auth_header: Optional[str], secret: Optional[str]) -> bool:
    if not secret:
        log.warning("CRON_SECRET not configured; rejecting scheduled trigger")
        return False
    if not auth_header or not auth_header.startswith(BEARER_PREFIX):
        return False
    token = auth_header[len(BEARER_PREFIX):].strip()
    return hmac.compare_digest(token.encode("utf-8"), secret.encode("utf-8"))


@router.get("/fetch-data")
def describe_fetch_data(settings: IngestSettings = Depends(get_settings)) -> dict:
    """Describe the scheduled ingestion endpoint."""
    return {
        "endpoint": "/api/cron/fetch-data",
        "method": "POST",
        "description": "Fetches market data from CoinGecko and stores a price/volume snapshot pair",
        "schedule": f"Every {settings.fetch_interval_minutes} minutes via an external scheduler",
        "authentication": "Bearer token required (CRON_SECRET)",
    }


@router.post("/fetch-data", response_model=FetchDataResult)
def fetch_data(
    authorization: Optional[str] = Header(None),
    settings: IngestSettings = Depends(get_settings),
    cycle: IngestionCycle = Depends(get_ingestion_cycle),
):
    """Run one ingestion cycle; any provider, build or store failure stores nothing and returns 500."""
    if not _authorized(authorization, settings.cron_secret):
        return fail(401, "Unauthorized")

    try:
        result = cycle.run()
    except (ProviderError, SnapshotBuildError, StoreUnavailable) as exc:
        log.error("Ingestion cycle failed: %s", exc)
        return fail(500, str(exc), prices_stored=0, volumes_stored=0)
    except Exception as exc:
        log.exception("Ingestion cycle crashed")
        return fail(500, f"Unexpected error: {exc}", prices_stored=0, volumes_stored=0)

    return FetchDataResult(
        success=True,
        prices_stored=result.prices_stored,
        volumes_stored=result.volumes_stored,
        api_calls=result.api_calls,
    )
