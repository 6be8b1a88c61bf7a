from __future__ import annotations

from dataclasses import asdict
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from analytics.queries import DEFAULT_SERIES_EXCHANGES, MAX_SERIES_EXCHANGES, DashboardQueries
from analytics.windows import WindowValidationError, parse_window
from db.snapshot_store import StoreUnavailable
from pipeline.models import TrustLevel
from web.deps import get_queries
from web.responses import ApiResponse, fail, ok

router = APIRouter(prefix="/api/volumes", tags=["volumes"])


class ExchangeVolume(BaseModel):
    name: str
    volume_usd: float
    volume_home: float
    trading_pairs: List[str]
    trust: TrustLevel
    trade_url: Optional[str] = None


class DistributionBucket(BaseModel):
    name: str
    value: float
    percentage: float
    color: str


class VolumesData(BaseModel):
    total_volume_usd: float
    total_volume_home: float
    volume_change_24h: float
    exchange_count: int
    exchanges: List[ExchangeVolume]
    distribution: List[DistributionBucket]
    last_updated: datetime


class ChartPoint(BaseModel):
    time: int
    value: float


class VolumeHistoryData(BaseModel):
    historical: List[ChartPoint]
    last_updated: datetime


class ExchangeSeries(BaseModel):
    name: str
    color: str
    data: List[ChartPoint]


class ExchangeHistoryData(BaseModel):
    exchanges: List[ExchangeSeries]
    timestamps: List[int]
    last_updated: datetime


@router.get("", response_model=ApiResponse[VolumesData])
def get_volumes(
    max_display: Optional[int] = Query(None, ge=1, le=10),
    queries: DashboardQueries = Depends(get_queries),
):
    """Latest volume totals, the stored exchange list and the pie-chart distribution."""
    try:
        view = queries.get_volumes(max_display=max_display)
    except StoreUnavailable as exc:
        return fail(503, str(exc))
    if view is None:
        return fail(404, "No volume data available")
    return ok(VolumesData.model_validate(asdict(view)))


@router.get("/history", response_model=ApiResponse[VolumeHistoryData])
def get_volume_history(
    range_: str = Query("24h", alias="range"),
    queries: DashboardQueries = Depends(get_queries),
):
    """Total USD volume per snapshot, keyed by unix second."""
    try:
        window = parse_window(range_)
    except WindowValidationError as exc:
        return fail(400, str(exc))

    try:
        view = queries.get_volume_history(window)
    except StoreUnavailable as exc:
        return fail(503, str(exc))
    if view is None:
        return fail(404, "No volume data available")
    return ok(VolumeHistoryData.model_validate(asdict(view)))


@router.get("/history/exchanges", response_model=ApiResponse[ExchangeHistoryData])
def get_exchange_volume_history(
    range_: str = Query("24h", alias="range"),
    limit: int = Query(DEFAULT_SERIES_EXCHANGES, ge=1),
    queries: DashboardQueries = Depends(get_queries),
):
    """Aligned per-exchange volume series for the top ``limit`` exchanges (at most 8)."""
    try:
        window = parse_window(range_)
    except WindowValidationError as exc:
        return fail(400, str(exc))

    try:
        view = queries.get_exchange_volume_history(window, limit=min(limit, MAX_SERIES_EXCHANGES))
    except StoreUnavailable as exc:
        return fail(503, str(exc))
    if view is None:
        return fail(404, "No volume history available")
    return ok(ExchangeHistoryData.model_validate(asdict(view)))
