from __future__ import annotations

from dataclasses import asdict
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from analytics.queries import DashboardQueries
from analytics.windows import WindowValidationError, parse_window
from db.snapshot_store import StoreUnavailable
from web.deps import get_queries
from web.responses import ApiResponse, fail, ok

router = APIRouter(prefix="/api/prices", tags=["prices"])


class ChartPoint(BaseModel):
    time: Union[int, str]
    value: float


class CurrentPrice(BaseModel):
    home_asset: str
    home_usd: float
    spot_usd: Dict[str, float]
    cross_rates: Dict[str, float]
    price_change_24h: float
    cross_rate_changes_24h: Dict[str, float]
    market_cap: float
    volume_24h: float
    market_meta: Optional[Dict[str, Any]] = None


class PricesData(BaseModel):
    current: CurrentPrice
    historical: List[ChartPoint]
    last_updated: datetime


@router.get("", response_model=ApiResponse[PricesData])
def get_prices(
    range_: str = Query("24h", alias="range"),
    queries: DashboardQueries = Depends(get_queries),
):
    """
    Latest price snapshot plus the home-asset price series for ``range``.

    1h/24h points are keyed by unix second, 7d/30d points by calendar day.
    """
    try:
        window = parse_window(range_)
    except WindowValidationError as exc:
        return fail(400, str(exc))

    try:
        view = queries.get_prices(window)
    except StoreUnavailable as exc:
        return fail(503, str(exc))
    if view is None:
        return fail(404, "No price data available")

    payload = asdict(view)
    meta = view.current.market_meta
    payload["current"]["market_meta"] = meta.to_dict() if meta is not None else None
    return ok(PricesData.model_validate(payload))
