"""Build the price/volume snapshot pair for one ingestion timestamp."""
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Mapping, Optional, Tuple

from config import TrackedAssets
from pipeline.models import MarketMeta, PriceSnapshot, VolumeSnapshot
from pipeline.normalizer import NormalizedVolumes


class SnapshotBuildError(ValueError):
    """Raised when provider data cannot produce a valid snapshot; nothing is stored."""


def _usd_price(prices: Mapping[str, Any], asset_id: str) -> Optional[float]:
    entry = prices.get(asset_id)
    if not isinstance(entry, Mapping):
        return None
    value = entry.get("usd")
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _opt(entry: Mapping[str, Any], key: str) -> Optional[float]:
    value = entry.get(key)
    return None if value is None else float(value)


def _usd(block: Any) -> Any:
    """CoinGecko nests per-currency values as {"usd": ...}."""
    if isinstance(block, Mapping):
        return block.get("usd")
    return None


def parse_market_meta(coin: Optional[Mapping[str, Any]]) -> Optional[MarketMeta]:
    """
    Extract enrichment fields from a /coins/{id} payload.

    Returns None when the payload is missing or carries no usable field;
    malformed individual fields are dropped rather than failing the parse.
    """
    if not coin:
        return None
    md = coin.get("market_data")
    if not isinstance(md, Mapping):
        md = {}

    raw: Dict[str, Any] = {
        "market_cap_rank": coin.get("market_cap_rank"),
        "ath": _usd(md.get("ath")),
        "ath_change_percentage": _usd(md.get("ath_change_percentage")),
        "ath_date": _usd(md.get("ath_date")),
        "atl": _usd(md.get("atl")),
        "atl_change_percentage": _usd(md.get("atl_change_percentage")),
        "price_change_7d": md.get("price_change_percentage_7d"),
        "price_change_30d": md.get("price_change_percentage_30d"),
        "high_24h": _usd(md.get("high_24h")),
        "low_24h": _usd(md.get("low_24h")),
        "circulating_supply": md.get("circulating_supply"),
        "total_supply": md.get("total_supply"),
        "fully_diluted_valuation": _usd(md.get("fully_diluted_valuation")),
    }

    clean: Dict[str, Any] = {}
    for key, value in raw.items():
        if value is None:
            continue
        try:
            if key == "market_cap_rank":
                clean[key] = int(value)
            elif key == "ath_date":
                clean[key] = str(value)
            else:
                clean[key] = float(value)
        except (TypeError, ValueError):
            continue

    meta = MarketMeta(**clean)
    return None if meta.is_empty() else meta


def build_price_snapshot(
    prices: Mapping[str, Any],
    coin: Optional[Mapping[str, Any]],
    assets: TrackedAssets,
    timestamp: datetime,
) -> PriceSnapshot:
    """
    Combine /simple/price output and optional /coins/{id} enrichment.

    Raises:
        SnapshotBuildError: when a spot price is missing or negative, or a
            reference price is zero (the cross-rate would be undefined).
    """
    spot: Dict[str, float] = {}
    for asset_id in assets.all_ids:
        price = _usd_price(prices, asset_id)
        if price is None:
            raise SnapshotBuildError(f"missing USD price for {asset_id}")
        if price < 0:
            raise SnapshotBuildError(f"negative USD price for {asset_id}: {price}")
        spot[asset_id] = price

    home_usd = spot[assets.home]
    cross_rates: Dict[str, float] = {}
    for ref in assets.references:
        if ref == assets.home:
            continue
        ref_usd = spot[ref]
        if ref_usd == 0:
            raise SnapshotBuildError(f"USD price for {ref} is zero; {assets.home}/{ref} is undefined")
        cross_rates[ref] = home_usd / ref_usd

    home_entry = prices.get(assets.home) or {}
    try:
        market_cap = _opt(home_entry, "usd_market_cap")
        volume_24h = _opt(home_entry, "usd_24h_vol")
        change_24h = _opt(home_entry, "usd_24h_change")
    except (TypeError, ValueError):
        market_cap = volume_24h = change_24h = None

    return PriceSnapshot(
        timestamp=timestamp,
        home_asset=assets.home,
        spot_usd=spot,
        cross_rates=cross_rates,
        market_cap=market_cap,
        volume_24h=volume_24h,
        price_change_24h=change_24h,
        market_meta=parse_market_meta(coin),
    )


def build_volume_snapshot(normalized: NormalizedVolumes, timestamp: datetime) -> VolumeSnapshot:
    """Totals cover only the stored (truncated) exchanges, not every exchange seen."""
    return VolumeSnapshot(
        timestamp=timestamp,
        total_volume_usd=sum(e.volume_usd for e in normalized.exchanges),
        total_volume_home=sum(e.volume_home for e in normalized.exchanges),
        exchange_count=normalized.exchange_count,
        exchanges=normalized.exchanges,
    )


def build_snapshots(
    prices: Mapping[str, Any],
    coin: Optional[Mapping[str, Any]],
    normalized: NormalizedVolumes,
    assets: TrackedAssets,
    timestamp: datetime,
) -> Tuple[PriceSnapshot, VolumeSnapshot]:
    """Return the snapshot pair sharing ``timestamp``."""
    price = build_price_snapshot(prices, coin, assets, timestamp)
    volume = build_volume_snapshot(normalized, timestamp)
    return price, volume
