"""Collapse raw per-pair tickers into one volume record per exchange."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from pipeline.models import ExchangeVolume, RawTicker, TrustLevel

MAX_STORED_EXCHANGES = 20

# CoinGecko reports trust as traffic-light colours.
_TRUST_ALIASES = {
    "green": TrustLevel.HIGH,
    "yellow": TrustLevel.MEDIUM,
    "red": TrustLevel.LOW,
}


@dataclass(frozen=True)
class NormalizedVolumes:
    exchanges: Tuple[ExchangeVolume, ...]
    exchange_count: int


def normalize_trust(raw: Optional[str]) -> TrustLevel:
    if not raw:
        return TrustLevel.UNKNOWN
    key = str(raw).strip().lower()
    if key in _TRUST_ALIASES:
        return _TRUST_ALIASES[key]
    try:
        return TrustLevel(key)
    except ValueError:
        return TrustLevel.UNKNOWN


def _float(value: Any, default: float = 0.0) -> float:
    if value is None:
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _opt_float(value: Any) -> Optional[float]:
    return None if value is None else _float(value)


def parse_ticker(item: Mapping[str, Any]) -> RawTicker:
    """Parse one entry of the /coins/{id}/tickers ``tickers`` array.

    CoinGecko ticker shape (abridged):
        {"base": "NEAR", "target": "USDT",
         "market": {"name": "Binance", "identifier": "binance"},
         "last": 5.1, "volume": 1200.0,
         "converted_volume": {"usd": 6120.0, "btc": 0.09, "eth": 1.8},
         "trust_score": "green", "is_anomaly": false, "is_stale": false,
         "trade_url": "https://..."}
    """
    market = item.get("market") or {}
    converted = item.get("converted_volume") or {}
    exchange = market.get("name") or market.get("identifier")
    if not exchange:
        raise ValueError("ticker has no market name")
    return RawTicker(
        base=str(item.get("base") or "?"),
        target=str(item.get("target") or "?"),
        exchange=str(exchange),
        exchange_id=market.get("identifier"),
        last=_opt_float(item.get("last")),
        volume=_float(item.get("volume")),
        volume_usd=_float(converted.get("usd")),
        volume_btc=_opt_float(converted.get("btc")),
        volume_eth=_opt_float(converted.get("eth")),
        trust_score=item.get("trust_score"),
        is_stale=bool(item.get("is_stale")),
        is_anomaly=bool(item.get("is_anomaly")),
        trade_url=item.get("trade_url") or None,
    )


def parse_tickers(payload: Mapping[str, Any]) -> List[RawTicker]:
    """Parse a full tickers response, skipping entries without an exchange name."""
    out: List[RawTicker] = []
    for item in payload.get("tickers") or []:
        if not isinstance(item, Mapping):
            continue
        try:
            out.append(parse_ticker(item))
        except ValueError:
            continue
    return out


class _Bucket:
    __slots__ = ("name", "volume_usd", "volume_home", "pairs", "trust", "trade_url")

    def __init__(self, ticker: RawTicker) -> None:
        self.name = ticker.exchange
        self.volume_usd = 0.0
        self.volume_home = 0.0
        self.pairs: Dict[str, None] = {}
        self.trust = normalize_trust(ticker.trust_score)
        self.trade_url = ticker.trade_url

    def add(self, ticker: RawTicker) -> None:
        self.volume_usd += ticker.volume_usd
        self.volume_home += ticker.volume
        self.pairs.setdefault(ticker.pair, None)

    def freeze(self) -> ExchangeVolume:
        return ExchangeVolume(
            name=self.name,
            volume_usd=self.volume_usd,
            volume_home=self.volume_home,
            trading_pairs=tuple(self.pairs),
            trust=self.trust,
            trade_url=self.trade_url,
        )


def aggregate_exchange_volumes(
    tickers: Iterable[RawTicker],
    limit: int = MAX_STORED_EXCHANGES,
) -> NormalizedVolumes:
    """
    Aggregate tickers into per-exchange volumes.

    Stale and anomalous tickers are dropped entirely. Trust and trade URL
    come from the first ticker seen for an exchange. The result is sorted by
    USD volume (descending, stable) and truncated to ``limit``;
    ``exchange_count`` counts every exchange before truncation.
    """
    buckets: Dict[str, _Bucket] = {}
    for ticker in tickers:
        if ticker.is_stale or ticker.is_anomaly:
            continue
        bucket = buckets.get(ticker.exchange)
        if bucket is None:
            bucket = buckets[ticker.exchange] = _Bucket(ticker)
        bucket.add(ticker)

    ranked = sorted((b.freeze() for b in buckets.values()), key=lambda e: e.volume_usd, reverse=True)
    return NormalizedVolumes(exchanges=tuple(ranked[: max(0, limit)]), exchange_count=len(ranked))
