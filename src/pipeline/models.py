"""Immutable records produced by one ingestion cycle."""
from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple


class TrustLevel(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class RawTicker:
    """One CoinGecko ticker, reduced to the fields ingestion needs."""

    base: str
    target: str
    exchange: str
    exchange_id: Optional[str]
    last: Optional[float]
    volume: float
    volume_usd: float
    volume_btc: Optional[float] = None
    volume_eth: Optional[float] = None
    trust_score: Optional[str] = None
    is_stale: bool = False
    is_anomaly: bool = False
    trade_url: Optional[str] = None

    @property
    def pair(self) -> str:
        return f"{self.base}/{self.target}"


@dataclass(frozen=True)
class ExchangeVolume:
    name: str
    volume_usd: float
    volume_home: float
    trading_pairs: Tuple[str, ...]
    trust: TrustLevel = TrustLevel.UNKNOWN
    trade_url: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "volume_usd": self.volume_usd,
            "volume_home": self.volume_home,
            "trading_pairs": list(self.trading_pairs),
            "trust": self.trust.value,
            "trade_url": self.trade_url,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ExchangeVolume":
        try:
            trust = TrustLevel(data.get("trust") or TrustLevel.UNKNOWN.value)
        except ValueError:
            trust = TrustLevel.UNKNOWN
        return cls(
            name=str(data["name"]),
            volume_usd=float(data.get("volume_usd") or 0.0),
            volume_home=float(data.get("volume_home") or 0.0),
            trading_pairs=tuple(data.get("trading_pairs") or ()),
            trust=trust,
            trade_url=data.get("trade_url") or None,
        )


@dataclass(frozen=True)
class MarketMeta:
    """Optional enrichment from /coins/{id}; every field may be absent."""

    market_cap_rank: Optional[int] = None
    ath: Optional[float] = None
    ath_change_percentage: Optional[float] = None
    ath_date: Optional[str] = None
    atl: Optional[float] = None
    atl_change_percentage: Optional[float] = None
    price_change_7d: Optional[float] = None
    price_change_30d: Optional[float] = None
    high_24h: Optional[float] = None
    low_24h: Optional[float] = None
    circulating_supply: Optional[float] = None
    total_supply: Optional[float] = None
    fully_diluted_valuation: Optional[float] = None

    def is_empty(self) -> bool:
        return all(getattr(self, f.name) is None for f in fields(self))

    def to_dict(self) -> Dict[str, Any]:
        """Present fields only."""
        return {k: v for k, v in asdict(self).items() if v is not None}

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> Optional["MarketMeta"]:
        if not data:
            return None
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})


@dataclass(frozen=True)
class PriceSnapshot:
    timestamp: datetime
    home_asset: str
    spot_usd: Mapping[str, float]
    cross_rates: Mapping[str, float]
    market_cap: Optional[float] = None
    volume_24h: Optional[float] = None
    price_change_24h: Optional[float] = None
    market_meta: Optional[MarketMeta] = None

    @property
    def home_usd(self) -> float:
        return self.spot_usd[self.home_asset]


@dataclass(frozen=True)
class VolumeSnapshot:
    timestamp: datetime
    total_volume_usd: float
    total_volume_home: float
    exchange_count: int
    exchanges: Tuple[ExchangeVolume, ...] = field(default_factory=tuple)
