"""Dashboard read models derived from stored snapshots.

Every query is read-only. Window tokens are validated before the store is
touched, and an empty store yields ``None`` rather than an exception so the
caller can answer "no data" explicitly.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, List, Optional, Protocol, Sequence, Tuple, Union

from analytics.windows import TimeWindow, parse_window, window_start
from pipeline.models import ExchangeVolume, MarketMeta, PriceSnapshot, VolumeSnapshot

MAX_DISTRIBUTION_BUCKETS = 10
MAX_SERIES_EXCHANGES = 8
DEFAULT_SERIES_EXCHANGES = 5

EXCHANGE_COLORS: Tuple[str, ...] = (
    "#58a6ff",
    "#3fb950",
    "#f85149",
    "#a371f7",
    "#db61a2",
    "#f0883e",
    "#8b949e",
    "#7ee787",
    "#79c0ff",
    "#d2a8ff",
)
SERIES_COLORS: Tuple[str, ...] = (
    "#58a6ff",
    "#3fb950",
    "#f0883e",
    "#a371f7",
    "#f85149",
    "#8b949e",
    "#79c0ff",
    "#7ee787",
)
OTHERS_NAME = "Others"
OTHERS_COLOR = "#484f58"

Snapshot = Union[PriceSnapshot, VolumeSnapshot]
ChartTime = Union[int, str]


class SnapshotSource(Protocol):
    def latest(self, kind: str) -> Optional[Snapshot]: ...

    def range(self, kind: str, start: datetime, end: Optional[datetime] = None) -> List[Snapshot]: ...

    def earliest_since(self, kind: str, start: datetime) -> Optional[Snapshot]: ...


@dataclass(frozen=True)
class ChartPoint:
    time: ChartTime
    value: float


@dataclass(frozen=True)
class CurrentPrice:
    home_asset: str
    home_usd: float
    spot_usd: Dict[str, float]
    cross_rates: Dict[str, float]
    price_change_24h: float
    cross_rate_changes_24h: Dict[str, float]
    market_cap: float
    volume_24h: float
    market_meta: Optional[MarketMeta] = None


@dataclass(frozen=True)
class PricesView:
    current: CurrentPrice
    historical: List[ChartPoint]
    last_updated: datetime


@dataclass(frozen=True)
class DistributionBucket:
    name: str
    value: float
    percentage: float
    color: str


@dataclass(frozen=True)
class VolumesView:
    total_volume_usd: float
    total_volume_home: float
    volume_change_24h: float
    exchange_count: int
    exchanges: List[ExchangeVolume]
    distribution: List[DistributionBucket]
    last_updated: datetime


@dataclass(frozen=True)
class HistoryView:
    historical: List[ChartPoint]
    last_updated: datetime


@dataclass(frozen=True)
class ExchangeSeries:
    name: str
    color: str
    data: List[ChartPoint] = field(default_factory=list)


@dataclass(frozen=True)
class ExchangeHistoryView:
    exchanges: List[ExchangeSeries]
    timestamps: List[int]
    last_updated: datetime


# ----- pure helpers -----

def unix_seconds(ts: datetime) -> int:
    return int(ts.timestamp())


def calculate_percentage(value: float, total: float) -> float:
    if total == 0:
        return 0.0
    return value / total * 100


def percent_change_between(earliest: Optional[float], latest: Optional[float]) -> float:
    """(latest - earliest) / earliest * 100, or 0 when there is no usable baseline."""
    if earliest is None or latest is None or earliest == 0:
        return 0.0
    return (latest - earliest) / earliest * 100


def instant_points(points: Iterable[Tuple[datetime, float]]) -> List[ChartPoint]:
    """Key points by unix second; input must be ascending. Same-second points keep the later value."""
    out: List[ChartPoint] = []
    for ts, value in points:
        t = unix_seconds(ts)
        if out and out[-1].time == t:
            out[-1] = ChartPoint(time=t, value=value)
        elif not out or t > out[-1].time:
            out.append(ChartPoint(time=t, value=value))
    return out


def daily_points(points: Iterable[Tuple[datetime, float]]) -> List[ChartPoint]:
    """Key points by UTC calendar day (YYYY-MM-DD), keeping each day's last value."""
    out: List[ChartPoint] = []
    for ts, value in points:
        day = ts.astimezone(timezone.utc).date().isoformat()
        if out and out[-1].time == day:
            out[-1] = ChartPoint(time=day, value=value)
        else:
            out.append(ChartPoint(time=day, value=value))
    return out


def price_points(snapshots: Sequence[PriceSnapshot], window: TimeWindow) -> List[ChartPoint]:
    pairs = [(s.timestamp, s.home_usd) for s in snapshots]
    return instant_points(pairs) if window.intraday else daily_points(pairs)


def build_distribution(
    exchanges: Sequence[ExchangeVolume],
    total_volume_usd: float,
    max_buckets: int = MAX_DISTRIBUTION_BUCKETS,
) -> List[DistributionBucket]:
    """Share of total volume for the first ``max_buckets`` exchanges plus an Others bucket."""
    max_buckets = max(1, min(int(max_buckets), MAX_DISTRIBUTION_BUCKETS))
    shown = exchanges[:max_buckets]
    buckets = [
        DistributionBucket(
            name=e.name,
            value=e.volume_usd,
            percentage=calculate_percentage(e.volume_usd, total_volume_usd),
            color=EXCHANGE_COLORS[i % len(EXCHANGE_COLORS)],
        )
        for i, e in enumerate(shown)
    ]
    if len(exchanges) > max_buckets:
        others = sum(e.volume_usd for e in exchanges[max_buckets:])
        buckets.append(
            DistributionBucket(
                name=OTHERS_NAME,
                value=others,
                percentage=calculate_percentage(others, total_volume_usd),
                color=OTHERS_COLOR,
            )
        )
    return buckets


def rank_exchanges(snapshots: Iterable[VolumeSnapshot], limit: int) -> List[str]:
    """Names of the ``limit`` exchanges with the largest summed USD volume (ties keep first-seen order)."""
    totals: Dict[str, float] = {}
    for snap in snapshots:
        for e in snap.exchanges:
            totals[e.name] = totals.get(e.name, 0.0) + e.volume_usd
    ranked = sorted(totals.items(), key=lambda kv: kv[1], reverse=True)
    return [name for name, _ in ranked[:limit]]


def top_exchange_series(
    snapshots: Sequence[VolumeSnapshot],
    limit: int = DEFAULT_SERIES_EXCHANGES,
) -> Tuple[List[ExchangeSeries], List[int]]:
    """
    One aligned series per top exchange over ascending ``snapshots``.

    An exchange missing from a snapshot's stored list contributes 0 at that
    time, so every series has one point per timestamp. Snapshots sharing a
    unix second collapse to the later one, as in ``instant_points``.
    """
    limit = max(1, min(int(limit), MAX_SERIES_EXCHANGES))
    by_second: Dict[int, VolumeSnapshot] = {}
    for snap in snapshots:
        by_second[unix_seconds(snap.timestamp)] = snap
    timestamps = sorted(by_second)
    names = rank_exchanges((by_second[t] for t in timestamps), limit)

    out = []
    for i, name in enumerate(names):
        data = [
            ChartPoint(time=t, value=next((e.volume_usd for e in by_second[t].exchanges if e.name == name), 0.0))
            for t in timestamps
        ]
        out.append(ExchangeSeries(name=name, color=SERIES_COLORS[i % len(SERIES_COLORS)], data=data))
    return out, timestamps


def _metric(snapshot: Snapshot, field_name: str) -> Optional[float]:
    if isinstance(snapshot, PriceSnapshot) and field_name in snapshot.cross_rates:
        return snapshot.cross_rates[field_name]
    if isinstance(snapshot, PriceSnapshot) and field_name in snapshot.spot_usd:
        return snapshot.spot_usd[field_name]
    if not hasattr(snapshot, field_name):
        raise ValueError(f"{type(snapshot).__name__} has no metric {field_name!r}")
    value = getattr(snapshot, field_name)
    return None if value is None else float(value)


# ----- store-backed queries -----

class DashboardQueries:
    """Read operations backing the dashboard endpoints."""

    def __init__(
        self,
        store: SnapshotSource,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
        max_display_exchanges: int = MAX_DISTRIBUTION_BUCKETS,
    ) -> None:
        self.store = store
        self.clock = clock
        self.max_display_exchanges = max_display_exchanges

    def percent_change(self, kind: str, window: Union[str, TimeWindow], field_name: str) -> float:
        """
        Percent change of ``field_name`` between the oldest snapshot inside
        ``window`` and the newest snapshot. 0 when the window holds nothing.
        """
        win = parse_window(window)
        latest = self.store.latest(kind)
        if latest is None:
            return 0.0
        earliest = self.store.earliest_since(kind, window_start(win, self.clock()))
        if earliest is None:
            return 0.0
        return percent_change_between(_metric(earliest, field_name), _metric(latest, field_name))

    def get_prices(self, window: Union[str, TimeWindow, None] = None) -> Optional[PricesView]:
        win = parse_window(window)
        latest = self.store.latest("price")
        if latest is None:
            return None

        now = self.clock()
        history = self.store.range("price", window_start(win, now))
        day_start = window_start(TimeWindow.DAY, now)
        baseline = self.store.earliest_since("price", day_start)
        cross_changes = {
            ref: percent_change_between(
                baseline.cross_rates.get(ref) if isinstance(baseline, PriceSnapshot) else None,
                rate,
            )
            for ref, rate in latest.cross_rates.items()
        }

        current = CurrentPrice(
            home_asset=latest.home_asset,
            home_usd=latest.home_usd,
            spot_usd=dict(latest.spot_usd),
            cross_rates=dict(latest.cross_rates),
            price_change_24h=latest.price_change_24h or 0.0,
            cross_rate_changes_24h=cross_changes,
            market_cap=latest.market_cap or 0.0,
            volume_24h=latest.volume_24h or 0.0,
            market_meta=latest.market_meta,
        )
        return PricesView(current=current, historical=price_points(history, win), last_updated=latest.timestamp)

    def get_volumes(self, max_display: Optional[int] = None) -> Optional[VolumesView]:
        latest = self.store.latest("volume")
        if latest is None:
            return None

        buckets = max_display if max_display is not None else self.max_display_exchanges
        return VolumesView(
            total_volume_usd=latest.total_volume_usd,
            total_volume_home=latest.total_volume_home,
            volume_change_24h=self.percent_change("volume", TimeWindow.DAY, "total_volume_usd"),
            exchange_count=latest.exchange_count,
            exchanges=list(latest.exchanges),
            distribution=build_distribution(latest.exchanges, latest.total_volume_usd, buckets),
            last_updated=latest.timestamp,
        )

    def get_volume_history(self, window: Union[str, TimeWindow, None] = None) -> Optional[HistoryView]:
        win = parse_window(window)
        latest = self.store.latest("volume")
        if latest is None:
            return None

        history = self.store.range("volume", window_start(win, self.clock()))
        points = instant_points((s.timestamp, s.total_volume_usd) for s in history)
        return HistoryView(historical=points, last_updated=latest.timestamp)

    def get_exchange_volume_history(
        self,
        window: Union[str, TimeWindow, None] = None,
        limit: int = DEFAULT_SERIES_EXCHANGES,
    ) -> Optional[ExchangeHistoryView]:
        win = parse_window(window)
        history = self.store.range("volume", window_start(win, self.clock()))
        if not history:
            return None

        series, timestamps = top_exchange_series(history, limit)
        return ExchangeHistoryView(exchanges=series, timestamps=timestamps, last_updated=history[-1].timestamp)
