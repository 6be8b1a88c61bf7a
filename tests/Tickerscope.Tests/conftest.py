"""Shared fixtures: in-memory SQLite store, snapshot factories, fixed clock."""
from datetime import datetime, timedelta, timezone
from pathlib import Path
import sys

import pytest
from sqlalchemy.pool import StaticPool

PROJECT_ROOT = Path(__file__).resolve().parents[2]
SRC_DIR = PROJECT_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from db.db_conn import DbConn  # noqa: E402
from db.snapshot_store import SnapshotStore  # noqa: E402
from pipeline.models import ExchangeVolume, PriceSnapshot, TrustLevel, VolumeSnapshot  # noqa: E402

NOW = datetime(2026, 10, 17, 12, 0, 0, tzinfo=timezone.utc)


def make_price(ts, home_usd=5.0, btc_usd=60000.0, eth_usd=2500.0, **kwargs):
    return PriceSnapshot(
        timestamp=ts,
        home_asset="near",
        spot_usd={"near": home_usd, "bitcoin": btc_usd, "ethereum": eth_usd},
        cross_rates={"bitcoin": home_usd / btc_usd, "ethereum": home_usd / eth_usd},
        **kwargs,
    )


def make_exchange(name, volume_usd, volume_home=None, pairs=("NEAR/USDT",)):
    return ExchangeVolume(
        name=name,
        volume_usd=float(volume_usd),
        volume_home=float(volume_home if volume_home is not None else volume_usd / 5),
        trading_pairs=tuple(pairs),
        trust=TrustLevel.HIGH,
    )


def make_volume(ts, exchanges, exchange_count=None):
    exchanges = tuple(sorted(exchanges, key=lambda e: e.volume_usd, reverse=True))
    return VolumeSnapshot(
        timestamp=ts,
        total_volume_usd=sum(e.volume_usd for e in exchanges),
        total_volume_home=sum(e.volume_home for e in exchanges),
        exchange_count=exchange_count if exchange_count is not None else len(exchanges),
        exchanges=exchanges,
    )


class MemoryStore:
    """List-backed stand-in for SnapshotStore reads."""

    def __init__(self, prices=(), volumes=()):
        self.data = {"price": list(prices), "volume": list(volumes)}
        self.reads = 0

    def _items(self, kind):
        self.reads += 1
        return sorted(self.data[kind], key=lambda s: s.timestamp)

    def latest(self, kind):
        items = self._items(kind)
        return items[-1] if items else None

    def range(self, kind, start, end=None):
        return [s for s in self._items(kind) if s.timestamp >= start and (end is None or s.timestamp <= end)]

    def earliest_since(self, kind, start):
        items = self.range(kind, start)
        return items[0] if items else None


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def db():
    conn = DbConn(
        "sqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    conn.create_all()
    return conn


@pytest.fixture
def store(db):
    return SnapshotStore(db, retention_days=90)


@pytest.fixture
def hours_ago():
    return lambda h: NOW - timedelta(hours=h)
