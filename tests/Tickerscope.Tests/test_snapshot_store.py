"""Tests for the SQL-backed snapshot store (SQLite in memory)."""
from datetime import timedelta

import pytest
from sqlalchemy.pool import StaticPool

from db.db_conn import DbConn
from db.snapshot_store import SnapshotStore, StoreUnavailable
from pipeline.models import MarketMeta, TrustLevel
from conftest import make_exchange, make_price, make_volume


def test_empty_store_reports_no_data(store):
    assert store.latest("price") is None
    assert store.latest("volume") is None


def test_price_snapshot_round_trip(store, now):
    snap = make_price(now, home_usd=5.25, market_cap=5e9, market_meta=MarketMeta(market_cap_rank=23, ath=20.4))

    assert store.append(snap) == 1
    loaded = store.latest("price")

    assert loaded.timestamp == now
    assert loaded.home_usd == 5.25
    assert loaded.cross_rates["bitcoin"] == pytest.approx(5.25 / 60000.0)
    assert loaded.market_cap == 5e9
    assert loaded.market_meta == MarketMeta(market_cap_rank=23, ath=20.4)


def test_volume_snapshot_round_trip(store, now):
    snap = make_volume(now, [make_exchange("Binance", 900, pairs=("NEAR/USDT", "NEAR/BTC")), make_exchange("OKX", 100)],
                       exchange_count=31)

    store.append(snap)
    loaded = store.latest("volume")

    assert loaded.exchange_count == 31
    assert loaded.total_volume_usd == 1000
    assert [e.name for e in loaded.exchanges] == ["Binance", "OKX"]
    assert loaded.exchanges[0].trading_pairs == ("NEAR/USDT", "NEAR/BTC")
    assert loaded.exchanges[0].trust is TrustLevel.HIGH


def test_append_never_overwrites_same_timestamp(store, now):
    store.append(make_price(now, home_usd=1.0))
    store.append(make_price(now, home_usd=2.0))

    rows = store.range("price", now - timedelta(minutes=1), now + timedelta(minutes=1))

    assert [r.home_usd for r in rows] == [1.0, 2.0]
    assert store.latest("price").home_usd == 2.0


def test_range_is_inclusive_and_ascending(store, now):
    for h in (5, 1, 3, 2, 4):
        store.append(make_price(now - timedelta(hours=h), home_usd=float(h)))

    rows = store.range("price", now - timedelta(hours=4), now - timedelta(hours=2))

    assert [r.home_usd for r in rows] == [4.0, 3.0, 2.0]
    assert [r.timestamp for r in rows] == sorted(r.timestamp for r in rows)


def test_earliest_since(store, now):
    for h in (30, 20, 10):
        store.append(make_volume(now - timedelta(hours=h), [make_exchange("X", h)]))

    assert store.earliest_since("volume", now - timedelta(hours=24)).total_volume_usd == 20
    assert store.earliest_since("volume", now) is None


def test_purge_removes_only_expired_snapshots(store, now):
    store.append(make_price(now - timedelta(days=91)))
    store.append(make_volume(now - timedelta(days=95), [make_exchange("X", 1)]))
    store.append(make_price(now - timedelta(days=89)))
    store.append(make_volume(now, [make_exchange("X", 1)]))

    assert store.purge_expired(now) == 2
    assert len(store.range("price", now - timedelta(days=365))) == 1
    assert len(store.range("volume", now - timedelta(days=365))) == 1


def test_usage_counters_roll_by_day_and_month(store, now):
    store.record_usage(3, now)
    counters = store.record_usage(3, now + timedelta(minutes=15))
    assert (counters.api_calls_today, counters.api_calls_month) == (6, 6)

    next_day = now + timedelta(days=1)
    counters = store.record_usage(3, next_day)
    assert (counters.api_calls_today, counters.api_calls_month) == (3, 9)
    assert counters.last_reset_date == next_day.date().isoformat()

    next_month = now.replace(month=11, day=1)
    counters = store.record_usage(4, next_month)
    assert (counters.api_calls_today, counters.api_calls_month) == (4, 4)


def test_unknown_kind_is_rejected(store):
    with pytest.raises(ValueError):
        store.latest("candles")


def test_missing_tables_surface_as_store_unavailable(now):
    db = DbConn("sqlite://", poolclass=StaticPool, connect_args={"check_same_thread": False})
    bare = SnapshotStore(db)

    with pytest.raises(StoreUnavailable):
        bare.append(make_price(now))
    with pytest.raises(StoreUnavailable):
        bare.latest("volume")
