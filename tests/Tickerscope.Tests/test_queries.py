"""Tests for dashboard aggregates."""
from datetime import timedelta

import pytest

from analytics.queries import (
    OTHERS_COLOR,
    OTHERS_NAME,
    DashboardQueries,
    build_distribution,
    instant_points,
    percent_change_between,
    top_exchange_series,
)
from analytics.windows import TimeWindow, WindowValidationError, parse_window
from conftest import NOW, MemoryStore, make_exchange, make_price, make_volume


def queries_for(store):
    return DashboardQueries(store, clock=lambda: NOW)


class ExplodingStore:
    def __getattr__(self, name):
        raise AssertionError(f"store accessed: {name}")


@pytest.mark.parametrize("token", ["1h", "24h", "7d", "30d"])
def test_parse_window_accepts_canonical_tokens(token):
    assert parse_window(token).value == token


@pytest.mark.parametrize("token", ["2h", "1d", "", "24H", "all"])
def test_parse_window_rejects_everything_else(token):
    with pytest.raises(WindowValidationError):
        parse_window(token)


def test_invalid_window_fails_before_store_access():
    q = queries_for(ExplodingStore())

    with pytest.raises(WindowValidationError):
        q.get_prices("90d")
    with pytest.raises(WindowValidationError):
        q.get_volume_history("5m")
    with pytest.raises(WindowValidationError):
        q.get_exchange_volume_history("week")


def test_empty_store_yields_no_data():
    q = queries_for(MemoryStore())

    assert q.get_prices("24h") is None
    assert q.get_volumes() is None
    assert q.get_volume_history("24h") is None
    assert q.get_exchange_volume_history("24h") is None
    assert q.percent_change("price", "24h", "home_usd") == 0.0


def test_percent_change_over_day_window():
    store = MemoryStore(prices=[
        make_price(NOW - timedelta(hours=23), home_usd=4.0),
        make_price(NOW - timedelta(minutes=10), home_usd=5.0),
    ])

    assert queries_for(store).percent_change("price", "24h", "home_usd") == pytest.approx(25.0)


def test_percent_change_is_zero_when_window_is_empty():
    store = MemoryStore(prices=[make_price(NOW - timedelta(hours=3), home_usd=4.0)])

    assert queries_for(store).percent_change("price", "1h", "home_usd") == 0.0


def test_percent_change_between_handles_zero_baseline():
    assert percent_change_between(0.0, 10.0) == 0.0
    assert percent_change_between(None, 10.0) == 0.0
    assert percent_change_between(8.0, 6.0) == pytest.approx(-25.0)


def test_intraday_prices_keyed_by_strictly_increasing_unix_seconds():
    snaps = [make_price(NOW - timedelta(minutes=m), home_usd=float(m)) for m in (50, 35, 20, 5)]
    snaps.append(make_price(NOW - timedelta(minutes=5) + timedelta(microseconds=300), home_usd=99.0))
    view = queries_for(MemoryStore(prices=snaps)).get_prices("1h")

    times = [p.time for p in view.historical]
    assert all(isinstance(t, int) for t in times)
    assert all(a < b for a, b in zip(times, times[1:]))
    assert [p.value for p in view.historical] == [50.0, 35.0, 20.0, 99.0]
    assert view.current.home_usd == 99.0
    assert view.last_updated == snaps[-1].timestamp


@pytest.mark.parametrize("window", ["7d", "30d"])
def test_long_window_prices_keyed_by_day(window):
    snaps = [make_price(NOW - timedelta(hours=h), home_usd=float(h)) for h in (72, 60, 49, 30, 1)]
    view = queries_for(MemoryStore(prices=snaps)).get_prices(window)

    times = [p.time for p in view.historical]
    assert times == sorted(times)
    assert times == ["2026-10-14", "2026-10-15", "2026-10-16", "2026-10-17"]
    assert [p.value for p in view.historical] == [72.0, 49.0, 30.0, 1.0]


def test_current_price_reports_cross_rate_change():
    store = MemoryStore(prices=[
        make_price(NOW - timedelta(hours=20), home_usd=4.0, btc_usd=50000.0, price_change_24h=2.5),
        make_price(NOW - timedelta(minutes=1), home_usd=5.0, btc_usd=50000.0),
    ])

    current = queries_for(store).get_prices("24h").current

    assert current.cross_rate_changes_24h["bitcoin"] == pytest.approx(25.0)
    assert current.price_change_24h == 0.0
    assert current.market_cap == 0.0


def test_distribution_folds_remainder_into_others():
    exchanges = [make_exchange(f"EX{i:02d}", (16 - i) * 100) for i in range(1, 16)]
    total = sum(e.volume_usd for e in exchanges)

    buckets = build_distribution(exchanges, total, 10)

    assert len(buckets) == 11
    others = buckets[-1]
    assert others.name == OTHERS_NAME
    assert others.color == OTHERS_COLOR
    assert others.value == sum(e.volume_usd for e in exchanges[10:])
    assert sum(b.percentage for b in buckets) == pytest.approx(100.0, abs=0.01)
    assert len({b.color for b in buckets[:10]}) == 10


def test_distribution_without_others_when_few_exchanges():
    exchanges = [make_exchange("A", 300), make_exchange("B", 100)]

    buckets = build_distribution(exchanges, 400, 10)

    assert [b.name for b in buckets] == ["A", "B"]
    assert [b.percentage for b in buckets] == [75.0, 25.0]


def test_get_volumes_includes_change_and_distribution():
    store = MemoryStore(volumes=[
        make_volume(NOW - timedelta(hours=22), [make_exchange("A", 800)]),
        make_volume(NOW - timedelta(minutes=3), [make_exchange(f"E{i}", 100) for i in range(12)], exchange_count=40),
    ])

    view = queries_for(store).get_volumes(max_display=5)

    assert view.total_volume_usd == 1200
    assert view.exchange_count == 40
    assert view.volume_change_24h == pytest.approx(50.0)
    assert len(view.distribution) == 6
    assert view.distribution[-1].value == 700
    assert sum(b.percentage for b in view.distribution) == pytest.approx(100.0, abs=0.01)


def test_volume_history_points_are_unix_seconds():
    store = MemoryStore(volumes=[
        make_volume(NOW - timedelta(hours=h), [make_exchange("A", h * 10)]) for h in (30, 12, 6)
    ])

    view = queries_for(store).get_volume_history("24h")

    assert [p.value for p in view.historical] == [120, 60]
    assert view.historical[0].time == int((NOW - timedelta(hours=12)).timestamp())


def test_top_exchange_series_zero_fills_missing_points():
    t0, t1, t2 = (NOW - timedelta(minutes=m) for m in (30, 15, 0))
    snaps = [
        make_volume(t0, [make_exchange("A", 500), make_exchange("B", 300), make_exchange("C", 10)]),
        make_volume(t1, [make_exchange("A", 400), make_exchange("C", 20)]),
        make_volume(t2, [make_exchange("B", 700), make_exchange("D", 5)]),
    ]

    series, timestamps = top_exchange_series(snaps, limit=2)

    assert [s.name for s in series] == ["B", "A"]
    assert timestamps == [int(t.timestamp()) for t in (t0, t1, t2)]
    by_name = {s.name: [p.value for p in s.data] for s in series}
    assert by_name == {"B": [300, 0.0, 700], "A": [500, 400, 0.0]}
    assert all(len(s.data) == len(timestamps) for s in series)
    assert series[0].color != series[1].color


def test_top_exchange_series_collapses_snapshots_within_a_second():
    snaps = [
        make_volume(NOW, [make_exchange("A", 1.0)]),
        make_volume(NOW + timedelta(milliseconds=5), [make_exchange("A", 2.0)]),
    ]

    series, timestamps = top_exchange_series(snaps, limit=1)

    assert timestamps == [int(NOW.timestamp())]
    assert [(p.time, p.value) for p in series[0].data] == [(int(NOW.timestamp()), 2.0)]


def test_exchange_history_limit_is_capped_at_eight():
    snaps = [make_volume(NOW - timedelta(minutes=5), [make_exchange(f"E{i}", 100 + i) for i in range(12)])]

    view = queries_for(MemoryStore(volumes=snaps)).get_exchange_volume_history("1h", limit=50)

    assert len(view.exchanges) == 8
    assert view.exchanges[0].name == "E11"


def test_instant_points_keep_later_value_within_a_second():
    points = instant_points([(NOW, 1.0), (NOW + timedelta(milliseconds=10), 2.0), (NOW + timedelta(seconds=1), 3.0)])

    assert [(p.time - int(NOW.timestamp()), p.value) for p in points] == [(0, 2.0), (1, 3.0)]


def test_intraday_flag():
    assert TimeWindow.HOUR.intraday and TimeWindow.DAY.intraday
    assert not TimeWindow.WEEK.intraday and not TimeWindow.MONTH.intraday
