"""HTTP tests for the dashboard and cron routes."""
from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

from analytics.queries import DashboardQueries
from api.coingecko_client import ProviderError
from app import create_app
from config import IngestSettings
from db.snapshot_store import StoreUnavailable
from pipeline.ingest_cycle import CycleResult
from pipeline.models import MarketMeta
from web.deps import get_ingestion_cycle, get_queries, get_settings
from conftest import NOW, MemoryStore, make_exchange, make_price, make_volume

SECRET = "s3cret"


class StubCycle:
    def __init__(self, error=None):
        self.error = error
        self.runs = 0

    def run(self):
        self.runs += 1
        if self.error:
            raise self.error
        return CycleResult(prices_stored=1, volumes_stored=1, api_calls=3, timestamp=NOW,
                           home_usd=5.0, exchange_count=2, enriched=True)


class BrokenQueries:
    def get_prices(self, window):
        raise StoreUnavailable("database down")


def make_client(store=None, cycle=None, queries=None):
    app = create_app()
    app.dependency_overrides[get_queries] = lambda: queries or DashboardQueries(store or MemoryStore(), clock=lambda: NOW)
    app.dependency_overrides[get_settings] = lambda: IngestSettings(cron_secret=SECRET)
    app.dependency_overrides[get_ingestion_cycle] = lambda: cycle or StubCycle()
    return TestClient(app)


@pytest.fixture
def populated():
    return MemoryStore(
        prices=[
            make_price(NOW - timedelta(hours=23), home_usd=4.0),
            make_price(NOW - timedelta(minutes=10), home_usd=5.0, market_meta=MarketMeta(market_cap_rank=23)),
        ],
        volumes=[
            make_volume(NOW - timedelta(hours=2), [make_exchange("Binance", 900), make_exchange("OKX", 100)]),
            make_volume(NOW - timedelta(minutes=10), [make_exchange("Binance", 1200), make_exchange("OKX", 300)]),
        ],
    )


def test_health():
    assert make_client().get("/health").json() == {"status": "ok"}


def test_prices_envelope(populated):
    resp = make_client(populated).get("/api/prices", params={"range": "24h"})

    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    current = body["data"]["current"]
    assert current["home_usd"] == 5.0
    assert current["market_meta"] == {"market_cap_rank": 23}
    assert [p["value"] for p in body["data"]["historical"]] == [4.0, 5.0]
    assert "timestamp" in body


def test_prices_long_range_uses_day_keys(populated):
    body = make_client(populated).get("/api/prices", params={"range": "7d"}).json()

    assert [p["time"] for p in body["data"]["historical"]] == ["2026-10-16", "2026-10-17"]


@pytest.mark.parametrize("path", ["/api/prices", "/api/volumes/history", "/api/volumes/history/exchanges"])
def test_invalid_range_is_rejected(path, populated):
    resp = make_client(populated).get(path, params={"range": "2d"})

    assert resp.status_code == 400
    assert resp.json()["success"] is False
    assert "1h, 24h, 7d, or 30d" in resp.json()["error"]


@pytest.mark.parametrize("path", ["/api/prices", "/api/volumes", "/api/volumes/history", "/api/volumes/history/exchanges"])
def test_empty_store_is_not_found(path):
    resp = make_client().get(path)

    assert resp.status_code == 404
    assert resp.json()["success"] is False


def test_store_outage_is_service_unavailable():
    resp = make_client(queries=BrokenQueries()).get("/api/prices")

    assert resp.status_code == 503
    assert "database down" in resp.json()["error"]


def test_volumes_envelope(populated):
    body = make_client(populated).get("/api/volumes", params={"max_display": 1}).json()

    data = body["data"]
    assert data["total_volume_usd"] == 1500
    assert data["volume_change_24h"] == pytest.approx(50.0)
    assert data["exchanges"][0]["trust"] == "high"
    assert [b["name"] for b in data["distribution"]] == ["Binance", "Others"]


def test_volumes_rejects_out_of_range_max_display(populated):
    assert make_client(populated).get("/api/volumes", params={"max_display": 11}).status_code == 422


def test_exchange_history_series(populated):
    body = make_client(populated).get("/api/volumes/history/exchanges", params={"range": "24h", "limit": 20}).json()

    data = body["data"]
    assert [s["name"] for s in data["exchanges"]] == ["Binance", "OKX"]
    assert len(data["timestamps"]) == 2
    assert [p["value"] for p in data["exchanges"][1]["data"]] == [100.0, 300.0]


def test_cron_describes_itself():
    body = make_client().get("/api/cron/fetch-data").json()

    assert body["method"] == "POST"
    assert "15 minutes" in body["schedule"]


@pytest.mark.parametrize("header", [None, "Bearer wrong", SECRET + "x", SECRET, "Token " + SECRET])
def test_cron_rejects_bad_credentials(header):
    cycle = StubCycle()
    headers = {"Authorization": header} if header else {}

    resp = make_client(cycle=cycle).post("/api/cron/fetch-data", headers=headers)

    assert resp.status_code == 401
    assert cycle.runs == 0


def test_cron_rejects_non_ascii_token():
    cycle = StubCycle()

    resp = make_client(cycle=cycle).post(
        "/api/cron/fetch-data",
        headers=[("Authorization", "Bearer café".encode("utf-8"))],
    )

    assert resp.status_code == 401
    assert resp.json()["success"] is False
    assert cycle.runs == 0


def test_cron_wraps_unexpected_errors_in_envelope():
    cycle = StubCycle(error=KeyError("tickers"))

    resp = make_client(cycle=cycle).post("/api/cron/fetch-data", headers={"Authorization": f"Bearer {SECRET}"})

    assert resp.status_code == 500
    body = resp.json()
    assert body["success"] is False
    assert (body["prices_stored"], body["volumes_stored"]) == (0, 0)


def test_cron_runs_cycle():
    cycle = StubCycle()

    resp = make_client(cycle=cycle).post("/api/cron/fetch-data", headers={"Authorization": f"Bearer {SECRET}"})

    assert resp.status_code == 200
    assert resp.json()["success"] is True
    assert resp.json()["prices_stored"] == 1
    assert cycle.runs == 1


def test_cron_reports_failed_cycle():
    cycle = StubCycle(error=ProviderError(503, "upstream down"))

    resp = make_client(cycle=cycle).post("/api/cron/fetch-data", headers={"Authorization": f"Bearer {SECRET}"})

    assert resp.status_code == 500
    body = resp.json()
    assert body["success"] is False
    assert (body["prices_stored"], body["volumes_stored"]) == (0, 0)
