"""One scheduled ingestion cycle: fetch, normalize, build, store."""
from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from api.coingecko_client import CoinGeckoClient, ProviderError
from config import TrackedAssets
from db.snapshot_store import SnapshotStore, StoreUnavailable
from logger import get_logger
from pipeline.normalizer import MAX_STORED_EXCHANGES, aggregate_exchange_volumes, parse_tickers
from pipeline.snapshot_builder import build_snapshots

log = get_logger("ingest")


@dataclass(frozen=True)
class CycleResult:
    prices_stored: int
    volumes_stored: int
    api_calls: int
    timestamp: datetime
    home_usd: float
    exchange_count: int
    enriched: bool
    purged: int = 0


class IngestionCycle:
    """
    Fetch spot prices, enrichment and tickers concurrently, then persist a
    price/volume snapshot pair.

    Spot or ticker failures abort the cycle before anything is written.
    Enrichment failures are logged and the price snapshot is stored without
    it. Store failures raise ``StoreUnavailable``.
    """

    def __init__(
        self,
        client: CoinGeckoClient,
        store: SnapshotStore,
        assets: TrackedAssets,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
        max_exchanges: int = MAX_STORED_EXCHANGES,
        purge_expired: bool = True,
    ) -> None:
        self.client = client
        self.store = store
        self.assets = assets
        self.clock = clock
        self.max_exchanges = max_exchanges
        self.purge_expired = purge_expired

    def _fetch_all(self) -> Dict[str, Any]:
        with ThreadPoolExecutor(max_workers=3, thread_name_prefix="coingecko") as pool:
            prices_f = pool.submit(self.client.get_simple_prices, self.assets.all_ids)
            coin_f = pool.submit(self.client.get_coin, self.assets.home)
            tickers_f = pool.submit(self.client.get_tickers, self.assets.home)

            coin: Optional[Dict[str, Any]]
            try:
                coin = coin_f.result()
            except ProviderError as exc:
                log.warning("Enrichment fetch for %s failed, storing without it: %s", self.assets.home, exc)
                coin = None

            return {"prices": prices_f.result(), "coin": coin, "tickers": tickers_f.result()}

    def run(self) -> CycleResult:
        calls_before = self.client.calls_made
        log.info("Starting data fetch for %s", ", ".join(self.assets.all_ids))
        fetched = self._fetch_all()

        now = self.clock()
        tickers = parse_tickers(fetched["tickers"] or {})
        normalized = aggregate_exchange_volumes(tickers, limit=self.max_exchanges)
        price, volume = build_snapshots(fetched["prices"] or {}, fetched["coin"], normalized, self.assets, now)
        log.info(
            "Fetched %s=%.6f USD, %d tickers across %d exchanges",
            self.assets.home,
            price.home_usd,
            len(tickers),
            volume.exchange_count,
        )

        prices_stored = self.store.append(price)
        volumes_stored = self.store.append(volume)

        calls = self.client.calls_made - calls_before
        usage = self.store.record_usage(calls, now)
        log.info("Stored snapshot pair at %s (api calls today=%d, month=%d)",
                 now.isoformat(), usage.api_calls_today, usage.api_calls_month)

        purged = 0
        if self.purge_expired:
            try:
                purged = self.store.purge_expired(now)
            except StoreUnavailable as exc:
                log.warning("Retention purge skipped: %s", exc)
            else:
                if purged:
                    log.info("Purged %d expired snapshots", purged)

        return CycleResult(
            prices_stored=prices_stored,
            volumes_stored=volumes_stored,
            api_calls=calls,
            timestamp=now,
            home_usd=price.home_usd,
            exchange_count=volume.exchange_count,
            enriched=price.market_meta is not None,
            purged=purged,
        )
