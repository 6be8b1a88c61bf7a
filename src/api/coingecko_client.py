"""CoinGecko market data client with a per-minute call ceiling."""
from __future__ import annotations

import json
import threading
import time
from typing import Any, Callable, Dict, Iterable, Optional, Protocol, Tuple
from urllib import error, parse, request

from logger import get_logger

log = get_logger("coingecko")

DEFAULT_BASE_URL = "https://api.coingecko.com/api/v3"
DEFAULT_TIMEOUT = 15.0
HTTP_TOO_MANY_REQUESTS = 429


class ProviderError(RuntimeError):
    """Raised when CoinGecko responds with a non-2xx status or cannot be reached."""

    def __init__(self, status: Optional[int], message: str) -> None:
        super().__init__(f"CoinGecko API error {status}: {message}" if status else f"CoinGecko request failed: {message}")
        self.status = status
        self.message = message


class ProviderThrottled(ProviderError):
    """Raised when CoinGecko keeps answering 429 after the retry cap."""

    def __init__(self, attempts: int) -> None:
        super().__init__(HTTP_TOO_MANY_REQUESTS, f"still rate limited after {attempts} attempts")
        self.attempts = attempts


class RateLimiter:
    """Allow at most ``calls_per_minute`` calls per window, blocking callers when saturated.

    The window starts at the first call after a reset; once it elapses the
    counter starts over. Callers that find the window full sleep until it
    resets and then proceed, so no call is ever dropped.
    """

    def __init__(
        self,
        calls_per_minute: int = 25,
        window_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
        pad_seconds: float = 0.1,
    ) -> None:
        if calls_per_minute < 1:
            raise ValueError("calls_per_minute must be >= 1")
        self.calls_per_minute = calls_per_minute
        self.window_seconds = window_seconds
        self.pad_seconds = pad_seconds
        self._clock = clock
        self._sleep = sleep
        self._lock = threading.Lock()
        self._count = 0
        self._window_start = clock()

    @property
    def calls_in_window(self) -> int:
        with self._lock:
            return self._count

    def acquire(self) -> None:
        """Reserve one call, sleeping until the window resets when it is full."""
        with self._lock:
            now = self._clock()
            if now - self._window_start > self.window_seconds:
                self._reset(now)
            if self._count >= self.calls_per_minute:
                self._wait_locked(now)
            self._count += 1

    def wait_for_reset(self) -> None:
        """Sleep out the rest of the current window and start a fresh one."""
        with self._lock:
            self._wait_locked(self._clock())

    def _wait_locked(self, now: float) -> None:
        remaining = self.window_seconds - (now - self._window_start)
        if remaining > 0:
            log.info("Rate limit window saturated; sleeping %.1fs", remaining + self.pad_seconds)
            self._sleep(remaining + self.pad_seconds)
        self._reset(self._clock())

    def _reset(self, now: float) -> None:
        self._count = 0
        self._window_start = now


class Transport(Protocol):
    """Minimal HTTP GET interface returning (status, body)."""

    def get(self, url: str, headers: Dict[str, str], timeout: float) -> Tuple[int, bytes]:
        ...


class UrllibTransport:
    """Transport backed by urllib; HTTP errors are returned, not raised."""

    def get(self, url: str, headers: Dict[str, str], timeout: float) -> Tuple[int, bytes]:
        req = request.Request(url, headers=headers)
        try:
            with request.urlopen(req, timeout=timeout) as resp:
                return resp.status, resp.read()
        except error.HTTPError as exc:
            return exc.code, exc.read() or b""


class CoinGeckoClient:
    """High level helper for the CoinGecko endpoints used by ingestion.

    Reads the API key, base URL and call ceiling from the central config
    module (see ``src/config.py``) unless they are passed explicitly.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        rate_limiter: Optional[RateLimiter] = None,
        transport: Optional[Transport] = None,
        timeout: float = DEFAULT_TIMEOUT,
        max_throttle_retries: int = 3,
    ) -> None:
        """
        Create a new CoinGecko client.

        Parameters:
            api_key: Optional demo API key. Defaults to COINGECKO_API_KEY.
            base_url: API root. Defaults to COINGECKO_BASE_URL or the public v3 root.
            rate_limiter: Shared limiter; one is built from COINGECKO_CALLS_PER_MINUTE if omitted.
            transport: HTTP transport, mainly for tests. Defaults to urllib.
            timeout: Per-request timeout in seconds.
            max_throttle_retries: Retries allowed per call after HTTP 429 before giving up.
        """
        from config import get_coingecko_config

        cfg = get_coingecko_config()
        self.api_key = api_key or cfg.get("COINGECKO_API_KEY")
        self.base_url = (base_url or cfg.get("COINGECKO_BASE_URL") or DEFAULT_BASE_URL).rstrip("/")
        if rate_limiter is None:
            rate_limiter = RateLimiter(calls_per_minute=int(cfg.get("COINGECKO_CALLS_PER_MINUTE") or 25))
        self.rate_limiter = rate_limiter
        self.transport: Transport = transport or UrllibTransport()
        self.timeout = timeout
        self.max_throttle_retries = max(0, int(max_throttle_retries))
        self._calls_made = 0
        self._calls_lock = threading.Lock()

    @property
    def calls_made(self) -> int:
        """Number of HTTP requests issued by this client, retries included."""
        with self._calls_lock:
            return self._calls_made

    def fetch(self, endpoint: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """
        GET ``endpoint`` and return the decoded JSON body.

        Raises:
            ProviderThrottled: When 429 persists past ``max_throttle_retries``.
            ProviderError: On any other non-2xx status, network failure or bad JSON.
        """
        url = self._build_url(endpoint, params)
        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["x-cg-demo-api-key"] = self.api_key

        attempt = 0
        while True:
            self.rate_limiter.acquire()
            status, body = self._send(url, headers)
            if status == HTTP_TOO_MANY_REQUESTS:
                attempt += 1
                if attempt > self.max_throttle_retries:
                    raise ProviderThrottled(attempt)
                log.warning("CoinGecko throttled %s; waiting for window reset (retry %d/%d)",
                            endpoint, attempt, self.max_throttle_retries)
                self.rate_limiter.wait_for_reset()
                continue
            break

        if not 200 <= status < 300:
            raise ProviderError(status, _error_message(body))
        try:
            return json.loads(body.decode("utf-8"))
        except ValueError as exc:
            raise ProviderError(status, f"invalid JSON body: {exc}") from exc

    def get_simple_prices(self, ids: Iterable[str], vs_currency: str = "usd") -> Dict[str, Any]:
        """Spot prices plus market cap, 24h volume and 24h change for ``ids``."""
        return self.fetch(
            "/simple/price",
            {
                "ids": ",".join(ids),
                "vs_currencies": vs_currency,
                "include_market_cap": "true",
                "include_24hr_vol": "true",
                "include_24hr_change": "true",
            },
        )

    def get_coin(self, coin_id: str) -> Dict[str, Any]:
        """Rich market data (rank, ATH/ATL, 7d/30d change, supply) for one coin."""
        return self.fetch(
            f"/coins/{coin_id}",
            {
                "localization": "false",
                "tickers": "false",
                "market_data": "true",
                "community_data": "false",
                "developer_data": "false",
                "sparkline": "false",
            },
        )

    def get_tickers(self, coin_id: str) -> Dict[str, Any]:
        """First page of per-exchange tickers for one coin."""
        return self.fetch(
            f"/coins/{coin_id}/tickers",
            {"include_exchange_logo": "false", "depth": "false"},
        )

    def _build_url(self, endpoint: str, params: Optional[Dict[str, Any]]) -> str:
        path = endpoint if endpoint.startswith("/") else f"/{endpoint}"
        url = f"{self.base_url}{path}"
        if params:
            url = f"{url}?{parse.urlencode(params)}"
        return url

    def _send(self, url: str, headers: Dict[str, str]) -> Tuple[int, bytes]:
        with self._calls_lock:
            self._calls_made += 1
        try:
            return self.transport.get(url, headers, self.timeout)
        except (error.URLError, OSError) as exc:
            raise ProviderError(None, str(exc)) from exc


def _error_message(body: bytes) -> str:
    text = body.decode("utf-8", errors="replace").strip()
    try:
        payload = json.loads(text)
    except ValueError:
        return text[:200] or "unknown error"
    if isinstance(payload, dict):
        status = payload.get("status")
        if isinstance(status, dict) and status.get("error_message"):
            return str(status["error_message"])
        for key in ("error", "message", "msg"):
            if payload.get(key):
                return str(payload[key])
    return text[:200] or "unknown error"
