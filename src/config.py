"""Utility helpers for loading project configuration.

This module is the single source of truth for environment-driven
configuration such as CoinGecko credentials, tracked assets and database
connection details.

Usage:
- Call ``load_env_file()`` once at startup to load ``resources/.env``.
- Use ``get_env`` for simple lookups.
- Use the convenience helpers like ``get_coingecko_config`` and
  ``get_database_url`` for normalized access.
"""
from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional, Tuple

from dotenv import load_dotenv


def load_env_file(env_path: Optional[Path] = None) -> None:
    """
    Load environment variables from an .env file.

    Parameters:
        env_path: Optional path to the .env file. Defaults to resources/.env.
    """
    env_file = Path(env_path or "resources/.env")
    if env_file.exists():
        load_dotenv(env_file)


def get_env(name: str, default: Optional[str] = None) -> Optional[str]:
    """Fetch an environment variable with an optional default."""
    return os.getenv(name, default)


def _get_int(name: str, default: int) -> int:
    raw = get_env(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from exc


# ----- CoinGecko API helpers -----

def get_coingecko_config() -> Dict[str, Optional[str]]:
    """Return CoinGecko API-related configuration gathered from environment.

    Keys:
    - COINGECKO_API_KEY (optional demo key, sent as x-cg-demo-api-key)
    - COINGECKO_BASE_URL
    - COINGECKO_CALLS_PER_MINUTE (30 allowed on the free tier; keep a margin)
    """
    return {
        "COINGECKO_API_KEY": get_env("COINGECKO_API_KEY"),
        "COINGECKO_BASE_URL": get_env("COINGECKO_BASE_URL", "https://api.coingecko.com/api/v3"),
        "COINGECKO_CALLS_PER_MINUTE": get_env("COINGECKO_CALLS_PER_MINUTE", "25"),
    }


@dataclass(frozen=True)
class TrackedAssets:
    """CoinGecko ids of the home asset and the reference assets it is quoted against."""

    home: str = "near"
    references: Tuple[str, ...] = ("bitcoin", "ethereum")

    @property
    def all_ids(self) -> Tuple[str, ...]:
        return (self.home,) + tuple(r for r in self.references if r != self.home)


def get_tracked_assets() -> TrackedAssets:
    """Return tracked assets from HOME_ASSET_ID and REFERENCE_ASSET_IDS (comma separated)."""
    home = (get_env("HOME_ASSET_ID") or "near").strip().lower()
    raw_refs = get_env("REFERENCE_ASSET_IDS") or "bitcoin,ethereum"
    refs = tuple(r.strip().lower() for r in raw_refs.split(",") if r.strip())
    if not refs:
        raise ValueError("REFERENCE_ASSET_IDS must name at least one asset")
    return TrackedAssets(home=home, references=refs)


@dataclass(frozen=True)
class IngestSettings:
    retention_days: int = 90
    fetch_interval_minutes: int = 15
    max_stored_exchanges: int = 20
    cron_secret: Optional[str] = None


def get_ingest_settings() -> IngestSettings:
    """Return ingestion/retention settings.

    Keys:
    - SNAPSHOT_RETENTION_DAYS (default 90)
    - FETCH_INTERVAL_MINUTES (default 15)
    - MAX_STORED_EXCHANGES (default 20, exchanges kept per volume snapshot)
    - CRON_SECRET (shared secret for the scheduled trigger endpoint)
    """
    return IngestSettings(
        retention_days=_get_int("SNAPSHOT_RETENTION_DAYS", 90),
        fetch_interval_minutes=_get_int("FETCH_INTERVAL_MINUTES", 15),
        max_stored_exchanges=_get_int("MAX_STORED_EXCHANGES", 20),
        cron_secret=get_env("CRON_SECRET") or None,
    )


# ----- Database helpers -----

def get_database_url() -> Optional[str]:
    """Return a database URL for PostgreSQL.

    Prefers ``DATABASE_URL`` if present; otherwise constructs a DSN from:
    - DB_HOST, DB_PORT, DB_NAME, DB_USER, DB_PASSWORD
    """
    db_url = get_env("DATABASE_URL")
    if db_url:
        return db_url

    host = get_env("DB_HOST")
    port = get_env("DB_PORT") or "5432"
    name = get_env("DB_NAME")
    user = get_env("DB_USER")
    password = get_env("DB_PASSWORD")

    if not (host and name and user and password):
        return None

    return f"postgresql+psycopg2://{user}:{password}@{host}:{port}/{name}"
