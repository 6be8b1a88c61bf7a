"""Time-series store facade over the snapshot repositories.

Price and volume snapshots are independent rows joined only by timestamp.
Each ``append`` runs in its own transaction, so a crash between the two
writes of a cycle can leave an orphan; readers treat a missing counterpart
as "no data for that timestamp".
"""
from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterator, List, Literal, Optional, Union, overload

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from db.db_conn import DbConn
from db.snapshots_repo import PriceSnapshotsRepo, VolumeSnapshotsRepo
from db.usage_repo import UsageMetadataRepo
from pipeline.models import PriceSnapshot, VolumeSnapshot

Kind = Literal["price", "volume"]
Snapshot = Union[PriceSnapshot, VolumeSnapshot]

DEFAULT_RETENTION_DAYS = 90


class StoreUnavailable(RuntimeError):
    """Raised when the database cannot be reached or a write/read fails."""


@dataclass(frozen=True)
class UsageCounters:
    api_calls_today: int
    api_calls_month: int
    last_reset_date: str


class SnapshotStore:
    """Append-only price/volume snapshot storage with advisory retention."""

    def __init__(self, db: DbConn, retention_days: int = DEFAULT_RETENTION_DAYS) -> None:
        self.db = db
        self.retention = timedelta(days=retention_days)
        self.prices = PriceSnapshotsRepo()
        self.volumes = VolumeSnapshotsRepo()
        self.usage = UsageMetadataRepo()

    @contextmanager
    def _session(self) -> Iterator[Session]:
        try:
            with self.db.session_scope() as session:
                yield session
        except SQLAlchemyError as exc:
            raise StoreUnavailable(f"snapshot store error: {exc}") from exc

    def _repo(self, kind: Kind) -> Union[PriceSnapshotsRepo, VolumeSnapshotsRepo]:
        if kind == "price":
            return self.prices
        if kind == "volume":
            return self.volumes
        raise ValueError(f"unknown snapshot kind: {kind!r}")

    def append(self, snapshot: Snapshot) -> int:
        """Insert a snapshot in its own transaction; returns rows written."""
        if isinstance(snapshot, PriceSnapshot):
            repo = self.prices
        elif isinstance(snapshot, VolumeSnapshot):
            repo = self.volumes
        else:
            raise TypeError(f"not a snapshot: {type(snapshot).__name__}")
        with self._session() as s:
            return repo.append(s, snapshot)

    @overload
    def latest(self, kind: Literal["price"]) -> Optional[PriceSnapshot]: ...

    @overload
    def latest(self, kind: Literal["volume"]) -> Optional[VolumeSnapshot]: ...

    def latest(self, kind: Kind) -> Optional[Snapshot]:
        """Newest snapshot of ``kind`` or None when the store holds none."""
        repo = self._repo(kind)
        with self._session() as s:
            return repo.latest(s)

    def range(self, kind: Kind, start: datetime, end: Optional[datetime] = None) -> List[Snapshot]:
        """Snapshots of ``kind`` with start <= ts <= end, ascending."""
        repo = self._repo(kind)
        with self._session() as s:
            return repo.list_range(s, start, end)

    def earliest_since(self, kind: Kind, start: datetime) -> Optional[Snapshot]:
        repo = self._repo(kind)
        with self._session() as s:
            return repo.earliest_since(s, start)

    def purge_expired(self, now: datetime) -> int:
        """Delete snapshots older than the retention window; returns rows removed."""
        cutoff = now - self.retention
        with self._session() as s:
            return self.prices.delete_older_than(s, cutoff) + self.volumes.delete_older_than(s, cutoff)

    def record_usage(self, calls: int, now: datetime) -> UsageCounters:
        with self._session() as s:
            row = self.usage.record_calls(s, calls, now)
            return UsageCounters(
                api_calls_today=int(row.api_calls_today),
                api_calls_month=int(row.api_calls_month),
                last_reset_date=row.last_reset_date.isoformat(),
            )
