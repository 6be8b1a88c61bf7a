from __future__ import annotations

from datetime import datetime, timezone
from typing import Generic, List, Optional, Type, TypeVar

from sqlalchemy import delete, insert, select
from sqlalchemy.orm import Session

from db.poco.price_snapshot import PriceSnapshotRow
from db.poco.volume_snapshot import VolumeSnapshotRow
from pipeline.models import ExchangeVolume, MarketMeta, PriceSnapshot, VolumeSnapshot

RowT = TypeVar("RowT", PriceSnapshotRow, VolumeSnapshotRow)
SnapT = TypeVar("SnapT", PriceSnapshot, VolumeSnapshot)


def as_utc(ts: datetime) -> datetime:
    """Some drivers (SQLite) hand back naive datetimes; everything here is UTC."""
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


class _SnapshotsRepo(Generic[RowT, SnapT]):
    """Append-only snapshot storage with time range reads."""

    model: Type[RowT]

    def to_row(self, snapshot: SnapT) -> dict:
        raise NotImplementedError

    def from_row(self, row: RowT) -> SnapT:
        raise NotImplementedError

    def append(self, session: Session, snapshot: SnapT) -> int:
        """Insert one snapshot. Never updates an existing row."""
        result = session.execute(insert(self.model).values(**self.to_row(snapshot)))
        return result.rowcount if result.rowcount and result.rowcount > 0 else 1

    def latest(self, session: Session) -> Optional[SnapT]:
        stmt = select(self.model).order_by(self.model.ts.desc(), self.model.id.desc()).limit(1)
        row = session.scalars(stmt).first()
        return self.from_row(row) if row is not None else None

    def earliest_since(self, session: Session, start: datetime) -> Optional[SnapT]:
        stmt = (
            select(self.model)
            .where(self.model.ts >= start)
            .order_by(self.model.ts.asc(), self.model.id.asc())
            .limit(1)
        )
        row = session.scalars(stmt).first()
        return self.from_row(row) if row is not None else None

    def list_range(self, session: Session, start: datetime, end: Optional[datetime] = None) -> List[SnapT]:
        """Snapshots with start <= ts <= end, oldest first."""
        stmt = select(self.model).where(self.model.ts >= start)
        if end is not None:
            stmt = stmt.where(self.model.ts <= end)
        stmt = stmt.order_by(self.model.ts.asc(), self.model.id.asc())
        return [self.from_row(r) for r in session.scalars(stmt).all()]

    def delete_older_than(self, session: Session, cutoff: datetime) -> int:
        result = session.execute(delete(self.model).where(self.model.ts < cutoff))
        return max(result.rowcount or 0, 0)


class PriceSnapshotsRepo(_SnapshotsRepo[PriceSnapshotRow, PriceSnapshot]):
    model = PriceSnapshotRow

    def to_row(self, snapshot: PriceSnapshot) -> dict:
        meta = snapshot.market_meta.to_dict() if snapshot.market_meta is not None else None
        return {
            "ts": snapshot.timestamp,
            "home_asset": snapshot.home_asset,
            "home_usd": snapshot.home_usd,
            "spot_usd": dict(snapshot.spot_usd),
            "cross_rates": dict(snapshot.cross_rates),
            "market_cap": snapshot.market_cap,
            "volume_24h": snapshot.volume_24h,
            "price_change_24h": snapshot.price_change_24h,
            "market_meta": meta or None,
        }

    def from_row(self, row: PriceSnapshotRow) -> PriceSnapshot:
        return PriceSnapshot(
            timestamp=as_utc(row.ts),
            home_asset=row.home_asset,
            spot_usd={k: float(v) for k, v in (row.spot_usd or {}).items()},
            cross_rates={k: float(v) for k, v in (row.cross_rates or {}).items()},
            market_cap=row.market_cap,
            volume_24h=row.volume_24h,
            price_change_24h=row.price_change_24h,
            market_meta=MarketMeta.from_dict(row.market_meta),
        )


class VolumeSnapshotsRepo(_SnapshotsRepo[VolumeSnapshotRow, VolumeSnapshot]):
    model = VolumeSnapshotRow

    def to_row(self, snapshot: VolumeSnapshot) -> dict:
        return {
            "ts": snapshot.timestamp,
            "total_volume_usd": snapshot.total_volume_usd,
            "total_volume_home": snapshot.total_volume_home,
            "exchange_count": snapshot.exchange_count,
            "exchanges": [e.to_dict() for e in snapshot.exchanges],
        }

    def from_row(self, row: VolumeSnapshotRow) -> VolumeSnapshot:
        return VolumeSnapshot(
            timestamp=as_utc(row.ts),
            total_volume_usd=float(row.total_volume_usd),
            total_volume_home=float(row.total_volume_home),
            exchange_count=int(row.exchange_count),
            exchanges=tuple(ExchangeVolume.from_dict(e) for e in (row.exchanges or [])),
        )
