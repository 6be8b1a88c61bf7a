from __future__ import annotations

from sqlalchemy import JSON, Column, DateTime, Float, Index, Integer

from db.base import Base


class VolumeSnapshotRow(Base):
    __tablename__ = "volume_snapshots"

    id = Column(Integer, primary_key=True, autoincrement=True)
    ts = Column(DateTime(timezone=True), nullable=False)
    # Sums over the stored (top 20) exchanges only
    total_volume_usd = Column(Float, nullable=False)
    total_volume_home = Column(Float, nullable=False)
    # Distinct exchanges before truncation
    exchange_count = Column(Integer, nullable=False)
    # [{name, volume_usd, volume_home, trading_pairs, trust, trade_url}], sorted by volume_usd desc
    exchanges = Column(JSON, nullable=False)

    __table_args__ = (Index("ix_volume_snapshots_ts", "ts"),)
