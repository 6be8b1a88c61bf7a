from __future__ import annotations

from sqlalchemy import JSON, Column, DateTime, Float, Index, Integer, String

from db.base import Base


class PriceSnapshotRow(Base):
    __tablename__ = "price_snapshots"

    id = Column(Integer, primary_key=True, autoincrement=True)
    # Ingestion time (UTC); several rows may share it, writes are never upserts.
    ts = Column(DateTime(timezone=True), nullable=False)
    # CoinGecko id of the home asset, e.g. near
    home_asset = Column(String(50), nullable=False)
    home_usd = Column(Float, nullable=False)
    # {asset_id: usd} for home + reference assets
    spot_usd = Column(JSON, nullable=False)
    # {reference_id: home_usd / reference_usd}, fixed at write time
    cross_rates = Column(JSON, nullable=False)
    market_cap = Column(Float, nullable=True)
    volume_24h = Column(Float, nullable=True)
    price_change_24h = Column(Float, nullable=True)
    # Optional /coins/{id} enrichment; only present fields are stored
    market_meta = Column(JSON, nullable=True)

    __table_args__ = (Index("ix_price_snapshots_ts", "ts"),)
