"""create snapshot tables

Revision ID: 5c1e7a9b2d40
Revises: 
Create Date: 2026-10-17 09:00:00

"""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "5c1e7a9b2d40"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "price_snapshots",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("ts", sa.DateTime(timezone=True), nullable=False),
        sa.Column("home_asset", sa.String(length=50), nullable=False),
        sa.Column("home_usd", sa.Float(), nullable=False),
        sa.Column("spot_usd", sa.JSON(), nullable=False),
        sa.Column("cross_rates", sa.JSON(), nullable=False),
        sa.Column("market_cap", sa.Float(), nullable=True),
        sa.Column("volume_24h", sa.Float(), nullable=True),
        sa.Column("price_change_24h", sa.Float(), nullable=True),
        sa.Column("market_meta", sa.JSON(), nullable=True),
    )
    op.create_index("ix_price_snapshots_ts", "price_snapshots", ["ts"], unique=False)

    op.create_table(
        "volume_snapshots",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("ts", sa.DateTime(timezone=True), nullable=False),
        sa.Column("total_volume_usd", sa.Float(), nullable=False),
        sa.Column("total_volume_home", sa.Float(), nullable=False),
        sa.Column("exchange_count", sa.Integer(), nullable=False),
        sa.Column("exchanges", sa.JSON(), nullable=False),
    )
    op.create_index("ix_volume_snapshots_ts", "volume_snapshots", ["ts"], unique=False)

    op.create_table(
        "usage_metadata",
        sa.Column("key", sa.String(length=50), primary_key=True, nullable=False),
        sa.Column("last_updated", sa.DateTime(timezone=True), nullable=False),
        sa.Column("api_calls_today", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("api_calls_month", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_reset_date", sa.Date(), nullable=False),
    )


def downgrade() -> None:
    op.drop_table("usage_metadata")
    op.drop_index("ix_volume_snapshots_ts", table_name="volume_snapshots")
    op.drop_table("volume_snapshots")
    op.drop_index("ix_price_snapshots_ts", table_name="price_snapshots")
    op.drop_table("price_snapshots")
