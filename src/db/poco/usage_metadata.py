from __future__ import annotations

from sqlalchemy import Column, Date, DateTime, Integer, String

from db.base import Base


class UsageMetadata(Base):
    __tablename__ = "usage_metadata"

    key = Column(String(50), primary_key=True)
    last_updated = Column(DateTime(timezone=True), nullable=False)
    api_calls_today = Column(Integer, nullable=False, default=0)
    api_calls_month = Column(Integer, nullable=False, default=0)
    # UTC date the daily counter was last rolled
    last_reset_date = Column(Date, nullable=False)
