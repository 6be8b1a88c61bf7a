from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from db.poco.usage_metadata import UsageMetadata

USAGE_KEY = "api_usage"


class UsageMetadataRepo:
    """Singleton row counting provider calls for the current UTC day and month."""

    def get(self, session: Session) -> Optional[UsageMetadata]:
        return session.get(UsageMetadata, USAGE_KEY)

    def record_calls(self, session: Session, calls: int, now: datetime) -> UsageMetadata:
        """Add ``calls`` to the counters, rolling them first when the day or month changed."""
        today = now.date()
        row = self.get(session)
        if row is None:
            row = UsageMetadata(
                key=USAGE_KEY,
                last_updated=now,
                api_calls_today=0,
                api_calls_month=0,
                last_reset_date=today,
            )
            session.add(row)

        last_reset = row.last_reset_date
        if last_reset != today:
            if (last_reset.year, last_reset.month) != (today.year, today.month):
                row.api_calls_month = 0
            row.api_calls_today = 0
            row.last_reset_date = today

        row.api_calls_today = int(row.api_calls_today or 0) + calls
        row.api_calls_month = int(row.api_calls_month or 0) + calls
        row.last_updated = now
        session.flush()
        return row
