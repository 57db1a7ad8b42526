"""
Sync history: one append-only JSON log per calendar day (UTC).
"""

import logging
from datetime import date, timezone
from typing import List, Optional

from ..db import SQLiteDatabase, SyncRunLog

logger = logging.getLogger(__name__)

LOG_KEY_PREFIX = "sync_log:"


def log_key(day: date) -> str:
    return f"{LOG_KEY_PREFIX}{day.isoformat()}"


class SyncRunLogger:
    """Writes and reads the daily sync logs."""

    def __init__(self, db: SQLiteDatabase):
        self.db = db

    async def append(self, record: SyncRunLog) -> bool:
        """
        Append a run record to the log of the day the run finished.

        Storage failures are logged and swallowed so that they never fail
        the sync itself. Returns True if the record was written.
        """
        finished = record.finished_at
        if finished.tzinfo is not None:
            finished = finished.astimezone(timezone.utc)
        key = log_key(finished.date())

        try:
            count = await self.db.append_to_document(key, record.model_dump(mode="json"))
            logger.info(f"Sync run {record.id} logged ({count} runs on {key[len(LOG_KEY_PREFIX):]})")
            return True
        except Exception as e:
            logger.error(f"Failed to write sync log {key}: {e}")
            return False

    async def list_days(self, limit: int = 30) -> List[str]:
        """Days that have a log, newest first."""
        keys = await self.db.list_keys(LOG_KEY_PREFIX, limit=limit)
        return [key[len(LOG_KEY_PREFIX):] for key in keys]

    async def get_day(self, day: date) -> Optional[List[SyncRunLog]]:
        """Runs logged on a day, in order, or None if there is no log."""
        document = await self.db.get_document(log_key(day))
        if document is None:
            return None
        return [SyncRunLog.model_validate(item) for item in document]

    async def latest(self) -> Optional[SyncRunLog]:
        """Most recent run across all days."""
        days = await self.list_days(limit=1)
        if not days:
            return None
        runs = await self.get_day(date.fromisoformat(days[0]))
        return runs[-1] if runs else None
