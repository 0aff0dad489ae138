"""Time lock backed by the order ledger.

The last execution instant of a series is the latest ``executed_at`` among
its FILLED members. Each call opens its own connection so the lock can be
read from the evaluator's worker threads.
"""

import sqlite3
from datetime import datetime, timedelta
from pathlib import Path

from wattlink.errors import OracleUnavailable
from wattlink.models.common import parse_timestamp
from wattlink.storage import order_repo
from wattlink.storage.database import connect


class LedgerTimeLock:
    def __init__(self, db_path: str | Path, minimum_interval: timedelta):
        self.db_path = db_path
        self._minimum_interval = minimum_interval

    def last_execution_time(self, series_id: str) -> datetime | None:
        try:
            conn = connect(self.db_path)
            try:
                value = order_repo.get_last_execution_time(conn, series_id)
            finally:
                conn.close()
        except sqlite3.Error as e:
            raise OracleUnavailable(f"Time lock unreadable for {series_id}: {e}") from e
        return parse_timestamp(value)

    def minimum_interval(self) -> timedelta:
        return self._minimum_interval
