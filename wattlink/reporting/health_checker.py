"""Liveness check used by ``wattlink health`` and ``GET /api/health``."""

import sqlite3

from wattlink.ingest.price_feed import PriceFeedClient
from wattlink.models.common import parse_timestamp, utc_now
from wattlink.models.reporting import HealthStatus
from wattlink.storage import order_repo, series_repo, state_repo


class HealthChecker:
    def __init__(self, conn: sqlite3.Connection, price_feed: PriceFeedClient):
        self.conn = conn
        self.price_feed = price_feed

    def check(self) -> HealthStatus:
        oracle_ok = self.price_feed.ping()
        try:
            self.conn.execute("SELECT 1")
        except sqlite3.Error:
            return HealthStatus(
                db_connected=False,
                oracle_reachable=oracle_ok,
                last_pass_age_minutes=None,
                paused=False,
                open_series=0,
            )
        return HealthStatus(
            db_connected=True,
            oracle_reachable=oracle_ok,
            last_pass_age_minutes=self._minutes_since_last_pass(),
            paused=state_repo.is_paused(self.conn),
            open_series=series_repo.count_open_series(self.conn),
            unreported_fills=len(order_repo.list_unreported_fills(self.conn)),
        )

    def _minutes_since_last_pass(self) -> float | None:
        last = state_repo.get_latest_pass(self.conn)
        finished = parse_timestamp(last["completed_at"]) if last else None
        if finished is None:
            return None
        return (utc_now() - finished).total_seconds() / 60
