"""Result reporter: delivers each fill to the balance store and the query layer once."""

import logging
import sqlite3
from typing import Protocol

from wattlink.errors import DuplicateReport
from wattlink.models.common import utc_now_iso
from wattlink.models.reporting import Balance, BalanceDelta, FillDetails, StatusSnapshot
from wattlink.orders.state_machine import compute_progress
from wattlink.storage import order_repo, report_repo, series_repo
from wattlink.storage.database import write_transaction

logger = logging.getLogger(__name__)


class BalanceStore(Protocol):
    def get_balance(self, owner: str, unit: str | None = None) -> Balance: ...

    def apply_delta(self, owner: str, delta: BalanceDelta) -> Balance: ...


class ResultReporter:
    """Turns fills into balance deltas and status snapshots.

    The fill report row, the balance delta and the snapshot are written in
    one transaction keyed by order id; a second report for the same order
    is a ``DuplicateReport`` and is suppressed.
    """

    def __init__(self, conn: sqlite3.Connection, balance_store: BalanceStore):
        self.conn = conn
        self.balance_store = balance_store
        self.delivered = 0
        self.duplicates = 0

    def report(self, order_id: str, fill: FillDetails) -> bool:
        """Deliver a fill. Returns False when it was already reported."""
        try:
            self._deliver(order_id, fill)
        except DuplicateReport:
            self.duplicates += 1
            logger.info("Suppressed duplicate report for order %s", order_id)
            return False
        self.delivered += 1
        return True

    def _deliver(self, order_id: str, fill: FillDetails) -> None:
        with write_transaction(self.conn):
            if not report_repo.save_fill_report(self.conn, fill):
                raise DuplicateReport(order_id)

            balance = self.balance_store.apply_delta(
                fill.owner,
                BalanceDelta(order_id=order_id, amount=fill.credited_amount, unit=fill.unit),
            )

            series = series_repo.get_series(self.conn, fill.series_id)
            orders = order_repo.get_orders_for_series(self.conn, fill.series_id)
            progress = compute_progress(series, orders)
            report_repo.save_status_snapshot(
                self.conn,
                StatusSnapshot(
                    order_id=order_id,
                    series_id=fill.series_id,
                    sequence=fill.sequence,
                    status="FILLED",
                    filled_count=progress.counts["FILLED"],
                    unit_count=progress.unit_count,
                    filled_amount=progress.filled_amount,
                    captured_at=utc_now_iso(),
                ),
            )
        logger.info(
            "Reported fill %s: +%s %s to %s (balance %s)",
            order_id, fill.credited_amount, fill.unit, fill.owner, balance.amount,
        )
