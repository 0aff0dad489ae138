"""Order lifecycle state machine.

PENDING -> ACTIVE -> FILLED, plus PENDING/ACTIVE -> CANCELLED. FILLED and
CANCELLED are terminal. Every status write is a compare-and-set on the
order's current status, so of two concurrent callers only one can move an
order out of ACTIVE.
"""

import logging
import sqlite3
from dataclasses import dataclass

from wattlink.errors import IllegalTransition, UnknownOrder, UnknownSeries
from wattlink.models.common import exact_sum, utc_now_iso
from wattlink.models.orders import Order, OrderSeries, OrderStatus
from wattlink.models.reporting import SeriesProgress
from wattlink.storage import order_repo, series_repo
from wattlink.storage.database import write_transaction

logger = logging.getLogger(__name__)

LEGAL_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.ACTIVE, OrderStatus.CANCELLED}),
    OrderStatus.ACTIVE: frozenset({OrderStatus.FILLED, OrderStatus.CANCELLED}),
    OrderStatus.FILLED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}


def is_legal(current: OrderStatus, target: OrderStatus) -> bool:
    return target in LEGAL_TRANSITIONS[current]


@dataclass(frozen=True)
class FillOutcome:
    filled: Order
    promoted: Order | None


def compute_progress(series: OrderSeries, orders: list[Order]) -> SeriesProgress:
    counts = {s.value: 0 for s in OrderStatus}
    active_sequence = None
    for o in orders:
        counts[o.status.value] += 1
        if o.status == OrderStatus.ACTIVE:
            active_sequence = o.sequence
    filled_amount = exact_sum(o.sell_amount for o in orders if o.status == OrderStatus.FILLED)
    return SeriesProgress(
        series_id=series.id,
        unit_count=len(orders),
        total_amount=series.total_amount,
        filled_amount=filled_amount,
        counts=counts,
        active_sequence=active_sequence,
    )


class OrderStatusMachine:
    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    def _load(self, order_id: str) -> Order:
        order = order_repo.get_order(self.conn, order_id)
        if order is None:
            raise UnknownOrder(order_id)
        return order

    def _reject(self, order: Order, target: OrderStatus) -> IllegalTransition:
        logger.warning(
            "Rejected transition for order %s: %s -> %s",
            order.id, order.status.value, target.value,
        )
        return IllegalTransition(order.id, order.status.value, target.value)

    def transition(self, order_id: str, target: OrderStatus) -> Order:
        """Apply a single transition. FILLED goes through ``fill``."""
        order = self._load(order_id)
        if target == OrderStatus.FILLED:
            return self.fill(order_id).filled
        if not is_legal(order.status, target):
            raise self._reject(order, target)

        try:
            with write_transaction(self.conn):
                swapped = order_repo.compare_and_set_status(
                    self.conn, order_id, order.status, target
                )
        except sqlite3.IntegrityError:
            # another member of the series is already ACTIVE
            raise self._reject(order, target) from None
        if not swapped:
            raise self._reject(self._load(order_id), target)
        return self._load(order_id)

    def fill(self, order_id: str, executed_at: str | None = None) -> FillOutcome:
        """Fill the ACTIVE order and promote the next PENDING member.

        Both writes share one transaction.
        """
        order = self._load(order_id)
        if order.status != OrderStatus.ACTIVE:
            raise self._reject(order, OrderStatus.FILLED)

        executed_at = executed_at or utc_now_iso()
        promoted_id = None
        with write_transaction(self.conn):
            swapped = order_repo.compare_and_set_status(
                self.conn, order_id, OrderStatus.ACTIVE, OrderStatus.FILLED, executed_at
            )
            if swapped:
                nxt = order_repo.get_next_pending_order(
                    self.conn, order.series_id, order.sequence
                )
                if nxt is not None and order_repo.compare_and_set_status(
                    self.conn, nxt.id, OrderStatus.PENDING, OrderStatus.ACTIVE
                ):
                    promoted_id = nxt.id
        if not swapped:
            raise self._reject(self._load(order_id), OrderStatus.FILLED)

        filled = self._load(order_id)
        promoted = self._load(promoted_id) if promoted_id else None
        logger.info(
            "Filled order %s (seq %d)%s",
            order_id, order.sequence,
            f", promoted seq {promoted.sequence}" if promoted else ", no pending successor",
        )
        return FillOutcome(filled=filled, promoted=promoted)

    def cancel(self, order_id: str) -> Order:
        """Cancel a PENDING or ACTIVE order. Siblings are left untouched."""
        order = self.transition(order_id, OrderStatus.CANCELLED)
        logger.info("Cancelled order %s (seq %d)", order_id, order.sequence)
        return order

    def cancel_series(self, series_id: str) -> list[Order]:
        """Cancel every non-terminal member. Returns the orders cancelled."""
        cancelled = []
        for order in order_repo.get_orders_for_series(self.conn, series_id):
            if order.is_terminal:
                continue
            try:
                cancelled.append(self.cancel(order.id))
            except IllegalTransition:
                # Filled by a concurrent resolver pass; a completed fill stands.
                continue
        return cancelled

    def progress(self, series_id: str) -> SeriesProgress:
        series = series_repo.get_series(self.conn, series_id)
        if series is None:
            raise UnknownSeries(series_id)
        orders = order_repo.get_orders_for_series(self.conn, series_id)
        return compute_progress(series, orders)
