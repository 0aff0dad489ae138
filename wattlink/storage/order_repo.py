"""Repository for member orders.

Write helpers here do not commit: they run inside the caller's transaction
(see ``series_repo.save_planned_series`` and ``OrderStatusMachine``).
"""

import sqlite3
from decimal import Decimal

from wattlink.models.orders import Order, OrderStatus


def insert_order(conn: sqlite3.Connection, order: Order) -> None:
    conn.execute(
        "INSERT INTO orders "
        "(id, series_id, sequence, sell_amount, buy_amount_estimate, status, "
        "price_ceiling, scheduled_for, created_at, executed_at) "
        "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
        (
            order.id,
            order.series_id,
            order.sequence,
            str(order.sell_amount),
            str(order.buy_amount_estimate),
            order.status.value,
            order.price_ceiling,
            order.scheduled_for,
            order.created_at,
            order.executed_at,
        ),
    )


def compare_and_set_status(
    conn: sqlite3.Connection,
    order_id: str,
    expected: OrderStatus,
    target: OrderStatus,
    executed_at: str | None = None,
) -> bool:
    """Move an order from ``expected`` to ``target`` if it is still ``expected``.

    Returns False when the status changed underneath the caller.
    """
    if executed_at is not None:
        cursor = conn.execute(
            "UPDATE orders SET status = ?, executed_at = ?, updated_at = CURRENT_TIMESTAMP "
            "WHERE id = ? AND status = ?",
            (target.value, executed_at, order_id, expected.value),
        )
    else:
        cursor = conn.execute(
            "UPDATE orders SET status = ?, updated_at = CURRENT_TIMESTAMP "
            "WHERE id = ? AND status = ?",
            (target.value, order_id, expected.value),
        )
    return cursor.rowcount == 1


def get_order(conn: sqlite3.Connection, order_id: str) -> Order | None:
    row = conn.execute("SELECT * FROM orders WHERE id = ?", (order_id,)).fetchone()
    if row is None:
        return None
    return row_to_order(row)


def get_orders_for_series(conn: sqlite3.Connection, series_id: str) -> list[Order]:
    """All members of a series in sequence order."""
    rows = conn.execute(
        "SELECT * FROM orders WHERE series_id = ? ORDER BY sequence",
        (series_id,),
    ).fetchall()
    return [row_to_order(r) for r in rows]


def get_active_order(conn: sqlite3.Connection, series_id: str) -> Order | None:
    row = conn.execute(
        "SELECT * FROM orders WHERE series_id = ? AND status = 'ACTIVE'",
        (series_id,),
    ).fetchone()
    if row is None:
        return None
    return row_to_order(row)


def get_next_pending_order(
    conn: sqlite3.Connection, series_id: str, after_sequence: int
) -> Order | None:
    """Lowest-sequence PENDING member after ``after_sequence``."""
    row = conn.execute(
        "SELECT * FROM orders WHERE series_id = ? AND status = 'PENDING' "
        "AND sequence > ? ORDER BY sequence LIMIT 1",
        (series_id, after_sequence),
    ).fetchone()
    if row is None:
        return None
    return row_to_order(row)


def list_orders(
    conn: sqlite3.Connection,
    owner: str | None = None,
    status: OrderStatus | None = None,
    limit: int = 200,
) -> list[Order]:
    """Orders joined to their series, filtered by owner and/or status."""
    clauses = []
    params: list = []
    if owner is not None:
        clauses.append("s.owner = ?")
        params.append(owner)
    if status is not None:
        clauses.append("o.status = ?")
        params.append(status.value)
    where = f"WHERE {' AND '.join(clauses)} " if clauses else ""
    params.append(limit)
    rows = conn.execute(
        "SELECT o.* FROM orders o JOIN series s ON o.series_id = s.id "
        f"{where}ORDER BY s.created_at DESC, o.sequence LIMIT ?",
        params,
    ).fetchall()
    return [row_to_order(r) for r in rows]


def list_unreported_fills(conn: sqlite3.Connection) -> list[Order]:
    """FILLED orders that have no fill report yet."""
    rows = conn.execute(
        "SELECT o.* FROM orders o "
        "LEFT JOIN fill_reports f ON f.order_id = o.id "
        "WHERE o.status = 'FILLED' AND f.order_id IS NULL "
        "ORDER BY o.executed_at"
    ).fetchall()
    return [row_to_order(r) for r in rows]


def get_last_execution_time(conn: sqlite3.Connection, series_id: str) -> str | None:
    """Most recent fill time within a series."""
    row = conn.execute(
        "SELECT executed_at FROM orders "
        "WHERE series_id = ? AND status = 'FILLED' AND executed_at IS NOT NULL "
        "ORDER BY executed_at DESC LIMIT 1",
        (series_id,),
    ).fetchone()
    if row is None:
        return None
    return row[0]


def row_to_order(row: sqlite3.Row) -> Order:
    return Order(
        id=row["id"],
        series_id=row["series_id"],
        sequence=row["sequence"],
        sell_amount=Decimal(row["sell_amount"]),
        buy_amount_estimate=Decimal(row["buy_amount_estimate"]),
        status=OrderStatus(row["status"]),
        price_ceiling=row["price_ceiling"],
        scheduled_for=row["scheduled_for"],
        created_at=row["created_at"],
        executed_at=row["executed_at"],
    )
