"""Repository for order series."""

import sqlite3
from decimal import Decimal

from wattlink.errors import DuplicateSeries
from wattlink.models.orders import OrderSeries, PlannedSeries, StrategyKind
from wattlink.storage import order_repo
from wattlink.storage.database import write_transaction


def save_planned_series(conn: sqlite3.Connection, planned: PlannedSeries) -> None:
    """Persist a series and all of its member orders in one transaction.

    Either every row lands or none does. An id clash raises ``DuplicateSeries``.
    """
    s = planned.series
    try:
        _insert_planned(conn, planned)
    except sqlite3.IntegrityError:
        if get_series(conn, s.id) is None:
            raise
        raise DuplicateSeries(s.id) from None


def _insert_planned(conn: sqlite3.Connection, planned: PlannedSeries) -> None:
    s = planned.series
    with write_transaction(conn):
        conn.execute(
            "INSERT INTO series "
            "(id, owner, total_amount, sell_unit, buy_unit, strategy, oracle_ref, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
            (
                s.id,
                s.owner,
                str(s.total_amount),
                s.sell_unit,
                s.buy_unit,
                s.strategy.value,
                s.oracle_ref,
                s.created_at,
            ),
        )
        for order in planned.orders:
            order_repo.insert_order(conn, order)


def get_series(conn: sqlite3.Connection, series_id: str) -> OrderSeries | None:
    row = conn.execute("SELECT * FROM series WHERE id = ?", (series_id,)).fetchone()
    if row is None:
        return None
    return row_to_series(row)


def list_series(
    conn: sqlite3.Connection, owner: str | None = None, limit: int = 100
) -> list[OrderSeries]:
    """Most recent series first, optionally for one owner."""
    if owner is None:
        rows = conn.execute(
            "SELECT * FROM series ORDER BY created_at DESC LIMIT ?", (limit,)
        ).fetchall()
    else:
        rows = conn.execute(
            "SELECT * FROM series WHERE owner = ? ORDER BY created_at DESC LIMIT ?",
            (owner, limit),
        ).fetchall()
    return [row_to_series(r) for r in rows]


def list_open_series_ids(conn: sqlite3.Connection) -> list[str]:
    """Series that still have at least one non-terminal member."""
    rows = conn.execute(
        "SELECT DISTINCT s.id, s.created_at FROM series s "
        "JOIN orders o ON o.series_id = s.id "
        "WHERE o.status IN ('PENDING', 'ACTIVE') "
        "ORDER BY s.created_at, s.id"
    ).fetchall()
    return [r[0] for r in rows]


def count_open_series(conn: sqlite3.Connection) -> int:
    row = conn.execute(
        "SELECT COUNT(DISTINCT series_id) FROM orders "
        "WHERE status IN ('PENDING', 'ACTIVE')"
    ).fetchone()
    return int(row[0])


def row_to_series(row: sqlite3.Row) -> OrderSeries:
    return OrderSeries(
        id=row["id"],
        owner=row["owner"],
        total_amount=Decimal(row["total_amount"]),
        sell_unit=row["sell_unit"],
        buy_unit=row["buy_unit"],
        strategy=StrategyKind(row["strategy"]),
        oracle_ref=row["oracle_ref"],
        created_at=row["created_at"],
    )
