"""Repository for fill reports and status snapshots.

Write helpers do not commit; ``ResultReporter`` owns the write transaction.
"""

import sqlite3

from wattlink.models.reporting import FillDetails, StatusSnapshot


def save_fill_report(conn: sqlite3.Connection, fill: FillDetails) -> bool:
    """Record a fill report. Returns False if the order was already reported."""
    cursor = conn.execute(
        "INSERT OR IGNORE INTO fill_reports "
        "(order_id, series_id, owner, credited_amount, unit, observed_price, executed_at) "
        "VALUES (?, ?, ?, ?, ?, ?, ?)",
        (
            fill.order_id,
            fill.series_id,
            fill.owner,
            str(fill.credited_amount),
            fill.unit,
            fill.observed_price,
            fill.executed_at,
        ),
    )
    return cursor.rowcount == 1


def is_reported(conn: sqlite3.Connection, order_id: str) -> bool:
    row = conn.execute(
        "SELECT 1 FROM fill_reports WHERE order_id = ?", (order_id,)
    ).fetchone()
    return row is not None


def save_status_snapshot(conn: sqlite3.Connection, snapshot: StatusSnapshot) -> int:
    cursor = conn.execute(
        "INSERT INTO status_snapshots "
        "(order_id, series_id, sequence, status, filled_count, unit_count, "
        "filled_amount, captured_at) "
        "VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
        (
            snapshot.order_id,
            snapshot.series_id,
            snapshot.sequence,
            snapshot.status,
            snapshot.filled_count,
            snapshot.unit_count,
            str(snapshot.filled_amount),
            snapshot.captured_at,
        ),
    )
    assert cursor.lastrowid is not None
    return cursor.lastrowid


def get_snapshots_for_series(conn: sqlite3.Connection, series_id: str) -> list[dict]:
    rows = conn.execute(
        "SELECT * FROM status_snapshots WHERE series_id = ? ORDER BY id",
        (series_id,),
    ).fetchall()
    return [dict(r) for r in rows]
