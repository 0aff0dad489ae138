"""Balance store backed by SQLite: current balances plus a delta ledger."""

import sqlite3
from decimal import Decimal

from wattlink.models.common import exact_sum
from wattlink.models.reporting import Balance, BalanceDelta


def get_balance(conn: sqlite3.Connection, owner: str, unit: str) -> Balance:
    row = conn.execute(
        "SELECT amount FROM balances WHERE owner = ? AND unit = ?", (owner, unit)
    ).fetchone()
    amount = Decimal(row[0]) if row is not None else Decimal(0)
    return Balance(owner=owner, amount=amount, unit=unit)


def list_balances(conn: sqlite3.Connection, owner: str) -> list[Balance]:
    rows = conn.execute(
        "SELECT owner, unit, amount FROM balances WHERE owner = ? ORDER BY unit",
        (owner,),
    ).fetchall()
    return [Balance(owner=r["owner"], amount=Decimal(r["amount"]), unit=r["unit"]) for r in rows]


def get_deltas(conn: sqlite3.Connection, owner: str, limit: int = 100) -> list[dict]:
    rows = conn.execute(
        "SELECT * FROM balance_deltas WHERE owner = ? ORDER BY id DESC LIMIT ?",
        (owner, limit),
    ).fetchall()
    return [dict(r) for r in rows]


class SqliteBalanceStore:
    """Balance collaborator for a local deployment.

    ``apply_delta`` does not commit; it joins the caller's transaction so the
    fill report and the balance change land together.
    """

    def __init__(self, conn: sqlite3.Connection, default_unit: str = "CREDIT"):
        self.conn = conn
        self.default_unit = default_unit

    def get_balance(self, owner: str, unit: str | None = None) -> Balance:
        return get_balance(self.conn, owner, unit or self.default_unit)

    def apply_delta(self, owner: str, delta: BalanceDelta) -> Balance:
        current = get_balance(self.conn, owner, delta.unit)
        updated = exact_sum((current.amount, delta.amount))
        self.conn.execute(
            "INSERT INTO balances (owner, unit, amount, updated_at) "
            "VALUES (?, ?, ?, CURRENT_TIMESTAMP) "
            "ON CONFLICT(owner, unit) DO UPDATE SET "
            "amount = excluded.amount, updated_at = CURRENT_TIMESTAMP",
            (owner, delta.unit, str(updated)),
        )
        self.conn.execute(
            "INSERT INTO balance_deltas (owner, order_id, amount, unit, balance_after) "
            "VALUES (?, ?, ?, ?, ?)",
            (owner, delta.order_id, str(delta.amount), delta.unit, str(updated)),
        )
        return Balance(owner=owner, amount=updated, unit=delta.unit)
