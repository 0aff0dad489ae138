"""System flags, the operator audit log and the resolver pass log."""

import json
import sqlite3

from wattlink.models.reporting import PassSummary

PAUSED_KEY = "paused"


def get_system_state(conn: sqlite3.Connection, key: str) -> str | None:
    row = conn.execute("SELECT value FROM system_state WHERE key = ?", (key,)).fetchone()
    return row["value"] if row is not None else None


def set_system_state(conn: sqlite3.Connection, key: str, value: str) -> None:
    conn.execute(
        "INSERT INTO system_state (key, value, updated_at) VALUES (?, ?, CURRENT_TIMESTAMP) "
        "ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = CURRENT_TIMESTAMP",
        (key, value),
    )
    conn.commit()


def is_paused(conn: sqlite3.Connection) -> bool:
    return get_system_state(conn, PAUSED_KEY) == "true"


def set_paused(conn: sqlite3.Connection, paused: bool) -> None:
    set_system_state(conn, PAUSED_KEY, "true" if paused else "false")


def log_operator_command(
    conn: sqlite3.Connection, command: str, args: str = "", result: str = ""
) -> int:
    """Append to the operator audit log (pause, resume, cancels)."""
    cursor = conn.execute(
        "INSERT INTO operator_commands (command, args, result) VALUES (?, ?, ?)",
        (command, args, result),
    )
    conn.commit()
    assert cursor.lastrowid is not None
    return cursor.lastrowid


def get_recent_operator_commands(conn: sqlite3.Connection, limit: int = 20) -> list[dict]:
    rows = conn.execute(
        "SELECT * FROM operator_commands ORDER BY id DESC LIMIT ?", (limit,)
    ).fetchall()
    return [dict(r) for r in rows]


# Resolver passes

def create_pass(conn: sqlite3.Connection, pass_id: str, config_hash: str | None = None) -> None:
    conn.execute(
        "INSERT INTO resolver_passes (pass_id, config_hash) VALUES (?, ?)",
        (pass_id, config_hash),
    )
    conn.commit()


def complete_pass(
    conn: sqlite3.Connection,
    summary: PassSummary,
    status: str,
    error_message: str | None = None,
) -> None:
    """Close a pass row with the counters from its summary."""
    detail = {
        "series_skipped": summary.series_skipped,
        "filled_amount": str(summary.filled_amount),
        "duration_seconds": round(summary.duration_seconds, 3),
        "errors": summary.errors,
    }
    conn.execute(
        "UPDATE resolver_passes SET completed_at = CURRENT_TIMESTAMP, status = ?, "
        "series_examined = ?, fills = ?, gate_closed = ?, oracle_unavailable = ?, "
        "lost_races = ?, duplicate_reports = ?, summary_json = ?, error_message = ? "
        "WHERE pass_id = ?",
        (
            status,
            summary.series_examined,
            summary.fills,
            summary.gate_closed,
            summary.oracle_unavailable,
            summary.lost_races,
            summary.duplicate_reports,
            json.dumps(detail),
            error_message,
            summary.pass_id,
        ),
    )
    conn.commit()


def get_latest_pass(conn: sqlite3.Connection) -> dict | None:
    row = conn.execute("SELECT * FROM resolver_passes ORDER BY id DESC LIMIT 1").fetchone()
    return dict(row) if row is not None else None


def list_passes(conn: sqlite3.Connection, limit: int = 50) -> list[dict]:
    rows = conn.execute(
        "SELECT * FROM resolver_passes ORDER BY id DESC LIMIT ?", (limit,)
    ).fetchall()
    return [dict(r) for r in rows]
