"""Initial schema: series, member orders, fill reports, balances, run log."""

import sqlite3

DDL = [
    # One row per user commitment
    """
    CREATE TABLE IF NOT EXISTS series (
        id TEXT PRIMARY KEY,
        owner TEXT NOT NULL,
        total_amount TEXT NOT NULL,
        sell_unit TEXT NOT NULL,
        buy_unit TEXT NOT NULL,
        strategy TEXT NOT NULL,
        oracle_ref TEXT NOT NULL,
        created_at TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_series_owner ON series(owner)",

    # Member orders; amounts are decimal strings
    """
    CREATE TABLE IF NOT EXISTS orders (
        id TEXT PRIMARY KEY,
        series_id TEXT NOT NULL REFERENCES series(id),
        sequence INTEGER NOT NULL CHECK (sequence >= 1),
        sell_amount TEXT NOT NULL,
        buy_amount_estimate TEXT NOT NULL,
        status TEXT NOT NULL
            CHECK (status IN ('PENDING', 'ACTIVE', 'FILLED', 'CANCELLED')),
        price_ceiling REAL,
        scheduled_for TEXT NOT NULL,
        created_at TEXT NOT NULL,
        executed_at TEXT,
        updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
        UNIQUE(series_id, sequence)
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_orders_status ON orders(status)",
    # At most one ACTIVE member per series
    (
        "CREATE UNIQUE INDEX IF NOT EXISTS idx_orders_one_active "
        "ON orders(series_id) WHERE status = 'ACTIVE'"
    ),

    # Exactly-once marker for ResultReporter
    """
    CREATE TABLE IF NOT EXISTS fill_reports (
        order_id TEXT PRIMARY KEY REFERENCES orders(id),
        series_id TEXT NOT NULL,
        owner TEXT NOT NULL,
        credited_amount TEXT NOT NULL,
        unit TEXT NOT NULL,
        observed_price REAL NOT NULL,
        executed_at TEXT NOT NULL,
        reported_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
    )
    """,

    # Balance collaborator
    """
    CREATE TABLE IF NOT EXISTS balances (
        owner TEXT NOT NULL,
        unit TEXT NOT NULL,
        amount TEXT NOT NULL,
        updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
        PRIMARY KEY (owner, unit)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS balance_deltas (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        owner TEXT NOT NULL,
        order_id TEXT UNIQUE NOT NULL,
        amount TEXT NOT NULL,
        unit TEXT NOT NULL,
        balance_after TEXT NOT NULL,
        applied_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_balance_deltas_owner ON balance_deltas(owner)",

    # Query-layer status snapshots
    """
    CREATE TABLE IF NOT EXISTS status_snapshots (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        order_id TEXT NOT NULL,
        series_id TEXT NOT NULL,
        sequence INTEGER NOT NULL,
        status TEXT NOT NULL,
        filled_count INTEGER NOT NULL,
        unit_count INTEGER NOT NULL,
        filled_amount TEXT NOT NULL,
        captured_at TEXT NOT NULL
    )
    """,
    (
        "CREATE INDEX IF NOT EXISTS idx_status_snapshots_series "
        "ON status_snapshots(series_id)"
    ),

    # Config snapshots
    """
    CREATE TABLE IF NOT EXISTS config_snapshots (
        config_hash TEXT PRIMARY KEY,
        config_json TEXT NOT NULL,
        created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
    )
    """,

    # System state
    """
    CREATE TABLE IF NOT EXISTS system_state (
        key TEXT PRIMARY KEY,
        value TEXT NOT NULL,
        updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
    )
    """,
    "INSERT OR IGNORE INTO system_state (key, value) VALUES ('paused', 'false')",

    # Operator command audit log
    """
    CREATE TABLE IF NOT EXISTS operator_commands (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        command TEXT NOT NULL,
        args TEXT NOT NULL DEFAULT '',
        result TEXT NOT NULL DEFAULT '',
        executed_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
    )
    """,

    # Resolver pass log
    """
    CREATE TABLE IF NOT EXISTS resolver_passes (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        pass_id TEXT UNIQUE NOT NULL,
        config_hash TEXT,
        started_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
        completed_at TEXT,
        status TEXT NOT NULL DEFAULT 'running',
        series_examined INTEGER NOT NULL DEFAULT 0,
        fills INTEGER NOT NULL DEFAULT 0,
        gate_closed INTEGER NOT NULL DEFAULT 0,
        oracle_unavailable INTEGER NOT NULL DEFAULT 0,
        lost_races INTEGER NOT NULL DEFAULT 0,
        duplicate_reports INTEGER NOT NULL DEFAULT 0,
        summary_json TEXT,
        error_message TEXT
    )
    """,
]


def up(conn: sqlite3.Connection) -> None:
    for stmt in DDL:
        conn.execute(stmt)
    conn.commit()
