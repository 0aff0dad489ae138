"""Wattlink read API: series, orders, balances and resolver passes over HTTP."""

import logging
import sqlite3
from dataclasses import asdict
from pathlib import Path

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from wattlink.config.loader import load_config
from wattlink.errors import IllegalTransition, OracleUnavailable, UnknownOrder, UnknownSeries
from wattlink.ingest.price_feed import PriceFeedClient
from wattlink.models.orders import Order, OrderSeries, OrderStatus
from wattlink.orders.state_machine import OrderStatusMachine
from wattlink.reporting.health_checker import HealthChecker
from wattlink.resolver.resolver import build_evaluator
from wattlink.storage import balance_repo, order_repo, report_repo, series_repo, state_repo
from wattlink.storage.database import connect, run_migrations

logger = logging.getLogger(__name__)

DB_PATH = Path(__file__).parent.parent / "data" / "wattlink.db"
CONFIG_PATH = Path(__file__).parent.parent / "ops" / "configs" / "default.yaml"

app = FastAPI(title="Wattlink", version="0.1.0")
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


def _conn() -> sqlite3.Connection:
    conn = connect(DB_PATH)
    run_migrations(conn)
    return conn


def _series_dict(s: OrderSeries) -> dict:
    return {
        "id": s.id,
        "owner": s.owner,
        "total_amount": str(s.total_amount),
        "sell_unit": s.sell_unit,
        "buy_unit": s.buy_unit,
        "strategy": s.strategy.value,
        "oracle_ref": s.oracle_ref,
        "created_at": s.created_at,
    }


def _order_dict(o: Order) -> dict:
    return {
        "id": o.id,
        "series_id": o.series_id,
        "sequence": o.sequence,
        "sell_amount": str(o.sell_amount),
        "buy_amount_estimate": str(o.buy_amount_estimate),
        "status": o.status.value,
        "price_ceiling": o.price_ceiling,
        "scheduled_for": o.scheduled_for,
        "created_at": o.created_at,
        "executed_at": o.executed_at,
    }


# ── Series ──────────────────────────────────────────────────────


@app.get("/api/series")
def get_series_list(owner: str | None = None, limit: int = 100):
    """All series, newest first."""
    conn = _conn()
    try:
        return [_series_dict(s) for s in series_repo.list_series(conn, owner=owner, limit=limit)]
    finally:
        conn.close()


@app.get("/api/series/{series_id}")
def get_series_detail(series_id: str):
    """One series with its orders and progress."""
    conn = _conn()
    try:
        series = series_repo.get_series(conn, series_id)
        if series is None:
            raise HTTPException(404, f"Series not found: {series_id}")
        progress = OrderStatusMachine(conn).progress(series_id)
        return {
            **_series_dict(series),
            "progress": {
                "unit_count": progress.unit_count,
                "filled_amount": str(progress.filled_amount),
                "counts": progress.counts,
                "active_sequence": progress.active_sequence,
                "resolved": progress.resolved,
            },
            "orders": [_order_dict(o) for o in order_repo.get_orders_for_series(conn, series_id)],
        }
    finally:
        conn.close()


@app.get("/api/series/{series_id}/status")
def get_series_status(series_id: str):
    """Time and price conditions for the series' active slot.

    An unreachable oracle still yields the order's last known status with
    ``can_execute`` false and ``oracle_available`` false.
    """
    conn = _conn()
    try:
        series = series_repo.get_series(conn, series_id)
        if series is None:
            raise HTTPException(404, f"Series not found: {series_id}")
        active = order_repo.get_active_order(conn, series_id)
        members = order_repo.get_orders_for_series(conn, series_id)
    finally:
        conn.close()

    current = active or (members[-1] if members else None)
    base = {
        "series_id": series_id,
        "active_order": active.id if active else None,
        "order_status": current.status.value if current else None,
    }

    evaluator = build_evaluator(load_config(CONFIG_PATH), DB_PATH)
    try:
        result = evaluator.evaluate(
            series.id, series.oracle_ref, active.price_ceiling if active else None
        )
    except OracleUnavailable as e:
        logger.warning("Status for series %s: oracle unavailable: %s", series_id[:12], e)
        return {
            **base,
            "oracle_available": False,
            "error": str(e),
            "time_condition_met": None,
            "price_condition_met": None,
            "can_execute": False,
        }
    finally:
        evaluator.close()

    return {
        **base,
        "oracle_available": True,
        "time_condition_met": result.time_gate,
        "price_condition_met": result.price_gate,
        "can_execute": result.executable and active is not None,
        "last_execution_at": (
            result.last_execution_at.isoformat() if result.last_execution_at else None
        ),
        "minimum_interval_seconds": result.minimum_interval.total_seconds(),
        "current_price": result.observed_price,
        "next_eligible_at": (
            result.next_eligible_at.isoformat() if result.next_eligible_at else None
        ),
    }


@app.get("/api/series/{series_id}/snapshots")
def get_series_snapshots(series_id: str):
    conn = _conn()
    try:
        return report_repo.get_snapshots_for_series(conn, series_id)
    finally:
        conn.close()


# ── Orders & balances ───────────────────────────────────────────


@app.get("/api/orders")
def get_orders(owner: str | None = None, status: str | None = None, limit: int = 200):
    """Orders filtered by owner and status."""
    try:
        order_status = OrderStatus(status) if status else None
    except ValueError:
        raise HTTPException(400, f"Unknown status: {status}") from None
    conn = _conn()
    try:
        orders = order_repo.list_orders(conn, owner=owner, status=order_status, limit=limit)
        return [_order_dict(o) for o in orders]
    finally:
        conn.close()


@app.get("/api/balances/{owner}")
def get_balances(owner: str):
    conn = _conn()
    try:
        return {
            "owner": owner,
            "balances": [
                {"amount": str(b.amount), "unit": b.unit}
                for b in balance_repo.list_balances(conn, owner)
            ],
            "recent_deltas": balance_repo.get_deltas(conn, owner, limit=20),
        }
    finally:
        conn.close()


# ── Resolver ────────────────────────────────────────────────────


@app.get("/api/passes")
def get_passes(limit: int = 50):
    """Recent resolver passes."""
    conn = _conn()
    try:
        return state_repo.list_passes(conn, limit=limit)
    finally:
        conn.close()


@app.get("/api/health")
def get_health():
    conn = _conn()
    try:
        config = load_config(CONFIG_PATH)
        checker = HealthChecker(
            conn, PriceFeedClient(config.oracle.base_url, config.oracle.timeout_seconds)
        )
        status = checker.check()
        return {**asdict(status), "ok": status.ok}
    finally:
        conn.close()


# ── Controls ────────────────────────────────────────────────────


@app.post("/api/orders/{order_id}/cancel")
def cancel_order(order_id: str):
    conn = _conn()
    try:
        order = OrderStatusMachine(conn).cancel(order_id)
        state_repo.log_operator_command(conn, "cancel", args=order_id, result="cancelled (api)")
        return _order_dict(order)
    except UnknownOrder as e:
        raise HTTPException(404, str(e)) from e
    except IllegalTransition as e:
        raise HTTPException(409, str(e)) from e
    finally:
        conn.close()


@app.post("/api/series/{series_id}/cancel")
def cancel_series(series_id: str):
    conn = _conn()
    try:
        machine = OrderStatusMachine(conn)
        try:
            machine.progress(series_id)
        except UnknownSeries as e:
            raise HTTPException(404, str(e)) from e
        cancelled = machine.cancel_series(series_id)
        state_repo.log_operator_command(
            conn, "cancel-series", args=series_id, result=f"cancelled={len(cancelled)} (api)"
        )
        return {"series_id": series_id, "cancelled": [o.id for o in cancelled]}
    finally:
        conn.close()


if __name__ == "__main__":
    import uvicorn

    _config = load_config(CONFIG_PATH)
    uvicorn.run(app, host=_config.api.host, port=_config.api.port)
