"""Tests for series, order and state repositories."""

import json
import sqlite3
from decimal import Decimal

import pytest

from wattlink.models.orders import OrderStatus
from wattlink.models.reporting import BalanceDelta, PassSummary
from wattlink.orders.state_machine import OrderStatusMachine
from wattlink.storage import order_repo, series_repo, state_repo
from wattlink.storage.balance_repo import SqliteBalanceStore
from wattlink.tests.conftest import OWNER


class TestSeriesRepo:
    def test_save_and_retrieve(self, planner, db: sqlite3.Connection):
        planned = planner.plan_and_save(db, OWNER, "30", unit_count=10)
        assert series_repo.get_series(db, planned.series.id) == planned.series

    def test_not_found(self, db: sqlite3.Connection):
        assert series_repo.get_series(db, "nope") is None

    def test_list_by_owner(self, planner, db, clock):
        planner.plan_and_save(db, OWNER, "30", unit_count=10)
        clock.advance(seconds=1)
        planner.plan_and_save(db, "0xother", "30", unit_count=10)
        assert len(series_repo.list_series(db)) == 2
        assert [s.owner for s in series_repo.list_series(db, owner=OWNER)] == [OWNER]

    def test_duplicate_series_rejected_atomically(self, planner, db):
        planned = planner.plan(OWNER, "30", 10)
        series_repo.save_planned_series(db, planned)
        with pytest.raises(sqlite3.IntegrityError):
            series_repo.save_planned_series(db, planned)
        assert db.execute("SELECT COUNT(*) FROM orders").fetchone()[0] == 10

    def test_open_series(self, planner, db, clock):
        open_ = planner.plan_and_save(db, OWNER, "30", unit_count=10)
        clock.advance(seconds=1)
        done = planner.plan_and_save(db, OWNER, "5", strategy="single-shot")
        OrderStatusMachine(db).fill(done.orders[0].id)
        assert series_repo.list_open_series_ids(db) == [open_.series.id]
        assert series_repo.count_open_series(db) == 1


class TestOrderRepo:
    def test_list_filters(self, planner, db, clock):
        planner.plan_and_save(db, OWNER, "30", unit_count=10)
        clock.advance(seconds=1)
        planner.plan_and_save(db, "0xother", "30", unit_count=5)
        assert len(order_repo.list_orders(db)) == 15
        assert len(order_repo.list_orders(db, owner=OWNER)) == 10
        active = order_repo.list_orders(db, status=OrderStatus.ACTIVE)
        assert len(active) == 2
        assert len(order_repo.list_orders(db, owner=OWNER, status=OrderStatus.PENDING)) == 9

    def test_unreported_fills(self, planner, db):
        planned = planner.plan_and_save(db, OWNER, "30", unit_count=10)
        OrderStatusMachine(db).fill(planned.orders[0].id)
        assert [o.id for o in order_repo.list_unreported_fills(db)] == [planned.orders[0].id]

    def test_next_pending(self, planner, db):
        planned = planner.plan_and_save(db, OWNER, "30", unit_count=10)
        nxt = order_repo.get_next_pending_order(db, planned.series.id, 1)
        assert nxt.sequence == 2
        assert order_repo.get_next_pending_order(db, planned.series.id, 10) is None


class TestStateRepo:
    def test_pause_flag(self, db):
        assert not state_repo.is_paused(db)
        state_repo.set_paused(db, True)
        assert state_repo.is_paused(db)

    def test_operator_log(self, db):
        state_repo.log_operator_command(db, "cancel", args="o1", result="cancelled")
        cmds = state_repo.get_recent_operator_commands(db)
        assert cmds[0]["command"] == "cancel"
        assert cmds[0]["args"] == "o1"

    def test_pass_lifecycle(self, db):
        state_repo.create_pass(db, "p1", "hash1")
        summary = PassSummary(pass_id="p1", fills=3, gate_closed=2, errors=["s9: boom"])
        state_repo.complete_pass(db, summary, "completed_with_errors")
        row = state_repo.get_latest_pass(db)
        assert row["status"] == "completed_with_errors"
        assert row["fills"] == 3
        assert json.loads(row["summary_json"])["errors"] == ["s9: boom"]
        assert row["gate_closed"] == 2
        assert row["completed_at"] is not None
        assert len(state_repo.list_passes(db)) == 1


class TestBalanceStore:
    def test_wide_amounts_accumulate_exactly(self, db):
        store = SqliteBalanceStore(db)
        big = Decimal("150000000000000000000000.000001")
        store.apply_delta(OWNER, BalanceDelta("o1", big, "CREDIT"))
        after = store.apply_delta(OWNER, BalanceDelta("o2", Decimal("0.000001"), "CREDIT"))
        assert str(after.amount) == "150000000000000000000000.000002"
        assert store.get_balance(OWNER).amount == after.amount
