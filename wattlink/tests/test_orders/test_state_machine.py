"""Tests for the order lifecycle state machine."""

import sqlite3
from decimal import Decimal

import pytest

from wattlink.errors import IllegalTransition, UnknownOrder, UnknownSeries
from wattlink.models.orders import OrderStatus
from wattlink.orders.state_machine import LEGAL_TRANSITIONS, OrderStatusMachine, is_legal
from wattlink.storage import order_repo
from wattlink.tests.conftest import OWNER


@pytest.fixture
def series(planner, db: sqlite3.Connection):
    return planner.plan_and_save(db, OWNER, "30", unit_count=10)


@pytest.fixture
def machine(db: sqlite3.Connection) -> OrderStatusMachine:
    return OrderStatusMachine(db)


def _statuses(db, series_id):
    return [o.status for o in order_repo.get_orders_for_series(db, series_id)]


class TestTransitionTable:
    def test_terminal_states_have_no_exits(self):
        assert LEGAL_TRANSITIONS[OrderStatus.FILLED] == frozenset()
        assert LEGAL_TRANSITIONS[OrderStatus.CANCELLED] == frozenset()

    @pytest.mark.parametrize(
        "current,target",
        [
            (OrderStatus.PENDING, OrderStatus.ACTIVE),
            (OrderStatus.PENDING, OrderStatus.CANCELLED),
            (OrderStatus.ACTIVE, OrderStatus.FILLED),
            (OrderStatus.ACTIVE, OrderStatus.CANCELLED),
        ],
    )
    def test_legal(self, current, target):
        assert is_legal(current, target)

    @pytest.mark.parametrize(
        "current,target",
        [
            (OrderStatus.PENDING, OrderStatus.FILLED),
            (OrderStatus.ACTIVE, OrderStatus.PENDING),
            (OrderStatus.FILLED, OrderStatus.ACTIVE),
            (OrderStatus.CANCELLED, OrderStatus.PENDING),
            (OrderStatus.FILLED, OrderStatus.CANCELLED),
        ],
    )
    def test_illegal(self, current, target):
        assert not is_legal(current, target)


class TestFill:
    def test_fill_promotes_next(self, machine, series, db):
        first, second = series.orders[0], series.orders[1]
        outcome = machine.fill(first.id, executed_at="2026-01-01T00:00:00+00:00")
        assert outcome.filled.status == OrderStatus.FILLED
        assert outcome.filled.executed_at == "2026-01-01T00:00:00+00:00"
        assert outcome.promoted.id == second.id
        assert outcome.promoted.status == OrderStatus.ACTIVE
        assert _statuses(db, series.series.id)[2:] == [OrderStatus.PENDING] * 8

    def test_pending_cannot_fill(self, machine, series, db):
        with pytest.raises(IllegalTransition) as exc_info:
            machine.fill(series.orders[3].id)
        assert exc_info.value.current == "PENDING"
        assert order_repo.get_order(db, series.orders[3].id).status == OrderStatus.PENDING

    def test_filled_order_cannot_fill_again(self, machine, series):
        machine.fill(series.orders[0].id)
        with pytest.raises(IllegalTransition):
            machine.fill(series.orders[0].id)

    def test_fill_last_member_promotes_nothing(self, planner, machine, db):
        planned = planner.plan_and_save(db, OWNER, "5", strategy="single-shot")
        outcome = machine.fill(planned.orders[0].id)
        assert outcome.promoted is None
        assert machine.progress(planned.series.id).resolved

    def test_promotion_skips_cancelled_slot(self, machine, series, db):
        machine.cancel(series.orders[1].id)
        outcome = machine.fill(series.orders[0].id)
        assert outcome.promoted.sequence == 3

    def test_full_series_fills_in_order(self, machine, series, db):
        for order in series.orders:
            machine.fill(order.id)
        assert _statuses(db, series.series.id) == [OrderStatus.FILLED] * 10
        assert machine.progress(series.series.id).filled_amount == Decimal("30")

    def test_unknown_order(self, machine):
        with pytest.raises(UnknownOrder):
            machine.fill("missing-0001")


class TestCompareAndSet:
    def test_cancel_beats_stale_fill(self, machine, series, db):
        """A fill attempted after a concurrent cancel must be rejected."""
        active = series.orders[0]
        other = OrderStatusMachine(db)
        other.cancel(active.id)
        with pytest.raises(IllegalTransition) as exc_info:
            machine.fill(active.id)
        assert exc_info.value.current == "CANCELLED"
        assert order_repo.get_order(db, series.orders[1].id).status == OrderStatus.PENDING

    def test_swap_fails_when_status_moved(self, series, db):
        with db:
            assert order_repo.compare_and_set_status(
                db, series.orders[0].id, OrderStatus.ACTIVE, OrderStatus.CANCELLED
            )
        with db:
            assert not order_repo.compare_and_set_status(
                db, series.orders[0].id, OrderStatus.ACTIVE, OrderStatus.FILLED
            )

    def test_second_active_rejected_by_index(self, series, db):
        with pytest.raises(sqlite3.IntegrityError):
            with db:
                order_repo.compare_and_set_status(
                    db, series.orders[1].id, OrderStatus.PENDING, OrderStatus.ACTIVE
                )
        assert order_repo.get_order(db, series.orders[1].id).status == OrderStatus.PENDING


class TestCancel:
    def test_cancel_pending_leaves_siblings(self, machine, series, db):
        """Cancelling slot 5 while slot 4 is active leaves slot 6 pending."""
        for order in series.orders[:3]:
            machine.fill(order.id)
        assert order_repo.get_order(db, series.orders[3].id).status == OrderStatus.ACTIVE

        machine.cancel(series.orders[4].id)

        assert order_repo.get_order(db, series.orders[4].id).status == OrderStatus.CANCELLED
        assert order_repo.get_order(db, series.orders[5].id).status == OrderStatus.PENDING
        assert order_repo.get_order(db, series.orders[3].id).status == OrderStatus.ACTIVE

    def test_cancel_active_does_not_promote(self, machine, series, db):
        machine.cancel(series.orders[0].id)
        assert order_repo.get_active_order(db, series.series.id) is None
        assert order_repo.get_order(db, series.orders[1].id).status == OrderStatus.PENDING

    def test_cancel_filled_rejected(self, machine, series):
        machine.fill(series.orders[0].id)
        with pytest.raises(IllegalTransition):
            machine.cancel(series.orders[0].id)

    def test_cancel_twice_rejected(self, machine, series):
        machine.cancel(series.orders[2].id)
        with pytest.raises(IllegalTransition):
            machine.cancel(series.orders[2].id)

    def test_cancel_series_keeps_fills(self, machine, series, db):
        machine.fill(series.orders[0].id)
        cancelled = machine.cancel_series(series.series.id)
        assert len(cancelled) == 9
        statuses = _statuses(db, series.series.id)
        assert statuses[0] == OrderStatus.FILLED
        assert statuses[1:] == [OrderStatus.CANCELLED] * 9
        assert machine.progress(series.series.id).resolved


class TestTransition:
    def test_pending_to_active_blocked_while_active_exists(self, machine, series, db):
        with pytest.raises(IllegalTransition):
            machine.transition(series.orders[1].id, OrderStatus.ACTIVE)

    def test_filled_to_pending_rejected(self, machine, series):
        machine.fill(series.orders[0].id)
        with pytest.raises(IllegalTransition):
            machine.transition(series.orders[0].id, OrderStatus.PENDING)

    def test_transition_to_filled_uses_fill(self, machine, series, db):
        order = machine.transition(series.orders[0].id, OrderStatus.FILLED)
        assert order.status == OrderStatus.FILLED
        assert order_repo.get_active_order(db, series.series.id).sequence == 2


class TestProgress:
    def test_counts(self, machine, series):
        machine.fill(series.orders[0].id)
        machine.cancel(series.orders[5].id)
        p = machine.progress(series.series.id)
        assert p.counts == {"PENDING": 7, "ACTIVE": 1, "FILLED": 1, "CANCELLED": 1}
        assert p.active_sequence == 2
        assert p.filled_amount == Decimal("3.000000")
        assert not p.resolved

    def test_unknown_series(self, machine):
        with pytest.raises(UnknownSeries):
            machine.progress("nope")
