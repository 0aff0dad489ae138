"""Tests for ResultReporter: balance delta, snapshot, duplicate suppression."""

from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from wattlink.models.reporting import FillDetails
from wattlink.orders.state_machine import OrderStatusMachine
from wattlink.reporting.reporter import ResultReporter
from wattlink.storage import balance_repo, report_repo
from wattlink.storage.balance_repo import SqliteBalanceStore
from wattlink.tests.conftest import OWNER, T0


@pytest.fixture
def filled(planner, db):
    """A 10-unit series with its first slot filled."""
    planned = planner.plan_and_save(db, OWNER, "30", unit_count=10)
    OrderStatusMachine(db).fill(planned.orders[0].id, executed_at=T0.isoformat())
    return planned


def _fill(planned, index=0) -> FillDetails:
    order = planned.orders[index]
    return FillDetails(
        order_id=order.id,
        series_id=planned.series.id,
        owner=OWNER,
        sequence=order.sequence,
        sell_amount=order.sell_amount,
        credited_amount=order.buy_amount_estimate,
        unit="CREDIT",
        observed_price=1950.0,
        executed_at=T0.isoformat(),
    )


class TestReport:
    def test_credits_balance(self, db, filled):
        reporter = ResultReporter(db, SqliteBalanceStore(db))
        assert reporter.report(filled.orders[0].id, _fill(filled))
        assert balance_repo.get_balance(db, OWNER, "CREDIT").amount == Decimal("0.45")
        assert reporter.delivered == 1

    def test_duplicate_suppressed(self, db, filled):
        reporter = ResultReporter(db, SqliteBalanceStore(db))
        reporter.report(filled.orders[0].id, _fill(filled))
        assert not reporter.report(filled.orders[0].id, _fill(filled))
        assert reporter.duplicates == 1
        assert balance_repo.get_balance(db, OWNER, "CREDIT").amount == Decimal("0.45")
        assert len(balance_repo.get_deltas(db, OWNER)) == 1

    def test_duplicate_across_reporters(self, db, filled):
        ResultReporter(db, SqliteBalanceStore(db)).report(filled.orders[0].id, _fill(filled))
        second = ResultReporter(db, SqliteBalanceStore(db))
        assert not second.report(filled.orders[0].id, _fill(filled))

    def test_snapshot_written(self, db, filled):
        ResultReporter(db, SqliteBalanceStore(db)).report(filled.orders[0].id, _fill(filled))
        snaps = report_repo.get_snapshots_for_series(db, filled.series.id)
        assert len(snaps) == 1
        assert snaps[0]["filled_count"] == 1
        assert snaps[0]["unit_count"] == 10
        assert Decimal(snaps[0]["filled_amount"]) == Decimal("3")

    def test_balance_failure_rolls_back_report(self, db, filled):
        store = MagicMock()
        store.apply_delta.side_effect = RuntimeError("ledger down")
        with pytest.raises(RuntimeError):
            ResultReporter(db, store).report(filled.orders[0].id, _fill(filled))
        assert not report_repo.is_reported(db, filled.orders[0].id)
        assert report_repo.get_snapshots_for_series(db, filled.series.id) == []

    def test_external_balance_store(self, db, filled):
        store = MagicMock()
        ResultReporter(db, store).report(filled.orders[0].id, _fill(filled))
        owner, delta = store.apply_delta.call_args.args
        assert owner == OWNER
        assert delta.amount == Decimal("0.450000")
        assert delta.order_id == filled.orders[0].id


class TestSqliteBalanceStore:
    def test_accumulates(self, db, filled):
        store = SqliteBalanceStore(db)
        OrderStatusMachine(db).fill(filled.orders[1].id)
        ResultReporter(db, store).report(filled.orders[0].id, _fill(filled, 0))
        ResultReporter(db, store).report(filled.orders[1].id, _fill(filled, 1))
        assert store.get_balance(OWNER).amount == Decimal("0.90")
        deltas = balance_repo.get_deltas(db, OWNER)
        assert [Decimal(d["balance_after"]) for d in deltas] == [Decimal("0.90"), Decimal("0.45")]

    def test_unknown_owner_zero(self, db):
        assert SqliteBalanceStore(db).get_balance("0xnobody").amount == Decimal(0)
