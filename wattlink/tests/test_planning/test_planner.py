"""Tests for the series planner."""

import sqlite3
from datetime import timedelta
from decimal import Context, Decimal, localcontext

import pytest

from wattlink.errors import (
    DuplicateSeries,
    InvalidAmount,
    InvalidPriceCeiling,
    InvalidScheduleLength,
    UnsupportedStrategy,
)
from wattlink.models.orders import OrderStatus, StrategyKind
from wattlink.planning.planner import (
    generate_series_id,
    order_id_for,
    parse_strategy,
    split_amount,
)
from wattlink.storage import order_repo, series_repo
from wattlink.tests.conftest import OWNER, T0


class TestSplitAmount:
    def test_even_split(self):
        assert split_amount(Decimal("30"), 10, 6) == [Decimal("3.000000")] * 10

    def test_last_share_absorbs_remainder(self):
        shares = split_amount(Decimal("100"), 3, 2)
        assert shares == [Decimal("33.33"), Decimal("33.33"), Decimal("33.34")]
        assert sum(shares) == Decimal("100")

    def test_shares_never_exceed_total(self):
        shares = split_amount(Decimal("1"), 7, 6)
        assert sum(shares) == Decimal("1")
        assert all(s > 0 for s in shares)

    def test_too_small_to_split(self):
        with pytest.raises(InvalidAmount):
            split_amount(Decimal("0.01"), 30, 2)

    def test_excess_precision_rejected(self):
        with pytest.raises(InvalidAmount):
            split_amount(Decimal("1.0000001"), 2, 6)

    def test_wide_total_splits_exactly(self):
        total = Decimal("10000000000000000000000")
        shares = split_amount(total, 10, 6)
        assert shares == [Decimal("1000000000000000000000.000000")] * 10
        with localcontext() as ctx:
            ctx.prec = 60
            assert sum(shares, Decimal(0)) == total

    def test_wide_total_with_remainder(self):
        total = Decimal("123456789012345678901234567890.123456")
        shares = split_amount(total, 7, 6)
        assert len(shares) == 7
        assert len(set(shares[:-1])) == 1
        with localcontext() as ctx:
            ctx.prec = 60
            assert Decimal(0) <= shares[-1] - shares[0] < Decimal("0.000007")
            assert sum(shares, Decimal(0)) == total

    @pytest.mark.parametrize("precision", [0, 2, 6, 18])
    @pytest.mark.parametrize("unit_count", [1, 2, 3, 7, 30, 365])
    @pytest.mark.parametrize(
        "total",
        ["1000", "99.99", "1", "31415926.535897", "7" * 40, "1" + "0" * 35 + ".5"],
    )
    def test_shares_sum_to_total(self, total, unit_count, precision):
        amount = Decimal(total)
        quantum = Decimal(1).scaleb(-precision)
        if amount != amount.quantize(quantum, context=Context(prec=100)):
            pytest.skip("total finer than precision")
        if amount / unit_count < quantum:
            pytest.skip("total too small for unit_count")
        shares = split_amount(amount, unit_count, precision)
        assert len(shares) == unit_count
        assert all(s > 0 for s in shares)
        assert all(s == s.quantize(quantum, context=Context(prec=100)) for s in shares)
        assert shares[-1] >= shares[0]
        with localcontext() as ctx:
            ctx.prec = 100
            assert sum(shares, Decimal(0)) == amount


class TestPlan:
    def test_thirty_over_ten_units(self, planner):
        """Worked example: 30 split over 10 time-weighted units."""
        planned = planner.plan(OWNER, 30, 10, "time-weighted")
        assert len(planned.orders) == 10
        assert sum(o.sell_amount for o in planned.orders) == Decimal(30)
        assert planned.orders[0].status == OrderStatus.ACTIVE
        assert all(o.status == OrderStatus.PENDING for o in planned.orders[1:])

    def test_sequences_contiguous(self, planner):
        planned = planner.plan(OWNER, "100", 7)
        assert [o.sequence for o in planned.orders] == list(range(1, 8))
        assert planned.total_planned == Decimal("100")

    def test_default_unit_count(self, planner):
        planned = planner.plan(OWNER, "300")
        assert len(planned.orders) == 30

    def test_single_shot_one_unit(self, planner):
        planned = planner.plan(OWNER, "50", strategy="single-shot")
        assert len(planned.orders) == 1
        assert planned.orders[0].status == OrderStatus.ACTIVE
        assert planned.orders[0].sell_amount == Decimal("50")

    def test_single_shot_rejects_many_units(self, planner):
        with pytest.raises(InvalidScheduleLength):
            planner.plan(OWNER, "50", 5, strategy="single-shot")

    def test_limit_requires_ceiling(self, planner):
        with pytest.raises(InvalidPriceCeiling):
            planner.plan(OWNER, "50", strategy="limit")
        planned = planner.plan(OWNER, "50", strategy="limit", price_ceiling=1800.0)
        assert planned.orders[0].price_ceiling == 1800.0

    def test_hybrid_requires_ceiling(self, planner):
        with pytest.raises(InvalidPriceCeiling):
            planner.plan(OWNER, "50", 5, strategy="hybrid-time-weighted")

    def test_non_positive_ceiling_rejected(self, planner):
        with pytest.raises(InvalidPriceCeiling):
            planner.plan(OWNER, "50", 5, price_ceiling=0)

    def test_ceiling_copied_to_every_member(self, planner):
        planned = planner.plan(OWNER, "50", 5, strategy="hybrid", price_ceiling=2000.0)
        assert {o.price_ceiling for o in planned.orders} == {2000.0}

    @pytest.mark.parametrize("amount", ["0", "-5", "abc", "NaN"])
    def test_invalid_amount(self, planner, amount):
        with pytest.raises(InvalidAmount):
            planner.plan(OWNER, amount, 5)

    def test_zero_units_rejected(self, planner):
        with pytest.raises(InvalidScheduleLength):
            planner.plan(OWNER, "10", 0)

    def test_unsupported_strategy(self, planner):
        with pytest.raises(UnsupportedStrategy):
            planner.plan(OWNER, "10", 5, strategy="martingale")

    def test_scheduled_slots_one_interval_apart(self, planner):
        planned = planner.plan(OWNER, "10", 3)
        assert planned.orders[0].scheduled_for == T0.isoformat()
        assert planned.orders[2].scheduled_for == (T0 + timedelta(hours=48)).isoformat()

    def test_buy_estimate_uses_conversion_rate(self, planner):
        planned = planner.plan(OWNER, "100", 1, strategy="single-shot")
        assert planned.orders[0].buy_amount_estimate == Decimal("15.000000")

    def test_wide_total_plans_and_estimates(self, planner):
        planned = planner.plan(OWNER, "10000000000000000000000", 10)
        assert len(planned.orders) == 10
        assert planned.total_planned == Decimal("10000000000000000000000")
        assert planned.orders[0].buy_amount_estimate == Decimal("150000000000000000000.000000")

    def test_plan_does_not_write(self, planner, db: sqlite3.Connection):
        planner.plan(OWNER, "30", 10)
        assert db.execute("SELECT COUNT(*) FROM orders").fetchone()[0] == 0


class TestPlanAndSave:
    def test_persists_series_and_orders(self, planner, db: sqlite3.Connection):
        planned = planner.plan_and_save(db, OWNER, "30", unit_count=10)
        stored = series_repo.get_series(db, planned.series.id)
        assert stored == planned.series
        assert order_repo.get_orders_for_series(db, planned.series.id) == planned.orders

    def test_rejected_plan_writes_nothing(self, planner, db: sqlite3.Connection):
        with pytest.raises(InvalidAmount):
            planner.plan_and_save(db, OWNER, "-1", unit_count=10)
        assert db.execute("SELECT COUNT(*) FROM series").fetchone()[0] == 0

    def test_same_instant_plans_get_distinct_series(self, planner, db: sqlite3.Connection):
        first = planner.plan_and_save(db, OWNER, "30", unit_count=3)
        second = planner.plan_and_save(db, OWNER, "30", unit_count=3)
        assert first.series.created_at == second.series.created_at
        assert first.series.id != second.series.id
        assert db.execute("SELECT COUNT(*) FROM series").fetchone()[0] == 2

    def test_id_clash_is_a_planning_error(self, planner, db: sqlite3.Connection):
        planned = planner.plan(OWNER, "30", 3)
        series_repo.save_planned_series(db, planned)
        with pytest.raises(DuplicateSeries):
            series_repo.save_planned_series(db, planned)
        assert db.execute("SELECT COUNT(*) FROM orders").fetchone()[0] == 3


class TestIdentifiers:
    def test_series_id_deterministic(self):
        a = generate_series_id(OWNER, StrategyKind.TIME_WEIGHTED, T0, nonce="n1")
        b = generate_series_id(OWNER, StrategyKind.TIME_WEIGHTED, T0, nonce="n1")
        assert a == b
        assert a != generate_series_id(OWNER, StrategyKind.LIMIT, T0, nonce="n1")
        assert a != generate_series_id(OWNER, StrategyKind.TIME_WEIGHTED, T0, nonce="n2")

    def test_order_id_format(self):
        assert order_id_for("ab" * 32, 7) == "ab" * 16 + "-0007"


class TestParseStrategy:
    @pytest.mark.parametrize(
        "label,expected",
        [
            ("dca", StrategyKind.TIME_WEIGHTED),
            ("TWAP", StrategyKind.TIME_WEIGHTED),
            ("hybrid", StrategyKind.HYBRID_TIME_WEIGHTED),
            ("automatic", StrategyKind.SINGLE_SHOT),
            ("limit", StrategyKind.LIMIT),
        ],
    )
    def test_aliases(self, label, expected):
        assert parse_strategy(label) == expected
