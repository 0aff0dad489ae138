"""Series planner: turns one order request into a dated series of member orders."""

import hashlib
import logging
import secrets
import sqlite3
from collections.abc import Callable
from datetime import datetime, timedelta
from decimal import ROUND_DOWN, Decimal, InvalidOperation, localcontext

from wattlink.config.schema import PlannerConfig
from wattlink.errors import (
    InvalidAmount,
    InvalidPriceCeiling,
    InvalidScheduleLength,
    UnsupportedStrategy,
)
from wattlink.models.common import utc_now
from wattlink.models.orders import (
    Order,
    OrderSeries,
    OrderStatus,
    PlannedSeries,
    StrategyKind,
)
from wattlink.storage import series_repo

logger = logging.getLogger(__name__)

# Labels used by the order entry screen
STRATEGY_ALIASES: dict[str, StrategyKind] = {
    "dca": StrategyKind.TIME_WEIGHTED,
    "twap": StrategyKind.TIME_WEIGHTED,
    "hybrid": StrategyKind.HYBRID_TIME_WEIGHTED,
    "automatic": StrategyKind.SINGLE_SHOT,
}


def parse_strategy(value: str | StrategyKind) -> StrategyKind:
    if isinstance(value, StrategyKind):
        return value
    key = str(value).strip().lower()
    if key in STRATEGY_ALIASES:
        return STRATEGY_ALIASES[key]
    try:
        return StrategyKind(key)
    except ValueError:
        raise UnsupportedStrategy(f"Unsupported strategy: {value!r}") from None


def parse_amount(value: str | int | float | Decimal) -> Decimal:
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise InvalidAmount(f"Not a number: {value!r}") from None
    if not amount.is_finite() or amount <= 0:
        raise InvalidAmount(f"Amount must be positive, got {value!r}")
    return amount


def split_amount(total: Decimal, unit_count: int, precision: int) -> list[Decimal]:
    """Split ``total`` into ``unit_count`` shares at ``precision`` decimal places.

    Every share but the last is the rounded-down quotient; the last absorbs
    the remainder, so the shares always sum to ``total`` exactly.
    """
    quantum = Decimal(1).scaleb(-precision)
    try:
        with localcontext() as ctx:
            ctx.prec = _digits_needed(total, precision)
            ctx.rounding = ROUND_DOWN
            if total != total.quantize(quantum):
                raise InvalidAmount(f"{total} has more than {precision} decimal places")
            base = (total / unit_count).quantize(quantum)
            if base <= 0:
                raise InvalidAmount(f"{total} is too small to split into {unit_count} units")
            return [base] * (unit_count - 1) + [total - base * (unit_count - 1)]
    except InvalidOperation:
        raise InvalidAmount(f"{total} is out of range") from None


def _digits_needed(total: Decimal, precision: int) -> int:
    # integer digits + fractional digits, with headroom over the default 28
    return max(28, total.adjusted() + 1 + precision + 2)


def generate_series_id(
    owner: str, strategy: StrategyKind, created_at: datetime, nonce: str = ""
) -> str:
    """SHA256 of owner, strategy, creation millisecond and ``nonce``.

    The planner passes a random nonce so two requests landing in the same
    millisecond still get distinct ids.
    """
    millis = int(created_at.timestamp() * 1000)
    raw = f"{owner}|{strategy.value}|{millis}|{nonce}"
    return hashlib.sha256(raw.encode()).hexdigest()


def _estimate(share: Decimal, rate: Decimal, quantum: Decimal) -> Decimal:
    with localcontext() as ctx:
        ctx.prec = _digits_needed(share, -quantum.as_tuple().exponent) + len(rate.as_tuple().digits)
        return (share * rate).quantize(quantum)


def order_id_for(series_id: str, sequence: int) -> str:
    return f"{series_id[:32]}-{sequence:04d}"


class SeriesPlanner:
    def __init__(
        self,
        config: PlannerConfig,
        minimum_interval: timedelta,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.config = config
        self.minimum_interval = minimum_interval
        self.clock = clock

    def plan(
        self,
        owner: str,
        total_amount: str | int | float | Decimal,
        unit_count: int | None = None,
        strategy: str | StrategyKind = StrategyKind.TIME_WEIGHTED,
        price_ceiling: float | None = None,
        oracle_ref: str = "ETH-USD",
    ) -> PlannedSeries:
        """Build a series and its member orders. Performs no writes."""
        total = parse_amount(total_amount)
        kind = parse_strategy(strategy)

        if unit_count is None:
            unit_count = self.config.default_unit_count if kind.decomposed else 1
        if unit_count < 1:
            raise InvalidScheduleLength(f"unit_count must be >= 1, got {unit_count}")
        if not kind.decomposed and unit_count != 1:
            raise InvalidScheduleLength(
                f"{kind.value} orders have exactly one unit, got {unit_count}"
            )

        if price_ceiling is not None and price_ceiling <= 0:
            raise InvalidPriceCeiling(f"Price ceiling must be positive, got {price_ceiling}")
        if kind.requires_ceiling and price_ceiling is None:
            raise InvalidPriceCeiling(f"{kind.value} orders require a price ceiling")

        shares = split_amount(total, unit_count, self.config.amount_precision)

        created = self.clock()
        created_iso = created.isoformat()
        series_id = generate_series_id(owner, kind, created, nonce=secrets.token_hex(8))
        series = OrderSeries(
            id=series_id,
            owner=owner,
            total_amount=total,
            sell_unit=self.config.sell_unit,
            buy_unit=self.config.buy_unit,
            strategy=kind,
            oracle_ref=oracle_ref,
            created_at=created_iso,
        )

        quantum = Decimal(1).scaleb(-self.config.amount_precision)
        rate = Decimal(str(self.config.conversion_rate))
        orders = [
            Order(
                id=order_id_for(series_id, seq),
                series_id=series_id,
                sequence=seq,
                sell_amount=share,
                buy_amount_estimate=_estimate(share, rate, quantum),
                status=OrderStatus.ACTIVE if seq == 1 else OrderStatus.PENDING,
                price_ceiling=price_ceiling,
                scheduled_for=(created + (seq - 1) * self.minimum_interval).isoformat(),
                created_at=created_iso,
            )
            for seq, share in enumerate(shares, start=1)
        ]
        return PlannedSeries(series=series, orders=orders)

    def plan_and_save(self, conn: sqlite3.Connection, owner: str, total_amount, **kwargs) -> PlannedSeries:
        """Plan a series and persist it atomically."""
        planned = self.plan(owner, total_amount, **kwargs)
        series_repo.save_planned_series(conn, planned)
        logger.info(
            "Planned series %s: %s %s over %d units (%s) for %s",
            planned.series.id[:12],
            planned.series.total_amount,
            planned.series.sell_unit,
            len(planned.orders),
            planned.series.strategy.value,
            owner,
        )
        return planned
