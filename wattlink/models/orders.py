"""Order series and member order models."""

from dataclasses import dataclass
from decimal import Decimal
from enum import StrEnum

from wattlink.models.common import exact_sum


class OrderStatus(StrEnum):
    PENDING = "PENDING"
    ACTIVE = "ACTIVE"
    FILLED = "FILLED"
    CANCELLED = "CANCELLED"


TERMINAL_STATUSES = frozenset({OrderStatus.FILLED, OrderStatus.CANCELLED})


class StrategyKind(StrEnum):
    TIME_WEIGHTED = "time-weighted"
    HYBRID_TIME_WEIGHTED = "hybrid-time-weighted"
    SINGLE_SHOT = "single-shot"
    LIMIT = "limit"

    @property
    def decomposed(self) -> bool:
        """True when the strategy splits the total over several dated slots."""
        return self in (StrategyKind.TIME_WEIGHTED, StrategyKind.HYBRID_TIME_WEIGHTED)

    @property
    def requires_ceiling(self) -> bool:
        return self in (StrategyKind.HYBRID_TIME_WEIGHTED, StrategyKind.LIMIT)


@dataclass(frozen=True)
class OrderSeries:
    id: str
    owner: str
    total_amount: Decimal
    sell_unit: str  # e.g. "USDC"
    buy_unit: str  # settlement unit credited on fill
    strategy: StrategyKind
    oracle_ref: str
    created_at: str


@dataclass(frozen=True)
class Order:
    id: str
    series_id: str
    sequence: int
    sell_amount: Decimal
    buy_amount_estimate: Decimal
    status: OrderStatus
    price_ceiling: float | None
    scheduled_for: str
    created_at: str
    executed_at: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


@dataclass(frozen=True)
class PlannedSeries:
    series: OrderSeries
    orders: list[Order]

    @property
    def total_planned(self) -> Decimal:
        return exact_sum(o.sell_amount for o in self.orders)
