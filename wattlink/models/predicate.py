"""Predicate gate models."""

from dataclasses import dataclass
from datetime import datetime, timedelta


@dataclass(frozen=True)
class PriceObservation:
    price: float
    observed_at: datetime


@dataclass(frozen=True)
class GateResult:
    gate_name: str
    passed: bool
    detail: str


@dataclass(frozen=True)
class PredicateResult:
    series_id: str
    time_gate: bool
    price_gate: bool
    last_execution_at: datetime | None
    minimum_interval: timedelta
    observed_price: float
    observed_at: datetime
    price_ceiling: float | None = None

    @property
    def executable(self) -> bool:
        return self.time_gate and self.price_gate

    @property
    def next_eligible_at(self) -> datetime | None:
        """None when the series has never executed (eligible immediately)."""
        if self.last_execution_at is None:
            return None
        return self.last_execution_at + self.minimum_interval
