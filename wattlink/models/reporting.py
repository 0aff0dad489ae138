"""Reporting, balance and operational health models."""

from dataclasses import dataclass, field
from decimal import Decimal
from enum import StrEnum

from wattlink.models.predicate import PredicateResult


@dataclass(frozen=True)
class FillDetails:
    order_id: str
    series_id: str
    owner: str
    sequence: int
    sell_amount: Decimal
    credited_amount: Decimal
    unit: str
    observed_price: float
    executed_at: str


@dataclass(frozen=True)
class Balance:
    owner: str
    amount: Decimal
    unit: str


@dataclass(frozen=True)
class BalanceDelta:
    order_id: str
    amount: Decimal
    unit: str


@dataclass(frozen=True)
class StatusSnapshot:
    order_id: str
    series_id: str
    sequence: int
    status: str
    filled_count: int
    unit_count: int
    filled_amount: Decimal
    captured_at: str


@dataclass(frozen=True)
class SeriesProgress:
    series_id: str
    unit_count: int
    total_amount: Decimal
    filled_amount: Decimal
    counts: dict[str, int]
    active_sequence: int | None

    @property
    def resolved(self) -> bool:
        return self.counts.get("PENDING", 0) == 0 and self.counts.get("ACTIVE", 0) == 0


@dataclass
class PassSummary:
    pass_id: str
    series_examined: int = 0
    series_skipped: int = 0
    fills: int = 0
    gate_closed: int = 0
    oracle_unavailable: int = 0
    lost_races: int = 0
    duplicate_reports: int = 0
    filled_amount: Decimal = Decimal(0)
    duration_seconds: float = 0.0
    errors: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class HealthStatus:
    db_connected: bool
    oracle_reachable: bool
    last_pass_age_minutes: float | None
    paused: bool
    open_series: int
    unreported_fills: int = 0

    @property
    def ok(self) -> bool:
        return self.db_connected and self.oracle_reachable and not self.unreported_fills


class ResolutionOutcome(StrEnum):
    FILLED = "FILLED"
    GATE_CLOSED = "GATE_CLOSED"
    ORACLE_UNAVAILABLE = "ORACLE_UNAVAILABLE"
    LOST_RACE = "LOST_RACE"
    SKIPPED = "SKIPPED"
    ERROR = "ERROR"


@dataclass(frozen=True)
class SeriesResolution:
    series_id: str
    outcome: ResolutionOutcome
    order_id: str | None = None
    predicate: PredicateResult | None = None
    fill: FillDetails | None = None
    reported: bool = False
    detail: str = ""
