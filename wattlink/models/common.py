"""Common types and helpers shared across models."""

from collections.abc import Iterable
from datetime import UTC, datetime
from decimal import MAX_PREC, Decimal, localcontext
from typing import TypeAlias

SeriesId: TypeAlias = str
OrderId: TypeAlias = str


def utc_now() -> datetime:
    return datetime.now(UTC)


def utc_now_iso() -> str:
    return utc_now().isoformat()


def exact_sum(values: Iterable[Decimal]) -> Decimal:
    """Sum amounts without rounding to the 28-digit default context."""
    with localcontext() as ctx:
        ctx.prec = MAX_PREC
        return sum(values, Decimal(0))


def parse_timestamp(value: str | None) -> datetime | None:
    """Parse an ISO timestamp, assuming UTC when no offset is given."""
    if not value:
        return None
    try:
        dt = datetime.fromisoformat(value)
    except (ValueError, TypeError):
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt
