"""Age checks for oracle price observations."""

from datetime import datetime

from wattlink.models.common import utc_now


def price_age_seconds(observed_at: datetime, now: datetime | None = None) -> float:
    return ((now or utc_now()) - observed_at).total_seconds()


def is_price_stale(
    observed_at: datetime, max_age_seconds: int, now: datetime | None = None
) -> bool:
    """An observation exactly ``max_age_seconds`` old is still usable."""
    return price_age_seconds(observed_at, now) > max_age_seconds
