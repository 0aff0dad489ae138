"""Time gate: open once the minimum interval has elapsed since the last fill."""

from datetime import datetime, timedelta

from wattlink.models.predicate import GateResult


def check(
    last_execution_at: datetime | None, minimum_interval: timedelta, now: datetime
) -> GateResult:
    if last_execution_at is None:
        return GateResult(gate_name="time", passed=True, detail="never executed")
    elapsed = now - last_execution_at
    if elapsed < minimum_interval:
        remaining = minimum_interval - elapsed
        return GateResult(
            gate_name="time",
            passed=False,
            detail=f"{remaining.total_seconds() / 3600:.2f}h until next slot",
        )
    return GateResult(gate_name="time", passed=True, detail="ok")
