"""Price gate: open when no ceiling is set or the observed price is at or below it."""

from wattlink.models.predicate import GateResult


def check(observed_price: float, price_ceiling: float | None) -> GateResult:
    if price_ceiling is None:
        return GateResult(gate_name="price", passed=True, detail="no ceiling")
    if observed_price > price_ceiling:
        return GateResult(
            gate_name="price",
            passed=False,
            detail=f"Price {observed_price:.4f} > ceiling {price_ceiling:.4f}",
        )
    return GateResult(gate_name="price", passed=True, detail="ok")
