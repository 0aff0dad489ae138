"""Output formatters for pass summaries, series progress and gate status."""

import json

from wattlink.models.orders import Order
from wattlink.models.predicate import PredicateResult
from wattlink.models.reporting import PassSummary, SeriesProgress


def format_pass_text(s: PassSummary) -> str:
    """Plain text summary for logging."""
    lines = [
        f"=== Resolver Pass | {s.pass_id[:8]} ===",
        f"Series: {s.series_examined} examined, {s.series_skipped} without an active slot",
        f"Fills: {s.fills} (amount {s.filled_amount}), "
        f"{s.duplicate_reports} duplicate reports suppressed",
        f"Waiting: {s.gate_closed} gate closed, "
        f"{s.oracle_unavailable} oracle unavailable, {s.lost_races} lost to cancel",
    ]
    if s.errors:
        lines.append(f"Errors: {len(s.errors)}")
    lines.append(f"Duration: {s.duration_seconds:.1f}s")
    return "\n".join(lines)


def format_pass_json(s: PassSummary) -> str:
    """JSON summary for programmatic consumption."""
    data = {
        "pass_id": s.pass_id,
        "series_examined": s.series_examined,
        "series_skipped": s.series_skipped,
        "fills": s.fills,
        "filled_amount": str(s.filled_amount),
        "gate_closed": s.gate_closed,
        "oracle_unavailable": s.oracle_unavailable,
        "lost_races": s.lost_races,
        "duplicate_reports": s.duplicate_reports,
        "duration_seconds": s.duration_seconds,
        "errors": s.errors,
    }
    return json.dumps(data, indent=2)


def format_progress_text(p: SeriesProgress) -> str:
    c = p.counts
    active = f"slot {p.active_sequence}" if p.active_sequence is not None else "none"
    return (
        f"Series {p.series_id[-6:]}: {p.filled_amount}/{p.total_amount} filled | "
        f"Filled: {c['FILLED']} | Active: {c['ACTIVE']} ({active}) | "
        f"Pending: {c['PENDING']} | Cancelled: {c['CANCELLED']} | "
        f"{p.unit_count} units"
    )


def format_order_row(o: Order) -> str:
    ceiling = f"{o.price_ceiling:.2f}" if o.price_ceiling is not None else "-"
    return (
        f"  #{o.sequence:<3} {o.status.value:<9} {o.sell_amount:>14} "
        f"ceiling {ceiling:<10} due {o.scheduled_for[:16]}"
        + (f" filled {o.executed_at[:19]}" if o.executed_at else "")
    )


def format_predicate_text(r: PredicateResult) -> str:
    next_at = r.next_eligible_at.isoformat() if r.next_eligible_at else "now"
    last_at = r.last_execution_at.isoformat() if r.last_execution_at else "never"
    return "\n".join([
        f"Time condition: {'Met' if r.time_gate else 'Not Met'} "
        f"(last {last_at}, next {next_at})",
        f"Price condition: {'Met' if r.price_gate else 'Not Met'} "
        f"(price {r.observed_price:.2f}, ceiling "
        f"{'-' if r.price_ceiling is None else f'{r.price_ceiling:.2f}'})",
        f"Can execute: {'Yes' if r.executable else 'No'}",
    ])
