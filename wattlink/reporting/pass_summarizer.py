"""Pass summarizer: aggregates per-series resolutions into a PassSummary."""

from wattlink.models.common import exact_sum
from wattlink.models.reporting import PassSummary, ResolutionOutcome, SeriesResolution


class PassSummarizer:
    def __init__(self, pass_id: str):
        self.summary = PassSummary(pass_id=pass_id)

    def record_resolution(self, r: SeriesResolution) -> None:
        self.summary.series_examined += 1
        if r.outcome == ResolutionOutcome.FILLED:
            self.summary.fills += 1
            if r.fill is not None:
                self.summary.filled_amount = exact_sum(
                    (self.summary.filled_amount, r.fill.sell_amount)
                )
            if not r.reported:
                self.summary.duplicate_reports += 1
        elif r.outcome == ResolutionOutcome.GATE_CLOSED:
            self.summary.gate_closed += 1
        elif r.outcome == ResolutionOutcome.ORACLE_UNAVAILABLE:
            self.summary.oracle_unavailable += 1
        elif r.outcome == ResolutionOutcome.LOST_RACE:
            self.summary.lost_races += 1
        elif r.outcome == ResolutionOutcome.SKIPPED:
            self.summary.series_skipped += 1
        elif r.outcome == ResolutionOutcome.ERROR:
            self.summary.errors.append(f"{r.series_id[:12]}: {r.detail}")

    def record_duplicates(self, count: int) -> None:
        self.summary.duplicate_reports += count

    def record_duration(self, seconds: float) -> None:
        self.summary.duration_seconds = seconds

    def record_error(self, error: str) -> None:
        self.summary.errors.append(error)

    def finalize(self) -> PassSummary:
        return self.summary
