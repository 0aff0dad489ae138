"""Resolver: one pass over every series with outstanding orders."""

import logging
import sqlite3
import time
import uuid
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from pathlib import Path

from wattlink.config.loader import snapshot_config
from wattlink.config.schema import WattlinkConfig
from wattlink.errors import IllegalTransition, OracleUnavailable
from wattlink.ingest.price_feed import PriceFeedClient
from wattlink.ingest.time_lock import LedgerTimeLock
from wattlink.models.common import utc_now
from wattlink.models.orders import Order, OrderSeries, OrderStatus
from wattlink.models.reporting import (
    FillDetails,
    PassSummary,
    ResolutionOutcome,
    SeriesResolution,
)
from wattlink.orders.state_machine import OrderStatusMachine
from wattlink.predicates.evaluator import PredicateEvaluator
from wattlink.reporting.formatters import format_pass_text
from wattlink.reporting.pass_summarizer import PassSummarizer
from wattlink.reporting.reporter import BalanceStore, ResultReporter
from wattlink.storage import order_repo, series_repo, state_repo
from wattlink.storage.balance_repo import SqliteBalanceStore
from wattlink.storage.database import connect, run_migrations

logger = logging.getLogger(__name__)

BalanceStoreFactory = Callable[[sqlite3.Connection], BalanceStore]


class Resolver:
    def __init__(
        self,
        config: WattlinkConfig,
        db_path: str | Path,
        evaluator: PredicateEvaluator,
        balance_store_factory: BalanceStoreFactory | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.config = config
        self.db_path = db_path
        self.evaluator = evaluator
        self.balance_store_factory = balance_store_factory or (
            lambda conn: SqliteBalanceStore(conn, config.planner.buy_unit)
        )
        self.clock = clock

    def run_pass(self) -> PassSummary:
        """Evaluate every open series once and advance the eligible ones."""
        start_time = time.monotonic()
        pass_id = str(uuid.uuid4())
        summarizer = PassSummarizer(pass_id)

        conn = connect(self.db_path)
        run_migrations(conn)
        try:
            if state_repo.is_paused(conn):
                logger.warning("System paused, skipping resolver pass")
                summarizer.record_error("System paused")
                return summarizer.finalize()

            c_hash = snapshot_config(self.config, conn)
            state_repo.create_pass(conn, pass_id, c_hash)

            try:
                summarizer.record_duplicates(self._flush_unreported(conn))
                series_ids = series_repo.list_open_series_ids(conn)
                logger.info("Pass %s: %d open series", pass_id[:8], len(series_ids))

                workers = self.config.resolver.max_workers
                if workers > 1 and len(series_ids) > 1:
                    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="resolver") as pool:
                        resolutions = list(pool.map(self.resolve_series, series_ids))
                else:
                    resolutions = [self.resolve_series(sid) for sid in series_ids]

                for r in resolutions:
                    summarizer.record_resolution(r)
            except Exception as e:
                logger.exception("Resolver pass %s failed", pass_id[:8])
                summarizer.record_error(str(e))
                summarizer.record_duration(time.monotonic() - start_time)
                summary = summarizer.finalize()
                state_repo.complete_pass(conn, summary, "failed", error_message=str(e))
                return summary

            summarizer.record_duration(time.monotonic() - start_time)
            summary = summarizer.finalize()
            state_repo.complete_pass(
                conn, summary, "completed" if not summary.errors else "completed_with_errors"
            )
            logger.info("\n%s", format_pass_text(summary))
            return summary
        finally:
            conn.close()

    def resolve_series(self, series_id: str) -> SeriesResolution:
        """Resolve one series on its own connection. Never raises."""
        try:
            conn = connect(self.db_path)
        except sqlite3.Error as e:
            logger.error("Cannot open database for series %s: %s", series_id[:12], e)
            return SeriesResolution(series_id, ResolutionOutcome.ERROR, detail=str(e))
        try:
            return self._resolve(conn, series_id)
        except Exception as e:
            logger.exception("Series %s failed", series_id[:12])
            return SeriesResolution(series_id, ResolutionOutcome.ERROR, detail=str(e))
        finally:
            conn.close()

    def _resolve(self, conn: sqlite3.Connection, series_id: str) -> SeriesResolution:
        active = order_repo.get_active_order(conn, series_id)
        if active is None:
            return SeriesResolution(series_id, ResolutionOutcome.SKIPPED, detail="no active order")
        series = series_repo.get_series(conn, series_id)
        assert series is not None

        try:
            result = self.evaluator.evaluate(series_id, series.oracle_ref, active.price_ceiling)
        except OracleUnavailable as e:
            logger.warning("Series %s: oracle unavailable, retrying next pass: %s", series_id[:12], e)
            return SeriesResolution(
                series_id, ResolutionOutcome.ORACLE_UNAVAILABLE, order_id=active.id, detail=str(e)
            )

        if not result.executable:
            return SeriesResolution(
                series_id, ResolutionOutcome.GATE_CLOSED, order_id=active.id, predicate=result
            )

        # A cancel observed before the fill wins.
        current = order_repo.get_order(conn, active.id)
        if current is None or current.status != OrderStatus.ACTIVE:
            return self._lost_race(series_id, active, current.status if current else None)

        executed_at = self.clock().isoformat()
        try:
            OrderStatusMachine(conn).fill(active.id, executed_at=executed_at)
        except IllegalTransition as e:
            return self._lost_race(series_id, active, e.current)

        fill = _fill_details(series, active, result.observed_price, executed_at)
        reporter = ResultReporter(conn, self.balance_store_factory(conn))
        reported = reporter.report(active.id, fill)
        return SeriesResolution(
            series_id,
            ResolutionOutcome.FILLED,
            order_id=active.id,
            predicate=result,
            fill=fill,
            reported=reported,
        )

    def _lost_race(self, series_id: str, order: Order, observed: object) -> SeriesResolution:
        logger.info(
            "Series %s: order %s is %s, fill abandoned", series_id[:12], order.id, observed
        )
        return SeriesResolution(
            series_id, ResolutionOutcome.LOST_RACE, order_id=order.id, detail=f"status {observed}"
        )

    def _flush_unreported(self, conn: sqlite3.Connection) -> int:
        """Re-attempt delivery for fills whose report never landed.

        Returns how many were already reported (duplicates).
        """
        reporter = ResultReporter(conn, self.balance_store_factory(conn))
        for order in order_repo.list_unreported_fills(conn):
            series = series_repo.get_series(conn, order.series_id)
            assert series is not None
            fill = _fill_details(series, order, 0.0, order.executed_at or self.clock().isoformat())
            logger.warning("Re-delivering unreported fill %s", order.id)
            reporter.report(order.id, fill)
        return reporter.duplicates


def _fill_details(
    series: OrderSeries, order: Order, observed_price: float, executed_at: str
) -> FillDetails:
    return FillDetails(
        order_id=order.id,
        series_id=series.id,
        owner=series.owner,
        sequence=order.sequence,
        sell_amount=order.sell_amount,
        credited_amount=order.buy_amount_estimate,
        unit=series.buy_unit,
        observed_price=observed_price,
        executed_at=executed_at,
    )


def oracle_pool_size(config: WattlinkConfig) -> int:
    """One oracle thread per resolver worker, plus as many again for calls
    still hung past their timeout."""
    return max(4, 2 * config.resolver.max_workers)


def build_evaluator(config: WattlinkConfig, db_path: str | Path) -> PredicateEvaluator:
    return PredicateEvaluator(
        price_feed=PriceFeedClient(config.oracle.base_url, config.oracle.timeout_seconds),
        time_lock=LedgerTimeLock(db_path, config.schedule.minimum_interval),
        timeout_seconds=config.oracle.timeout_seconds,
        max_price_age_seconds=config.oracle.max_price_age_seconds,
        max_workers=oracle_pool_size(config),
    )


def build_resolver(config: WattlinkConfig, db_path: str | Path) -> Resolver:
    """Resolver wired to the HTTP price oracle and the ledger time lock."""
    return Resolver(config, db_path, build_evaluator(config, db_path))
