"""Predicate evaluator: combines the time gate and the price gate.

Every collaborator call runs on a worker thread with a hard timeout, so a
hung oracle turns into ``OracleUnavailable`` instead of stalling the pass.
The timeout counts from when the call starts running; time spent queued
behind other calls is bounded separately by the same figure.
The evaluator never writes.
"""

import logging
import threading
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from datetime import datetime, timedelta
from typing import Any, Protocol, TypeVar

from wattlink.errors import OracleUnavailable
from wattlink.ingest.staleness import is_price_stale
from wattlink.models.common import utc_now
from wattlink.models.predicate import PredicateResult, PriceObservation
from wattlink.predicates import price_gate, time_gate

logger = logging.getLogger(__name__)

T = TypeVar("T")


class PriceFeed(Protocol):
    def current_price(self, oracle_ref: str) -> PriceObservation: ...


class TimeLock(Protocol):
    def last_execution_time(self, series_id: str) -> datetime | None: ...

    def minimum_interval(self) -> timedelta: ...


class PredicateEvaluator:
    def __init__(
        self,
        price_feed: PriceFeed,
        time_lock: TimeLock,
        timeout_seconds: float = 10.0,
        max_price_age_seconds: int = 3600,
        clock: Callable[[], datetime] = utc_now,
        max_workers: int = 4,
    ):
        self.price_feed = price_feed
        self.time_lock = time_lock
        self.timeout_seconds = timeout_seconds
        self.max_price_age_seconds = max_price_age_seconds
        self.clock = clock
        self._pool = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="oracle")

    def evaluate(
        self, series_id: str, oracle_ref: str, price_ceiling: float | None = None
    ) -> PredicateResult:
        """Query both gates for a series.

        Raises OracleUnavailable when any collaborator fails, times out, or
        returns a stale price.
        """
        last_execution = self._call(self.time_lock.last_execution_time, series_id)
        interval = self._call(self.time_lock.minimum_interval)
        observation = self._call(self.price_feed.current_price, oracle_ref)

        now = self.clock()
        if is_price_stale(observation.observed_at, self.max_price_age_seconds, now):
            raise OracleUnavailable(
                f"Stale price for {oracle_ref}: observed at {observation.observed_at.isoformat()}"
            )

        time_result = time_gate.check(last_execution, interval, now)
        price_result = price_gate.check(observation.price, price_ceiling)
        logger.debug(
            "Series %s gates: time=%s (%s) price=%s (%s)",
            series_id[:12],
            time_result.passed, time_result.detail,
            price_result.passed, price_result.detail,
        )
        return PredicateResult(
            series_id=series_id,
            time_gate=time_result.passed,
            price_gate=price_result.passed,
            last_execution_at=last_execution,
            minimum_interval=interval,
            observed_price=observation.price,
            observed_at=observation.observed_at,
            price_ceiling=price_ceiling,
        )

    def _call(self, fn: Callable[..., T], *args: Any) -> T:
        name = getattr(fn, "__name__", "oracle call")
        started = threading.Event()

        def run() -> T:
            started.set()
            return fn(*args)

        future = self._pool.submit(run)
        if not started.wait(self.timeout_seconds) and future.cancel():
            raise OracleUnavailable(
                f"{name} did not start within {self.timeout_seconds}s, all oracle workers busy"
            )
        try:
            return future.result(timeout=self.timeout_seconds)
        except FutureTimeout:
            raise OracleUnavailable(f"{name} timed out after {self.timeout_seconds}s") from None

    def close(self) -> None:
        self._pool.shutdown(wait=False, cancel_futures=True)
