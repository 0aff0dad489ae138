"""Shared test fixtures."""

import sqlite3
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest
import yaml

from wattlink.config.schema import WattlinkConfig
from wattlink.errors import OracleUnavailable
from wattlink.ingest.time_lock import LedgerTimeLock
from wattlink.models.predicate import PriceObservation
from wattlink.planning.planner import SeriesPlanner
from wattlink.predicates.evaluator import PredicateEvaluator
from wattlink.resolver.resolver import Resolver
from wattlink.storage.database import connect, run_migrations

T0 = datetime(2026, 1, 1, tzinfo=UTC)
OWNER = "0x5aAeb6053F3E94C9b9A09f33669435E7Ef1BeAed"


class FixedClock:
    """Manually advanced clock."""

    def __init__(self, now: datetime = T0):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class FakePriceFeed:
    """Price feed returning a settable price observed 'now'."""

    def __init__(self, clock: FixedClock, price: float = 2000.0):
        self.clock = clock
        self.price = price
        self.observed_at: datetime | None = None
        self.fail = False
        self.calls = 0

    def current_price(self, oracle_ref: str) -> PriceObservation:
        self.calls += 1
        if self.fail:
            raise OracleUnavailable(f"feed down for {oracle_ref}")
        return PriceObservation(
            price=self.price, observed_at=self.observed_at or self.clock()
        )


class FakeTimeLock:
    def __init__(self, interval: timedelta = timedelta(hours=24)):
        self.last: dict[str, datetime] = {}
        self.interval = interval

    def last_execution_time(self, series_id: str) -> datetime | None:
        return self.last.get(series_id)

    def minimum_interval(self) -> timedelta:
        return self.interval


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def default_config() -> WattlinkConfig:
    return WattlinkConfig()


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "test.db"


@pytest.fixture
def db(db_path: Path) -> sqlite3.Connection:
    """Migrated database connection."""
    conn = connect(db_path)
    run_migrations(conn)
    yield conn
    conn.close()


@pytest.fixture
def planner(default_config: WattlinkConfig, clock: FixedClock) -> SeriesPlanner:
    return SeriesPlanner(
        default_config.planner, default_config.schedule.minimum_interval, clock=clock
    )


@pytest.fixture
def price_feed(clock: FixedClock) -> FakePriceFeed:
    return FakePriceFeed(clock)


@pytest.fixture
def resolver(default_config, db_path, db, price_feed, clock):
    """Resolver on the test database with a fake price feed and the ledger time lock."""
    evaluator = PredicateEvaluator(
        price_feed=price_feed,
        time_lock=LedgerTimeLock(db_path, default_config.schedule.minimum_interval),
        timeout_seconds=5.0,
        max_price_age_seconds=default_config.oracle.max_price_age_seconds,
        clock=clock,
    )
    r = Resolver(default_config, db_path, evaluator, clock=clock)
    yield r
    evaluator.close()


@pytest.fixture
def config_yaml_path(tmp_path: Path) -> Path:
    """Write a minimal valid config YAML and return its path."""
    data = {
        "planner": {"default_unit_count": 10},
        "schedule": {"minimum_interval_hours": 12},
        "resolver": {"poll_interval_seconds": 30},
    }
    path = tmp_path / "test_config.yaml"
    with open(path, "w") as f:
        yaml.dump(data, f)
    return path
