"""Long-running resolver: one pass per poll interval until signalled.

Polling more often than the schedule's minimum interval costs nothing but
a few queries; series stay GATE_CLOSED until their time lock opens.

    wattlink daemon                 # poll at resolver.poll_interval_seconds
    wattlink daemon --interval 30
    wattlink daemon --status
    wattlink daemon --stop
"""

import json
import logging
import os
import signal
import sys
import time
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path

from wattlink.config.schema import WattlinkConfig
from wattlink.resolver.resolver import Resolver, build_resolver

logger = logging.getLogger(__name__)

PID_DIR = Path("data")
PID_FILE = PID_DIR / "resolver.pid"
STATE_FILE = PID_DIR / "resolver_state.json"
LOG_DIR = Path("logs")
MAX_LOG_FILES = 100
STOP_GRACE_SECONDS = 60

_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def _pid_alive(pid: int) -> bool:
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    return True


def _read_pid() -> int | None:
    """PID recorded by a running daemon. Raises ValueError on a corrupt file."""
    if not PID_FILE.exists():
        return None
    return int(PID_FILE.read_text().strip())


@contextmanager
def _pass_log(stamp: str) -> Iterator[Path]:
    """Mirror root logging into ``LOG_DIR/pass_<stamp>.log`` for one pass."""
    LOG_DIR.mkdir(parents=True, exist_ok=True)
    path = LOG_DIR / f"pass_{stamp}.log"
    handler = logging.FileHandler(path)
    handler.setLevel(logging.INFO)
    handler.setFormatter(logging.Formatter(_LOG_FORMAT))
    root = logging.getLogger()
    root.addHandler(handler)
    try:
        yield path
    finally:
        root.removeHandler(handler)
        handler.close()


class ResolverDaemon:
    """Drives ``Resolver.run_pass`` on a timer.

    A pass that reports errors or raises counts as a failure and doubles the
    wait, capped at ``resolver.max_backoff_seconds``. The resolver (and its
    HTTP client) is built lazily and reused across passes.
    """

    def __init__(
        self,
        config: WattlinkConfig,
        db_path: str = "data/wattlink.db",
        interval: int | None = None,
    ):
        self.config = config
        self.db_path = db_path
        self.interval = interval or config.resolver.poll_interval_seconds
        self.max_backoff = config.resolver.max_backoff_seconds
        self._running = False
        self._started_at: str | None = None
        self._resolver: Resolver | None = None
        self._consecutive_failures = 0
        self._total_passes = 0
        self._total_successes = 0
        self._total_failures = 0
        self._total_fills = 0

    def start(self) -> None:
        self._check_not_already_running()
        self._write_pid()
        self._setup_signals()
        self._running = True
        self._started_at = datetime.now(UTC).isoformat()

        pid = os.getpid()
        logger.info("Resolver daemon up: pid=%d interval=%ds db=%s", pid, self.interval, self.db_path)
        print(f"Resolver daemon running as pid {pid}, polling every {self.interval}s")
        print(f"   pass logs in {LOG_DIR}/, stop with: wattlink daemon --stop")

        try:
            self._loop()
        except KeyboardInterrupt:
            logger.info("Interrupted from keyboard")
        finally:
            self._cleanup()

    def _next_wait(self, ok: bool) -> int:
        if ok:
            self._consecutive_failures = 0
            return self.interval
        self._consecutive_failures += 1
        wait = min(self.interval * 2 ** self._consecutive_failures, self.max_backoff)
        logger.warning(
            "%d failed pass(es) in a row, next attempt in %ds", self._consecutive_failures, wait
        )
        return wait

    def _loop(self) -> None:
        while self._running:
            began = time.monotonic()
            wait = self._next_wait(self._run_one_pass())
            self._save_state()

            # One-second naps keep SIGTERM latency low.
            deadline = began + wait
            while self._running and time.monotonic() < deadline:
                time.sleep(1)

    def _run_one_pass(self) -> bool:
        """One resolver pass with its own log file. True when the pass was clean."""
        self._total_passes += 1
        n = self._total_passes
        stamp = datetime.now(UTC).strftime("%Y%m%dT%H%M%SZ")
        try:
            with _pass_log(stamp):
                if self._resolver is None:
                    self._resolver = build_resolver(self.config, self.db_path)
                logger.info("Pass #%d begin", n)
                try:
                    summary = self._resolver.run_pass()
                except Exception:
                    logger.exception("Pass #%d raised", n)
                    self._total_failures += 1
                    return False

                if summary.errors:
                    logger.error("Pass #%d finished with %d error(s): %s", n, len(summary.errors), summary.errors)
                    self._total_failures += 1
                    return False

                self._total_successes += 1
                self._total_fills += summary.fills
                logger.info(
                    "Pass #%d clean: %d series examined, %d filled, %d oracle unavailable",
                    n, summary.series_examined, summary.fills, summary.oracle_unavailable,
                )
                return True
        finally:
            self._rotate_logs()

    def _rotate_logs(self) -> None:
        if not LOG_DIR.exists():
            return
        logs = sorted(LOG_DIR.glob("pass_*.log"))
        for old in logs[:-MAX_LOG_FILES]:
            old.unlink(missing_ok=True)

    def _setup_signals(self) -> None:
        def _request_stop(signum: int, frame: object) -> None:
            name = signal.Signals(signum).name
            logger.info("%s received, stopping after the current pass", name)
            print(f"\n{name}: stopping after the current pass")
            self._running = False

        for sig in (signal.SIGTERM, signal.SIGINT):
            signal.signal(sig, _request_stop)

    def _check_not_already_running(self) -> None:
        try:
            pid = _read_pid()
        except ValueError:
            PID_FILE.unlink(missing_ok=True)
            return
        if pid is None:
            return
        try:
            alive = _pid_alive(pid)
        except PermissionError:
            print(f"pid {pid} from {PID_FILE} exists but cannot be signalled; refusing to start")
            sys.exit(1)
        if not alive:
            logger.info("Removing stale pid file for %d", pid)
            PID_FILE.unlink(missing_ok=True)
            return
        print(f"Resolver daemon already running as pid {pid}; run 'wattlink daemon --stop' first")
        sys.exit(1)

    def _write_pid(self) -> None:
        PID_DIR.mkdir(parents=True, exist_ok=True)
        PID_FILE.write_text(str(os.getpid()))

    def _save_state(self) -> None:
        PID_DIR.mkdir(parents=True, exist_ok=True)
        STATE_FILE.write_text(json.dumps({
            "pid": os.getpid(),
            "started_at": self._started_at,
            "interval": self.interval,
            "total_passes": self._total_passes,
            "total_successes": self._total_successes,
            "total_failures": self._total_failures,
            "total_fills": self._total_fills,
            "consecutive_failures": self._consecutive_failures,
            "last_update": datetime.now(UTC).isoformat(),
        }, indent=2))

    def _cleanup(self) -> None:
        PID_FILE.unlink(missing_ok=True)
        self._save_state()
        if self._resolver is not None:
            self._resolver.evaluator.close()
        tally = (
            f"{self._total_passes} passes, {self._total_successes} clean, "
            f"{self._total_failures} failed, {self._total_fills} fills"
        )
        logger.info("Resolver daemon down: %s", tally)
        print(f"Resolver daemon stopped ({tally})")


def stop_daemon() -> int:
    """SIGTERM the recorded daemon, escalating to SIGKILL after a grace period."""
    try:
        pid = _read_pid()
    except ValueError:
        print(f"{PID_FILE} is unreadable, removing it")
        PID_FILE.unlink(missing_ok=True)
        return 1
    if pid is None:
        print("Resolver daemon is not running")
        return 1

    if not _pid_alive(pid):
        print(f"pid {pid} is gone, clearing stale daemon files")
        PID_FILE.unlink(missing_ok=True)
        STATE_FILE.unlink(missing_ok=True)
        return 0

    print(f"Sending SIGTERM to resolver daemon (pid {pid})")
    os.kill(pid, signal.SIGTERM)
    for _ in range(STOP_GRACE_SECONDS):
        time.sleep(1)
        if not _pid_alive(pid):
            print("Resolver daemon stopped")
            PID_FILE.unlink(missing_ok=True)
            return 0

    print(f"Still alive after {STOP_GRACE_SECONDS}s, sending SIGKILL")
    os.kill(pid, signal.SIGKILL)
    PID_FILE.unlink(missing_ok=True)
    return 0


def daemon_status() -> int:
    if not STATE_FILE.exists():
        print("Resolver daemon has never run here (no state file)")
        return 1

    state = json.loads(STATE_FILE.read_text())
    pid = state.get("pid")
    try:
        running = _pid_alive(int(pid))
    except (TypeError, ValueError):
        running = False
    except PermissionError:
        running = True

    print(f"Resolver daemon {'running' if running else 'stopped'}")
    rows = [
        ("PID", pid),
        ("Interval", f"{state.get('interval', '?')}s"),
        ("Started", state.get("started_at")),
        ("Total passes", state.get("total_passes", 0)),
        ("Successes", state.get("total_successes", 0)),
        ("Failures", state.get("total_failures", 0)),
        ("Fills", state.get("total_fills", 0)),
        ("Consecutive failures", state.get("consecutive_failures", 0)),
        ("Last update", state.get("last_update")),
    ]
    for label, value in rows:
        print(f"  {label}: {value if value is not None else '?'}")
    return 0
