import logging
import math
import threading
import time
from concurrent.futures import Future
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from .config import AppConfig
from .collector.influx_client import InfluxClient, InfluxDBError
from .collector.poller import HostPoller
from .collector.sink import MetricSink

STATE_AWAITING_STARTUP = "awaiting-startup-check"
STATE_POLLING = "polling"
STATE_STOPPED = "stopped"


@dataclass
class CollectorContext:
    """Everything a component needs, passed in rather than looked up globally."""
    config: AppConfig
    log: logging.Logger
    influx: InfluxClient
    sink: MetricSink
    poller: HostPoller

    def close(self) -> None:
        self.poller.close()
        self.sink.close()


def build_context(cfg: AppConfig, log: Optional[logging.Logger] = None) -> CollectorContext:
    log = log or logging.getLogger("ewbf_collect")
    db = cfg.influxdb
    influx = InfluxClient(db.host, db.port, database=db.name)
    # Sink writes go through their own client and session
    sink = MetricSink(
        InfluxClient(db.host, db.port, database=db.name),
        db.name,
        max_workers=cfg.write_workers,
        max_pending=cfg.max_pending_writes,
        log=log.getChild("sink"),
    )
    poller = HostPoller(cfg, sink, influx=influx, log=log.getChild("poller"))
    return CollectorContext(config=cfg, log=log, influx=influx, sink=sink, poller=poller)


def next_tick(anchor: float, interval: float, now: float) -> float:
    """First interval boundary strictly after ``now``.

    Boundaries missed while the process was busy or descheduled are
    skipped, not queued.
    """
    if now < anchor:
        return anchor + interval
    k = math.floor((now - anchor) / interval) + 1
    return anchor + k * interval


class CollectorRunner:
    """Startup check, first cycle, then a fixed-interval loop on a background thread."""

    def __init__(self, ctx: CollectorContext):
        self.ctx = ctx
        self.log = ctx.log.getChild("runner")
        self._thread: Optional[threading.Thread] = None
        self._stop = threading.Event()
        self._lock = threading.Lock()

        self._state = STATE_AWAITING_STARTUP
        self._startup_failed = False
        self._cycles = 0
        self._last_cycle_at: Optional[float] = None
        self._last_error: Optional[str] = None

    @property
    def state(self) -> str:
        with self._lock:
            return self._state

    def _set_state(self, state: str) -> None:
        with self._lock:
            self._state = state

    def ensure_database(self) -> bool:
        """Make sure the configured database exists. False if InfluxDB could not be asked."""
        name = self.ctx.config.influxdb.name
        try:
            names = self.ctx.influx.get_database_names()
            if name not in names:
                self.log.warning("db %s not found. create it.", name)
                self.ctx.influx.create_database(name)
        except InfluxDBError as e:
            with self._lock:
                self._last_error = f"{type(e).__name__}: {e}"
            self.log.error("InfluxDB startup check failed: %s", e)
            return False
        return True

    def run_cycle(self) -> List[Future]:
        """Poll every configured host once; does not wait for any of them."""
        futures = self.ctx.poller.poll_all()
        with self._lock:
            self._cycles += 1
            self._last_cycle_at = time.time()
        return futures

    def startup(self) -> bool:
        """Database check, then exactly one immediate cycle.

        On failure the runner stays in awaiting-startup-check for good and never polls.
        """
        if not self.ensure_database():
            with self._lock:
                self._startup_failed = True
            self.log.error("Not polling; restart the collector once InfluxDB is reachable")
            return False
        self._set_state(STATE_POLLING)
        self.run_cycle()
        return True

    def start(self) -> None:
        with self._lock:
            if self._thread is not None:
                return
            self._stop.clear()
            self._thread = threading.Thread(target=self._loop, name="collector", daemon=True)
        self._thread.start()
        cfg = self.ctx.config
        self.log.info("Collector started (hosts=%s, interval=%ss)", len(cfg.hosts), cfg.interval)

    def _loop(self) -> None:
        if not self.startup():
            return

        interval = float(self.ctx.config.interval)
        anchor = time.monotonic()
        while not self._stop.is_set():
            due = next_tick(anchor, interval, time.monotonic())
            if self._stop.wait(max(0.0, due - time.monotonic())):
                break
            try:
                self.run_cycle()
            except Exception as e:
                with self._lock:
                    self._last_error = f"{type(e).__name__}: {e}"
                self.log.exception("Cycle failed: %s", e)

    def stop(self, timeout: float = 2.5) -> None:
        """Stop scheduling new cycles. In-flight polls and writes are not cancelled."""
        self._stop.set()
        if self._thread:
            self._thread.join(timeout=timeout)
        with self._lock:
            if self._state == STATE_POLLING:
                self._state = STATE_STOPPED

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until the loop thread exits. True if it did."""
        if self._thread is None:
            return True
        self._thread.join(timeout=timeout)
        return not self._thread.is_alive()

    def status(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "state": self._state,
                "startup_failed": self._startup_failed,
                "cycles": self._cycles,
                "last_cycle_at": self._last_cycle_at,
                "last_error": self._last_error,
                "poll_stats": dict(self.ctx.poller.stats),
                "write_stats": dict(self.ctx.sink.stats),
            }
