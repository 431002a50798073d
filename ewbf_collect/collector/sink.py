"""
ewbf-collect - metric sink

One store write per point, each submitted as its own unit of work.
``write()`` hands back a Future that resolves to True/False; failures are
logged here and never raised to the caller.
"""

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import Dict, Optional, Set

from .influx_client import InfluxClient, InfluxDBError
from .models import MetricPoint

logger = logging.getLogger('MetricSink')


class MetricSink:
    """Wraps InfluxClient with fire-and-forget point writes.

    max_pending > 0 bounds the number of writes in flight; write() then
    blocks until a slot frees up.
    """

    def __init__(self, client: InfluxClient, database: str, *,
                 max_workers: int = 8, max_pending: int = 0,
                 log: Optional[logging.Logger] = None):
        self.client = client
        self.database = database
        self.log = log or logger
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="influx-write")
        self._slots = threading.BoundedSemaphore(max_pending) if max_pending > 0 else None
        self._lock = threading.Lock()
        self._pending: Set[Future] = set()
        self.stats: Dict[str, int] = {'submitted': 0, 'written': 0, 'failed': 0}

    def _write_one(self, point: MetricPoint) -> bool:
        try:
            self.client.write_points([point], database=self.database)
        except InfluxDBError as e:
            self._log_failure(point, e)
            return False
        except Exception as e:
            # Anything else from the client is still a lost point, not a crash
            self._log_failure(point, e)
            return False
        return True

    def _log_failure(self, point: MetricPoint, err: Exception) -> None:
        self.log.error(
            "Error saving data to InfluxDB! measurement: %s host: %s instance: %s type: %s "
            "type_instance: %s value: %s text: '%s' (%s)",
            point.measurement, point.host, point.instance, point.type,
            point.type_instance if point.type_instance is not None else "",
            point.value, point.text, err,
        )

    def _done(self, fut: Future) -> None:
        with self._lock:
            self._pending.discard(fut)
            if not fut.cancelled() and fut.exception() is None and fut.result():
                self.stats['written'] += 1
            else:
                self.stats['failed'] += 1
        if self._slots is not None:
            self._slots.release()

    def write(self, point: MetricPoint) -> Future:
        if self._slots is not None:
            self._slots.acquire()
        try:
            fut = self._executor.submit(self._write_one, point)
        except RuntimeError:
            # executor already shut down
            if self._slots is not None:
                self._slots.release()
            self.log.warning("Sink closed; dropping %s/%s for %s", point.measurement, point.type, point.host)
            fut = Future()
            fut.set_result(False)
            return fut
        with self._lock:
            self.stats['submitted'] += 1
            self._pending.add(fut)
        fut.add_done_callback(self._done)
        return fut

    @property
    def pending(self) -> int:
        with self._lock:
            return len(self._pending)

    def flush(self, timeout: Optional[float] = None) -> bool:
        """Wait for writes in flight. Returns False if some are still pending."""
        with self._lock:
            pending = list(self._pending)
        if not pending:
            return True
        _, not_done = wait(pending, timeout=timeout)
        return not not_done

    def close(self) -> None:
        self._executor.shutdown(wait=False)
        self.client.close()
