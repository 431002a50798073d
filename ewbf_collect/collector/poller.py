"""
ewbf-collect - host poller

One GET per host per cycle. Hosts are submitted in configuration order
and run independently; a slow or failing host never holds up the others.
"""

import logging
import threading
from collections import Counter
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable, Dict, List, Optional

from ..config import AppConfig, HostConfig
from .ewbf_client import EwbfError, EwbfHTTPClient
from .extractor import write_status
from .influx_client import InfluxClient, InfluxDBError
from .models import Measurement, MetricPoint, PayloadError
from .sink import MetricSink

logger = logging.getLogger('HostPoller')

ClientFactory = Callable[[HostConfig], EwbfHTTPClient]


def _influxql_str(s: str) -> str:
    return "'" + s.replace("\\", "\\\\").replace("'", "\\'") + "'"


class HostPoller:
    def __init__(self, cfg: AppConfig, sink: MetricSink, *,
                 influx: Optional[InfluxClient] = None,
                 client_factory: Optional[ClientFactory] = None,
                 log: Optional[logging.Logger] = None):
        self.cfg = cfg
        self.sink = sink
        self.influx = influx
        self.log = log or logger
        self._client_factory = client_factory or self._default_client
        self._clients: Dict[HostConfig, EwbfHTTPClient] = {}
        self._executor = ThreadPoolExecutor(max_workers=cfg.max_workers, thread_name_prefix="host-poll")
        self._lock = threading.Lock()
        # polls per host; overlapping polls of one host each count
        self._in_flight: Counter = Counter()
        self.stats: Dict[str, int] = {'polled': 0, 'successful': 0, 'failed': 0, 'skipped_busy': 0}

    def _default_client(self, host: HostConfig) -> EwbfHTTPClient:
        return EwbfHTTPClient(host.address, host.port, timeout=self.cfg.timeout_sec)

    def _client_for(self, host: HostConfig) -> EwbfHTTPClient:
        with self._lock:
            client = self._clients.get(host)
            if client is None:
                client = self._client_factory(host)
                self._clients[host] = client
            return client

    def poll_host(self, host: HostConfig) -> int:
        """Fetch one host and forward its points. Returns points issued (0 on failure)."""
        self.log.debug(host.name)
        with self._lock:
            self.stats['polled'] += 1
        try:
            payload = self._client_for(host).get_status()
        except (EwbfError, PayloadError) as e:
            with self._lock:
                self.stats['failed'] += 1
            self.log.error("Poll failed for %s: %s", host.name, e)
            if self.cfg.zero_uptime_on_failure:
                self.mark_down(host)
            return 0

        with self._lock:
            self.stats['successful'] += 1
        return write_status(host, payload, self.sink.write)

    def mark_down(self, host: HostConfig) -> bool:
        """Write UPTIME=0 for a host that already has a summary series."""
        if self.influx is None:
            return False
        q = (
            f'select * FROM "{Measurement.SUMMARY.value}" '
            f'where "host"={_influxql_str(host.name)} and "instance"={_influxql_str(str(host.port))} limit 1'
        )
        try:
            rows = self.influx.query(q, database=self.cfg.influxdb.name)
        except InfluxDBError as e:
            self.log.error("Cannot look up %s:%s in InfluxDB: %s", host.name, host.port, e)
            return False
        if len(rows) != 1:
            return False
        self.sink.write(MetricPoint(Measurement.SUMMARY.value, host.name, str(host.port), "UPTIME", value=0))
        return True

    def _run(self, host: HostConfig) -> int:
        try:
            return self.poll_host(host)
        except Exception:
            self.log.exception("Unexpected error while polling %s", host.name)
            return 0
        finally:
            self._done(host)

    def _done(self, host: HostConfig) -> None:
        with self._lock:
            self._in_flight[host] -= 1
            if self._in_flight[host] <= 0:
                del self._in_flight[host]

    def poll_all(self, hosts: Optional[List[HostConfig]] = None) -> List[Future]:
        """Submit one poll per host and return without waiting."""
        hosts = self.cfg.hosts if hosts is None else hosts
        futures: List[Future] = []
        for host in hosts:
            with self._lock:
                if self.cfg.skip_if_busy and host in self._in_flight:
                    self.stats['skipped_busy'] += 1
                    self.log.warning("Previous poll of %s still running; skipping this cycle", host.name)
                    continue
                self._in_flight[host] += 1
            try:
                futures.append(self._executor.submit(self._run, host))
            except RuntimeError:
                self._done(host)
                self.log.warning("Poller closed; not polling %s", host.name)
        return futures

    def in_flight(self) -> int:
        with self._lock:
            return sum(self._in_flight.values())

    def close(self) -> None:
        self._executor.shutdown(wait=False)
        with self._lock:
            clients = list(self._clients.values())
            self._clients.clear()
        for c in clients:
            c.session.close()
