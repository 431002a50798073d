import threading
from typing import Any, Dict, List, Optional

import pytest

from ewbf_collect.config import AppConfig, HostConfig, InfluxConfig
from ewbf_collect.collector.ewbf_client import EwbfError
from ewbf_collect.collector.influx_client import InfluxDBError, validate_point
from ewbf_collect.collector.models import StatusPayload


def make_payload(start_time=0, pool="pool1", rows=None) -> Dict[str, Any]:
    return {"start_time": start_time, "current_server": pool, "result": list(rows or [])}


def make_row(gpuid=0, name="gpu0", power=120, speed=500, acc=10, rej=1, temp=65) -> Dict[str, Any]:
    return {
        "gpuid": gpuid,
        "name": name,
        "gpu_power_usage": power,
        "speed_sps": speed,
        "accepted_shares": acc,
        "rejected_shares": rej,
        "temperature": temp,
    }


class FakeInflux:
    """Stands in for InfluxClient; records every call."""

    def __init__(self, databases=None, fail_writes=None, fail_startup: bool = False,
                 query_rows: Optional[List[Dict[str, Any]]] = None):
        self.databases = list(databases or [])
        self.fail_writes = fail_writes  # predicate(point) -> bool
        self.fail_startup = fail_startup
        self.query_rows = query_rows or []
        self.created: List[str] = []
        self.queries: List[str] = []
        self.written = []
        self.closed = False
        self._lock = threading.Lock()

    def get_database_names(self):
        if self.fail_startup:
            raise InfluxDBError("ConnectionError: refused")
        return list(self.databases)

    def create_database(self, name):
        self.created.append(name)
        self.databases.append(name)

    def query(self, q, database=None, method="GET"):
        self.queries.append(q)
        return list(self.query_rows)

    def write_points(self, points, database=None):
        for p in points:
            validate_point(p)
            if self.fail_writes is not None and self.fail_writes(p):
                raise InfluxDBError("write rejected", 400)
            with self._lock:
                self.written.append((database, p))

    def points(self):
        with self._lock:
            return [p for _, p in self.written]

    def close(self):
        self.closed = True


class FakeEwbfClient:
    """Stands in for EwbfHTTPClient for one host."""

    def __init__(self, payload=None, error: Optional[EwbfError] = None,
                 gate: Optional[threading.Event] = None):
        self.payload = payload
        self.error = error
        self.gate = gate
        self.calls = 0
        self.session = _ClosableSession()

    def get_status(self) -> StatusPayload:
        self.calls += 1
        if self.gate is not None:
            self.gate.wait(5)
        if self.error is not None:
            raise self.error
        return StatusPayload.from_dict(self.payload)


class _ClosableSession:
    closed = False

    def close(self):
        self.closed = True


@pytest.fixture
def hosts():
    return [
        HostConfig(name="rigA", address="10.0.0.1", port=42000),
        HostConfig(name="rigB", address="10.0.0.2", port=42001),
    ]


@pytest.fixture
def app_config(hosts):
    return AppConfig(hosts=hosts, interval=1, influxdb=InfluxConfig(name="ewbf-test"))
