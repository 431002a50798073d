"""
ewbf-collect - InfluxDB 1.x client

Thin wrapper over ``influxdb.InfluxDBClient``:
- SHOW DATABASES / CREATE DATABASE / SELECT through the client's query API
- ``write_points`` with point dicts, rendered to line protocol by the library

Points are checked against the declared measurement schema before they
leave the process, so a schema mismatch fails the same way a rejected
write does. Every library or transport failure surfaces as InfluxDBError.
"""

import logging
import math
from typing import Any, Callable, Dict, Iterable, List, Optional

import requests
from influxdb import InfluxDBClient
from influxdb.exceptions import InfluxDBClientError, InfluxDBServerError
from influxdb.line_protocol import make_lines

from .models import SCHEMA, FieldType, MetricPoint

logger = logging.getLogger('InfluxClient')


class InfluxDBError(Exception):
    """InfluxDB request failed or a point does not fit the schema"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.message = message
        self.status_code = status_code
        super().__init__(message if status_code is None else f"HTTP {status_code}: {message}")


def validate_point(point: MetricPoint) -> None:
    schema = SCHEMA.get(point.measurement)
    if schema is None:
        raise InfluxDBError(f"measurement '{point.measurement}' is not declared in the schema")

    tags = point.tags
    undeclared = sorted(set(tags) - set(schema.tags))
    if undeclared:
        raise InfluxDBError(f"tags {undeclared} are not declared for '{point.measurement}'")
    missing = [t for t in schema.tags if t not in tags]
    if missing:
        raise InfluxDBError(f"tags {missing} are required for '{point.measurement}'")

    present = {k: v for k, v in point.fields.items() if v is not None}
    if not present:
        raise InfluxDBError(f"point for '{point.measurement}' has no fields")
    for key, value in present.items():
        ftype = schema.fields.get(key)
        if ftype is None:
            raise InfluxDBError(f"field '{key}' is not declared for '{point.measurement}'")
        if ftype is FieldType.STRING and not isinstance(value, str):
            raise InfluxDBError(f"field '{key}' expects a string, got {type(value).__name__}")
        if ftype is FieldType.FLOAT:
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise InfluxDBError(f"field '{key}' expects a number, got {type(value).__name__}")
            if isinstance(value, float) and not math.isfinite(value):
                raise InfluxDBError(f"value {value!r} cannot be stored as a float")


def to_point_dict(point: MetricPoint) -> Dict[str, Any]:
    """Validated point in the ``{measurement, tags, fields}`` form write_points takes.

    None fields are left out entirely. Float fields are always sent as
    floats so an integral value never lands as an integer field.
    """
    validate_point(point)
    schema = SCHEMA[point.measurement]

    fields: Dict[str, Any] = {}
    for key, value in point.fields.items():
        if value is None:
            continue
        fields[key] = float(value) if schema.fields[key] is FieldType.FLOAT else value

    # InfluxDB rejects empty tag values
    tags = {k: str(v) for k, v in point.tags.items() if str(v) != ""}
    return {"measurement": point.measurement, "tags": tags, "fields": fields}


def to_line(point: MetricPoint) -> str:
    """Line protocol for one point, exactly as the client would send it."""
    return make_lines({"points": [to_point_dict(point)]}).rstrip("\n")


class InfluxClient:
    """
    Usage:
        influx = InfluxClient("localhost", 8086, database="ewbf-collect")
        if "ewbf-collect" not in influx.get_database_names():
            influx.create_database("ewbf-collect")
        influx.write_points([point])
    """

    def __init__(self, host: str = "localhost", port: int = 8086, database: str = "", *,
                 timeout: float = 30.0, client: Optional[InfluxDBClient] = None):
        self.database = database
        # retries=1 is a single attempt; failed writes are never retried
        self.client = client or InfluxDBClient(
            host=host, port=port, database=database or None, timeout=timeout, retries=1,
        )

    def _call(self, fn: Callable, *args, **kwargs) -> Any:
        try:
            return fn(*args, **kwargs)
        except InfluxDBClientError as e:
            raise InfluxDBError(str(e.content), e.code)
        except InfluxDBServerError as e:
            raise InfluxDBError(str(e))
        except requests.exceptions.RequestException as e:
            raise InfluxDBError(f"{type(e).__name__}: {e}")

    def query(self, q: str, database: Optional[str] = None, *, method: str = "GET") -> List[Dict[str, Any]]:
        """Run an InfluxQL statement and flatten the result into row dicts."""
        db = database if database is not None else self.database
        rs = self._call(self.client.query, q, database=db or None, method=method)
        results = rs if isinstance(rs, list) else [rs]
        return [row for r in results for row in r.get_points()]

    def get_database_names(self) -> List[str]:
        return [d["name"] for d in self._call(self.client.get_list_database)]

    def create_database(self, name: str) -> None:
        self._call(self.client.create_database, name)
        logger.info("Created database %s", name)

    def write_points(self, points: Iterable[MetricPoint], database: Optional[str] = None) -> None:
        body = [to_point_dict(p) for p in points]
        if not body:
            return
        db = database if database is not None else self.database
        self._call(self.client.write_points, body, database=db)

    def close(self) -> None:
        self.client.close()
