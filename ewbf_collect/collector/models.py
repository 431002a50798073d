"""
ewbf-collect - data models

Host status payload as reported by the EWBF miner API (``GET /getstat``)
and the metric points written to InfluxDB.
"""

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union

Number = Union[int, float]


class Measurement(str, Enum):
    SUMMARY = "summary"
    THREADS = "threads"


class FieldType(Enum):
    STRING = "string"
    FLOAT = "float"


@dataclass(frozen=True)
class MeasurementSchema:
    measurement: Measurement
    tags: tuple
    fields: Dict[str, FieldType]


FIELDS = {"text": FieldType.STRING, "value": FieldType.FLOAT}

# Declared measurements; a point's tag set must match its schema exactly
SCHEMA: Dict[str, MeasurementSchema] = {
    Measurement.SUMMARY.value: MeasurementSchema(
        measurement=Measurement.SUMMARY,
        tags=("host", "instance", "type"),
        fields=FIELDS,
    ),
    Measurement.THREADS.value: MeasurementSchema(
        measurement=Measurement.THREADS,
        tags=("host", "instance", "type", "type_instance"),
        fields=FIELDS,
    ),
}


class PayloadError(ValueError):
    """The host answered, but not with a usable status payload."""


def _require(data: Dict[str, Any], key: str, where: str) -> Any:
    if key not in data:
        raise PayloadError(f"{where}: missing '{key}'")
    return data[key]


def _number(value: Any, key: str, where: str) -> Number:
    # bool is an int subclass; a flag is not a measurement
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise PayloadError(f"{where}: '{key}' is not a number ({value!r})")
    # json.loads accepts NaN and Infinity
    if isinstance(value, float) and not math.isfinite(value):
        raise PayloadError(f"{where}: '{key}' is not finite ({value!r})")
    return value


def _integer(value: Any, key: str, where: str) -> int:
    value = _number(value, key, where)
    if value != int(value):
        raise PayloadError(f"{where}: '{key}' is not an integer ({value!r})")
    return int(value)


@dataclass(frozen=True)
class DeviceReport:
    """One GPU row of ``result``."""
    gpuid: int
    name: str
    gpu_power_usage: Number = 0
    speed_sps: Number = 0
    accepted_shares: int = 0
    rejected_shares: int = 0
    temperature: Number = 0

    @classmethod
    def from_dict(cls, row: Any, index: int = 0) -> "DeviceReport":
        where = f"result[{index}]"
        if not isinstance(row, dict):
            raise PayloadError(f"{where} is not an object")
        return cls(
            gpuid=_integer(_require(row, "gpuid", where), "gpuid", where),
            name=str(_require(row, "name", where)),
            gpu_power_usage=_number(_require(row, "gpu_power_usage", where), "gpu_power_usage", where),
            speed_sps=_number(_require(row, "speed_sps", where), "speed_sps", where),
            accepted_shares=_number(_require(row, "accepted_shares", where), "accepted_shares", where),
            rejected_shares=_number(_require(row, "rejected_shares", where), "rejected_shares", where),
            temperature=_number(_require(row, "temperature", where), "temperature", where),
        )


@dataclass(frozen=True)
class StatusPayload:
    start_time: Number
    current_server: str
    result: List[DeviceReport] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Any) -> "StatusPayload":
        if not isinstance(data, dict):
            raise PayloadError("status payload is not an object")
        rows = _require(data, "result", "payload")
        if not isinstance(rows, list):
            raise PayloadError("payload: 'result' is not a list")
        return cls(
            start_time=_number(_require(data, "start_time", "payload"), "start_time", "payload"),
            current_server=str(_require(data, "current_server", "payload")),
            result=[DeviceReport.from_dict(r, i) for i, r in enumerate(rows)],
        )


@dataclass(frozen=True)
class MetricPoint:
    """A single observation written to the store.

    ``value`` of None means the field is absent for this type (e.g. the
    GPU name has no numeric value); it is omitted on write, never zeroed.
    """
    measurement: str
    host: str
    instance: str
    type: str
    value: Optional[Number] = None
    text: Optional[str] = ""
    type_instance: Optional[str] = None

    @property
    def tags(self) -> Dict[str, str]:
        tags = {"host": self.host, "instance": self.instance, "type": self.type}
        if self.type_instance is not None:
            tags["type_instance"] = self.type_instance
        return tags

    @property
    def fields(self) -> Dict[str, Any]:
        return {"text": self.text, "value": self.value}

    def to_dict(self) -> Dict[str, Any]:
        return {"measurement": self.measurement, "tags": self.tags, "fields": self.fields}
