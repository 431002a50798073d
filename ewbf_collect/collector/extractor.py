"""
ewbf-collect - metric extractor

Turns one host's status payload into tagged points:
6 ``threads`` points per GPU and 7 ``summary`` points per host.
"""

import logging
import time
from typing import Callable, List, Optional

from ..config import HostConfig
from .models import Measurement, MetricPoint, StatusPayload

logger = logging.getLogger('MetricExtractor')

THREADS = Measurement.THREADS.value
SUMMARY = Measurement.SUMMARY.value


def current_time() -> int:
    return int(round(time.time()))


def extract_points(host: HostConfig, payload: StatusPayload,
                   now: Optional[int] = None) -> List[MetricPoint]:
    """Compute per-GPU and per-host points in write order.

    Nothing is carried over between calls; sums and uptime come from
    this payload only.
    """
    if now is None:
        now = current_time()

    name = host.name
    instance = str(host.port)

    power_sum = 0
    hashrate_sum = 0
    accepted = 0
    rejected = 0

    points: List[MetricPoint] = []
    for row in payload.result:
        logger.debug(
            "%s,%s,%s,%s,%s,%s,%s",
            row.gpuid, row.name, row.gpu_power_usage, row.speed_sps,
            row.accepted_shares, row.rejected_shares, row.temperature,
        )
        power_sum += row.gpu_power_usage
        hashrate_sum += row.speed_sps
        accepted += row.accepted_shares
        rejected += row.rejected_shares

        gpu = str(row.gpuid)

        def thread_point(type_: str, value, text: str = "") -> MetricPoint:
            return MetricPoint(THREADS, name, instance, type_, value=value, text=text, type_instance=gpu)

        points.extend([
            thread_point("GPU_NAME", None, row.name),
            thread_point("POWER", row.gpu_power_usage),
            thread_point("HASHRATE", row.speed_sps),
            thread_point("TEMP", row.temperature),
            thread_point("ACCEPTED_SHARES", row.accepted_shares),
            thread_point("REJECTED_SHARES", row.rejected_shares),
        ])

    def summary_point(type_: str, value, text: str = "") -> MetricPoint:
        return MetricPoint(SUMMARY, name, instance, type_, value=value, text=text)

    points.extend([
        summary_point("UPTIME", now - payload.start_time),
        summary_point("POOL", None, payload.current_server),
        summary_point("ACCEPTED_SHARES", accepted),
        summary_point("REJECTED_SHARES", rejected),
        summary_point("POWER_SUM", power_sum),
        summary_point("HASHRATE_SUM", hashrate_sum),
        summary_point("GPUS", len(payload.result)),
    ])
    return points


def write_status(host: HostConfig, payload: StatusPayload, write: Callable[[MetricPoint], object],
                 now: Optional[int] = None) -> int:
    """Extract and hand every point to ``write`` one at a time.

    ``write`` is expected to return immediately (see MetricSink.write);
    nothing here waits for the store. Returns the number of points issued.
    """
    points = extract_points(host, payload, now=now)
    for point in points:
        write(point)
    return len(points)
