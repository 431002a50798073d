from ewbf_collect.config import HostConfig
from ewbf_collect.collector.extractor import extract_points, write_status
from ewbf_collect.collector.models import StatusPayload

from conftest import make_payload, make_row

HOST = HostConfig(name="rig01", address="10.0.0.1", port=42000)
T = 1_700_000_000


def _by(points, measurement, type_):
    return [p for p in points if p.measurement == measurement and p.type == type_]


def test_single_gpu_scenario():
    payload = StatusPayload.from_dict(make_payload(start_time=T - 60, pool="pool1", rows=[make_row()]))
    points = extract_points(HOST, payload, now=T)

    summary = {p.type: p for p in points if p.measurement == "summary"}
    assert summary["UPTIME"].value == 60
    assert summary["POOL"].text == "pool1"
    assert summary["POOL"].value is None
    assert summary["GPUS"].value == 1
    assert summary["POWER_SUM"].value == 120
    assert summary["HASHRATE_SUM"].value == 500
    assert summary["ACCEPTED_SHARES"].value == 10
    assert summary["REJECTED_SHARES"].value == 1

    threads = [p for p in points if p.measurement == "threads"]
    assert len(threads) == 6
    assert all(p.type_instance == "0" for p in threads)
    assert all(p.tags["type_instance"] == "0" for p in threads)


def test_write_order_is_fixed():
    payload = StatusPayload.from_dict(make_payload(start_time=T, rows=[make_row()]))
    types = [(p.measurement, p.type) for p in extract_points(HOST, payload, now=T)]
    assert types == [
        ("threads", "GPU_NAME"),
        ("threads", "POWER"),
        ("threads", "HASHRATE"),
        ("threads", "TEMP"),
        ("threads", "ACCEPTED_SHARES"),
        ("threads", "REJECTED_SHARES"),
        ("summary", "UPTIME"),
        ("summary", "POOL"),
        ("summary", "ACCEPTED_SHARES"),
        ("summary", "REJECTED_SHARES"),
        ("summary", "POWER_SUM"),
        ("summary", "HASHRATE_SUM"),
        ("summary", "GPUS"),
    ]


def test_empty_result_still_writes_summary():
    payload = StatusPayload.from_dict(make_payload(start_time=T - 5, rows=[]))
    points = extract_points(HOST, payload, now=T)

    assert not [p for p in points if p.measurement == "threads"]
    summary = {p.type: p for p in points if p.measurement == "summary"}
    assert len(summary) == 7
    assert summary["GPUS"].value == 0
    for t in ("ACCEPTED_SHARES", "REJECTED_SHARES", "POWER_SUM", "HASHRATE_SUM"):
        assert summary[t].value == 0
        # zero, not absent
        assert summary[t].value is not None


def test_counts_and_sums_for_many_gpus():
    rows = [
        make_row(gpuid=0, name="a", power=110.5, speed=480.25, acc=7, rej=0),
        make_row(gpuid=1, name="b", power=0, speed=0, acc=0, rej=2),
        make_row(gpuid=2, name="c", power=-3.5, speed=512.75, acc=11, rej=1),
    ]
    payload = StatusPayload.from_dict(make_payload(start_time=T, rows=rows))
    points = extract_points(HOST, payload, now=T)

    assert len([p for p in points if p.measurement == "threads"]) == 6 * len(rows)
    assert len([p for p in points if p.measurement == "summary"]) == 7

    summary = {p.type: p.value for p in points if p.measurement == "summary"}
    assert summary["POWER_SUM"] == sum(r["gpu_power_usage"] for r in rows)
    assert summary["HASHRATE_SUM"] == sum(r["speed_sps"] for r in rows)
    assert summary["ACCEPTED_SHARES"] == 18
    assert summary["REJECTED_SHARES"] == 3
    assert summary["GPUS"] == 3


def test_tag_sets_follow_measurement():
    payload = StatusPayload.from_dict(make_payload(start_time=T, rows=[make_row(gpuid=3)]))
    for p in extract_points(HOST, payload, now=T):
        assert p.tags["host"] == "rig01"
        assert p.tags["instance"] == "42000"
        if p.measurement == "threads":
            assert p.tags["type_instance"] == "3"
        else:
            assert "type_instance" not in p.tags


def test_absent_numeric_fields_are_none():
    payload = StatusPayload.from_dict(make_payload(start_time=T, rows=[make_row(name="RTX 3080")]))
    points = extract_points(HOST, payload, now=T)

    gpu_name = _by(points, "threads", "GPU_NAME")[0]
    assert gpu_name.value is None
    assert gpu_name.text == "RTX 3080"

    power = _by(points, "threads", "POWER")[0]
    assert power.value == 120
    assert power.text == ""


def test_uptime_is_recomputed_each_call():
    payload = StatusPayload.from_dict(make_payload(start_time=T - 100))
    first = _by(extract_points(HOST, payload, now=T), "summary", "UPTIME")[0]
    second = _by(extract_points(HOST, payload, now=T + 30), "summary", "UPTIME")[0]
    assert first.value == 100
    assert second.value == 130
    assert _by(extract_points(HOST, StatusPayload.from_dict(make_payload(start_time=T)), now=T),
               "summary", "UPTIME")[0].value == 0


def test_write_status_forwards_every_point():
    payload = StatusPayload.from_dict(make_payload(start_time=T, rows=[make_row(), make_row(gpuid=1)]))
    seen = []
    n = write_status(HOST, payload, seen.append, now=T)
    assert n == len(seen) == 6 * 2 + 7
