import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

# Non-fatal warnings captured during last load_config()
LAST_WARNINGS: List[str] = []

def get_last_warnings() -> List[str]:
    return list(LAST_WARNINGS)


DEFAULT_HOST_PORT = 42000  # EWBF miner API port
DEFAULT_INTERVAL_SEC = 10
MIN_INTERVAL_SEC = 1

DEFAULT_TIMEOUT_SEC = 10.0
DEFAULT_MAX_WORKERS = 16
DEFAULT_WRITE_WORKERS = 8

DEFAULT_INFLUX_HOST = "localhost"
DEFAULT_INFLUX_PORT = 8086
DEFAULT_INFLUX_DB = "ewbf-collect"

LOG_MODES = ("console", "file", "both")
DEFAULT_LOG_MODE = "console"
DEFAULT_LOG_LEVEL = "info"
DEFAULT_LOG_FILE = "./logs/ewbf-collect.log"


@dataclass(frozen=True)
class HostConfig:
    name: str
    address: str
    port: int = DEFAULT_HOST_PORT

    @property
    def key(self) -> tuple:
        """Identity of every metric emitted for this host."""
        return (self.name, self.port)


@dataclass(frozen=True)
class InfluxConfig:
    host: str = DEFAULT_INFLUX_HOST
    port: int = DEFAULT_INFLUX_PORT
    name: str = DEFAULT_INFLUX_DB


@dataclass(frozen=True)
class AppConfig:
    hosts: List[HostConfig] = field(default_factory=list)
    interval: int = DEFAULT_INTERVAL_SEC
    # Deployment label, only shows up in the startup log line
    env: str = "prod"

    # Logging
    log_mode: str = DEFAULT_LOG_MODE
    log_level: str = DEFAULT_LOG_LEVEL
    log_file: str = DEFAULT_LOG_FILE

    influxdb: InfluxConfig = field(default_factory=InfluxConfig)

    # Polling
    timeout_sec: float = DEFAULT_TIMEOUT_SEC
    max_workers: int = DEFAULT_MAX_WORKERS
    # When true, a host whose previous poll is still in flight is skipped
    skip_if_busy: bool = False

    # Sink
    write_workers: int = DEFAULT_WRITE_WORKERS
    max_pending_writes: int = 0  # 0 = unbounded

    # Write UPTIME=0 for a known host that stopped answering
    zero_uptime_on_failure: bool = False


def get_config_path(path: Optional[str] = None) -> Path:
    """Resolve the config file path.

    Priority:
    1) explicit path argument
    2) env var EWBF_CONFIG_PATH
    3) ./collector_config.json if it exists
    4) user home config: ~/.ewbf-collect/collector_config.json
    """
    if path:
        return Path(path).expanduser().resolve()

    env_path = os.getenv("EWBF_CONFIG_PATH", "").strip()
    if env_path:
        return Path(env_path).expanduser().resolve()

    local = Path("./collector_config.json").resolve()
    if local.exists():
        return local

    return (Path.home() / ".ewbf-collect" / "collector_config.json").resolve()


def _parse_hosts(src_list: Any, warnings: List[str]) -> List[HostConfig]:
    hosts: List[HostConfig] = []
    if not isinstance(src_list, list):
        if src_list:
            warnings.append("hosts must be a list; ignoring it")
        return hosts

    for idx, h in enumerate(src_list):
        if not isinstance(h, dict):
            warnings.append(f"hosts[{idx}] is not an object; skipped")
            continue
        name = str(h.get("name") or "").strip()
        address = str(h.get("address") or h.get("ip") or "").strip()
        if not name or not address:
            warnings.append(f"hosts[{idx}] needs both name and address; skipped")
            continue
        try:
            port = int(h.get("port", DEFAULT_HOST_PORT))
        except (TypeError, ValueError, OverflowError):
            warnings.append(f"hosts[{idx}] ({name}) has invalid port {h.get('port')!r}; skipped")
            continue
        hosts.append(HostConfig(name=name, address=address, port=port))
    return hosts


def _num(raw: Dict[str, Any], key: str, default: Any, conv, warnings: List[str], where: str = "") -> Any:
    """raw[key] converted with conv; the default (plus a warning) when it does not convert."""
    value = raw.get(key, default)
    try:
        return conv(value)
    except (TypeError, ValueError, OverflowError):
        warnings.append(f"{where}{key} has invalid value {value!r}; using {default}")
        return default


def _parse_influx(raw: Any, warnings: List[str]) -> InfluxConfig:
    if not isinstance(raw, dict):
        return InfluxConfig()
    # Accept the nested {"influxdb": {"db": {...}}} form as well
    db = raw.get("db") if isinstance(raw.get("db"), dict) else raw
    return InfluxConfig(
        host=str(db.get("host") or DEFAULT_INFLUX_HOST),
        port=_num(db, "port", DEFAULT_INFLUX_PORT, int, warnings, "influxdb."),
        name=str(db.get("name") or DEFAULT_INFLUX_DB),
    )


def load_config(path: Optional[str] = None) -> AppConfig:
    global LAST_WARNINGS
    warnings: List[str] = []

    p = get_config_path(path)
    if not p.exists():
        LAST_WARNINGS = [f"config file {p} not found; using defaults"]
        return AppConfig()

    raw: Dict[str, Any] = json.loads(p.read_text(encoding="utf-8"))

    log_mode = str(raw.get("log_mode", DEFAULT_LOG_MODE)).strip().lower()
    if log_mode not in LOG_MODES:
        warnings.append(f"unknown log_mode {log_mode!r}; falling back to {DEFAULT_LOG_MODE}")
        log_mode = DEFAULT_LOG_MODE

    cfg = AppConfig(
        hosts=_parse_hosts(raw.get("hosts") or [], warnings),
        # clamp to minimum
        interval=max(_num(raw, "interval", DEFAULT_INTERVAL_SEC, int, warnings), MIN_INTERVAL_SEC),
        env=str(raw.get("env") or "prod"),
        log_mode=log_mode,
        log_level=str(raw.get("log_level") or DEFAULT_LOG_LEVEL),
        log_file=str(raw.get("log_file") or DEFAULT_LOG_FILE),
        influxdb=_parse_influx(raw.get("influxdb"), warnings),
        timeout_sec=_num(raw, "timeout_sec", DEFAULT_TIMEOUT_SEC, float, warnings),
        max_workers=max(1, _num(raw, "max_workers", DEFAULT_MAX_WORKERS, int, warnings)),
        skip_if_busy=bool(raw.get("skip_if_busy", False)),
        write_workers=max(1, _num(raw, "write_workers", DEFAULT_WRITE_WORKERS, int, warnings)),
        max_pending_writes=max(0, _num(raw, "max_pending_writes", 0, int, warnings)),
        zero_uptime_on_failure=bool(raw.get("zero_uptime_on_failure", False)),
    )

    LAST_WARNINGS = warnings
    return cfg
