"""
ewbf-collect - EWBF miner HTTP client

Reads the miner's status report from ``GET http://<address>:<port>/getstat``.
No retries: a failed host is simply tried again on the next cycle.
"""

import json
import logging
from typing import Any, Dict, Optional, Tuple, Union

import requests

from .models import PayloadError, StatusPayload

logger = logging.getLogger('EwbfClient')


class EwbfError(Exception):
    """EWBF host communication error"""

    def __init__(self, message: str, host: str = "", port: int = 0,
                 error_type: str = "unknown"):
        self.message = message
        self.host = host
        self.port = port
        self.error_type = error_type  # timeout, connection, http, parse
        super().__init__(f"[{error_type}] {message} (host={host}:{port})")


class EwbfHTTPClient:
    """
    Usage:
        client = EwbfHTTPClient("192.168.1.100", 42000)
        payload = client.get_status()
    """

    STATUS_PATH = "/getstat"

    def __init__(self, address: str, port: int, *,
                 timeout: Union[float, Tuple[float, float], None] = 10.0,
                 session: Optional[requests.Session] = None):
        self.address = address
        self.port = port
        self.timeout = timeout
        self.session = session or requests.Session()

    @property
    def url(self) -> str:
        return f"http://{self.address}:{self.port}{self.STATUS_PATH}"

    def fetch_raw(self) -> Dict[str, Any]:
        """Fetch and JSON-decode the status body."""
        try:
            resp = self.session.get(self.url, timeout=self.timeout)
        except requests.exceptions.Timeout:
            raise EwbfError(f"Timeout ({self.timeout}s)", self.address, self.port, "timeout")
        except requests.exceptions.ConnectionError as e:
            raise EwbfError(f"Connection error: {e}", self.address, self.port, "connection")
        except requests.exceptions.RequestException as e:
            raise EwbfError(f"Request failed: {e}", self.address, self.port, "connection")

        if resp.status_code != 200:
            raise EwbfError(f"HTTP {resp.status_code}", self.address, self.port, "http")

        text = resp.text.strip()
        if not text:
            raise EwbfError("Empty response", self.address, self.port, "parse")
        try:
            return json.loads(text)
        except json.JSONDecodeError as e:
            raise EwbfError(f"Invalid JSON: {str(e)[:100]}", self.address, self.port, "parse")

    def get_status(self) -> StatusPayload:
        raw = self.fetch_raw()
        try:
            return StatusPayload.from_dict(raw)
        except PayloadError as e:
            raise EwbfError(f"Invalid status payload: {e}", self.address, self.port, "parse")
