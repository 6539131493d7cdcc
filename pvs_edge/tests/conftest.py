"""
Shared test fixtures for edge collector tests.

Provides environment variable fixtures for EdgeSettings configuration tests
and a scripted fake PVS gateway served through ``httpx.MockTransport``.
All edge env vars are cleaned before each test to ensure isolation.

CHANGELOG:
- 2026-10-18: Initial creation

TODO:
- None
"""

from __future__ import annotations

from typing import Any

import httpx
import pytest

# All EdgeSettings environment variable names, used for cleanup.
_ALL_EDGE_ENV_VARS = (
    "PVS_HOST",
    "PVS_SERIAL",
    "API_GENERATION",
    "DEVICE_CATEGORIES",
    "POLL_INTERVAL_S",
    "REQUEST_TIMEOUT_S",
    "FETCH_ATTEMPTS",
    "RETRY_BACKOFF_S",
    "INFLUX_URL",
    "INFLUX_TOKEN",
    "INFLUX_DATABASE",
    "DRY_RUN",
    "VERBOSE",
)


@pytest.fixture(autouse=True)
def _clean_edge_env(monkeypatch: pytest.MonkeyPatch, tmp_path: str) -> None:
    """Remove all edge env vars and isolate from .env files before each test.

    Changes working directory to tmp_path so no .env file is accidentally
    loaded by Pydantic BaseSettings.
    """
    for var in _ALL_EDGE_ENV_VARS:
        monkeypatch.delenv(var, raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture()
def env_vars_full(monkeypatch: pytest.MonkeyPatch) -> dict[str, str]:
    """Set every EdgeSettings environment variable.

    Returns the dict of env var names to values for assertion convenience.
    """
    env = {
        "PVS_HOST": "192.168.1.50",
        "PVS_SERIAL": "ZT163185000441C1876",
        "API_GENERATION": "varserver",
        "DEVICE_CATEGORIES": '["inverter", "meter", "ess"]',
        "POLL_INTERVAL_S": "30",
        "REQUEST_TIMEOUT_S": "5.5",
        "FETCH_ATTEMPTS": "4",
        "RETRY_BACKOFF_S": "0.5",
        "INFLUX_URL": "http://influxdb.local:8181",
        "INFLUX_TOKEN": "influx-secret",
        "INFLUX_DATABASE": "solar",
        "DRY_RUN": "true",
        "VERBOSE": "false",
    }
    for key, value in env.items():
        monkeypatch.setenv(key, value)
    return env


@pytest.fixture()
def env_vars_required_only(monkeypatch: pytest.MonkeyPatch) -> dict[str, str]:
    """Set only the variables without a usable default (the gateway serial)."""
    env = {"PVS_SERIAL": "12345"}
    for key, value in env.items():
        monkeypatch.setenv(key, value)
    return env


# ---------------------------------------------------------------------------
# Fake gateway
# ---------------------------------------------------------------------------

SESSION_TOKEN = "tok-1"


def _var(name: str, value: Any) -> dict[str, Any]:
    return {"name": name, "value": value}


def default_vars() -> dict[str, list[dict[str, Any]]]:
    """Varserver entries per ``match`` query: system, one inverter, one meter."""
    return {
        "livedata": [
            _var("/sys/livedata/time", "1710278707"),
            _var("/sys/livedata/pv_p", "3.21"),
            _var("/sys/livedata/net_p", "-1.5"),
        ],
        "/sys/devices/inverter/": [
            _var("/sys/devices/inverter/11/sn", "450051826006667"),
            _var("/sys/devices/inverter/11/prodMdlNm", "AC_Module"),
            _var("/sys/devices/inverter/11/p3phsumKw", "0.0015"),
            _var("/sys/devices/inverter/11/msmtEps", "2024-03-12T21:25:08Z"),
        ],
        "/sys/devices/meter/": [
            _var("/sys/devices/meter/1/sn", "PVS6M22270835p"),
            _var("/sys/devices/meter/1/p3phsumKw", "0.5"),
            _var("/sys/devices/meter/1/freqHz", "59.99"),
        ],
    }


def default_device_list() -> dict[str, Any]:
    """Legacy DeviceList body with the supervisor and one inverter."""
    return {
        "result": "succeed",
        "devices": [
            {
                "DETAIL": "detail",
                "DEVICE_TYPE": "PVS",
                "SERIAL": "ZT163185000441C1876",
                "MODEL": "PV Supervisor PVS5",
                "DATATIME": "2020,11,30,04,25,00",
                "dl_uptime": "2878431",
                "dl_cpu_load": "0.09",
                "panid": 1446673874,
                "ISDETAIL": True,
            },
            {
                "DEVICE_TYPE": "Inverter",
                "SERIAL": "450051826006667",
                "MODEL": "AC_Module_Type_D",
                "STATE": "working",
                "DATATIME": "2020,11,30,04,25,00",
                "p_3phsum_kw": "0.0015",
                "freq_hz": "59.99",
            },
        ],
    }


def route(request: httpx.Request) -> str:
    """Route key of a gateway request: ``auth``, ``device-list`` or a match."""
    path = request.url.path
    if path == "/auth":
        return "auth"
    if path == "/cgi-bin/dl_cgi":
        return "device-list"
    if path == "/vars":
        return request.url.params["match"]
    return path


class FakeGateway:
    """Scripted PVS gateway.

    ``failures`` maps a route key to a queue of failures consumed one per
    request before the normal answer is served.  A failure is either an HTTP
    status code or an httpx exception class.
    """

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.vars = default_vars()
        self.device_list = default_device_list()
        self.failures: dict[str, list[int | type[Exception]]] = {}
        self.auth_status = 200
        self.session_token: str | None = SESSION_TOKEN

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def requests_to(self, key: str) -> list[httpx.Request]:
        return [request for request in self.requests if route(request) == key]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        key = route(request)

        queued = self.failures.get(key)
        if queued:
            failure = queued.pop(0)
            if isinstance(failure, int):
                return httpx.Response(failure, text="simulated failure")
            raise failure(f"simulated {failure.__name__}", request=request)

        if key == "auth":
            if self.auth_status != 200:
                return httpx.Response(self.auth_status)
            headers = {}
            if self.session_token:
                headers["Set-Cookie"] = f"session={self.session_token}; Path=/"
            return httpx.Response(200, headers=headers, json={"status": "ok"})
        if key == "device-list":
            return httpx.Response(200, json=self.device_list)

        entries = self.vars.get(key, [])
        return httpx.Response(200, json={"count": len(entries), "values": entries})


@pytest.fixture()
def fake_gateway() -> FakeGateway:
    """A fresh scripted gateway per test."""
    return FakeGateway()
