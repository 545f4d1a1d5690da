"""Fixtures compartidas de los tests del monitor."""

from typing import Any, Callable, Dict, List

import httpx
import pytest

from common.config import Settings
from common.db import get_engine
from monitor_api.alerts.thresholds import ThresholdManager
from monitor_api.pipeline import MonitorService
from monitor_api.storage.time_series_store import StoreConfig, TimeSeriesStore

T0 = 1_700_000_000_000


class FakeClock:
    """Reloj manual en epoch ms."""

    def __init__(self, start: int = T0):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> int:
        self.now += ms
        return self.now


class FakeDevice:
    """Dispositivo HTTP falso: responde en orden la cola de respuestas."""

    def __init__(self):
        self.responses: List[Callable[[httpx.Request], httpx.Response]] = []
        self.requests: List[httpx.Request] = []
        self.default: Callable[[httpx.Request], httpx.Response] = lambda r: httpx.Response(503)

    def ok(self, payload: Dict[str, Any]) -> "FakeDevice":
        self.responses.append(lambda r: httpx.Response(200, json=payload))
        return self

    def status(self, code: int) -> "FakeDevice":
        self.responses.append(lambda r: httpx.Response(code))
        return self

    def fail(self) -> "FakeDevice":
        def _raise(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)
        self.responses.append(_raise)
        return self

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        responder = self.responses.pop(0) if self.responses else self.default
        return responder(request)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


def device_payload(**overrides: Any) -> Dict[str, Any]:
    """Payload nativo del dispositivo con valores normales."""
    payload: Dict[str, Any] = {
        "timestamp": T0,
        "respiration": {"value": 40, "unit": "rpm", "confidence": 0.9},
        "audio": {"state": "quiet", "level": 12},
        "body_temp": {"value": 36.8, "unit": "C"},
        "posture": {"state": "supine", "confidence": 0.95},
        "radar": {"active": True, "movement": 0.3},
        "environment": {
            "temp": {"value": 22.5, "unit": "C"},
            "co2": {"value": 600, "unit": "ppm"},
            "voc": {"value": 0.2},
            "gas": {"safe": True},
        },
    }
    payload.update(overrides)
    return payload


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def db_url(tmp_path) -> str:
    return f"sqlite:///{tmp_path / 'monitor.db'}"


@pytest.fixture
def engine(db_url):
    engine = get_engine(db_url)
    yield engine
    engine.dispose()


@pytest.fixture
def store(engine, clock) -> TimeSeriesStore:
    return TimeSeriesStore(engine, StoreConfig(max_readings=100, max_alerts=50), clock=clock)


@pytest.fixture
def thresholds(store) -> ThresholdManager:
    return ThresholdManager(store)


@pytest.fixture
def device() -> FakeDevice:
    return FakeDevice()


@pytest.fixture
def settings(db_url) -> Settings:
    return Settings(
        db_url=db_url,
        device_host="192.168.4.1",
        device_port=80,
        device_scheme="http",
        poll_interval_ms=1000,
        request_timeout_ms=500,
        max_readings=100,
        max_alerts=50,
        alert_cooldown_seconds=30,
        trends_cache_ttl_seconds=60,
        log_level="INFO",
    )


@pytest.fixture
def service(settings, engine, device, clock) -> MonitorService:
    return MonitorService.from_settings(settings, engine=engine, transport=device.transport, clock=clock)
