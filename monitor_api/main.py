from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from .alerts.thresholds import SETTINGS_KEY as THRESHOLDS_KEY
from .core.clock import now_ms
from .errors import ConfigurationError, StorageError
from .pipeline import ADDRESS_KEY, INTERVAL_KEY, PORT_KEY, MonitorService
from .schemas import (
    AckResult,
    AlertOut,
    ChartDataOut,
    ClearResult,
    DeviceConfigIn,
    DeviceConfigOut,
    SettingIn,
    SettingOut,
    ThresholdOut,
    ThresholdUpdate,
)
from .trends.aggregator import downsample

logger = logging.getLogger(__name__)

_HOUR_MS = 60 * 60 * 1000

# Settings que tienen endpoint propio (validan y actualizan estado vivo).
_MANAGED_SETTINGS = {
    THRESHOLDS_KEY: "/thresholds",
    ADDRESS_KEY: "/device",
    PORT_KEY: "/device",
    INTERVAL_KEY: "/device",
}


def _require_api_key(x_api_key: str | None = Header(default=None, alias="X-API-Key")) -> None:
    # Sin MONITOR_API_KEY se permite todo (modo dev).
    expected = os.getenv("MONITOR_API_KEY")
    if not expected:
        return

    if x_api_key != expected:
        raise HTTPException(status_code=401, detail="Invalid API key")


def _get_service(request: Request) -> MonitorService:
    service = getattr(request.app.state, "service", None)
    if service is None:
        raise HTTPException(status_code=503, detail="Monitor service not started")
    return service


def create_app(service: Optional[MonitorService] = None, *, start_poller: bool = True) -> FastAPI:
    """Construye la app. Sin ``service`` se arma uno desde el entorno al arrancar."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        svc = service or MonitorService.from_settings()
        await svc.start(poll=start_poller)
        app.state.service = svc
        try:
            yield
        finally:
            await svc.stop()
            app.state.service = None

    app = FastAPI(title="Nursery Monitor Service", version="0.1.0", lifespan=lifespan)
    _register_handlers(app)
    _register_routes(app)
    return app


def _register_handlers(app: FastAPI) -> None:
    @app.exception_handler(StorageError)
    async def storage_error_handler(request: Request, exc: StorageError):
        logger.error("[API] Storage failure path=%s op=%s", request.url.path, exc.operation)
        return JSONResponse(status_code=500, content={"detail": "Storage unavailable"})

    @app.exception_handler(ConfigurationError)
    async def configuration_error_handler(request: Request, exc: ConfigurationError):
        return JSONResponse(status_code=422, content={"detail": str(exc)})


def _register_routes(app: FastAPI) -> None:
    guarded = [Depends(_require_api_key)]

    @app.get("/health")
    def health():
        return {"status": "ok"}

    @app.get("/status", dependencies=guarded)
    def status(service: MonitorService = Depends(_get_service)):
        data = service.status()
        data["readings_stored"] = service.store.count_readings()
        data["unacknowledged_alerts"] = len(service.store.get_alerts(acknowledged=False))
        return data

    @app.get("/metrics")
    def metrics():
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    # ========== READINGS ==========

    @app.get("/readings", dependencies=guarded)
    def get_readings(
        start: Optional[int] = Query(default=None, ge=0),
        end: Optional[int] = Query(default=None, ge=0),
        service: MonitorService = Depends(_get_service),
    ):
        end = now_ms() if end is None else end
        start = end - _HOUR_MS if start is None else start
        if start > end:
            raise HTTPException(status_code=422, detail="start must be <= end")
        return service.store.get_readings(start, end)

    @app.get("/readings/latest", dependencies=guarded)
    def get_latest_reading(service: MonitorService = Depends(_get_service)):
        record = service.store.get_latest_reading()
        if record is None:
            raise HTTPException(status_code=404, detail="No readings stored")
        return record

    # ========== ALERTS ==========

    @app.get("/alerts", response_model=List[AlertOut], dependencies=guarded)
    def get_alerts(
        acknowledged: Optional[bool] = None,
        service: MonitorService = Depends(_get_service),
    ):
        return service.store.get_alerts(acknowledged=acknowledged)

    @app.post("/alerts/{alert_id}/ack", response_model=AckResult, dependencies=guarded)
    def acknowledge_alert(alert_id: int, service: MonitorService = Depends(_get_service)):
        if not service.store.acknowledge_alert(alert_id):
            raise HTTPException(status_code=404, detail=f"Alert {alert_id} not found")
        return AckResult(id=alert_id, acknowledged=True)

    @app.delete("/alerts", response_model=ClearResult, dependencies=guarded)
    def clear_alerts(service: MonitorService = Depends(_get_service)):
        return ClearResult(deleted=service.store.clear_alerts())

    # ========== TRENDS ==========

    @app.get("/trends/{sensor}", response_model=ChartDataOut, dependencies=guarded)
    def get_trends(
        sensor: str,
        time_range: str = Query(default="1h", alias="range"),
        max_points: Optional[int] = Query(default=None, ge=1),
        service: MonitorService = Depends(_get_service),
    ):
        try:
            data = service.trends.get_chart_data(sensor, time_range)
        except ValueError as e:
            raise HTTPException(status_code=422, detail=str(e)) from e
        if max_points is not None:
            data = downsample(data, max_points)
        return data.to_dict()

    # ========== THRESHOLDS ==========

    @app.get("/thresholds", dependencies=guarded)
    def get_thresholds(service: MonitorService = Depends(_get_service)):
        return service.thresholds.as_dict()

    @app.get("/thresholds/{sensor}", response_model=ThresholdOut, dependencies=guarded)
    def get_threshold(sensor: str, service: MonitorService = Depends(_get_service)):
        if sensor not in service.thresholds.sensors:
            raise HTTPException(status_code=404, detail=f"Unknown threshold sensor '{sensor}'")
        return service.thresholds.get(sensor).to_dict()

    @app.put("/thresholds/{sensor}", response_model=ThresholdOut, dependencies=guarded)
    def put_threshold(
        sensor: str,
        body: ThresholdUpdate,
        service: MonitorService = Depends(_get_service),
    ):
        updated = service.thresholds.set_threshold(sensor, **body.changes())
        return updated.to_dict()

    # ========== DEVICE ==========

    @app.put("/device", response_model=DeviceConfigOut, dependencies=guarded)
    async def put_device(body: DeviceConfigIn, service: MonitorService = Depends(_get_service)):
        config = await service.reconfigure_device(
            host=body.address,
            port=body.port,
            interval_ms=body.interval_ms,
        )
        return DeviceConfigOut(
            address=config.host,
            port=config.port,
            interval_ms=config.interval_ms,
            url=config.readings_url,
        )

    # ========== SETTINGS ==========

    @app.get("/settings/{key}", response_model=SettingOut, dependencies=guarded)
    def get_setting(key: str, service: MonitorService = Depends(_get_service)):
        missing = object()
        value = service.store.get_setting(key, missing)
        if value is missing:
            raise HTTPException(status_code=404, detail=f"Setting '{key}' not found")
        return SettingOut(key=key, value=value)

    @app.put("/settings/{key}", response_model=SettingOut, dependencies=guarded)
    def put_setting(key: str, body: SettingIn, service: MonitorService = Depends(_get_service)):
        endpoint = _MANAGED_SETTINGS.get(key)
        if endpoint is not None:
            raise HTTPException(status_code=422, detail=f"Setting '{key}' is managed by {endpoint}")
        service.store.save_setting(key, body.value)
        return SettingOut(key=key, value=body.value)


app = create_app()
