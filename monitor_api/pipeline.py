"""Pipeline del monitor: Poller → Normalizer → [Store, AlertEngine].

Servicio explícito (sin singletons globales) que construye y conecta los
componentes, y es dueño de su ciclo de vida.

Orden garantizado: cada Reading se persiste y luego se evalúa ANTES de que
el poller arme el siguiente ciclo, así Store y AlertEngine lo reciben en el
mismo orden en que el poller lo observó.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, replace
from typing import Optional

import httpx
from sqlalchemy.engine import Engine

from common.config import Settings, get_settings
from common.db import get_engine

from .alerts.alert_engine import AlertEngine, AlertEngineConfig
from .alerts.thresholds import ThresholdManager
from .core.clock import Clock, now_ms
from .core.domain.reading import Reading
from .core.events import ConnectedEvent, DisconnectedEvent, ErrorEvent
from .core.transport.device_poller import DevicePoller, PollerConfig
from .errors import ConfigurationError, StorageError
from .metrics import READINGS_STORED, STORAGE_ERRORS
from .storage.time_series_store import StoreConfig, TimeSeriesStore
from .trends.aggregator import TrendAggregator, TrendsConfig

logger = logging.getLogger(__name__)

# Keys de settings persistidos que consume/produce este core
ADDRESS_KEY = "piAddress"
PORT_KEY = "piPort"
INTERVAL_KEY = "pollInterval"


def _as_int(value, default: int) -> int:
    # Versiones anteriores guardaban puerto e intervalo como texto.
    if value is None or isinstance(value, bool):
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


@dataclass
class MonitorService:
    """Contenedor de los servicios del monitor, con dueño explícito."""

    store: TimeSeriesStore
    thresholds: ThresholdManager
    alert_engine: AlertEngine
    poller: DevicePoller
    trends: TrendAggregator

    def __post_init__(self) -> None:
        self.poller.on("connected", self._on_connected)
        self.poller.on("disconnected", self._on_disconnected)
        self.poller.on("error", self._on_error)
        self.poller.on("data", self._on_reading)

    @classmethod
    def from_settings(
        cls,
        settings: Optional[Settings] = None,
        *,
        engine: Optional[Engine] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Clock = now_ms,
    ) -> "MonitorService":
        settings = settings or get_settings()
        engine = engine or get_engine(settings.db_url)

        store = TimeSeriesStore(
            engine,
            StoreConfig(max_readings=settings.max_readings, max_alerts=settings.max_alerts),
            clock=clock,
        )
        thresholds = ThresholdManager(store)
        alert_engine = AlertEngine(
            thresholds,
            store,
            AlertEngineConfig(cooldown_seconds=settings.alert_cooldown_seconds),
            clock=clock,
        )
        poller = DevicePoller(
            PollerConfig(
                host=settings.device_host,
                port=settings.device_port,
                interval_ms=settings.poll_interval_ms,
                request_timeout_ms=settings.request_timeout_ms,
                scheme=settings.device_scheme,
            ),
            transport=transport,
            clock=clock,
        )
        trends = TrendAggregator(
            store,
            TrendsConfig(cache_ttl_seconds=settings.trends_cache_ttl_seconds),
            clock=clock,
        )
        return cls(
            store=store,
            thresholds=thresholds,
            alert_engine=alert_engine,
            poller=poller,
            trends=trends,
        )

    # ------------------------------------------------------------------
    # Ciclo de vida
    # ------------------------------------------------------------------

    async def start(self, *, poll: bool = True) -> None:
        """Carga configuración persistida y arranca el poller."""
        await asyncio.to_thread(self.thresholds.load)
        await self._apply_persisted_connection()
        if poll:
            await self.poller.start()
        logger.info("[PIPELINE] Started poll=%s", poll)

    async def stop(self) -> None:
        await self.poller.stop()
        logger.info("[PIPELINE] Stopped")

    async def _apply_persisted_connection(self) -> None:
        settings = await asyncio.to_thread(self.store.get_all_settings)
        config = self.poller.config
        candidate = replace(
            config,
            host=settings.get(ADDRESS_KEY, config.host),
            port=_as_int(settings.get(PORT_KEY), config.port),
            interval_ms=_as_int(settings.get(INTERVAL_KEY), config.interval_ms),
        )
        if candidate == config:
            return
        try:
            self.poller.configure(candidate)
        except ConfigurationError as e:
            logger.warning("[PIPELINE] Ignoring persisted connection settings: %s", e)
            return
        logger.info("[PIPELINE] Using persisted connection %s", candidate.readings_url)

    async def reconfigure_device(
        self,
        host: Optional[str] = None,
        port: Optional[int] = None,
        interval_ms: Optional[int] = None,
    ) -> PollerConfig:
        """Reinicia el poller con nueva conexión y la persiste.

        Raises:
            ConfigurationError: la configuración es inválida (nada cambia)
            StorageError: no se pudo persistir
        """
        config = await self.poller.reconfigure(host=host, port=port, interval_ms=interval_ms)
        await asyncio.to_thread(self._persist_connection, config)
        return config

    def _persist_connection(self, config: PollerConfig) -> None:
        self.store.save_setting(ADDRESS_KEY, config.host)
        self.store.save_setting(PORT_KEY, config.port)
        self.store.save_setting(INTERVAL_KEY, config.interval_ms)

    # ------------------------------------------------------------------
    # Handlers del poller
    # ------------------------------------------------------------------

    async def _on_reading(self, reading: Reading) -> None:
        try:
            await asyncio.to_thread(self.store.save_reading, reading)
            READINGS_STORED.inc()
        except StorageError:
            # Best effort: la evaluación de alertas no depende de persistir.
            STORAGE_ERRORS.labels(operation="save_reading").inc()
            logger.exception("[PIPELINE] Failed to save reading ts=%s", reading.timestamp)
        except Exception:
            STORAGE_ERRORS.labels(operation="save_reading").inc()
            logger.exception("[PIPELINE] Unexpected error saving reading ts=%s", reading.timestamp)

        await self.alert_engine.check_reading(reading)

    def _on_connected(self, event: ConnectedEvent) -> None:
        logger.info("[PIPELINE] Connected to device at %s", event.address)

    def _on_disconnected(self, event: DisconnectedEvent) -> None:
        logger.warning("[PIPELINE] Disconnected from device: %s", event.error)

    def _on_error(self, event: ErrorEvent) -> None:
        logger.debug("[PIPELINE] Connection error: %s (retries=%d)", event.message, event.retry_count)

    # ------------------------------------------------------------------
    # Estado
    # ------------------------------------------------------------------

    def status(self) -> dict:
        return {
            "poller": self.poller.status(),
            "thresholds": self.thresholds.as_dict(),
        }
