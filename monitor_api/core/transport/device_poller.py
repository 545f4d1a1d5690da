"""Poller HTTP del dispositivo de monitoreo.

Único productor de ``Reading``: consulta ``GET {scheme}://{host}:{port}/readings``
a intervalo fijo y emite eventos de ciclo de vida y de datos.

Máquina de estados (sin estado terminal, corre hasta ``stop()``):
- Disconnected → Connected: primer fetch OK tras start o tras racha de errores
  → ``connected``
- Connected → Connected: cada fetch OK → ``data``
- Connected → Disconnected: primer fallo estando conectado → ``disconnected``
- Todo fallo → ``error`` con ``retry_count`` acumulado (vuelve a 0 al primer OK)

GARANTÍAS:
- Una sola task de loop por instancia; un único sleep pendiente por ciclo.
- Timeout por request: cancela la llamada en vuelo y cuenta como fallo.
- ``reconfigure()`` cancela el request en vuelo y descarta resultados de la
  configuración anterior (contador de generación).
- ``stop()`` y ``reconfigure()`` no interrumpen la entrega de eventos: un
  poll que ya emite ``data`` termina antes de que el loop se detenga.
- Ningún fallo es fatal: el loop sigue hasta ``stop()``.

Uso:
    poller = DevicePoller(PollerConfig(host="192.168.4.1", port=80))
    poller.on("data", handle_reading)
    await poller.start()
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, replace
from typing import Any, Optional

import httpx
import orjson

from ...errors import ConfigurationError, DeviceError
from ..clock import Clock, now_ms
from ..domain.reading import Reading
from ..events import ConnectedEvent, DisconnectedEvent, ErrorEvent, EventBus, Handler
from ..validation.normalizer import normalize
from ...metrics import DEVICE_POLLS, POLLER_CONNECTED
from .poller_stats import PollerStats

logger = logging.getLogger(__name__)

POLLER_EVENTS = ("connected", "disconnected", "data", "error")


@dataclass(frozen=True)
class PollerConfig:
    """Configuración de conexión al dispositivo."""
    host: str = "192.168.4.1"
    port: int = 80
    interval_ms: int = 2000
    request_timeout_ms: int = 5000
    scheme: str = "http"

    @property
    def base_url(self) -> str:
        return f"{self.scheme}://{self.host}:{self.port}"

    @property
    def readings_url(self) -> str:
        return f"{self.base_url}/readings"

    def validate(self) -> None:
        if not isinstance(self.host, str) or not self.host.strip() or any(c in self.host for c in "/ "):
            raise ConfigurationError(f"Invalid device host: {self.host!r}")
        if isinstance(self.port, bool) or not isinstance(self.port, int) or not 0 < self.port < 65536:
            raise ConfigurationError(f"Invalid device port: {self.port!r}")
        if isinstance(self.interval_ms, bool) or not isinstance(self.interval_ms, int) or self.interval_ms <= 0:
            raise ConfigurationError(f"Invalid poll interval: {self.interval_ms!r}")
        if self.request_timeout_ms <= 0:
            raise ConfigurationError(f"Invalid request timeout: {self.request_timeout_ms!r}")
        if self.scheme not in ("http", "https"):
            raise ConfigurationError(f"Invalid scheme: {self.scheme!r}")

        # El host debe quedar como host de la URL: sin puerto, userinfo, query ni fragment.
        try:
            url = httpx.URL(self.readings_url)
        except httpx.InvalidURL as e:
            raise ConfigurationError(f"Invalid device host: {self.host!r} ({e})") from e
        if not url.host or url.userinfo or url.raw_path != b"/readings":
            raise ConfigurationError(f"Invalid device host: {self.host!r}")


class DevicePoller:
    """Loop de fetch con reintento a intervalo fijo contra el dispositivo."""

    def __init__(
        self,
        config: Optional[PollerConfig] = None,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Clock = now_ms,
    ):
        self._config = config or PollerConfig()
        self._config.validate()
        self._transport = transport
        self._clock = clock
        self._events = EventBus(POLLER_EVENTS)

        self._client: Optional[httpx.AsyncClient] = None
        self._task: Optional[asyncio.Task] = None
        self._lock = asyncio.Lock()
        self._running = False
        self._generation = 0
        # Task que está entregando los eventos de un poll ya completado
        self._handling: Optional[asyncio.Task] = None

        # Estado de sesión (propiedad exclusiva del poller)
        self._connected = False
        self._retry_count = 0
        self._last_reading: Optional[Reading] = None
        self._stats = PollerStats()

    # ------------------------------------------------------------------
    # Suscripción
    # ------------------------------------------------------------------

    def on(self, event: str, handler: Handler) -> None:
        self._events.on(event, handler)

    def off(self, event: str, handler: Handler) -> None:
        self._events.off(event, handler)

    # ------------------------------------------------------------------
    # Ciclo de vida
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Inicia el loop en background. Idempotente."""
        async with self._lock:
            await self._start_locked()

    async def stop(self) -> None:
        """Detiene el loop y cancela el request en vuelo."""
        async with self._lock:
            await self._stop_locked()

    async def reconfigure(
        self,
        host: Optional[str] = None,
        port: Optional[int] = None,
        interval_ms: Optional[int] = None,
    ) -> PollerConfig:
        """Aplica nueva dirección/puerto/intervalo y reinicia el loop.

        La configuración se valida antes de parar nada: una configuración
        inválida lanza ConfigurationError y el loop actual sigue intacto.
        """
        new_config = replace(
            self._config,
            host=self._config.host if host is None else host,
            port=self._config.port if port is None else port,
            interval_ms=self._config.interval_ms if interval_ms is None else interval_ms,
        )
        new_config.validate()

        async with self._lock:
            await self._stop_locked()
            self._config = new_config
            await self._start_locked()

        logger.info("[POLLER] Reconfigured url=%s interval_ms=%d", new_config.readings_url, new_config.interval_ms)
        return new_config

    def configure(self, config: PollerConfig) -> None:
        """Reemplaza la configuración de un poller detenido."""
        if self._running:
            raise RuntimeError("Poller is running; use reconfigure()")
        config.validate()
        self._config = config

    async def _start_locked(self) -> None:
        if self._running:
            return

        self._running = True
        self._generation += 1
        self._set_connected(False)
        self._retry_count = 0
        self._client = self._new_client()
        self._task = asyncio.create_task(
            self._run_loop(self._generation),
            name=f"device-poller-{self._generation}",
        )
        logger.info("[POLLER] Starting polling to %s", self._config.readings_url)

    async def _stop_locked(self) -> None:
        if not self._running and self._task is None:
            return

        self._running = False
        # Cualquier resultado en vuelo pasa a ser de una generación vieja.
        self._generation += 1

        task, self._task = self._task, None
        if task is not None and task is not asyncio.current_task():
            # Solo se cancela el fetch o el sleep; un poll que ya entrega
            # eventos termina y el loop sale por el cambio de generación.
            if self._handling is not task:
                task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
            except Exception:
                logger.exception("[POLLER] Poll loop ended with an error")

        client, self._client = self._client, None
        if client is not None:
            await client.aclose()

        self._set_connected(False)
        logger.info("[POLLER] Stopped. %s", self._stats)

    def _new_client(self) -> httpx.AsyncClient:
        timeout = httpx.Timeout(self._config.request_timeout_ms / 1000)
        return httpx.AsyncClient(transport=self._transport, timeout=timeout)

    async def _run_loop(self, generation: int) -> None:
        """Loop principal: un poll y un único sleep pendiente por ciclo."""
        while self._running and generation == self._generation:
            await self.poll_once(generation)
            if generation != self._generation:
                break
            await asyncio.sleep(self._config.interval_ms / 1000)

    # ------------------------------------------------------------------
    # Poll
    # ------------------------------------------------------------------

    async def poll_once(self, generation: Optional[int] = None) -> Optional[Reading]:
        """Ejecuta un único intento de fetch y emite los eventos que correspondan.

        Returns:
            El Reading obtenido, o None si el fetch falló o el resultado
            pertenece a una configuración ya reemplazada.
        """
        if generation is None:
            generation = self._generation

        self._stats.polls += 1
        client = self._client
        own_client = client is None
        if own_client:
            client = self._new_client()

        reading: Optional[Reading] = None
        error: Optional[DeviceError] = None
        try:
            reading = await self._fetch(client)
        except DeviceError as e:
            error = e
        finally:
            if own_client:
                await client.aclose()

        if generation != self._generation:
            self._discard(error or reading)
            return None

        self._handling = asyncio.current_task()
        try:
            if error is not None:
                await self._handle_error(error, generation)
                return None
            await self._handle_success(reading, generation)
            return reading
        finally:
            self._handling = None

    async def _fetch(self, client: httpx.AsyncClient) -> Reading:
        url = self._config.readings_url
        timeout_ms = self._config.request_timeout_ms

        try:
            response = await asyncio.wait_for(
                client.get(url, headers={"Accept": "application/json"}),
                timeout=timeout_ms / 1000,
            )
        except (asyncio.TimeoutError, httpx.TimeoutException):
            raise DeviceError(f"Request timed out after {timeout_ms} ms") from None
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise DeviceError(str(e) or type(e).__name__) from e
        except Exception as e:
            logger.exception("[POLLER] Unexpected transport failure url=%s", url)
            raise DeviceError(f"{type(e).__name__}: {e}") from e

        if not response.is_success:
            raise DeviceError(f"HTTP {response.status_code}", status_code=response.status_code)

        try:
            data: Any = orjson.loads(response.content)
        except orjson.JSONDecodeError as e:
            raise DeviceError(f"Invalid JSON: {e}") from e

        return normalize(data, now_ms=self._clock())

    async def _handle_success(self, reading: Reading, generation: int) -> None:
        self._stats.succeeded += 1
        self._stats.last_success_at = self._clock()
        DEVICE_POLLS.labels(status="success").inc()

        if not self._connected:
            self._set_connected(True)
            self._retry_count = 0
            logger.info("[POLLER] Connected to device %s", self._config.host)
            await self._events.emit("connected", ConnectedEvent(address=self._config.host))
            if generation != self._generation:
                return

        self._retry_count = 0
        self._last_reading = reading
        await self._events.emit("data", reading)

    async def _handle_error(self, error: DeviceError, generation: int) -> None:
        message = str(error)
        self._retry_count += 1
        self._stats.failed += 1
        self._stats.last_error = message
        DEVICE_POLLS.labels(status="failed").inc()

        logger.warning(
            "[POLLER] Poll failed url=%s err=%s retries=%d",
            self._config.readings_url, message, self._retry_count,
        )

        if self._connected:
            self._set_connected(False)
            self._last_reading = None
            logger.info("[POLLER] Disconnected from device %s", self._config.host)
            await self._events.emit("disconnected", DisconnectedEvent(error=message))
            if generation != self._generation:
                return

        await self._events.emit("error", ErrorEvent(message=message, retry_count=self._retry_count))

    def _discard(self, result: Any) -> None:
        self._stats.discarded += 1
        DEVICE_POLLS.labels(status="discarded").inc()
        logger.debug("[POLLER] Discarded stale poll result %r", type(result).__name__)

    def _set_connected(self, connected: bool) -> None:
        self._connected = connected
        POLLER_CONNECTED.set(1 if connected else 0)

    # ------------------------------------------------------------------
    # Estado
    # ------------------------------------------------------------------

    @property
    def config(self) -> PollerConfig:
        return self._config

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def is_connected(self) -> bool:
        return self._connected

    @property
    def retry_count(self) -> int:
        return self._retry_count

    @property
    def last_reading(self) -> Optional[Reading]:
        return self._last_reading

    def status(self) -> dict:
        return {
            "running": self._running,
            "connected": self._connected,
            "address": self._config.host,
            "port": self._config.port,
            "interval_ms": self._config.interval_ms,
            "url": self._config.readings_url,
            "retry_count": self._retry_count,
            "last_reading": self._last_reading.to_dict() if self._last_reading else None,
            "stats": self._stats.to_dict(),
        }
