"""Motor de alertas: umbrales + cooldown por condición.

Cooldown por ``key`` de condición (no por instancia): una alerta candidata se
SUPRIME (no se persiste ni se emite) si la misma key disparó hace
``cooldown`` o menos. El reloj de la key solo se reinicia con instancias
disparadas, independiente de las demás keys.

Sin escalado: una condición CRITICAL que persiste no re-alerta antes del
cooldown aunque llegue en cada lectura.

Efectos al disparar (nunca al suprimir):
1. Persistir la alerta (best effort: si el store falla se loguea y se sigue)
2. Actualizar el timestamp de cooldown de la key
3. Emitir el evento ``alert`` (sonido/vibración/notificación son de la UI)
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, replace
from typing import Optional, Protocol

from ..core.clock import Clock, now_ms
from ..core.domain.alert import Alert
from ..core.domain.reading import Reading
from ..core.events import EventBus, Handler
from ..errors import StorageError
from ..metrics import ALERTS_EVALUATED, STORAGE_ERRORS
from .alert_rules import evaluate_rules
from .thresholds import ThresholdManager

logger = logging.getLogger(__name__)

ALERT_EVENTS = ("alert",)


@dataclass(frozen=True)
class AlertEngineConfig:
    """Configuración del motor de alertas."""
    cooldown_seconds: float = 30.0

    @property
    def cooldown_ms(self) -> int:
        return int(self.cooldown_seconds * 1000)


class AlertSink(Protocol):
    def save_alert(self, alert: Alert) -> int:
        ...


class AlertEngine:
    """Evalúa Readings contra umbrales y emite alertas respetando cooldown."""

    def __init__(
        self,
        thresholds: ThresholdManager,
        store: Optional[AlertSink] = None,
        config: Optional[AlertEngineConfig] = None,
        *,
        clock: Clock = now_ms,
    ):
        self._thresholds = thresholds
        self._store = store
        self._config = config or AlertEngineConfig()
        self._clock = clock
        self._events = EventBus(ALERT_EVENTS)
        # key -> timestamp (ms) del último disparo
        self._last_triggered: dict[str, int] = {}

    @property
    def thresholds(self) -> ThresholdManager:
        return self._thresholds

    def on(self, event: str, handler: Handler) -> None:
        self._events.on(event, handler)

    def off(self, event: str, handler: Handler) -> None:
        self._events.off(event, handler)

    def should_trigger(self, key: str, now: Optional[int] = None) -> bool:
        """True si la key está fuera de su ventana de cooldown."""
        last = self._last_triggered.get(key)
        if last is None:
            return True
        now = self._clock() if now is None else now
        return now - last > self._config.cooldown_ms

    def reset_cooldowns(self) -> None:
        self._last_triggered.clear()

    async def check_reading(self, reading: Reading) -> list[Alert]:
        """Evalúa el Reading y dispara las alertas que no estén en cooldown.

        Returns:
            Las alertas efectivamente disparadas (persistidas y emitidas),
            en el orden fijo de evaluación de las reglas.
        """
        now = self._clock()
        triggered: list[Alert] = []

        for candidate in evaluate_rules(reading, self._thresholds):
            if not self.should_trigger(candidate.key, now):
                ALERTS_EVALUATED.labels(severity=candidate.severity.value, outcome="suppressed").inc()
                logger.debug("[ALERTS] Suppressed key=%s (cooldown)", candidate.key)
                continue

            alert = Alert(
                severity=candidate.severity,
                title=candidate.title,
                description=candidate.description,
                key=candidate.key,
                timestamp=now,
            )
            triggered.append(await self._trigger(alert))

        return triggered

    async def _trigger(self, alert: Alert) -> Alert:
        self._last_triggered[alert.key] = alert.timestamp
        ALERTS_EVALUATED.labels(severity=alert.severity.value, outcome="triggered").inc()

        if self._store is not None:
            try:
                alert_id = await asyncio.to_thread(self._store.save_alert, alert)
                alert = replace(alert, id=alert_id)
            except StorageError:
                # Best effort: la alerta se emite aunque no quede persistida.
                STORAGE_ERRORS.labels(operation="save_alert").inc()
                logger.exception("[ALERTS] Failed to persist alert key=%s", alert.key)

        logger.warning("[ALERTS] %s: %s (%s)", alert.severity.value, alert.title, alert.key)
        await self._events.emit("alert", alert)
        return alert
