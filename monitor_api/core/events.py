"""Registro explícito de observadores por componente.

Cada componente (poller, alert engine) crea su propio ``EventBus`` con el
conjunto cerrado de eventos que emite. No hay dispatch global.

Uso:
    bus = EventBus(("connected", "data"))
    bus.on("data", handler)          # handler sync o async
    await bus.emit("data", reading)
"""

from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Iterable, Union

logger = logging.getLogger(__name__)

Handler = Callable[[Any], Union[None, Awaitable[None]]]


@dataclass(frozen=True)
class ConnectedEvent:
    address: str


@dataclass(frozen=True)
class DisconnectedEvent:
    error: str


@dataclass(frozen=True)
class ErrorEvent:
    message: str
    retry_count: int


class EventBus:
    """Publish/subscribe en memoria con canales tipados por nombre."""

    def __init__(self, event_names: Iterable[str]):
        self._handlers: dict[str, list[Handler]] = {name: [] for name in event_names}

    @property
    def event_names(self) -> tuple[str, ...]:
        return tuple(self._handlers)

    def on(self, event: str, handler: Handler) -> None:
        self._channel(event).append(handler)

    def off(self, event: str, handler: Handler) -> None:
        channel = self._channel(event)
        self._handlers[event] = [h for h in channel if h != handler]

    def listener_count(self, event: str) -> int:
        return len(self._channel(event))

    async def emit(self, event: str, payload: Any) -> None:
        """Entrega ``payload`` a cada handler, en orden de registro.

        Un handler que falla se loguea y no impide la entrega al resto.
        Los handlers async se esperan antes de pasar al siguiente.
        """
        for handler in list(self._channel(event)):
            try:
                result = handler(payload)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("[EVENTS] Handler failed event=%s handler=%r", event, handler)

    def _channel(self, event: str) -> list[Handler]:
        try:
            return self._handlers[event]
        except KeyError:
            raise ValueError(
                f"Unknown event '{event}'. Expected one of: {', '.join(self._handlers)}"
            ) from None
