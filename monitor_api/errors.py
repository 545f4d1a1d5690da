"""Excepciones del core de monitoreo.

- DeviceError: fallo transitorio al leer el dispositivo (solo se emite como evento).
- StorageError: el backend de persistencia falló; se propaga al caller.
- ConfigurationError: umbral o conexión inválidos; se rechaza antes de tocar estado.
"""

from __future__ import annotations


class MonitorError(Exception):
    """Base de todas las excepciones del monitor."""


class DeviceError(MonitorError):
    """Fallo de red, timeout o respuesta no-2xx del dispositivo."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


class StorageError(MonitorError):
    """Fallo del store de series temporales."""

    def __init__(self, operation: str, cause: Exception):
        self.operation = operation
        self.cause = cause
        super().__init__(f"Storage operation '{operation}' failed: {type(cause).__name__}: {cause}")


class ConfigurationError(MonitorError, ValueError):
    """Configuración inválida (umbral, dirección, puerto, intervalo)."""
