"""Gestión de umbrales para el AlertEngine.

- Defaults de fábrica por sensor
- Carga desde el setting persistido ``thresholds`` (mezclado sobre defaults)
- Actualización validada de min/max por separado, persistida en cada cambio

REGLA: una actualización inválida nunca toca el objeto en memoria. Se valida
y persiste una copia; solo si todo sale bien se reemplaza.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Any, Mapping, Optional, Protocol

from ..core.validation.normalizer import safe_float
from ..errors import ConfigurationError

logger = logging.getLogger(__name__)

SETTINGS_KEY = "thresholds"

_UNSET: Any = object()


@dataclass(frozen=True)
class Threshold:
    """Límites de un sensor en sus unidades nativas. ``None`` = sin límite."""
    min: Optional[float] = None
    max: Optional[float] = None

    def to_dict(self) -> dict:
        data = {}
        if self.min is not None:
            data["min"] = self.min
        if self.max is not None:
            data["max"] = self.max
        return data


DEFAULT_THRESHOLDS: dict[str, Threshold] = {
    "respiration": Threshold(min=20.0, max=60.0),
    "co2": Threshold(max=1000.0),
    "bodyTemp": Threshold(min=36.0, max=38.0),
    "voc": Threshold(max=1.0),
}


class SettingsStore(Protocol):
    """Parte del store que usa el ThresholdManager."""

    def get_setting(self, key: str, default: Any = None) -> Any:
        ...

    def save_setting(self, key: str, value: Any) -> None:
        ...


def _bound(sensor: str, name: str, value: Any) -> Optional[float]:
    if value is None:
        return None
    number = safe_float(value) if not isinstance(value, str) else None
    if number is None:
        raise ConfigurationError(f"Threshold {sensor}.{name} must be a finite number, got {value!r}")
    return number


def _validated(sensor: str, threshold: Threshold) -> Threshold:
    if threshold.min is not None and threshold.max is not None and threshold.min > threshold.max:
        raise ConfigurationError(
            f"Threshold {sensor}: min ({threshold.min}) is greater than max ({threshold.max})"
        )
    return threshold


class ThresholdManager:
    """Umbrales vivos del AlertEngine con persistencia en settings."""

    def __init__(self, store: Optional[SettingsStore] = None):
        self._store = store
        self._thresholds: dict[str, Threshold] = dict(DEFAULT_THRESHOLDS)

    @property
    def sensors(self) -> tuple[str, ...]:
        return tuple(self._thresholds)

    def get(self, sensor: str) -> Threshold:
        return self._thresholds.get(sensor, Threshold())

    def as_dict(self) -> dict[str, dict]:
        return {sensor: th.to_dict() for sensor, th in self._thresholds.items()}

    def load(self) -> dict[str, dict]:
        """Carga el setting persistido sobre los defaults.

        Entradas malformadas se ignoran (con warning) y conservan el default;
        los errores del store se propagan.
        """
        if self._store is None:
            return self.as_dict()

        saved = self._store.get_setting(SETTINGS_KEY)
        if not saved:
            return self.as_dict()
        if not isinstance(saved, Mapping):
            logger.warning("[THRESHOLDS] Ignoring persisted thresholds of type %s", type(saved).__name__)
            return self.as_dict()

        merged = dict(self._thresholds)
        for sensor, raw in saved.items():
            if sensor not in DEFAULT_THRESHOLDS or not isinstance(raw, Mapping):
                logger.warning("[THRESHOLDS] Ignoring persisted entry sensor=%s", sensor)
                continue
            try:
                merged[sensor] = _validated(sensor, Threshold(
                    min=_bound(sensor, "min", raw.get("min")),
                    max=_bound(sensor, "max", raw.get("max")),
                ))
            except ConfigurationError as e:
                logger.warning("[THRESHOLDS] Ignoring persisted entry: %s", e)

        self._thresholds = merged
        logger.info("[THRESHOLDS] Loaded %s", self.as_dict())
        return self.as_dict()

    def set_threshold(self, sensor: str, *, min: Any = _UNSET, max: Any = _UNSET) -> Threshold:
        """Actualiza min y/o max de un sensor; lo omitido conserva su valor.

        Pasar ``None`` elimina ese límite.

        Raises:
            ConfigurationError: sensor desconocido, valor no numérico o min > max
            StorageError: no se pudo persistir (el estado en memoria no cambia)
        """
        if sensor not in DEFAULT_THRESHOLDS:
            raise ConfigurationError(
                f"Unknown threshold sensor '{sensor}'. Expected one of: {', '.join(DEFAULT_THRESHOLDS)}"
            )

        current = self.get(sensor)
        updated = current
        if min is not _UNSET:
            updated = replace(updated, min=_bound(sensor, "min", min))
        if max is not _UNSET:
            updated = replace(updated, max=_bound(sensor, "max", max))
        _validated(sensor, updated)

        candidate = dict(self._thresholds)
        candidate[sensor] = updated

        if self._store is not None:
            self._store.save_setting(
                SETTINGS_KEY, {name: th.to_dict() for name, th in candidate.items()}
            )

        self._thresholds = candidate
        logger.info("[THRESHOLDS] Updated %s -> %s", sensor, updated.to_dict())
        return updated
