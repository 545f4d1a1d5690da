"""Normalizador de payloads del dispositivo.

Traduce el JSON nativo del dispositivo (snake_case, medidas como
``{value, unit}`` o como número suelto) al ``Reading`` canónico.

GARANTÍAS:
- Nunca lanza excepción: cualquier campo ausente, malformado o de tipo
  incorrecto degrada a su default documentado.
- Los campos numéricos son floats finitos o ``None``.
- Estados desconocidos → ``unknown``; gas desconocido → seguro.
"""

from __future__ import annotations

import logging
import math
from datetime import datetime
from typing import Any, Mapping, Optional

from ..clock import now_ms as _clock_now_ms
from ..domain.reading import (
    Audio,
    AudioState,
    Environment,
    Measurement,
    Posture,
    PostureState,
    Radar,
    Reading,
    Respiration,
)

logger = logging.getLogger(__name__)

# 9999-12-31T23:59:59.999Z; por encima no es un epoch-ms representable.
MAX_TIMESTAMP_MS = 253_402_300_799_999


def safe_float(value: Any, default: Optional[float] = None) -> Optional[float]:
    """Convierte a float finito; bool, NaN, inf y basura devuelven ``default``."""
    if isinstance(value, bool) or value is None:
        return default
    if not isinstance(value, (int, float, str)):
        return default
    try:
        number = float(value.strip() if isinstance(value, str) else value)
    except (ValueError, OverflowError):
        return default
    if not math.isfinite(number):
        return default
    return number


def _section(data: Mapping[str, Any], *names: str) -> Any:
    """Primer campo presente entre ``names`` (nombre nativo primero)."""
    for name in names:
        if name in data and data[name] is not None:
            return data[name]
    return None


def _as_mapping(value: Any) -> Mapping[str, Any]:
    return value if isinstance(value, Mapping) else {}


def _unit(raw: Any, default: Optional[str]) -> Optional[str]:
    if isinstance(raw, Mapping):
        unit = raw.get("unit")
        if isinstance(unit, str) and unit.strip():
            return unit.strip()
    return default


def _measure_value(raw: Any) -> Optional[float]:
    # {value, unit} o número suelto
    if isinstance(raw, Mapping):
        return safe_float(raw.get("value"))
    return safe_float(raw)


def _measurement(raw: Any, default_unit: Optional[str]) -> Measurement:
    return Measurement(value=_measure_value(raw), unit=_unit(raw, default_unit))


def _confidence(raw: Any) -> float:
    value = safe_float(_as_mapping(raw).get("confidence"), 1.0)
    return min(1.0, max(0.0, value))


def _enum_state(raw: Any, enum_cls, default):
    state = _as_mapping(raw).get("state") if isinstance(raw, Mapping) else raw
    if isinstance(state, str):
        try:
            return enum_cls(state.strip().lower())
        except ValueError:
            return default
    return default


def _timestamp(raw: Any, fallback_ms: int) -> int:
    number = safe_float(raw)
    if number is None and isinstance(raw, str):
        try:
            dt = datetime.fromisoformat(raw.strip().replace("Z", "+00:00"))
            number = dt.timestamp() * 1000
        except (ValueError, OverflowError):
            return fallback_ms
    if number is None or not 0 < number <= MAX_TIMESTAMP_MS:
        return fallback_ms
    return int(number)


def _respiration(raw: Any) -> Respiration:
    return Respiration(
        value=_measure_value(raw),
        unit=_unit(raw, "rpm"),
        confidence=_confidence(raw),
    )


def _audio(raw: Any) -> Audio:
    level = safe_float(_as_mapping(raw).get("level"), 0.0)
    return Audio(
        state=_enum_state(raw, AudioState, AudioState.UNKNOWN),
        level=level if level >= 0 else 0.0,
    )


def _posture(raw: Any) -> Posture:
    return Posture(
        state=_enum_state(raw, PostureState, PostureState.UNKNOWN),
        confidence=_confidence(raw),
    )


def _radar(raw: Any) -> Radar:
    data = _as_mapping(raw)
    active = data.get("active")
    return Radar(
        active=active if isinstance(active, bool) else False,
        movement=safe_float(data.get("movement"), 0.0),
    )


def _gas_safe(raw: Any) -> bool:
    if isinstance(raw, bool):
        return raw
    if isinstance(raw, Mapping) and isinstance(raw.get("safe"), bool):
        return raw["safe"]
    return True


def _environment(raw: Any) -> Environment:
    data = _as_mapping(raw)
    return Environment(
        temp=_measurement(data.get("temp"), "C"),
        co2=_measurement(data.get("co2"), "ppm"),
        voc=_measurement(data.get("voc"), None),
        gas_safe=_gas_safe(data.get("gas")),
    )


def normalize(raw_payload: Any, now_ms: Optional[int] = None) -> Reading:
    """Convierte un payload arbitrario del dispositivo en un ``Reading``.

    Args:
        raw_payload: JSON decodificado (normalmente dict; cualquier otra cosa
            produce una lectura con todos los defaults)
        now_ms: Timestamp a usar si el payload no trae uno válido

    Returns:
        Reading canónico, sin campos indefinidos
    """
    fallback_ms = now_ms if now_ms is not None else _clock_now_ms()

    if not isinstance(raw_payload, Mapping):
        logger.debug("[NORMALIZER] Non-object payload type=%s", type(raw_payload).__name__)
        raw_payload = {}

    return Reading(
        timestamp=_timestamp(raw_payload.get("timestamp"), fallback_ms),
        respiration=_respiration(_section(raw_payload, "respiration")),
        audio=_audio(_section(raw_payload, "audio")),
        body_temp=_measurement(_section(raw_payload, "body_temp", "bodyTemp"), "C"),
        posture=_posture(_section(raw_payload, "posture")),
        radar=_radar(_section(raw_payload, "radar")),
        environment=_environment(_section(raw_payload, "environment")),
    )
