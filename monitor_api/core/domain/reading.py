"""Modelo de dominio para lecturas del monitor."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


class AudioState(str, Enum):
    """Clasificación de audio reportada por el dispositivo."""
    QUIET = "quiet"
    CRYING = "crying"
    BABBLING = "babbling"
    CHOKING = "choking"
    UNKNOWN = "unknown"


class PostureState(str, Enum):
    """Postura detectada por la cámara."""
    SUPINE = "supine"
    SIDE = "side"
    PRONE = "prone"
    SITTING = "sitting"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class Measurement:
    value: Optional[float] = None
    unit: Optional[str] = None

    def to_dict(self) -> dict:
        return {"value": self.value, "unit": self.unit}


@dataclass(frozen=True)
class Respiration:
    value: Optional[float] = None
    unit: str = "rpm"
    confidence: float = 1.0

    def to_dict(self) -> dict:
        return {"value": self.value, "unit": self.unit, "confidence": self.confidence}


@dataclass(frozen=True)
class Audio:
    state: AudioState = AudioState.UNKNOWN
    level: float = 0.0

    def to_dict(self) -> dict:
        return {"state": self.state.value, "level": self.level}


@dataclass(frozen=True)
class Posture:
    state: PostureState = PostureState.UNKNOWN
    confidence: float = 1.0

    def to_dict(self) -> dict:
        return {"state": self.state.value, "confidence": self.confidence}


@dataclass(frozen=True)
class Radar:
    active: bool = False
    movement: float = 0.0

    def to_dict(self) -> dict:
        return {"active": self.active, "movement": self.movement}


@dataclass(frozen=True)
class Environment:
    temp: Measurement = field(default_factory=lambda: Measurement(unit="C"))
    co2: Measurement = field(default_factory=lambda: Measurement(unit="ppm"))
    voc: Measurement = field(default_factory=Measurement)
    gas_safe: bool = True

    def to_dict(self) -> dict:
        return {
            "temp": self.temp.to_dict(),
            "co2": self.co2.to_dict(),
            "voc": self.voc.to_dict(),
            "gas": {"safe": self.gas_safe},
        }


@dataclass(frozen=True)
class Reading:
    """Snapshot multi-sensor normalizado - modelo canónico de dominio.

    Es el único contrato que fluye por el pipeline:
    Poller → Normalizer → [Store, AlertEngine] → Trends

    Se construye solo a través de ``normalize()``; ningún campo queda sin
    valor (``None`` para medidas ausentes, ``unknown`` para estados).
    """
    timestamp: int
    respiration: Respiration = field(default_factory=Respiration)
    audio: Audio = field(default_factory=Audio)
    body_temp: Measurement = field(default_factory=lambda: Measurement(unit="C"))
    posture: Posture = field(default_factory=Posture)
    radar: Radar = field(default_factory=Radar)
    environment: Environment = field(default_factory=Environment)

    def to_dict(self) -> dict[str, Any]:
        """Forma JSON canónica (camelCase), la misma que persiste el store."""
        return {
            "timestamp": self.timestamp,
            "respiration": self.respiration.to_dict(),
            "audio": self.audio.to_dict(),
            "bodyTemp": self.body_temp.to_dict(),
            "posture": self.posture.to_dict(),
            "radar": self.radar.to_dict(),
            "environment": self.environment.to_dict(),
        }
