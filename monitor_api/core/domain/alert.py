"""Modelo de dominio para alertas."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional


class Severity(str, Enum):
    WARNING = "WARNING"
    CRITICAL = "CRITICAL"


@dataclass(frozen=True)
class Alert:
    """Alerta disparada por el AlertEngine.

    ``key`` identifica la CONDICIÓN (p.ej. ``respiration_low``), no la
    instancia; es la clave de cooldown. ``id`` lo asigna el store al persistir.
    """
    severity: Severity
    title: str
    description: str
    key: str
    timestamp: int
    acknowledged: bool = False
    id: Optional[int] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "severity": self.severity.value,
            "title": self.title,
            "description": self.description,
            "key": self.key,
            "timestamp": self.timestamp,
            "acknowledged": self.acknowledged,
        }
