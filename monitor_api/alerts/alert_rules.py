"""Reglas de negocio para el pipeline de ALERTAS.

Cada regla es independiente; varias pueden disparar para un mismo Reading.
Regla estricta: solo desigualdad estricta contra el umbral (un valor igual
al límite NO alerta). Una medida ``None`` o un límite no configurado saltan
la regla, nunca se tratan como fallo.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional

from ..core.domain.alert import Severity
from ..core.domain.reading import AudioState, PostureState, Reading
from .thresholds import ThresholdManager


@dataclass(frozen=True)
class AlertCandidate:
    """Condición cumplida, antes de aplicar cooldown."""
    key: str
    severity: Severity
    title: str
    description: str


@dataclass(frozen=True)
class ThresholdRule:
    key: str
    severity: Severity
    sensor: str
    bound: str  # "min" | "max"
    title: str
    description: str  # format con {value} y {limit}
    extract: Callable[[Reading], Optional[float]]

    def evaluate(self, reading: Reading, thresholds: ThresholdManager) -> Optional[AlertCandidate]:
        value = self.extract(reading)
        if value is None:
            return None

        threshold = thresholds.get(self.sensor)
        limit = threshold.min if self.bound == "min" else threshold.max
        if limit is None:
            return None

        crossed = value < limit if self.bound == "min" else value > limit
        if not crossed:
            return None

        return AlertCandidate(
            key=self.key,
            severity=self.severity,
            title=self.title,
            description=self.description.format(value=value, limit=limit),
        )


@dataclass(frozen=True)
class StateRule:
    key: str
    severity: Severity
    title: str
    description: str
    matches: Callable[[Reading], bool]

    def evaluate(self, reading: Reading, thresholds: ThresholdManager) -> Optional[AlertCandidate]:
        if not self.matches(reading):
            return None
        return AlertCandidate(
            key=self.key,
            severity=self.severity,
            title=self.title,
            description=self.description,
        )


ALERT_RULES = (
    ThresholdRule(
        key="respiration_low",
        severity=Severity.CRITICAL,
        sensor="respiration",
        bound="min",
        title="Apnea Detected (mmWave)",
        description="Respiration rate below {limit} rpm. Current: {value} rpm",
        extract=lambda r: r.respiration.value,
    ),
    ThresholdRule(
        key="respiration_high",
        severity=Severity.WARNING,
        sensor="respiration",
        bound="max",
        title="High Respiration Rate",
        description="Respiration rate elevated at {value} rpm",
        extract=lambda r: r.respiration.value,
    ),
    ThresholdRule(
        key="co2_high",
        severity=Severity.WARNING,
        sensor="co2",
        bound="max",
        title="High CO₂ (MH-Z19C)",
        description="Carbon dioxide levels exceeded {limit} ppm. Current: {value} ppm",
        extract=lambda r: r.environment.co2.value,
    ),
    ThresholdRule(
        key="temp_low",
        severity=Severity.WARNING,
        sensor="bodyTemp",
        bound="min",
        title="Low Body Temperature",
        description="Body temperature below normal at {value}°C",
        extract=lambda r: r.body_temp.value,
    ),
    ThresholdRule(
        key="temp_high",
        severity=Severity.CRITICAL,
        sensor="bodyTemp",
        bound="max",
        title="High Body Temperature",
        description="Fever detected at {value}°C",
        extract=lambda r: r.body_temp.value,
    ),
    StateRule(
        key="posture_prone",
        severity=Severity.WARNING,
        title="Prone Position (Camera)",
        description="Infant rolled onto stomach detected by vision system.",
        matches=lambda r: r.posture.state is PostureState.PRONE,
    ),
    ThresholdRule(
        key="voc_high",
        severity=Severity.WARNING,
        sensor="voc",
        bound="max",
        title="High VOC Levels",
        description="Volatile organic compounds elevated at {value}",
        extract=lambda r: r.environment.voc.value,
    ),
    StateRule(
        key="gas_unsafe",
        severity=Severity.CRITICAL,
        title="Gas Safety Alert",
        description="Unsafe gas levels detected by MQ-135 sensor.",
        matches=lambda r: r.environment.gas_safe is False,
    ),
    StateRule(
        key="audio_choking",
        severity=Severity.CRITICAL,
        title="Choking Sound (MEMS)",
        description="Audio pattern matching choking detected.",
        matches=lambda r: r.audio.state is AudioState.CHOKING,
    ),
)


def evaluate_rules(reading: Reading, thresholds: ThresholdManager) -> list[AlertCandidate]:
    """Evalúa todas las reglas en orden fijo y devuelve las condiciones cumplidas."""
    candidates = []
    for rule in ALERT_RULES:
        candidate = rule.evaluate(reading, thresholds)
        if candidate is not None:
            candidates.append(candidate)
    return candidates
