"""Módulo de alertas.

- thresholds.py: umbrales por sensor con persistencia en settings
- alert_rules.py: reglas declarativas (umbral y estado)
- alert_engine.py: evaluación + cooldown + emisión
"""

from .alert_engine import ALERT_EVENTS, AlertEngine, AlertEngineConfig
from .alert_rules import ALERT_RULES, AlertCandidate, evaluate_rules
from .thresholds import DEFAULT_THRESHOLDS, Threshold, ThresholdManager

__all__ = [
    "ALERT_EVENTS",
    "AlertEngine",
    "AlertEngineConfig",
    "ALERT_RULES",
    "AlertCandidate",
    "evaluate_rules",
    "DEFAULT_THRESHOLDS",
    "Threshold",
    "ThresholdManager",
]
