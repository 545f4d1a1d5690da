"""Modelos de dominio inmutables del monitor."""

from .alert import Alert, Severity
from .reading import (
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

__all__ = [
    "Alert",
    "Severity",
    "Audio",
    "AudioState",
    "Environment",
    "Measurement",
    "Posture",
    "PostureState",
    "Radar",
    "Reading",
    "Respiration",
]
