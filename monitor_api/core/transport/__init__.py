"""Transporte HTTP hacia el dispositivo (polling)."""

from .device_poller import POLLER_EVENTS, DevicePoller, PollerConfig
from .poller_stats import PollerStats

__all__ = ["POLLER_EVENTS", "DevicePoller", "PollerConfig", "PollerStats"]
