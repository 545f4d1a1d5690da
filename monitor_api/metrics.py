"""Métricas Prometheus del monitor."""

from __future__ import annotations

from prometheus_client import Counter, Gauge

DEVICE_POLLS = Counter(
    "monitor_device_polls_total",
    "Total device polls",
    ["status"],  # success, failed, discarded
)
POLLER_CONNECTED = Gauge(
    "monitor_poller_connected",
    "1 while the poller is in the Connected state",
)
READINGS_STORED = Counter(
    "monitor_readings_stored_total",
    "Readings persisted to the time-series store",
)
ALERTS_EVALUATED = Counter(
    "monitor_alerts_total",
    "Alert candidates by severity and outcome",
    ["severity", "outcome"],  # triggered, suppressed
)
STORAGE_ERRORS = Counter(
    "monitor_storage_errors_total",
    "Storage failures on the poll path",
    ["operation"],
)
