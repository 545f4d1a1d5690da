"""Persistencia durable de lecturas, alertas y settings."""

from .schema import ensure_schema
from .time_series_store import StoreConfig, TimeSeriesStore

__all__ = ["ensure_schema", "StoreConfig", "TimeSeriesStore"]
