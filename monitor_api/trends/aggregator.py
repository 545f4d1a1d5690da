"""Agregador de tendencias para gráficos.

Lee del store bajo demanda, extrae la serie de un sensor y calcula
estadísticas. Resultado cacheado por (sensor, rango) durante un TTL fijo:
dentro del TTL se devuelve EL MISMO objeto aunque haya datos nuevos
(staleness acotada a cambio de costo de lectura).
"""

from __future__ import annotations

import logging
import math
import threading
from dataclasses import dataclass, field, replace
from statistics import mean
from typing import Any, Iterable, Mapping, Optional, Protocol, Sequence

from ..core.clock import Clock, now_ms

logger = logging.getLogger(__name__)

_HOUR_MS = 60 * 60 * 1000

TIME_RANGES_HOURS: dict[str, int] = {
    "1h": 1,
    "24h": 24,
    "7d": 24 * 7,
    "1m": 24 * 30,
}

# Ruta fija del valor dentro del Reading canónico, por sensor
SENSOR_FIELDS: dict[str, tuple[str, ...]] = {
    "respiration": ("respiration", "value"),
    "bodyTemp": ("bodyTemp", "value"),
    "co2": ("environment", "co2", "value"),
    "voc": ("environment", "voc", "value"),
    "envTemp": ("environment", "temp", "value"),
    "audioLevel": ("audio", "level"),
    "movement": ("radar", "movement"),
}


@dataclass(frozen=True)
class TrendsConfig:
    """Configuración del agregador."""
    cache_ttl_seconds: float = 60.0


@dataclass(frozen=True)
class ChartStats:
    min: Optional[float]
    max: Optional[float]
    avg: Optional[float]
    count: int

    def to_dict(self) -> dict:
        return {"min": self.min, "max": self.max, "avg": self.avg, "count": self.count}


EMPTY_STATS = ChartStats(min=None, max=None, avg=None, count=0)


@dataclass(frozen=True)
class ChartData:
    """Serie de un sensor lista para graficar."""
    sensor: str
    time_range: str
    values: tuple[float, ...] = ()
    timestamps: tuple[int, ...] = ()
    stats: ChartStats = EMPTY_STATS
    computed_at: int = 0
    downsampled: bool = field(default=False, compare=False)

    @property
    def is_empty(self) -> bool:
        return not self.values

    @property
    def points(self) -> list[dict]:
        return [{"x": ts, "y": v} for ts, v in zip(self.timestamps, self.values)]

    def to_dict(self) -> dict[str, Any]:
        return {
            "sensor": self.sensor,
            "timeRange": self.time_range,
            "values": list(self.values),
            "timestamps": list(self.timestamps),
            "points": self.points,
            "stats": self.stats.to_dict(),
            "isEmpty": self.is_empty,
        }


class ReadingSource(Protocol):
    def get_readings(self, start: int, end: int) -> list[dict]:
        ...


def extract_value(record: Mapping[str, Any], path: Sequence[str]) -> Optional[float]:
    """Sigue ``path`` dentro del registro; None si falta o no es numérico."""
    node: Any = record
    for name in path:
        if not isinstance(node, Mapping):
            return None
        node = node.get(name)
    if isinstance(node, bool) or not isinstance(node, (int, float)):
        return None
    value = float(node)
    return value if math.isfinite(value) else None


def calculate_stats(values: Sequence[float]) -> ChartStats:
    """min/max/avg redondeados a 2 decimales, sobre la serie COMPLETA."""
    if not values:
        return EMPTY_STATS
    return ChartStats(
        min=round(min(values), 2),
        max=round(max(values), 2),
        avg=round(mean(values), 2),
        count=len(values),
    )


def downsample_series(items: Sequence[Any], max_points: int) -> list[Any]:
    """Toma un elemento cada ``ceil(n/max_points)``, conservando el orden."""
    if max_points < 1:
        raise ValueError(f"max_points must be >= 1, got {max_points}")
    if len(items) <= max_points:
        return list(items)
    step = math.ceil(len(items) / max_points)
    return list(items[::step])


def downsample(data: ChartData, max_points: int = 100) -> ChartData:
    """Reduce puntos para display. NO es un resampler estadístico.

    ``stats`` se copia tal cual: siempre describe la serie completa.
    """
    if max_points < 1:
        raise ValueError(f"max_points must be >= 1, got {max_points}")
    if len(data.values) <= max_points:
        return data
    return replace(
        data,
        values=tuple(downsample_series(data.values, max_points)),
        timestamps=tuple(downsample_series(data.timestamps, max_points)),
        downsampled=True,
    )


class TrendAggregator:
    """Calcula ChartData por (sensor, rango) con cache TTL en memoria."""

    def __init__(
        self,
        store: ReadingSource,
        config: Optional[TrendsConfig] = None,
        *,
        clock: Clock = now_ms,
    ):
        self._store = store
        self._config = config or TrendsConfig()
        self._clock = clock
        # (sensor, rango) -> (computed_at_ms, ChartData)
        self._cache: dict[tuple[str, str], tuple[int, ChartData]] = {}
        self._lock = threading.Lock()

    @staticmethod
    def sensors() -> tuple[str, ...]:
        return tuple(SENSOR_FIELDS)

    @staticmethod
    def time_ranges() -> tuple[str, ...]:
        return tuple(TIME_RANGES_HOURS)

    def get_chart_data(self, sensor: str, time_range: str = "1h") -> ChartData:
        """Serie y estadísticas del sensor en ``[now - ventana, now]``.

        Raises:
            ValueError: sensor o rango desconocidos
            StorageError: el store falló (no se cachea nada)
        """
        path = SENSOR_FIELDS.get(sensor)
        if path is None:
            raise ValueError(f"Unknown sensor '{sensor}'. Expected one of: {', '.join(SENSOR_FIELDS)}")
        hours = TIME_RANGES_HOURS.get(time_range)
        if hours is None:
            raise ValueError(
                f"Unknown time range '{time_range}'. Expected one of: {', '.join(TIME_RANGES_HOURS)}"
            )

        key = (sensor, time_range)
        now = self._clock()
        ttl_ms = int(self._config.cache_ttl_seconds * 1000)

        with self._lock:
            cached = self._cache.get(key)
            if cached is not None and now - cached[0] < ttl_ms:
                return cached[1]

        readings = self._store.get_readings(now - hours * _HOUR_MS, now)
        data = self._build(sensor, time_range, path, readings, now)

        with self._lock:
            self._cache[key] = (now, data)

        logger.debug(
            "[TRENDS] Computed sensor=%s range=%s readings=%d points=%d",
            sensor, time_range, len(readings), data.stats.count,
        )
        return data

    def clear_cache(self) -> None:
        with self._lock:
            self._cache.clear()

    @staticmethod
    def _build(
        sensor: str,
        time_range: str,
        path: Sequence[str],
        readings: Iterable[Mapping[str, Any]],
        now: int,
    ) -> ChartData:
        values: list[float] = []
        timestamps: list[int] = []
        for record in readings:
            value = extract_value(record, path)
            if value is None:
                continue
            values.append(value)
            timestamps.append(int(record.get("timestamp", 0)))

        return ChartData(
            sensor=sensor,
            time_range=time_range,
            values=tuple(values),
            timestamps=tuple(timestamps),
            stats=calculate_stats(values),
            computed_at=now,
        )
