from .aggregator import (
    SENSOR_FIELDS,
    TIME_RANGES_HOURS,
    ChartData,
    ChartStats,
    TrendAggregator,
    TrendsConfig,
    calculate_stats,
    downsample,
)

__all__ = [
    "SENSOR_FIELDS",
    "TIME_RANGES_HOURS",
    "ChartData",
    "ChartStats",
    "TrendAggregator",
    "TrendsConfig",
    "calculate_stats",
    "downsample",
]
