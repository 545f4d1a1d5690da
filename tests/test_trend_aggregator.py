"""Tests del agregador de tendencias (stats, cache TTL, downsample).

Ejecutar:
    pytest tests/test_trend_aggregator.py -v
"""

from unittest.mock import MagicMock

import pytest

from conftest import T0
from monitor_api.trends.aggregator import (
    EMPTY_STATS,
    ChartData,
    TrendAggregator,
    TrendsConfig,
    calculate_stats,
    downsample,
    downsample_series,
    extract_value,
)


def _co2(store, ts: int, value) -> None:
    store.save_reading({"timestamp": ts, "environment": {"co2": {"value": value, "unit": "ppm"}}})


@pytest.fixture
def aggregator(store, clock) -> TrendAggregator:
    return TrendAggregator(store, TrendsConfig(cache_ttl_seconds=60), clock=clock)


# =============================================================================
# FUNCIONES PURAS
# =============================================================================

class TestStats:

    def test_rounded_to_two_decimals(self):
        stats = calculate_stats([1.0, 2.0, 2.0])

        assert stats.min == 1.0
        assert stats.max == 2.0
        assert stats.avg == 1.67
        assert stats.count == 3

    def test_empty(self):
        assert calculate_stats([]) == EMPTY_STATS
        assert EMPTY_STATS.to_dict() == {"min": None, "max": None, "avg": None, "count": 0}

    @pytest.mark.parametrize("record,expected", [
        ({"environment": {"co2": {"value": 700}}}, 700.0),
        ({"environment": {"co2": {"value": None}}}, None),
        ({"environment": {"co2": {"value": True}}}, None),
        ({"environment": {}}, None),
        ({"environment": "broken"}, None),
    ])
    def test_extract_value(self, record, expected):
        assert extract_value(record, ("environment", "co2", "value")) == expected


class TestDownsample:

    def test_small_series_unchanged(self):
        data = ChartData(sensor="co2", time_range="1h", values=(1.0, 2.0), timestamps=(1, 2))
        assert downsample(data, 10) is data

    @pytest.mark.parametrize("n,max_points", [(250, 100), (101, 100), (1000, 7), (5, 1)])
    def test_never_exceeds_max_points(self, n, max_points):
        values = tuple(float(i) for i in range(n))
        data = ChartData(
            sensor="co2",
            time_range="1h",
            values=values,
            timestamps=tuple(range(n)),
            stats=calculate_stats(values),
        )

        reduced = downsample(data, max_points)

        assert len(reduced.values) <= max_points
        assert len(reduced.values) == len(reduced.timestamps)
        assert list(reduced.values) == sorted(reduced.values)
        assert reduced.values[0] == 0.0
        assert reduced.stats == data.stats
        assert reduced.downsampled is True

    def test_step_is_ceiling(self):
        assert downsample_series(list(range(10)), 4) == [0, 3, 6, 9]

    def test_invalid_max_points(self):
        with pytest.raises(ValueError):
            downsample(ChartData(sensor="co2", time_range="1h"), 0)


# =============================================================================
# AGREGADOR
# =============================================================================

class TestTrendAggregator:

    def test_chart_data_for_window(self, aggregator, store, clock):
        _co2(store, clock.now - 2 * 3_600_000, 2000)  # fuera de 1h
        _co2(store, clock.now - 30_000, 600)
        _co2(store, clock.now - 20_000, None)
        _co2(store, clock.now - 10_000, 900)

        data = aggregator.get_chart_data("co2", "1h")

        assert data.values == (600.0, 900.0)
        assert data.timestamps == (clock.now - 30_000, clock.now - 10_000)
        assert data.stats.avg == 750.0
        assert data.points == [{"x": clock.now - 30_000, "y": 600.0}, {"x": clock.now - 10_000, "y": 900.0}]
        assert not data.is_empty

    def test_wider_range_includes_older_readings(self, aggregator, store, clock):
        _co2(store, clock.now - 2 * 3_600_000, 2000)
        assert aggregator.get_chart_data("co2", "24h").values == (2000.0,)

    def test_empty_result(self, aggregator):
        data = aggregator.get_chart_data("bodyTemp", "7d")

        assert data.is_empty
        assert data.to_dict()["isEmpty"] is True
        assert data.stats == EMPTY_STATS

    def test_scenario_c_cache_hit_then_ttl_expiry(self, aggregator, store, clock):
        """Dos llamadas dentro de 10 s → mismo objeto; tras el TTL → recalcula."""
        _co2(store, clock.now - 1_000, 750)

        first = aggregator.get_chart_data("co2", "1h")
        clock.advance(10_000)
        _co2(store, clock.now, 1500)  # dato nuevo, pero dentro del TTL
        second = aggregator.get_chart_data("co2", "1h")

        assert second is first

        clock.advance(60_000)
        third = aggregator.get_chart_data("co2", "1h")

        assert third is not first
        assert third.values == (750.0, 1500.0)

    def test_cache_is_per_sensor_and_range(self, aggregator, store, clock):
        _co2(store, clock.now - 1_000, 750)

        assert aggregator.get_chart_data("co2", "1h") is not aggregator.get_chart_data("co2", "24h")

    def test_store_read_once_within_ttl(self, clock):
        source = MagicMock()
        source.get_readings.return_value = []
        aggregator = TrendAggregator(source, clock=clock)

        aggregator.get_chart_data("co2", "1h")
        aggregator.get_chart_data("co2", "1h")
        aggregator.clear_cache()
        aggregator.get_chart_data("co2", "1h")

        assert source.get_readings.call_count == 2
        source.get_readings.assert_called_with(T0 - 3_600_000, T0)

    @pytest.mark.parametrize("sensor,time_range", [("heartRate", "1h"), ("co2", "2w")])
    def test_unknown_sensor_or_range(self, aggregator, sensor, time_range):
        with pytest.raises(ValueError):
            aggregator.get_chart_data(sensor, time_range)

    def test_catalogs(self):
        assert "co2" in TrendAggregator.sensors()
        assert TrendAggregator.time_ranges() == ("1h", "24h", "7d", "1m")
