"""Tests del store durable (SQLite en archivo temporal).

Ejecutar:
    pytest tests/test_time_series_store.py -v
"""

import pytest
from sqlalchemy import create_engine

from common.db import get_engine
from conftest import T0, device_payload
from monitor_api.core.domain.alert import Alert, Severity
from monitor_api.core.validation.normalizer import normalize
from monitor_api.errors import StorageError
from monitor_api.storage.time_series_store import StoreConfig, TimeSeriesStore


def _alert(key: str = "co2_high", ts: int = T0) -> Alert:
    return Alert(
        severity=Severity.WARNING,
        title="High CO₂ (MH-Z19C)",
        description="Carbon dioxide levels exceeded 1000 ppm. Current: 1200 ppm",
        key=key,
        timestamp=ts,
    )


# =============================================================================
# READINGS
# =============================================================================

class TestReadings:

    def test_save_and_range_query_inclusive(self, store):
        for offset in (0, 1000, 2000, 3000):
            store.save_reading(normalize(device_payload(timestamp=T0 + offset), now_ms=T0))

        rows = store.get_readings(T0 + 1000, T0 + 2000)

        assert [r["timestamp"] for r in rows] == [T0 + 1000, T0 + 2000]
        assert rows[0]["bodyTemp"] == {"value": 36.8, "unit": "C"}
        assert isinstance(rows[0]["id"], int)

    def test_results_ordered_by_timestamp(self, store):
        for ts in (T0 + 5, T0 + 1, T0 + 3):
            store.save_reading({"timestamp": ts})

        assert [r["timestamp"] for r in store.get_readings(T0, T0 + 10)] == [T0 + 1, T0 + 3, T0 + 5]

    def test_missing_timestamp_uses_clock(self, store, clock):
        store.save_reading({"respiration": {"value": 30}})
        latest = store.get_latest_reading()

        assert latest["timestamp"] == clock.now
        assert latest["respiration"] == {"value": 30}

    def test_last_hours(self, store, clock):
        store.save_reading({"timestamp": clock.now - 2 * 3_600_000})
        store.save_reading({"timestamp": clock.now - 60_000})

        assert len(store.get_readings_last_hours(1)) == 1

    def test_eviction_keeps_most_recent_inserts(self, engine, clock):
        store = TimeSeriesStore(engine, StoreConfig(max_readings=5), clock=clock)
        ids = [store.save_reading({"timestamp": T0 + i}) for i in range(8)]

        rows = store.get_readings(0, T0 + 100)

        assert store.count_readings() == 5
        assert [r["id"] for r in rows] == ids[3:]

    def test_eviction_by_insertion_order_not_timestamp(self, engine, clock):
        store = TimeSeriesStore(engine, StoreConfig(max_readings=2), clock=clock)
        store.save_reading({"timestamp": T0 + 100})
        store.save_reading({"timestamp": T0 + 1})
        store.save_reading({"timestamp": T0 + 50})

        assert [r["timestamp"] for r in store.get_readings(0, T0 + 1000)] == [T0 + 1, T0 + 50]

    def test_durable_across_instances(self, db_url, clock):
        first = TimeSeriesStore(get_engine(db_url), clock=clock)
        first.save_reading({"timestamp": T0})
        first.save_setting("lastAnalysis", {"summary": "ok"})

        second = TimeSeriesStore(get_engine(db_url), clock=clock)

        assert second.count_readings() == 1
        assert second.get_setting("lastAnalysis") == {"summary": "ok"}

    def test_empty_store(self, store):
        assert store.get_latest_reading() is None
        assert store.get_readings(0, T0) == []

    def test_unserializable_reading_raises_storage_error(self, store):
        with pytest.raises(StorageError) as exc_info:
            store.save_reading({"timestamp": T0, "respiration": {"value": 2 ** 70}})

        assert exc_info.value.operation == "save_reading"
        assert store.count_readings() == 0


# =============================================================================
# ALERTS
# =============================================================================

class TestAlerts:

    def test_alerts_newest_first_and_unacknowledged(self, store):
        first = store.save_alert(_alert("co2_high", T0))
        second = store.save_alert(_alert("voc_high", T0 + 10))

        alerts = store.get_alerts()

        assert [a["id"] for a in alerts] == [second, first]
        assert all(a["acknowledged"] is False for a in alerts)
        assert alerts[0]["severity"] == "WARNING"

    def test_acknowledge_and_filter(self, store):
        alert_id = store.save_alert(_alert())
        store.save_alert(_alert("voc_high"))

        assert store.acknowledge_alert(alert_id) is True

        assert [a["id"] for a in store.get_alerts(acknowledged=True)] == [alert_id]
        assert len(store.get_alerts(acknowledged=False)) == 1

    def test_acknowledge_missing_returns_false(self, store):
        assert store.acknowledge_alert(9999) is False

    def test_save_alert_ignores_acknowledged_flag(self, store):
        store.save_alert({**_alert().to_dict(), "acknowledged": True})
        assert store.get_alerts()[0]["acknowledged"] is False

    def test_clear_alerts(self, store):
        store.save_alert(_alert())
        store.save_alert(_alert())

        assert store.clear_alerts() == 2
        assert store.get_alerts() == []

    def test_alert_eviction(self, engine, clock):
        store = TimeSeriesStore(engine, StoreConfig(max_alerts=3), clock=clock)
        ids = [store.save_alert(_alert(ts=T0 + i)) for i in range(5)]

        assert sorted(a["id"] for a in store.get_alerts()) == ids[2:]


# =============================================================================
# SETTINGS Y ERRORES
# =============================================================================

class TestSettings:

    def test_last_write_wins(self, store):
        store.save_setting("pollInterval", 2000)
        store.save_setting("pollInterval", 5000)

        assert store.get_setting("pollInterval") == 5000
        assert store.get_all_settings() == {"pollInterval": 5000}

    def test_missing_setting_default(self, store):
        assert store.get_setting("nope") is None
        assert store.get_setting("nope", "x") == "x"

    def test_backend_failure_raises_storage_error(self, clock):
        engine = create_engine("sqlite://")
        store = TimeSeriesStore(engine, clock=clock, create_schema=False)

        with pytest.raises(StorageError) as exc_info:
            store.get_readings(0, T0)

        assert exc_info.value.operation == "get_readings"
