"""Tests del ThresholdManager (defaults, validación, persistencia).

Ejecutar:
    pytest tests/test_thresholds.py -v
"""

from unittest.mock import MagicMock

import pytest

from monitor_api.alerts.thresholds import (
    DEFAULT_THRESHOLDS,
    SETTINGS_KEY,
    Threshold,
    ThresholdManager,
)
from monitor_api.errors import ConfigurationError, StorageError


class TestThresholdManager:

    def test_defaults(self):
        manager = ThresholdManager()

        assert manager.get("respiration") == Threshold(min=20, max=60)
        assert manager.get("co2") == Threshold(max=1000)
        assert manager.get("bodyTemp") == Threshold(min=36, max=38)
        assert manager.get("voc") == Threshold(max=1.0)
        assert manager.as_dict()["co2"] == {"max": 1000.0}

    def test_update_min_only_keeps_max(self, thresholds, store):
        updated = thresholds.set_threshold("respiration", min=25)

        assert updated == Threshold(min=25, max=60)
        assert store.get_setting(SETTINGS_KEY)["respiration"] == {"min": 25.0, "max": 60.0}

    def test_explicit_none_clears_limit(self, thresholds):
        thresholds.set_threshold("bodyTemp", max=None)
        assert thresholds.get("bodyTemp") == Threshold(min=36, max=None)

    @pytest.mark.parametrize("kwargs", [
        {"min": "abc"},
        {"min": "25"},
        {"max": float("nan")},
        {"min": True},
        {"min": 70},  # min > max actual (60)
    ])
    def test_invalid_update_leaves_state_untouched(self, thresholds, store, kwargs):
        with pytest.raises(ConfigurationError):
            thresholds.set_threshold("respiration", **kwargs)

        assert thresholds.get("respiration") == DEFAULT_THRESHOLDS["respiration"]
        assert store.get_setting(SETTINGS_KEY) is None

    def test_unknown_sensor_rejected(self, thresholds):
        with pytest.raises(ConfigurationError):
            thresholds.set_threshold("heartRate", max=180)

    def test_storage_failure_leaves_state_untouched(self):
        store = MagicMock()
        store.save_setting.side_effect = StorageError("save_setting", RuntimeError("locked"))
        manager = ThresholdManager(store)

        with pytest.raises(StorageError):
            manager.set_threshold("co2", max=800)

        assert manager.get("co2") == Threshold(max=1000)

    def test_load_merges_over_defaults(self, store):
        store.save_setting(SETTINGS_KEY, {
            "co2": {"max": 800},
            "voc": {"max": "lots"},
            "heartRate": {"max": 180},
            "bodyTemp": {"min": 39, "max": 37},
        })
        manager = ThresholdManager(store)

        loaded = manager.load()

        assert loaded["co2"] == {"max": 800.0}
        assert loaded["voc"] == {"max": 1.0}
        assert loaded["bodyTemp"] == {"min": 36.0, "max": 38.0}
        assert "heartRate" not in loaded

    def test_persisted_update_survives_new_manager(self, thresholds, store):
        thresholds.set_threshold("co2", max=900)

        fresh = ThresholdManager(store)
        fresh.load()

        assert fresh.get("co2") == Threshold(max=900)
