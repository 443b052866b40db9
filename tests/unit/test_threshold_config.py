"""
Unit tests for the YAML threshold file manager.
"""

from datetime import timedelta

import pytest

from errorwatch.config import ErrorSeverity
from errorwatch.core import ConfigurationException
from errorwatch.tracking.domain import DEFAULT_THRESHOLDS, ThresholdRegistry, build_threshold
from errorwatch.tracking.infrastructure import ThresholdConfigManager

THRESHOLDS_YAML = """
include_defaults: true
thresholds:
  network_error:
    max_occurrences: 3
    time_window_minutes: 5
    alert_severity: critical
  checkout_error:
    max_occurrences: 2
    time_window_minutes: 1
  auth_error:
    max_occurrences: 0
    time_window_minutes: 5
"""


@pytest.fixture
def registry() -> ThresholdRegistry:
    registry = ThresholdRegistry()
    registry.install_defaults()
    return registry


@pytest.fixture
def thresholds_file(tmp_path):
    path = tmp_path / "error_thresholds.yaml"
    path.write_text(THRESHOLDS_YAML)
    return path


class TestLoad:

    def test_file_overrides_and_extends_defaults(self, registry, thresholds_file):
        manager = ThresholdConfigManager(registry)

        manager.load(thresholds_file)

        network = registry.get("network_error")
        assert network.max_occurrences == 3
        assert network.time_window == timedelta(minutes=5)
        assert network.alert_severity == ErrorSeverity.CRITICAL
        assert registry.get("checkout_error").alert_severity == ErrorSeverity.HIGH
        assert registry.get("auth_error").max_occurrences == 5

    def test_missing_file_keeps_defaults(self, registry, tmp_path):
        manager = ThresholdConfigManager(registry)

        config = manager.load(tmp_path / "absent.yaml")

        assert config.thresholds == {}
        assert len(registry) == len(DEFAULT_THRESHOLDS)

    def test_invalid_yaml_raises(self, registry, tmp_path):
        path = tmp_path / "broken.yaml"
        path.write_text("thresholds: [unclosed")

        with pytest.raises(ConfigurationException):
            ThresholdConfigManager(registry).load(path)

    def test_without_defaults_unregisters_builtin_types(self, registry, tmp_path):
        path = tmp_path / "only.yaml"
        path.write_text(
            "include_defaults: false\n"
            "thresholds:\n"
            "  network_error: {max_occurrences: 4, time_window_minutes: 10}\n"
        )

        ThresholdConfigManager(registry).load(path)

        assert [t.error_type for t in registry.all()] == ["network_error"]

    def test_code_registered_types_are_left_alone(self, registry, thresholds_file):
        custom = build_threshold("payment_error", 1, timedelta(minutes=1))
        registry.set(custom)

        ThresholdConfigManager(registry).load(thresholds_file)

        assert registry.get("payment_error") == custom


class TestReload:

    def test_reload_applies_changes(self, registry, thresholds_file):
        manager = ThresholdConfigManager(registry)
        manager.load(thresholds_file)

        thresholds_file.write_text(
            "thresholds:\n"
            "  network_error: {max_occurrences: 7, time_window_minutes: 5}\n"
        )

        assert manager.reload() is True
        assert registry.get("network_error").max_occurrences == 7
        assert registry.get("checkout_error") is None

    def test_dropped_default_type_falls_back_to_builtin(self, registry, thresholds_file):
        manager = ThresholdConfigManager(registry)
        manager.load(thresholds_file)

        thresholds_file.write_text("thresholds: {}\n")
        manager.reload()

        assert registry.get("network_error").max_occurrences == 10

    def test_broken_reload_keeps_current_thresholds(self, registry, thresholds_file):
        manager = ThresholdConfigManager(registry)
        manager.load(thresholds_file)

        thresholds_file.write_text("thresholds: [unclosed")

        assert manager.reload() is False
        assert registry.get("network_error").max_occurrences == 3

    def test_reload_before_load(self, registry):
        assert ThresholdConfigManager(registry).reload() is False


class TestWatching:

    def test_start_and_stop_watching(self, registry, thresholds_file):
        manager = ThresholdConfigManager(registry)
        manager.load(thresholds_file)

        manager.start_watching()
        assert manager.is_watching

        manager.stop_watching()
        assert not manager.is_watching

    def test_missing_file_is_not_watched(self, registry, tmp_path):
        manager = ThresholdConfigManager(registry)
        manager.load(tmp_path / "absent.yaml")

        manager.start_watching()

        assert not manager.is_watching

    def test_watching_requires_load(self, registry):
        with pytest.raises(RuntimeError):
            ThresholdConfigManager(registry).start_watching()
