"""
Unit tests for the statistics aggregator.
"""

from datetime import timedelta

import pytest

from errorwatch.config import ErrorSeverity, TrendDirection
from errorwatch.tracking.domain import ErrorStatisticsCalculator as Stats


@pytest.mark.parametrize("current,previous,expected", [
    (0, 0, 0.0),
    (5, 0, 100.0),
    (10, 10, 0.0),
    (15, 10, 50.0),
    (5, 10, -50.0),
    (1, 3, -66.7),
])
def test_trend_percentage(current, previous, expected):
    assert Stats.trend_percentage(current, previous) == expected


def test_trend_direction_has_exact_zero_stable_band():
    assert Stats.trend_direction(10, 10) == TrendDirection.STABLE
    assert Stats.trend_direction(0, 0) == TrendDirection.STABLE
    assert Stats.trend_direction(11, 10) == TrendDirection.INCREASING
    assert Stats.trend_direction(9, 10) == TrendDirection.DECREASING


def test_small_change_on_large_counts_is_not_stable():
    assert Stats.trend_percentage(10001, 10000) == 0.0
    assert Stats.trend_direction(10001, 10000) == TrendDirection.INCREASING
    assert Stats.trend_direction(9999, 10000) == TrendDirection.DECREASING


def test_most_common_breaks_ties_by_type_name(error_factory):
    errors = [
        error_factory(error_type="network_error"),
        error_factory(error_type="auth_error"),
        error_factory(error_type="network_error"),
        error_factory(error_type="auth_error"),
        error_factory(error_type="app_crash"),
    ]

    ranked = Stats.most_common(errors, top_n=2)

    assert ranked == [
        {"error_type": "auth_error", "count": 2},
        {"error_type": "network_error", "count": 2},
    ]


def test_severity_breakdown_omits_absent_severities(error_factory):
    errors = [
        error_factory(severity=ErrorSeverity.CRITICAL),
        error_factory(severity=ErrorSeverity.LOW),
        error_factory(severity=ErrorSeverity.CRITICAL),
    ]

    assert Stats.severity_breakdown(errors) == {"low": 1, "critical": 2}


def test_error_trends_compare_consecutive_days(error_factory, clock):
    now = clock()
    errors = [
        error_factory(timestamp=now - timedelta(hours=30)),
        error_factory(timestamp=now - timedelta(hours=25)),
        error_factory(timestamp=now - timedelta(hours=2)),
        error_factory(timestamp=now - timedelta(hours=1)),
        error_factory(timestamp=now - timedelta(minutes=1)),
        error_factory(timestamp=now - timedelta(hours=60)),
    ]

    trends = Stats.error_trends(errors, now)

    assert trends == {
        "current_24h": 3,
        "previous_24h": 2,
        "trend_percentage": 50.0,
        "trend_direction": TrendDirection.INCREASING,
    }


def test_summarize_windows(error_factory, clock):
    now = clock()
    errors = [
        error_factory(error_type="app_crash", fatal=True, timestamp=now - timedelta(hours=1)),
        error_factory(error_type="network_error", timestamp=now - timedelta(days=2)),
        error_factory(error_type="network_error", timestamp=now - timedelta(days=10)),
    ]

    stats = Stats.summarize(errors, now)

    assert stats["total_errors"] == 3
    assert stats["errors_24h"] == 1
    assert stats["errors_week"] == 2
    assert stats["error_types"] == ["app_crash", "network_error"]
    assert stats["error_type_counts"] == {"app_crash": 1, "network_error": 2}
    assert stats["fatal_errors_24h"] == 1
    assert stats["most_common_errors"] == [{"error_type": "app_crash", "count": 1}]


def test_summarize_does_not_mutate_input(error_factory, clock):
    errors = [error_factory(), error_factory()]
    before = list(errors)

    Stats.summarize(errors, clock())

    assert errors == before
