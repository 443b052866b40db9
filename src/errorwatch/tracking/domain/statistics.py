"""
Error Statistics
=================

Pure functions over a history snapshot. Nothing here mutates its input.
"""

from datetime import datetime, timedelta
from typing import Any, Dict, List, Sequence

from errorwatch.config import TrendDirection, VALID_SEVERITIES
from errorwatch.tracking.domain.entities import ErrorIncident

DAY = timedelta(hours=24)
WEEK = timedelta(days=7)


class ErrorStatisticsCalculator:
    """
    Stateless statistics over error records.

    Windows are inclusive of their start: a record at exactly
    ``now - 24h`` belongs to the current 24h window.
    """

    @staticmethod
    def in_window(errors: Sequence[ErrorIncident], start: datetime, end: datetime) -> List[ErrorIncident]:
        """Errors with ``start <= timestamp < end``."""
        return [e for e in errors if start <= e.timestamp < end]

    @staticmethod
    def since(errors: Sequence[ErrorIncident], start: datetime) -> List[ErrorIncident]:
        return [e for e in errors if e.timestamp >= start]

    @staticmethod
    def type_counts(errors: Sequence[ErrorIncident]) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for error in errors:
            counts[error.error_type] = counts.get(error.error_type, 0) + 1
        return counts

    @staticmethod
    def severity_breakdown(errors: Sequence[ErrorIncident]) -> Dict[str, int]:
        """Count per severity; severities with no errors are omitted."""
        breakdown: Dict[str, int] = {}
        for error in errors:
            breakdown[error.severity] = breakdown.get(error.severity, 0) + 1
        return {s: breakdown[s] for s in VALID_SEVERITIES if s in breakdown}

    @staticmethod
    def most_common(errors: Sequence[ErrorIncident], top_n: int = 5) -> List[Dict[str, Any]]:
        """
        Most frequent error types, highest count first.

        Ties are broken by type name so the order is stable across calls.
        """
        counts = ErrorStatisticsCalculator.type_counts(errors)
        ranked = sorted(counts.items(), key=lambda item: (-item[1], item[0]))
        return [{"error_type": t, "count": c} for t, c in ranked[:top_n]]

    @staticmethod
    def trend_percentage(current: int, previous: int) -> float:
        """
        Percentage change from ``previous`` to ``current``.

        With no previous errors, any current error counts as +100%.
        """
        if previous == 0:
            return 100.0 if current > 0 else 0.0
        return round((current - previous) / previous * 100, 1)

    @staticmethod
    def trend_direction(current: int, previous: int) -> str:
        """Direction of the raw change; only an unchanged count is stable."""
        if current > previous:
            return TrendDirection.INCREASING
        if current < previous:
            return TrendDirection.DECREASING
        return TrendDirection.STABLE

    @staticmethod
    def error_trends(
        errors: Sequence[ErrorIncident],
        now: datetime,
        window: timedelta = DAY
    ) -> Dict[str, Any]:
        """Compare ``[now - window, now]`` against the window before it."""
        current_start = now - window
        previous_start = now - 2 * window
        current = len([e for e in errors if current_start <= e.timestamp <= now])
        previous = len(ErrorStatisticsCalculator.in_window(errors, previous_start, current_start))
        percentage = ErrorStatisticsCalculator.trend_percentage(current, previous)
        return {
            "current_24h": current,
            "previous_24h": previous,
            "trend_percentage": percentage,
            "trend_direction": ErrorStatisticsCalculator.trend_direction(current, previous),
        }

    @staticmethod
    def summarize(
        errors: Sequence[ErrorIncident],
        now: datetime,
        top_n: int = 5
    ) -> Dict[str, Any]:
        """Full statistics payload served to the dashboard."""
        last_24h = ErrorStatisticsCalculator.since(errors, now - DAY)
        last_week = ErrorStatisticsCalculator.since(errors, now - WEEK)
        type_counts = ErrorStatisticsCalculator.type_counts(errors)

        return {
            "total_errors": len(errors),
            "errors_24h": len(last_24h),
            "errors_week": len(last_week),
            "error_types": sorted(type_counts),
            "error_type_counts": type_counts,
            "severity_breakdown": ErrorStatisticsCalculator.severity_breakdown(last_24h),
            "fatal_errors_24h": sum(1 for e in last_24h if e.fatal),
            "most_common_errors": ErrorStatisticsCalculator.most_common(last_24h, top_n),
            "error_trends": ErrorStatisticsCalculator.error_trends(errors, now),
        }
