"""
Performance Domain Entities
============================

Metric samples, baselines and the pure functions that derive one from the
other.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence


@dataclass
class MetricSample:
    """One recorded measurement of a named metric."""

    name: str
    value: float
    unit: str
    timestamp: datetime
    context: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    regression: bool = False

    def __post_init__(self):
        if not self.name:
            raise ValueError("metric name cannot be empty")


@dataclass(frozen=True)
class PerformanceBaseline:
    """Reference values a new sample is compared against."""

    metric_name: str
    average_value: float
    p50_value: float
    p95_value: float
    sample_count: int
    updated_at: datetime

    def regression_threshold(self, multiplier: float) -> float:
        return self.average_value * multiplier

    def deviation_percentage(self, value: float) -> float:
        """Relative difference of ``value`` from the baseline average."""
        if self.average_value == 0:
            return 0.0
        return (value - self.average_value) / self.average_value * 100

    def to_dict(self) -> Dict[str, Any]:
        return {
            "metric_name": self.metric_name,
            "average_value": self.average_value,
            "p50_value": self.p50_value,
            "p95_value": self.p95_value,
            "sample_count": self.sample_count,
            "updated_at": self.updated_at.isoformat(),
        }


class BaselineCalculator:
    """Stateless helpers for baseline statistics."""

    @staticmethod
    def average(values: Sequence[float]) -> float:
        if not values:
            return 0.0
        return sum(values) / len(values)

    @staticmethod
    def percentile(values: Sequence[float], fraction: float) -> float:
        """
        Nearest-rank percentile: the sorted value at ``floor(n * fraction)``,
        clamped to the last index.
        """
        if not values:
            return 0.0
        ordered = sorted(values)
        index = int(len(ordered) * fraction)
        return ordered[min(max(index, 0), len(ordered) - 1)]

    @classmethod
    def build(cls, metric_name: str, values: List[float], updated_at: datetime) -> PerformanceBaseline:
        return PerformanceBaseline(
            metric_name=metric_name,
            average_value=cls.average(values),
            p50_value=cls.percentile(values, 0.5),
            p95_value=cls.percentile(values, 0.95),
            sample_count=len(values),
            updated_at=updated_at,
        )


# (metric_name, average, p50, p95, sample_count)
DEFAULT_BASELINES = [
    ("screen_load_time", 2000.0, 1500.0, 4000.0, 100),
    ("api_response_time", 500.0, 300.0, 1000.0, 100),
]
