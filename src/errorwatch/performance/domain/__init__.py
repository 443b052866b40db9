"""
Performance Domain Layer
========================

Pure Python entities for metric samples and baselines.
"""

from errorwatch.performance.domain.entities import (
    BaselineCalculator,
    DEFAULT_BASELINES,
    MetricSample,
    PerformanceBaseline,
)

__all__ = [
    "BaselineCalculator",
    "DEFAULT_BASELINES",
    "MetricSample",
    "PerformanceBaseline",
]
