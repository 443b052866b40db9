"""
Error Tracking Domain Layer
============================

Contains:
- Entities: ErrorIncident, ErrorThreshold, ErrorAlert
- Bounded history store
- Threshold registry and alert engine
- Domain Services: Stateless statistics (ErrorStatisticsCalculator)

This layer has no dependencies on infrastructure - pure Python business logic.
"""

from errorwatch.tracking.domain.entities import ErrorIncident, ErrorThreshold, ErrorAlert
from errorwatch.tracking.domain.history import BoundedHistoryStore
from errorwatch.tracking.domain.alerting import (
    AlertEngine,
    ThresholdRegistry,
    build_threshold,
    DEFAULT_THRESHOLDS,
)
from errorwatch.tracking.domain.value_objects import ThresholdConfig
from errorwatch.tracking.domain.statistics import ErrorStatisticsCalculator

__all__ = [
    # Entities
    "ErrorIncident",
    "ErrorThreshold",
    "ErrorAlert",
    # History & alerting
    "BoundedHistoryStore",
    "AlertEngine",
    "ThresholdRegistry",
    "build_threshold",
    "DEFAULT_THRESHOLDS",
    # Value Objects
    "ThresholdConfig",
    # Domain Services
    "ErrorStatisticsCalculator",
]
