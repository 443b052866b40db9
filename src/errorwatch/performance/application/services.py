"""
Performance Application Services
=================================

Records metric samples, keeps baselines fresh and routes regressions into
error tracking, where they are subject to the ``performance_degradation``
threshold like any other error.
"""

from collections import deque
from typing import Any, Deque, Dict, List, Optional

from errorwatch.config import Settings, get_settings
from errorwatch.performance.domain import (
    BaselineCalculator,
    DEFAULT_BASELINES,
    MetricSample,
    PerformanceBaseline,
)
from errorwatch.shared.infrastructure.logging import get_logger
from errorwatch.tracking.application import ErrorTrackingService, utc_now

logger = get_logger(__name__)

REGRESSION_CONTEXT = "performance_regression_detection"


class PerformanceRegressionDetector:
    """
    Compares each sample against its metric's baseline.

    A sample above ``baseline.average * regression_multiplier`` is flagged
    and reported. Flagged samples never feed the next baseline, so a
    sustained regression does not become the new normal.
    """

    def __init__(
        self,
        tracking_service: ErrorTrackingService,
        settings: Optional[Settings] = None,
        clock=None
    ):
        self._tracking = tracking_service
        self._settings = settings or get_settings()
        self._clock = clock or utc_now

        self._samples: Dict[str, Deque[MetricSample]] = {}
        self._baselines: Dict[str, PerformanceBaseline] = {}
        self._install_default_baselines()

    def _install_default_baselines(self) -> None:
        now = self._clock()
        for name, average, p50, p95, count in DEFAULT_BASELINES:
            self._baselines[name] = PerformanceBaseline(
                metric_name=name,
                average_value=average,
                p50_value=p50,
                p95_value=p95,
                sample_count=count,
                updated_at=now,
            )

    async def record_metric(
        self,
        name: str,
        value: float,
        unit: str,
        context: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None
    ) -> MetricSample:
        """
        Record a sample and report it when it regresses past the baseline.

        Returns:
            The stored sample, with ``regression`` set if it was flagged
        """
        sample = MetricSample(
            name=name,
            value=float(value),
            unit=unit,
            timestamp=self._clock(),
            context=context,
            metadata=dict(metadata or {}),
        )

        baseline = self._baselines.get(name)
        threshold = None
        if baseline is not None:
            threshold = baseline.regression_threshold(self._settings.regression_multiplier)
            sample.regression = sample.value > threshold

        samples = self._samples.get(name)
        if samples is None:
            samples = deque(maxlen=self._settings.max_metric_history)
            self._samples[name] = samples
        samples.append(sample)

        logger.debug(
            f"Performance metric recorded: {name} = {value} {unit}",
            extra={"metric_name": name, "regression": sample.regression}
        )

        if sample.regression:
            await self._report_regression(sample, baseline, threshold)
        return sample

    async def record_screen_load_time(
        self,
        screen_name: str,
        load_time_ms: float,
        metadata: Optional[Dict[str, Any]] = None
    ) -> MetricSample:
        return await self.record_metric(
            "screen_load_time",
            load_time_ms,
            "ms",
            context=screen_name,
            metadata={"screen_name": screen_name, **(metadata or {})},
        )

    async def record_api_response_time(
        self,
        endpoint: str,
        response_time_ms: float,
        status_code: Optional[int] = None,
        metadata: Optional[Dict[str, Any]] = None
    ) -> MetricSample:
        return await self.record_metric(
            "api_response_time",
            response_time_ms,
            "ms",
            context=endpoint,
            metadata={"endpoint": endpoint, "status_code": status_code, **(metadata or {})},
        )

    async def _report_regression(
        self,
        sample: MetricSample,
        baseline: PerformanceBaseline,
        threshold: float
    ) -> None:
        logger.warning(
            "Performance regression detected",
            extra={
                "metric_name": sample.name,
                "value": sample.value,
                "threshold": threshold,
                "baseline_average": baseline.average_value,
            }
        )
        await self._tracking.track_performance_degradation(
            metric_name=sample.name,
            current_value=sample.value,
            threshold=threshold,
            context=REGRESSION_CONTEXT,
            metadata={
                "baseline_average": baseline.average_value,
                "regression_percentage": baseline.deviation_percentage(sample.value),
                "metric_context": sample.context,
            },
        )

    async def update_baselines(self) -> List[str]:
        """
        Recompute baselines from recent non-regression samples.

        A metric keeps its current baseline until it has at least
        ``baseline_min_samples`` usable samples.

        Returns:
            Names of the metrics whose baseline changed
        """
        now = self._clock()
        size = self._settings.baseline_sample_size
        updated: List[str] = []

        for name, samples in self._samples.items():
            values = [s.value for s in samples if not s.regression][-size:]
            if len(values) < self._settings.baseline_min_samples:
                continue
            self._baselines[name] = BaselineCalculator.build(name, values, now)
            updated.append(name)

        logger.info("Performance baselines updated", extra={"metrics": updated})
        return updated

    def get_baseline(self, name: str) -> Optional[PerformanceBaseline]:
        return self._baselines.get(name)

    def get_baselines(self) -> Dict[str, PerformanceBaseline]:
        return dict(self._baselines)

    def set_baseline(self, baseline: PerformanceBaseline) -> None:
        self._baselines[baseline.metric_name] = baseline

    def get_samples(self, name: str) -> List[MetricSample]:
        """Samples for ``name``, oldest first."""
        return list(self._samples.get(name, ()))

    def compare_to_baseline(self, name: str) -> Dict[str, Any]:
        """
        Summarize how the recent average compares with the baseline.

        ``status`` is ``degraded`` above +20%, ``improved`` below -20%,
        otherwise ``stable``; ``no_baseline`` when either side is missing.
        """
        baseline = self._baselines.get(name)
        samples = self._samples.get(name)
        if baseline is None or not samples:
            return {"status": "no_baseline"}

        current = BaselineCalculator.average([s.value for s in samples])
        difference = baseline.deviation_percentage(current)
        if difference > 20:
            status = "degraded"
        elif difference < -20:
            status = "improved"
        else:
            status = "stable"

        return {
            "baseline_average": baseline.average_value,
            "current_average": current,
            "difference_percentage": round(difference, 1),
            "status": status,
        }
