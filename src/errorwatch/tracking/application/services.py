"""
Error Tracking Application Services
====================================

Application services orchestrate the domain objects (history, thresholds,
alert engine, statistics) and the external collaborators (persistence,
notification and analytics sinks).

Following SOLID principles:
- Single Responsibility: domain rules live in the domain layer
- Dependency Inversion: depend on the sink/adapter abstractions below
"""

import asyncio
import json
import traceback
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Coroutine, Dict, List, Optional, Set

from pydantic import ValidationError
from pydantic_core import to_jsonable_python

from errorwatch.config import (
    ErrorSeverity, Settings, PERFORMANCE_DEGRADATION, get_settings
)
from errorwatch.core import InitializationException, ValidationException
from errorwatch.shared.infrastructure.ids import IdGenerator
from errorwatch.shared.infrastructure.logging import get_logger, log_latency
from errorwatch.tracking.application.dto import ErrorSnapshotDTO, decode_snapshot
from errorwatch.tracking.domain import (
    AlertEngine,
    BoundedHistoryStore,
    ErrorAlert,
    ErrorIncident,
    ErrorStatisticsCalculator,
    ErrorThreshold,
    ThresholdRegistry,
    build_threshold,
)

logger = get_logger(__name__)

Clock = Callable[[], datetime]
AlertHandler = Callable[[ErrorAlert, ErrorIncident], Awaitable[Any]]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# ========== External Interfaces (Dependency Inversion) ==========

class IPersistenceAdapter(ABC):
    """Key-value snapshot store."""

    @abstractmethod
    async def load(self, key: str) -> Optional[str]:
        """Return the blob stored under ``key``, or None if absent."""

    @abstractmethod
    async def save(self, key: str, blob: str) -> bool:
        """Store ``blob`` under ``key``; return whether it succeeded."""


class INotificationSink(ABC):
    """Admin notification delivery (best-effort)."""

    @abstractmethod
    async def notify_admins(self, title: str, body: str, data: Dict[str, str]) -> bool:
        """Deliver a notification to every admin; return whether it was delivered."""

    async def close(self) -> None:
        """Release any held resources."""


class IAnalyticsSink(ABC):
    """Telemetry sink (best-effort)."""

    @abstractmethod
    async def log_event(self, name: str, parameters: Dict[str, Any]) -> None:
        """Record a named analytics event."""

    @abstractmethod
    async def record_error(
        self,
        error: str,
        stack_trace: Optional[str],
        metadata: Dict[str, Any],
        fatal: bool
    ) -> None:
        """Forward an error to crash reporting."""


# ========== Application Services ==========

class ErrorTrackingService:
    """
    Ingests errors, raises threshold alerts and serves statistics.

    Every mutation of in-memory state happens before the first await of a
    call, so concurrent coroutines on one event loop never observe a
    half-applied ingestion. Sink deliveries and alert handlers run as
    follow-up tasks, and persistence runs as a coalesced background task;
    ``flush()`` waits for both.
    """

    def __init__(
        self,
        persistence: IPersistenceAdapter,
        notification_sink: Optional[INotificationSink] = None,
        analytics_sink: Optional[IAnalyticsSink] = None,
        settings: Optional[Settings] = None,
        clock: Optional[Clock] = None,
    ):
        self._settings = settings or get_settings()
        self._persistence = persistence
        self._notification_sink = notification_sink
        self._analytics_sink = analytics_sink
        self._clock = clock or utc_now

        self._history = BoundedHistoryStore(
            max_error_history=self._settings.max_error_history,
            max_recent_errors=self._settings.max_recent_errors,
        )
        self._registry = ThresholdRegistry()
        self._alert_engine = AlertEngine(
            self._registry,
            cooldown=timedelta(minutes=self._settings.alert_cooldown_minutes),
        )
        self._ids = IdGenerator()
        self._alert_handlers: List[AlertHandler] = []

        self._initialized = False
        self._save_task: Optional[asyncio.Task] = None
        self._save_requested = False
        self._follow_ups: Set[asyncio.Task] = set()

    # ---------- lifecycle ----------

    async def initialize(self) -> None:
        """
        Load the persisted snapshot and install default thresholds.

        Raises:
            InitializationException: if the persistence adapter fails
        """
        if self._initialized:
            return

        key = self._settings.persistence_key
        try:
            blob = await self._persistence.load(key)
        except Exception as e:
            logger.exception(
                "Failed to initialize error tracking: snapshot store unavailable",
                extra={"key": key}
            )
            raise InitializationException(
                "Error tracking snapshot store unavailable",
                {"key": key, "error": str(e)}
            ) from e

        if blob:
            self._restore_snapshot(blob)

        self._registry.install_defaults()
        self._initialized = True

        await self._log_event("error_tracking_initialized", {
            "timestamp": self._clock().isoformat(),
            "restored_errors": len(self._history),
        })
        logger.info(
            "Error tracking service initialized",
            extra={
                "restored_errors": len(self._history),
                "thresholds": len(self._registry),
            }
        )

    async def dispose(self) -> None:
        """Flush the pending snapshot write and stop accepting errors."""
        await self.flush()
        self._initialized = False

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    def add_alert_handler(self, handler: AlertHandler) -> None:
        """Register a coroutine called with every fired alert and its triggering error."""
        self._alert_handlers.append(handler)

    # ---------- ingestion ----------

    async def track_error(
        self,
        error_type: str,
        error_message: str,
        error: Any,
        stack_trace: Optional[str] = None,
        user_id: Optional[str] = None,
        screen_name: Optional[str] = None,
        user_action: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        severity: str = ErrorSeverity.MEDIUM,
        fatal: bool = False,
    ) -> Optional[ErrorIncident]:
        """
        Track an error incident.

        Never raises: internal failures are logged and None is returned.

        Args:
            error_type: Category key thresholds are configured on
            error_message: Human readable summary
            error: The error itself; exceptions contribute their traceback
                when ``stack_trace`` is not given
            severity: One of low / medium / high / critical

        Returns:
            The recorded ErrorIncident, or None if nothing was recorded
        """
        if not self._initialized:
            logger.debug("Error tracking not initialized, dropping error", extra={"error_type": error_type})
            return None

        try:
            now = self._clock()
            if stack_trace is None and isinstance(error, BaseException) and error.__traceback__:
                stack_trace = "".join(
                    traceback.format_exception(type(error), error, error.__traceback__)
                )

            incident = ErrorIncident(
                id=self._ids.next_id(now),
                error_type=error_type,
                error_message=error_message,
                error=str(error),
                stack_trace=stack_trace,
                user_id=user_id,
                screen_name=screen_name,
                user_action=user_action,
                metadata=to_jsonable_python(dict(metadata or {}), fallback=str),
                severity=severity,
                fatal=fatal,
                timestamp=now,
                environment=self._settings.environment,
                app_version=self._settings.app_version,
            )

            self._history.append(incident)
            alert = self._alert_engine.evaluate(incident, self._history, now)
            self._schedule_save()
            self._spawn_follow_up(self._deliver(incident, alert))

            logger.warning(
                f"Error tracked: {error_type}",
                extra={
                    "incident_id": incident.id,
                    "error_type": error_type,
                    "severity": severity,
                    "fatal": fatal,
                }
            )
            return incident
        except Exception:
            logger.exception("Failed to track error", extra={"error_type": error_type})
            return None

    async def track_performance_degradation(
        self,
        metric_name: str,
        current_value: float,
        threshold: float,
        context: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Optional[ErrorIncident]:
        """Record a performance metric breach as a ``performance_degradation`` error."""
        degradation = ((current_value - threshold) / threshold * 100) if threshold else 0.0
        return await self.track_error(
            error_type=PERFORMANCE_DEGRADATION,
            error_message=f"Performance metric {metric_name} exceeded threshold",
            error=f"Current: {current_value}, Threshold: {threshold}",
            severity=ErrorSeverity.HIGH,
            metadata={
                "metric_name": metric_name,
                "current_value": current_value,
                "threshold": threshold,
                "degradation_percentage": degradation,
                "context": context,
                **(metadata or {}),
            },
        )

    # ---------- thresholds ----------

    def set_error_threshold(
        self,
        error_type: str,
        max_occurrences: int,
        time_window: timedelta,
        alert_severity: str = ErrorSeverity.HIGH,
    ) -> Optional[ErrorThreshold]:
        """
        Register or replace the threshold for ``error_type``.

        An invalid rule (empty type, non-positive occurrences or window,
        unknown severity) is rejected and logged; the previous threshold
        for the type, if any, stays in force.

        Returns:
            The registered threshold, or None if the rule was rejected
        """
        try:
            threshold = build_threshold(error_type, max_occurrences, time_window, alert_severity)
        except ValidationException as e:
            logger.error(
                "Rejected invalid error threshold",
                extra={"error_type": error_type, "errors": e.details.get("errors", [])}
            )
            return None
        self._registry.set(threshold)
        logger.info(
            "Error threshold set",
            extra={
                "error_type": error_type,
                "max_occurrences": max_occurrences,
                "time_window_seconds": threshold.time_window.total_seconds(),
                "alert_severity": alert_severity,
            }
        )
        return threshold

    def remove_error_threshold(self, error_type: str) -> bool:
        return self._registry.remove(error_type)

    def get_error_threshold(self, error_type: str) -> Optional[ErrorThreshold]:
        return self._registry.get(error_type)

    def get_error_thresholds(self) -> List[ErrorThreshold]:
        return self._registry.all()

    @property
    def threshold_registry(self) -> ThresholdRegistry:
        return self._registry

    # ---------- queries ----------

    def get_error_statistics(self) -> Dict[str, Any]:
        """Statistics over a consistent copy of the history."""
        now = self._clock()
        try:
            return ErrorStatisticsCalculator.summarize(self._history.snapshot(), now)
        except Exception:
            logger.exception("Failed to compute error statistics")
            return ErrorStatisticsCalculator.summarize([], now)

    def get_recent_errors(self, limit: int = 20, min_severity: Optional[str] = None) -> List[ErrorIncident]:
        return self._history.recent(limit=limit, min_severity=min_severity)

    def get_errors_by_type(self, error_type: str) -> List[ErrorIncident]:
        return self._history.by_type(error_type)

    def get_last_alert_times(self) -> Dict[str, datetime]:
        return self._alert_engine.last_alert_times()

    # ---------- maintenance ----------

    async def clear_error_history(self) -> None:
        """Drop all history and cooldowns, then persist the empty state."""
        self._history.clear()
        self._alert_engine.reset()
        self._schedule_save()
        await self.flush()
        logger.info("Error history cleared")

    async def cleanup_old_errors(self) -> int:
        """
        Retention sweep: remove errors older than the retention window.

        Returns:
            Number of per-type records removed
        """
        try:
            cutoff = self._clock() - timedelta(days=self._settings.error_retention_days)
            removed = self._history.retention_sweep(cutoff)
            if removed:
                self._schedule_save()
            logger.info(
                "Old error data cleaned up",
                extra={"removed": removed, "cutoff": cutoff.isoformat()}
            )
            return removed
        except Exception:
            logger.exception("Failed to cleanup old errors")
            return 0

    # ---------- persistence ----------

    async def flush(self) -> None:
        """Wait for pending sink deliveries and the pending snapshot write to finish."""
        while True:
            pending = [task for task in self._follow_ups if not task.done()]
            if not pending:
                break
            await asyncio.gather(*pending, return_exceptions=True)
        while self._save_task is not None and not self._save_task.done():
            await self._save_task

    def _schedule_save(self) -> None:
        self._save_requested = True
        if self._save_task is None or self._save_task.done():
            self._save_task = asyncio.get_running_loop().create_task(self._save_loop())

    async def _save_loop(self) -> None:
        while self._save_requested:
            self._save_requested = False
            await self._save_snapshot()

    def _build_snapshot(self) -> str:
        snapshot = ErrorSnapshotDTO.from_state(
            recent=self._history.recent_snapshot(),
            history=self._history.history_snapshot(),
            alert_times=self._alert_engine.last_alert_times(),
            saved_at=self._clock(),
        )
        return snapshot.model_dump_json()

    async def _save_snapshot(self) -> bool:
        key = self._settings.persistence_key
        try:
            blob = self._build_snapshot()
            with log_latency(logger, "snapshot_save", key=key):
                saved = await self._persistence.save(key, blob)
            if not saved:
                logger.warning("Error snapshot was not saved", extra={"key": key})
            return saved
        except Exception:
            logger.exception("Failed to save error data", extra={"key": key})
            return False

    def _restore_snapshot(self, blob: str) -> None:
        try:
            snapshot = ErrorSnapshotDTO.model_validate(json.loads(blob))
        except (ValueError, ValidationError):
            logger.error(
                "Stored error snapshot is unreadable, starting with empty history",
                exc_info=True
            )
            return

        state = decode_snapshot(snapshot)
        self._history.restore(state.recent, state.history)
        self._alert_engine.restore_alert_times(state.alert_times)

        if state.skipped_entries:
            logger.warning(
                "Skipped malformed entries while loading error snapshot",
                extra={"skipped": state.skipped_entries}
            )

    # ---------- sinks ----------

    def _spawn_follow_up(self, coro: Coroutine[Any, Any, None]) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._follow_ups.add(task)
        task.add_done_callback(self._follow_up_done)

    def _follow_up_done(self, task: asyncio.Task) -> None:
        self._follow_ups.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Error follow-up failed", exc_info=task.exception())

    async def _deliver(self, incident: ErrorIncident, alert: Optional[ErrorAlert]) -> None:
        """Sink and handler calls for one ingested error, off the ingest path."""
        await self._track_to_analytics(incident)
        if alert is not None:
            await self._send_alert(alert)
            await self._dispatch_alert(alert, incident)

    async def _track_to_analytics(self, incident: ErrorIncident) -> None:
        if self._analytics_sink is None:
            return
        try:
            await self._analytics_sink.record_error(
                incident.error,
                incident.stack_trace,
                {
                    "incident_id": incident.id,
                    "error_type": incident.error_type,
                    "severity": incident.severity,
                    "screen_name": incident.screen_name,
                    "user_action": incident.user_action,
                    "user_id": incident.user_id,
                    **incident.metadata,
                },
                incident.fatal,
            )
            await self._analytics_sink.log_event("error_occurred", {
                "error_type": incident.error_type,
                "error_message": incident.error_message,
                "severity": incident.severity,
                "fatal": incident.fatal,
                "screen_name": incident.screen_name or "unknown",
                "user_id": incident.user_id or "anonymous",
                "timestamp": incident.timestamp.isoformat(),
            })
        except Exception:
            logger.exception("Failed to forward error to analytics", extra={"incident_id": incident.id})

    async def _send_alert(self, alert: ErrorAlert) -> None:
        try:
            if self._notification_sink is not None:
                delivered = await self._notification_sink.notify_admins(
                    alert.title, alert.message, alert.to_notification_data()
                )
                if not delivered:
                    logger.warning("Error alert was not delivered", extra={"error_type": alert.error_type})

            await self._log_event("error_alert_sent", {
                "error_type": alert.error_type,
                "occurrence_count": alert.occurrence_count,
                "threshold": alert.threshold,
                "severity": alert.severity,
                "timestamp": alert.triggered_at.isoformat(),
            })
            logger.info(
                f"Error alert sent for {alert.error_type}: {alert.occurrence_count} occurrences",
                extra={"error_type": alert.error_type, "occurrence_count": alert.occurrence_count}
            )
        except Exception:
            logger.exception("Failed to send error alert", extra={"error_type": alert.error_type})

    async def _dispatch_alert(self, alert: ErrorAlert, incident: ErrorIncident) -> None:
        for handler in list(self._alert_handlers):
            try:
                await handler(alert, incident)
            except Exception:
                logger.exception("Alert handler failed", extra={"error_type": alert.error_type})

    async def _log_event(self, name: str, parameters: Dict[str, Any]) -> None:
        if self._analytics_sink is None:
            return
        try:
            await self._analytics_sink.log_event(name, parameters)
        except Exception:
            logger.exception("Failed to log analytics event", extra={"event": name})
