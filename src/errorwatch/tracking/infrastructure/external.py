"""
Error Tracking External Integrations
=====================================

External collaborators for the error tracking engine:
- Admin notification sinks (structured log, JSON webhook)
- Analytics sink backed by structured logging
- YAML threshold file loader with watchdog hot-reload
"""

import asyncio
import threading
import time
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Set

import httpx
import yaml
from pydantic import ValidationError
from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from errorwatch.core import ConfigurationException
from errorwatch.shared.infrastructure.logging import get_logger
from errorwatch.tracking.application.services import IAnalyticsSink, INotificationSink
from errorwatch.tracking.domain import DEFAULT_THRESHOLDS, ThresholdConfig, ThresholdRegistry

logger = get_logger(__name__)


# ========== Notification sinks ==========

class LoggingNotificationSink(INotificationSink):
    """Writes admin notifications to the structured log."""

    async def notify_admins(self, title: str, body: str, data: Dict[str, str]) -> bool:
        logger.warning(
            f"Admin notification: {title}",
            extra={"notification_body": body, "notification_data": data}
        )
        return True


class CircuitState:
    """Delivery circuit states."""
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """
    Stops webhook delivery after consecutive failed notifications.

    The circuit opens once ``failure_threshold`` notifications in a row have
    failed. When ``recovery_timeout`` seconds have passed, a single trial
    notification is let through; its outcome closes the circuit or opens it
    for another full timeout.
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        recovery_timeout: float = 60.0,
        clock: Callable[[], float] = time.monotonic
    ):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self._clock = clock
        self._consecutive_failures = 0
        self._opened_at: Optional[float] = None
        self._trial_in_flight = False

    @property
    def state(self) -> str:
        if self._opened_at is None:
            return CircuitState.CLOSED
        if self._clock() - self._opened_at < self.recovery_timeout:
            return CircuitState.OPEN
        return CircuitState.HALF_OPEN

    def allow_request(self) -> bool:
        state = self.state
        if state == CircuitState.CLOSED:
            return True
        if state == CircuitState.HALF_OPEN and not self._trial_in_flight:
            self._trial_in_flight = True
            return True
        return False

    def record_success(self) -> None:
        self._consecutive_failures = 0
        self._opened_at = None
        self._trial_in_flight = False

    def record_failure(self) -> None:
        self._consecutive_failures += 1
        self._trial_in_flight = False

        # a failed trial reopens immediately
        if self._opened_at is not None or self._consecutive_failures >= self.failure_threshold:
            self._opened_at = self._clock()
            logger.warning(
                "Notification circuit opened",
                extra={
                    "consecutive_failures": self._consecutive_failures,
                    "retry_after_seconds": self.recovery_timeout
                }
            )


class WebhookNotificationSink(INotificationSink):
    """
    Posts admin notifications as JSON to a webhook.

    Handles delivery with:
    - Circuit breaker to prevent cascade failures
    - Exponential backoff retry
    - Timeout handling
    """

    def __init__(
        self,
        webhook_url: Optional[str],
        timeout_seconds: float = 5.0,
        max_retries: int = 3,
        backoff_base_seconds: float = 1.0,
        client: Optional[httpx.AsyncClient] = None,
        circuit_breaker: Optional[CircuitBreaker] = None
    ):
        self._webhook_url = webhook_url
        self._timeout_seconds = timeout_seconds
        self._max_retries = max(1, max_retries)
        self._backoff_base_seconds = backoff_base_seconds
        self._http_client = client
        self._circuit_breaker = circuit_breaker or CircuitBreaker(
            failure_threshold=5,
            recovery_timeout=60
        )

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self._timeout_seconds)
        return self._http_client

    @staticmethod
    def build_payload(title: str, body: str, data: Dict[str, str]) -> Dict[str, Any]:
        return {
            "title": title,
            "body": body,
            "data": data,
        }

    async def notify_admins(self, title: str, body: str, data: Dict[str, str]) -> bool:
        """
        Send the notification to the webhook.

        Returns:
            True if sent successfully, False otherwise
        """
        if not self._webhook_url:
            logger.debug("Notification webhook URL not configured, skipping notification")
            return False

        if not self._circuit_breaker.allow_request():
            logger.warning(
                "Circuit breaker open, skipping admin notification",
                extra={"notification_title": title}
            )
            return False

        payload = self.build_payload(title, body, data)

        for attempt in range(self._max_retries):
            try:
                client = await self._get_client()
                response = await client.post(self._webhook_url, json=payload)

                if 200 <= response.status_code < 300:
                    self._circuit_breaker.record_success()
                    logger.info(
                        "Admin notification sent",
                        extra={
                            "notification_title": title,
                            "notification_type": data.get("type"),
                        }
                    )
                    return True

                logger.warning(
                    "Notification webhook returned non-2xx",
                    extra={
                        "status_code": response.status_code,
                        "attempt": attempt + 1
                    }
                )
            except httpx.HTTPError as e:
                logger.error(
                    "Admin notification failed",
                    extra={
                        "error": str(e),
                        "attempt": attempt + 1,
                        "notification_title": title
                    }
                )

            if attempt < self._max_retries - 1:
                await asyncio.sleep(self._backoff_base_seconds * (2 ** attempt))

        self._circuit_breaker.record_failure()
        return False

    async def close(self) -> None:
        """Close HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None


# ========== Analytics sink ==========

class LoggingAnalyticsSink(IAnalyticsSink):
    """Records analytics events and crash reports in the structured log."""

    def __init__(self, logger_name: str = "errorwatch.analytics"):
        self._logger = get_logger(logger_name)

    async def log_event(self, name: str, parameters: Dict[str, Any]) -> None:
        self._logger.info(
            f"analytics event: {name}",
            extra={"event_name": name, "parameters": parameters}
        )

    async def record_error(
        self,
        error: str,
        stack_trace: Optional[str],
        metadata: Dict[str, Any],
        fatal: bool
    ) -> None:
        self._logger.error(
            f"crash report: {error}",
            extra={
                "stack_trace": stack_trace,
                "crash_metadata": metadata,
                "fatal": fatal,
            }
        )


# ========== Threshold file ==========

class ThresholdFileHandler(FileSystemEventHandler):
    """Watchdog event handler for threshold file changes."""

    def __init__(self, config_manager: "ThresholdConfigManager", config_path: Path):
        self.config_manager = config_manager
        self.config_path = config_path
        super().__init__()

    def on_modified(self, event):
        """Handle file modification event."""
        if event.is_directory:
            return
        if Path(event.src_path).resolve() == self.config_path.resolve():
            logger.info(f"Threshold file changed: {event.src_path}")
            self.config_manager.reload()

    on_created = on_modified


class ThresholdConfigManager:
    """
    Applies thresholds from a YAML file to a ThresholdRegistry, with
    hot-reload support.

    Only the types the file defines are managed here: thresholds registered
    in code for other types are left alone, and a type dropped from the file
    falls back to its built-in default (when ``include_defaults`` is set).
    With ``include_defaults: false`` the built-in types the file does not
    mention are unregistered.
    """

    def __init__(self, registry: ThresholdRegistry):
        self._registry = registry
        self._config: Optional[ThresholdConfig] = None
        self._applied_types: Set[str] = set()
        self._lock = threading.Lock()
        self._path: Optional[Path] = None
        self._observer = None

    def load(self, path: Path) -> ThresholdConfig:
        """
        Initial load; a missing file means built-in defaults only.

        Raises:
            ConfigurationException: if the file is not valid threshold YAML
        """
        self._path = Path(path)
        config = self._load_from_file(self._path)
        self._apply(config)
        return config

    def _load_from_file(self, path: Path) -> ThresholdConfig:
        """Load and parse the YAML file."""
        if not path.exists():
            logger.info(f"Threshold file not found: {path}, using defaults")
            return ThresholdConfig()

        try:
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
            return ThresholdConfig(**data)
        except (yaml.YAMLError, ValidationError, TypeError) as e:
            raise ConfigurationException(
                f"Invalid threshold file: {path}", {"error": str(e)}
            ) from e

    def _apply(self, config: ThresholdConfig) -> None:
        thresholds, rejected = config.build()
        for error_type, reason in rejected.items():
            logger.error(
                "Rejected threshold from file",
                extra={"error_type": error_type, "reason": reason}
            )

        new_types = {t.error_type for t in thresholds}
        with self._lock:
            for error_type in self._applied_types - new_types:
                self._registry.remove(error_type)
            for threshold in thresholds:
                self._registry.set(threshold)
            if config.include_defaults:
                self._registry.install_defaults()
            else:
                for error_type, *_ in DEFAULT_THRESHOLDS:
                    if error_type not in new_types:
                        self._registry.remove(error_type)
            self._applied_types = new_types
            self._config = config

        logger.info(
            "Thresholds applied from file",
            extra={"applied": sorted(new_types), "rejected": sorted(rejected)}
        )

    def reload(self) -> bool:
        """Reload thresholds; a broken file keeps the current ones."""
        if self._path is None:
            return False

        try:
            config = self._load_from_file(self._path)
        except Exception as e:
            logger.error(f"Failed to reload threshold file: {e}")
            return False

        self._apply(config)
        return True

    def start_watching(self) -> None:
        """
        Start watching the threshold file for changes.

        Skips watching if the file doesn't exist or the platform
        cannot watch it.
        """
        if self._path is None:
            raise RuntimeError("Thresholds not loaded. Call load() first.")

        if not self._path.exists():
            logger.info(
                f"Threshold file doesn't exist, skipping file watch: {self._path}"
            )
            return

        try:
            self._observer = Observer()
            handler = ThresholdFileHandler(self, self._path)
            self._observer.schedule(
                handler,
                str(self._path.parent),
                recursive=False
            )
            self._observer.start()
            logger.info(f"Started watching threshold file: {self._path}")
        except OSError as e:
            logger.warning(f"File watching not available, using static thresholds: {e}")
            self._observer = None

    def stop_watching(self) -> None:
        """Stop watching (safe to call even if not watching)."""
        if self._observer is not None:
            self._observer.stop()
            self._observer.join(timeout=5)
            self._observer = None

    @property
    def is_watching(self) -> bool:
        return self._observer is not None

    @property
    def config(self) -> ThresholdConfig:
        """Get current configuration."""
        if self._config is None:
            raise RuntimeError("Threshold configuration not loaded")
        return self._config
