"""
Graceful degradation when the backend is unreachable.

Views never show a blank screen: when a fetch fails outright they swap in the
fixed synthetic data below and mark themselves offline. The heartbeat
classifies backend health independently of data polling.
"""

import logging
import threading
from datetime import datetime, timezone
from typing import Any, Callable, List, Mapping, Optional, Union

from .client import normalize_metrics
from .models import HealthStatus, LogEntry, MetricsSnapshot
from .polling import PollingController

logger = logging.getLogger(__name__)

HEALTHY_STATUS = "healthy"

STATUS_TEXT = {
    HealthStatus.HEALTHY: "All Systems Normal",
    HealthStatus.DEGRADED: "System Degraded",
    HealthStatus.OFFLINE: "System Offline",
}

SYNTHETIC_LOGS = [
    (1, "ERROR", "auth-service", "Authentication timeout after 30s"),
    (2, "WARN", "api-gateway", "High memory usage detected: 85%"),
    (3, "INFO", "database", "Connection pool resized to 50 connections"),
    (4, "ERROR", "payment-service", "Failed to process payment: timeout"),
    (5, "INFO", "cache", "Redis cache hit rate: 94.2%"),
]

SYNTHETIC_METRICS = {
    "log_counts": {"ERROR": 24, "WARN": 156, "INFO": 892},
    "top_services": {"api-gateway": 452, "auth-service": 328, "database": 289},
}


def classify_health(outcome: Union[Mapping[str, Any], Exception]) -> HealthStatus:
    """Classify a health-check outcome.

    Args:
        outcome: The health response mapping, or the exception the check raised.

    Returns:
        OFFLINE for any failure, HEALTHY for status "healthy", DEGRADED otherwise.
    """
    if isinstance(outcome, Exception):
        return HealthStatus.OFFLINE
    if isinstance(outcome, Mapping) and outcome.get("status") == HEALTHY_STATUS:
        return HealthStatus.HEALTHY
    return HealthStatus.DEGRADED


def synthetic_logs(now: Optional[datetime] = None) -> List[LogEntry]:
    """Fixed placeholder log list, all stamped `now`."""
    now = now or datetime.now(timezone.utc)
    return [
        LogEntry(id=log_id, level=level, service=service, message=message, timestamp=now)
        for log_id, level, service, message in SYNTHETIC_LOGS
    ]


def synthetic_metrics() -> MetricsSnapshot:
    """Fixed placeholder metrics with derived fields filled in."""
    return normalize_metrics(SYNTHETIC_METRICS)


class Heartbeat:
    """Periodic health check driving the dashboard's status indicator."""

    def __init__(
        self,
        check: Callable[[], Mapping[str, Any]],
        interval: float = 5.0,
        on_change: Optional[Callable[[HealthStatus], None]] = None,
    ):
        self._check = check
        self.interval = interval
        self.on_change = on_change
        self.poller = PollingController("heartbeat")
        self._lock = threading.Lock()
        self.status: Optional[HealthStatus] = None
        self.last_error: Optional[str] = None

    @property
    def status_text(self) -> str:
        if self.status is None:
            return "Unknown Status"
        return STATUS_TEXT[self.status]

    def start(self) -> None:
        self.poller.start(self._check, self.interval, self._record, self._record)

    def stop(self) -> None:
        self.poller.stop()

    def _record(self, outcome: Union[Mapping[str, Any], Exception]) -> None:
        status = classify_health(outcome)
        with self._lock:
            changed = status != self.status
            self.status = status
            self.last_error = str(outcome) if isinstance(outcome, Exception) else None
        if changed:
            logger.info(f"Backend health changed: {status.value}")
            if self.on_change is not None:
                self.on_change(status)
