"""
Data model for the LogFlow dashboard.

All records received from the backend are parsed into these pydantic models
at the Data Client boundary so views never see raw JSON.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator, model_validator

LogId = Union[int, str]


class LogLevel(str, Enum):
    """Severity of a log record."""

    ERROR = "ERROR"
    WARN = "WARN"
    INFO = "INFO"
    DEBUG = "DEBUG"


LEVEL_ALIASES = {
    "WARNING": LogLevel.WARN,
}


class HealthStatus(str, Enum):
    """Backend health as seen by the heartbeat."""

    HEALTHY = "healthy"
    DEGRADED = "degraded"
    OFFLINE = "offline"


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def normalize_level(value: Any) -> LogLevel:
    """Map a raw level string onto LogLevel; unknown levels become DEBUG."""
    if isinstance(value, LogLevel):
        return value
    text = str(value or "").strip().upper()
    if text in LEVEL_ALIASES:
        return LEVEL_ALIASES[text]
    try:
        return LogLevel(text)
    except ValueError:
        return LogLevel.DEBUG


class LogEntry(BaseModel):
    """A single ingested log record. Identity is `id`."""

    model_config = ConfigDict(frozen=True)

    id: Optional[LogId] = None
    level: LogLevel = LogLevel.DEBUG
    service: str = "unknown"
    message: str = ""
    timestamp: datetime
    route: Optional[str] = None

    @field_validator("level", mode="before")
    @classmethod
    def _normalize_level(cls, value: Any) -> LogLevel:
        return normalize_level(value)

    @field_validator("service", "message", mode="before")
    @classmethod
    def _none_to_default(cls, value: Any, info: ValidationInfo) -> Any:
        if value is None or value == "":
            return "unknown" if info.field_name == "service" else ""
        return value

    @field_validator("timestamp")
    @classmethod
    def _utc_timestamp(cls, value: datetime) -> datetime:
        return ensure_utc(value)


class LogWindow(BaseModel):
    """A bounded time range used to scope a log query."""

    model_config = ConfigDict(frozen=True)

    start: datetime
    end: datetime
    label: Optional[str] = None

    @field_validator("start", "end")
    @classmethod
    def _utc_bounds(cls, value: datetime) -> datetime:
        return ensure_utc(value)

    @model_validator(mode="after")
    def validate_order(self) -> "LogWindow":
        """Ensure the window is not inverted."""
        if self.start > self.end:
            raise ValueError("LogWindow start must not be after end")
        return self

    def contains(self, instant: datetime) -> bool:
        return self.start <= ensure_utc(instant) <= self.end


class Highlight(BaseModel):
    """The log currently called out across views.

    `triggered_at` increases on every update so re-citing the same log
    produces a new pulse.
    """

    model_config = ConfigDict(frozen=True)

    log_id: Optional[LogId] = None
    triggered_at: int = 0


class ServiceStatus(BaseModel):
    name: str
    errors: int = 0
    status: str = "Online"
    healthy: bool = True


class RankedItem(BaseModel):
    name: str
    count: int = 0


class MetricsSnapshot(BaseModel):
    """Aggregate counts for one metrics poll. Never merged across polls."""

    uptime: float = 0
    error_rate: int = 0
    avg_latency: float = 0
    active_connections: int = 0
    memory_usage: float = 0
    cpu_usage: float = 0
    requests_per_second: float = 0
    services: List[ServiceStatus] = Field(default_factory=list)
    error_count: int = 0
    info_count: int = 0
    warning_count: int = 0
    unique_services: int = 0
    all_services: List[ServiceStatus] = Field(default_factory=list)
    log_counts: Dict[str, int] = Field(default_factory=dict)
    top_services: Dict[str, int] = Field(default_factory=dict)

    @property
    def total_count(self) -> int:
        """Total across levels, preferring an explicit `total` bucket."""
        if "total" in self.log_counts:
            return self.log_counts["total"]
        return sum(self.log_counts.values())

    @property
    def top_service(self) -> str:
        return next(iter(self.top_services), "N/A")

    def failing_services(self) -> List[ServiceStatus]:
        """Services that reported at least one error."""
        return [service for service in self.all_services if service.errors > 0]


class AdvancedMetrics(BaseModel):
    """Business-level aggregates extracted from log messages by the backend."""

    top_users: List[RankedItem] = Field(default_factory=list)
    top_orders: List[RankedItem] = Field(default_factory=list)
    top_products: List[RankedItem] = Field(default_factory=list)
    top_error_reasons: List[RankedItem] = Field(default_factory=list)
    avg_response_time: float = 0
    total_timeouts: int = 0
    avg_retry_attempts: float = 0
    avg_stock_level: float = 0


class ComparisonResult(BaseModel):
    """Outcome of a healthy-vs-crash period comparison."""

    healthy_count: int = 0
    crash_count: int = 0
    analysis: str = ""
    healthy_start: Optional[datetime] = None
    crash_start: Optional[datetime] = None


class AIAnswer(BaseModel):
    """Answer returned by the AI query endpoint."""

    answer: str = ""
    from_time: Optional[datetime] = None
    to_time: Optional[datetime] = None
    time_range: Optional[str] = None
    relevant_logs: List[LogEntry] = Field(default_factory=list)

    def detected_window(self) -> Optional[LogWindow]:
        """Window the backend scoped the answer to, when it reported one."""
        if self.from_time is None or self.to_time is None:
            return None
        return LogWindow(start=self.from_time, end=self.to_time, label=self.time_range)


class Summary(BaseModel):
    summary: str = ""
    total_logs: int = 0
    error_count: int = 0
    warning_count: int = 0
    info_count: int = 0
    top_services: Dict[str, int] = Field(default_factory=dict)
