"""
Headless view models for the dashboard panels.

Each view owns its PollingController(s) and the last data it fetched, reads
shared state from the Coordinator and never touches another view. Rendering
is left to whatever surface displays `snapshot()` (the web app or the CLI).

Teardown order is fixed: stop polling first, then unsubscribe, so a late
fetch can never update a view that is no longer listening.
"""

import itertools
import logging
import threading
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from .citations import CitationSpan, Span, extract_citation, join_spans, split_for_rendering
from .client import DashboardClient
from .coordinator import Coordinator, Subscription
from .errors import LogFlowError
from .fallback import classify_health, synthetic_logs, synthetic_metrics
from .models import (
    AdvancedMetrics,
    ComparisonResult,
    HealthStatus,
    Highlight,
    LogEntry,
    LogWindow,
    MetricsSnapshot,
)
from .polling import PollingController
from .timeutil import CRASH_WINDOW_MINUTES, derive_window, require_fields, rolling_window, to_absolute_instant

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class PolledView:
    """Base for views that refresh one dataset on a timer.

    Subclasses implement `fetch()` and `apply()`; failures switch the view to
    `fallback()` data and mark it offline until the next successful fetch.
    """

    name = "view"

    def __init__(self, interval: Optional[float]):
        self.interval = interval
        self.poller = PollingController(self.name)
        self._lock = threading.Lock()
        self.offline = False
        self.last_error: Optional[str] = None
        self.updated_at: Optional[datetime] = None

    def fetch(self) -> Any:
        raise NotImplementedError

    def apply(self, data: Any) -> None:
        raise NotImplementedError

    def fallback(self) -> Any:
        raise NotImplementedError

    def start(self) -> None:
        self.poller.start(self.fetch, self.interval, self._on_result, self._on_error)

    def teardown(self) -> None:
        self.poller.stop()

    def _on_result(self, data: Any) -> None:
        with self._lock:
            self.apply(data)
            self.offline = False
            self.last_error = None
            self.updated_at = utc_now()

    def _on_error(self, error: Exception) -> None:
        logger.warning(f"[{self.name}] using fallback data: {error}")
        with self._lock:
            self.apply(self.fallback())
            self.offline = True
            self.last_error = str(error)
            self.updated_at = utc_now()

    def status(self) -> Dict[str, Any]:
        return {
            "offline": self.offline,
            "last_error": self.last_error,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


@dataclass(frozen=True)
class FocusEvent:
    """Scroll-into-view + pulse request for one rendered log row.

    `pulse_key` is the highlight's triggered_at, so a repeated citation of the
    same log yields a new event.
    """

    log_id: str
    index: int
    pulse_key: int


class LogListView(PolledView):
    """Sidebar log list that follows the Coordinator window and highlight."""

    name = "sidebar"
    DISPLAY_LIMIT = 20

    def __init__(
        self,
        client: DashboardClient,
        coordinator: Coordinator,
        interval: float = 3.0,
        fetch_limit: int = 50,
        clock: Clock = utc_now,
        on_focus: Optional[Callable[[FocusEvent], None]] = None,
    ):
        super().__init__(interval)
        self.client = client
        self.coordinator = coordinator
        self.fetch_limit = fetch_limit
        self.clock = clock
        self.on_focus = on_focus
        self.logs: List[LogEntry] = []
        self.window: Optional[LogWindow] = None
        self.focus: Optional[FocusEvent] = None
        self._pending_highlight: Optional[Highlight] = None
        self._subscription: Optional[Subscription] = None

    @property
    def title(self) -> str:
        return "Time Window Logs" if self.window is not None else "Live Logs"

    def start(self) -> None:
        self._subscription = self.coordinator.subscribe(
            on_window=self._on_window,
            on_highlight=self._on_highlight,
            name=self.name,
        )
        self._restart(self.coordinator.window)

    def teardown(self) -> None:
        super().teardown()
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None

    def _restart(self, window: Optional[LogWindow]) -> None:
        # A fixed window is fetched once; the live window keeps polling.
        with self._lock:
            self.window = window
        interval = self.interval if window is None else None
        self.poller.start(self.fetch, interval, self._on_result, self._on_error)

    def _on_window(self, window: Optional[LogWindow]) -> None:
        self._restart(window)

    def fetch(self) -> List[LogEntry]:
        with self._lock:
            window = self.window
        window = window or rolling_window(self.clock())
        return self.client.get_logs(window, limit=self.fetch_limit)

    def fallback(self) -> List[LogEntry]:
        return synthetic_logs(self.clock())

    def apply(self, logs: List[LogEntry]) -> None:
        self.logs = list(logs[:self.DISPLAY_LIMIT])
        if self._pending_highlight is not None:
            self._focus(self._pending_highlight)

    def _on_highlight(self, highlight: Highlight) -> None:
        with self._lock:
            if highlight.log_id is None:
                self.focus = None
                self._pending_highlight = None
                return
            self._focus(highlight)

    def _focus(self, highlight: Highlight) -> None:
        wanted = str(highlight.log_id)
        for index, entry in enumerate(self.logs):
            if entry.id is not None and str(entry.id) == wanted:
                self.focus = FocusEvent(log_id=wanted, index=index, pulse_key=highlight.triggered_at)
                self._pending_highlight = None
                if self.on_focus is not None:
                    self.on_focus(self.focus)
                return
        # Not rendered yet: apply when a later fetch brings it in.
        self._pending_highlight = highlight
        logger.debug(f"[{self.name}] highlighted log {wanted} not in current list")

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "title": self.title,
                "window": self.window.model_dump(mode="json") if self.window else None,
                "logs": [entry.model_dump(mode="json") for entry in self.logs],
                "focus": asdict(self.focus) if self.focus else None,
                **self.status(),
            }


class LiveFeedView(PolledView):
    """Rolling last-hour stream, independent of the Coordinator window."""

    name = "live-feed"

    def __init__(self, client: DashboardClient, interval: float = 1.5, limit: int = 100, clock: Clock = utc_now):
        super().__init__(interval)
        self.client = client
        self.limit = limit
        self.clock = clock
        self.logs: List[LogEntry] = []
        self.auto_scroll = True

    def fetch(self) -> List[LogEntry]:
        return self.client.get_logs(rolling_window(self.clock()), limit=self.limit)

    def fallback(self) -> List[LogEntry]:
        return synthetic_logs(self.clock())

    def apply(self, logs: List[LogEntry]) -> None:
        self.logs = list(logs)

    def toggle_auto_scroll(self) -> bool:
        self.auto_scroll = not self.auto_scroll
        return self.auto_scroll

    def clear(self) -> None:
        with self._lock:
            self.logs = []

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "auto_scroll": self.auto_scroll,
                "logs": [entry.model_dump(mode="json") for entry in self.logs],
                **self.status(),
            }


class MetricsView(PolledView):
    name = "metrics"

    def __init__(self, client: DashboardClient, interval: float = 1.5):
        super().__init__(interval)
        self.client = client
        self.metrics = MetricsSnapshot()

    def fetch(self) -> MetricsSnapshot:
        return self.client.get_metrics()

    def fallback(self) -> MetricsSnapshot:
        return synthetic_metrics()

    def apply(self, metrics: MetricsSnapshot) -> None:
        self.metrics = metrics

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            metrics = self.metrics
            return {
                "total_logs": metrics.total_count,
                "metrics": metrics.model_dump(mode="json"),
                "failing_services": [service.model_dump() for service in metrics.failing_services()],
                **self.status(),
            }


class AdvancedMetricsView(PolledView):
    name = "advanced-metrics"

    def __init__(self, client: DashboardClient, interval: float = 1.5):
        super().__init__(interval)
        self.client = client
        self.metrics = AdvancedMetrics()

    def fetch(self) -> AdvancedMetrics:
        return self.client.get_advanced_metrics()

    def fallback(self) -> AdvancedMetrics:
        return AdvancedMetrics()

    def apply(self, metrics: AdvancedMetrics) -> None:
        self.metrics = metrics

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            return {"metrics": self.metrics.model_dump(mode="json"), **self.status()}


@dataclass
class OverviewData:
    health: HealthStatus
    logs: List[LogEntry]
    metrics: MetricsSnapshot


class OverviewView(PolledView):
    """Combined health, recent logs and level counts, refreshed together."""

    name = "overview"

    def __init__(self, client: DashboardClient, interval: float = 5.0, limit: int = 20, clock: Clock = utc_now):
        super().__init__(interval)
        self.client = client
        self.limit = limit
        self.clock = clock
        self.data = OverviewData(HealthStatus.OFFLINE, [], MetricsSnapshot())

    def fetch(self) -> OverviewData:
        health = classify_health(self.client.check_health())
        logs = self.client.get_logs(rolling_window(self.clock()), limit=self.limit)
        metrics = self.client.get_metrics()
        return OverviewData(health, logs, metrics)

    def fallback(self) -> OverviewData:
        return OverviewData(HealthStatus.OFFLINE, synthetic_logs(self.clock()), synthetic_metrics())

    def apply(self, data: OverviewData) -> None:
        self.data = data

    def error_rate_percent(self) -> float:
        metrics = self.data.metrics
        total = metrics.total_count
        if not total:
            return 0.0
        return round(metrics.log_counts.get("ERROR", 0) / total * 100, 1)

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            metrics = self.data.metrics
            return {
                "health": self.data.health.value,
                "error_rate": self.error_rate_percent(),
                "total_logs": metrics.total_count,
                "top_service": metrics.top_service,
                "logs": [entry.model_dump(mode="json") for entry in self.data.logs],
                "counts": {
                    "ERROR": metrics.log_counts.get("ERROR", 0),
                    "WARN": metrics.log_counts.get("WARN", metrics.log_counts.get("WARNING", 0)),
                    "INFO": metrics.log_counts.get("INFO", 0),
                },
                **self.status(),
            }


class TimeTravelView:
    """Healthy-vs-crash comparison form."""

    name = "time-travel"

    def __init__(
        self,
        client: DashboardClient,
        coordinator: Coordinator,
        timezone_name: Optional[str] = None,
        crash_window_minutes: int = CRASH_WINDOW_MINUTES,
    ):
        self.client = client
        self.coordinator = coordinator
        self.timezone_name = timezone_name
        self.crash_window_minutes = crash_window_minutes
        self.result: Optional[ComparisonResult] = None
        self.analysis_spans: List[Span] = []
        self.loading = False
        self.last_error: Optional[str] = None

    def compare(
        self,
        healthy_date: str,
        healthy_time: str,
        healthy_meridiem: str,
        crash_date: str,
        crash_time: str,
        crash_meridiem: str,
        image: Optional[bytes] = None,
        mime_type: Optional[str] = None,
    ) -> ComparisonResult:
        """Compare two periods, then point every view at the crash window.

        Raises:
            InvalidInput: A field is missing or malformed; nothing is sent.
            LogFlowError: The comparison request failed.
        """
        require_fields(
            healthy_date=healthy_date,
            healthy_time=healthy_time,
            healthy_meridiem=healthy_meridiem,
            crash_date=crash_date,
            crash_time=crash_time,
            crash_meridiem=crash_meridiem,
        )
        healthy = to_absolute_instant(healthy_date, healthy_time, healthy_meridiem, self.timezone_name)
        crash = to_absolute_instant(crash_date, crash_time, crash_meridiem, self.timezone_name)
        logger.info(f"Comparing periods: healthy={healthy.isoformat()} crash={crash.isoformat()}")

        self.loading = True
        self.last_error = None
        try:
            result = self.client.compare_periods(healthy, crash, image=image, mime_type=mime_type)
        except LogFlowError as e:
            self.last_error = str(e)
            raise
        finally:
            self.loading = False

        self.result = result
        self.analysis_spans = split_for_rendering(result.analysis)
        self.coordinator.set_window(derive_window(crash, self.crash_window_minutes, label="Crash Period"))
        return result

    def cite(self, log_id: str) -> int:
        return self.coordinator.set_highlight(log_id)

    def snapshot(self) -> Dict[str, Any]:
        return {
            "loading": self.loading,
            "last_error": self.last_error,
            "result": self.result.model_dump(mode="json") if self.result else None,
            "analysis": _spans_json(self.analysis_spans),
        }


@dataclass
class ChatMessage:
    id: int
    role: str
    text: str
    spans: List[Span] = field(default_factory=list)

    @property
    def first_citation(self) -> Optional[str]:
        return extract_citation(self.text)


GREETING = (
    "Hey! I'm LogFlow, your AI-powered SRE assistant. "
    "Ask me anything about your logs, metrics, or system health."
)
APOLOGY = "Sorry, I encountered an error processing your query."
NO_ANSWER = "I could not process that request."


class AssistantView:
    """AI chat transcript. Answers may scope the dashboard to a detected time range."""

    name = "assistant"

    def __init__(self, client: DashboardClient, coordinator: Coordinator):
        self.client = client
        self.coordinator = coordinator
        self._ids = itertools.count(1)
        self.messages: List[ChatMessage] = [self._message("assistant", GREETING)]
        self.loading = False

    def _message(self, role: str, text: str) -> ChatMessage:
        return ChatMessage(next(self._ids), role, text, split_for_rendering(text))

    def ask(self, question: str, image: Optional[bytes] = None, mime_type: Optional[str] = None) -> Optional[ChatMessage]:
        """Send a question. Blank questions are ignored and return None.

        On failure an apology is appended to the transcript and the error is re-raised.
        """
        if not question or not question.strip():
            return None

        self.messages.append(self._message("user", question))
        self.loading = True
        try:
            answer = self.client.ask_ai(question, image=image, mime_type=mime_type)
        except LogFlowError:
            self.messages.append(self._message("assistant", APOLOGY))
            raise
        finally:
            self.loading = False

        reply = self._message("assistant", answer.answer or NO_ANSWER)
        self.messages.append(reply)

        try:
            window = answer.detected_window()
        except ValueError as e:
            logger.warning(f"Ignoring inverted time range in AI answer: {e}")
            window = None
        if window is not None:
            self.coordinator.set_window(window)
        return reply

    def cite(self, log_id: str) -> int:
        return self.coordinator.set_highlight(log_id)

    def snapshot(self) -> Dict[str, Any]:
        return {
            "loading": self.loading,
            "messages": [
                {"id": message.id, "role": message.role, "text": join_spans(message.spans), "spans": _spans_json(message.spans)}
                for message in self.messages
            ],
        }


def _spans_json(spans: List[Span]) -> List[Dict[str, str]]:
    result = []
    for span in spans:
        if isinstance(span, CitationSpan):
            result.append({"citation": span.log_id})
        else:
            result.append({"text": span.text})
    return result
