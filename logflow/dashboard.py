"""
Composition root: one client, one coordinator, the heartbeat and every view.

The header heartbeat and the sidebar always run. Of the main panels only the
selected tab polls; switching tabs tears the previous panel down first.
"""

import logging
import threading
from typing import Any, Dict, Optional

from .client import DashboardClient
from .config import Config, get_config
from .coordinator import Coordinator
from .fallback import Heartbeat
from .views import (
    AdvancedMetricsView,
    AssistantView,
    LiveFeedView,
    LogListView,
    MetricsView,
    OverviewView,
    TimeTravelView,
)

logger = logging.getLogger(__name__)

TABS = ("overview", "debugger", "ai", "metrics", "advanced", "live")
DEFAULT_TAB = "debugger"


class Dashboard:
    def __init__(
        self,
        config: Optional[Config] = None,
        client: Optional[DashboardClient] = None,
        coordinator: Optional[Coordinator] = None,
    ):
        self.config = config or get_config()
        self.client = client or DashboardClient.from_config(self.config)
        self.coordinator = coordinator or Coordinator()
        self._lock = threading.Lock()
        self._started = False

        cfg = self.config
        self.heartbeat = Heartbeat(self.client.check_health, interval=cfg["heartbeat_seconds"])
        self.sidebar = LogListView(
            self.client,
            self.coordinator,
            interval=cfg["sidebar_poll_seconds"],
            fetch_limit=cfg["sidebar_limit"],
        )
        self.time_travel = TimeTravelView(
            self.client,
            self.coordinator,
            timezone_name=cfg["timezone"],
            crash_window_minutes=cfg["crash_window_minutes"],
        )
        self.assistant = AssistantView(self.client, self.coordinator)
        self.overview = OverviewView(self.client, interval=cfg["overview_poll_seconds"])
        self.metrics = MetricsView(self.client, interval=cfg["metrics_poll_seconds"])
        self.advanced = AdvancedMetricsView(self.client, interval=cfg["metrics_poll_seconds"])
        self.live_feed = LiveFeedView(
            self.client,
            interval=cfg["live_feed_poll_seconds"],
            limit=cfg["live_feed_limit"],
        )

        # Tabs without a poller map to None.
        self._tab_views = {
            "overview": self.overview,
            "debugger": None,
            "ai": None,
            "metrics": self.metrics,
            "advanced": self.advanced,
            "live": self.live_feed,
        }
        self.active_tab = DEFAULT_TAB

    @property
    def started(self) -> bool:
        return self._started

    def start(self) -> None:
        with self._lock:
            if self._started:
                return
            self._started = True
        logger.info(f"Dashboard starting against {self.client.base_url}")
        self.heartbeat.start()
        self.sidebar.start()
        self._start_tab(self.active_tab)

    def stop(self) -> None:
        with self._lock:
            if not self._started:
                return
            self._started = False
        self._stop_tab(self.active_tab)
        self.sidebar.teardown()
        self.heartbeat.stop()
        self.client.close()
        logger.info("Dashboard stopped")

    def select_tab(self, tab: str) -> None:
        if tab not in TABS:
            raise ValueError(f"Unknown tab: {tab} (expected one of {', '.join(TABS)})")
        if tab == self.active_tab:
            return
        if self._started:
            self._stop_tab(self.active_tab)
            self._start_tab(tab)
        logger.debug(f"Tab switched: {self.active_tab} -> {tab}")
        self.active_tab = tab

    def _start_tab(self, tab: str) -> None:
        view = self._tab_views[tab]
        if view is not None:
            view.start()

    def _stop_tab(self, tab: str) -> None:
        view = self._tab_views[tab]
        if view is not None:
            view.teardown()

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.stop()
        return False

    def snapshot(self) -> Dict[str, Any]:
        """JSON-ready state of the whole dashboard."""
        window = self.coordinator.window
        highlight = self.coordinator.highlight
        return {
            "active_tab": self.active_tab,
            "health": {
                "status": self.heartbeat.status.value if self.heartbeat.status else None,
                "text": self.heartbeat.status_text,
                "last_error": self.heartbeat.last_error,
            },
            "window": window.model_dump(mode="json") if window else None,
            "highlight": highlight.model_dump(mode="json"),
            "sidebar": self.sidebar.snapshot(),
            "overview": self.overview.snapshot(),
            "metrics": self.metrics.snapshot(),
            "advanced": self.advanced.snapshot(),
            "live": self.live_feed.snapshot(),
            "time_travel": self.time_travel.snapshot(),
            "assistant": self.assistant.snapshot(),
        }
