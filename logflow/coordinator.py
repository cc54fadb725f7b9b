"""
Shared cross-view state: the active query window and the highlighted log.

Views never reference each other. Anything that wants to influence another
view goes through the Coordinator's mutators, and every view that cares
subscribes to changes.

State:
    window: LogWindow or None. None means the rolling live window
        (the last hour, recomputed on every poll).
    highlight: Highlight(log_id, triggered_at). triggered_at strictly
        increases on every set_highlight(), even for a repeated log id,
        so views re-run their scroll/pulse effect.

Writes and their notifications are serialized under one lock, so every
subscriber observes updates in the order they were made.
"""

import logging
import threading
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from .models import Highlight, LogId, LogWindow

logger = logging.getLogger(__name__)

WindowCallback = Callable[[Optional[LogWindow]], None]
HighlightCallback = Callable[[Highlight], None]


@dataclass
class Subscription:
    """Handle returned by Coordinator.subscribe()."""

    token: int
    coordinator: "Coordinator"

    def unsubscribe(self) -> None:
        self.coordinator._remove(self.token)


@dataclass
class _Subscriber:
    name: str
    on_window: Optional[WindowCallback]
    on_highlight: Optional[HighlightCallback]


class Coordinator:
    """Single writer of LogWindow and Highlight for the whole dashboard."""

    def __init__(self):
        self._lock = threading.RLock()
        self._window: Optional[LogWindow] = None
        self._highlight = Highlight()
        self._subscribers: Dict[int, _Subscriber] = {}
        self._next_token = 0

    @property
    def window(self) -> Optional[LogWindow]:
        return self._window

    @property
    def highlight(self) -> Highlight:
        return self._highlight

    def subscribe(
        self,
        on_window: Optional[WindowCallback] = None,
        on_highlight: Optional[HighlightCallback] = None,
        name: str = "subscriber",
    ) -> Subscription:
        """Register change callbacks. Callbacks run on the writer's thread."""
        with self._lock:
            self._next_token += 1
            token = self._next_token
            self._subscribers[token] = _Subscriber(name, on_window, on_highlight)
        return Subscription(token, self)

    def _remove(self, token: int) -> None:
        with self._lock:
            self._subscribers.pop(token, None)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def set_window(self, window: LogWindow) -> None:
        """Replace the active window wholesale."""
        if not isinstance(window, LogWindow):
            raise TypeError(f"set_window expects a LogWindow, got {type(window).__name__}")
        with self._lock:
            self._window = window
            logger.info(f"Log window set: {window.start.isoformat()} -> {window.end.isoformat()} ({window.label or 'unlabelled'})")
            self._notify_window(window)

    def clear_window(self) -> None:
        """Return to the rolling live window."""
        with self._lock:
            if self._window is None:
                return
            self._window = None
            logger.info("Log window cleared, back to live window")
            self._notify_window(None)

    def set_highlight(self, log_id: Optional[LogId]) -> int:
        """Highlight `log_id` (or clear with None). Returns the new triggered_at."""
        with self._lock:
            highlight = Highlight(log_id=log_id, triggered_at=self._highlight.triggered_at + 1)
            self._highlight = highlight
            logger.debug(f"Highlight log {log_id} (trigger {highlight.triggered_at})")
            for subscriber in list(self._subscribers.values()):
                if subscriber.on_highlight is not None:
                    self._dispatch(subscriber, subscriber.on_highlight, highlight)
            return highlight.triggered_at

    def _notify_window(self, window: Optional[LogWindow]) -> None:
        for subscriber in list(self._subscribers.values()):
            if subscriber.on_window is not None:
                self._dispatch(subscriber, subscriber.on_window, window)

    def _dispatch(self, subscriber: _Subscriber, callback, value) -> None:
        try:
            callback(value)
        except Exception:
            # One broken view must not stop the others from updating.
            logger.exception(f"Subscriber {subscriber.name} failed handling coordinator update")
