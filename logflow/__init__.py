"""LogFlow dashboard client: cross-view sync and resilient polling over the LogFlow backend."""

from .client import DashboardClient
from .coordinator import Coordinator
from .dashboard import Dashboard
from .errors import BackendError, InvalidInput, LogFlowError, MalformedResponse, NetworkError
from .models import Highlight, LogEntry, LogWindow, MetricsSnapshot
from .polling import PollingController

__version__ = "0.1.0"

__all__ = [
    "BackendError",
    "Coordinator",
    "Dashboard",
    "DashboardClient",
    "Highlight",
    "InvalidInput",
    "LogEntry",
    "LogFlowError",
    "LogWindow",
    "MalformedResponse",
    "MetricsSnapshot",
    "NetworkError",
    "PollingController",
]
