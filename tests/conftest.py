"""Shared fixtures: fake HTTP session, stub backend client and polling helpers."""

import time
from datetime import datetime, timedelta, timezone
from urllib.parse import urlparse

import pytest

from logflow.client import normalize_metrics
from logflow.config import DEFAULTS
from logflow.models import AdvancedMetrics, AIAnswer, ComparisonResult, LogEntry

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

NO_JSON = object()


class FakeResponse:
    def __init__(self, status_code=200, payload=None, text=None):
        self.status_code = status_code
        self._payload = payload
        self.text = text if text is not None else ("" if payload is NO_JSON else str(payload))

    def json(self):
        if self._payload is NO_JSON:
            raise ValueError("No JSON object could be decoded")
        return self._payload


class FakeSession:
    """Stands in for requests.Session. Routes are keyed by (method, path)."""

    def __init__(self):
        self.routes = {}
        self.requests = []
        self.closed = False

    def add(self, method, path, payload=None, status=200, body=None, raises=None):
        """Register a canned answer. `body` sends raw non-JSON text, `raises` simulates a transport failure."""
        if raises is not None:
            outcome = raises
        elif body is not None:
            outcome = FakeResponse(status, NO_JSON, body)
        else:
            outcome = FakeResponse(status, payload)
        self.routes[(method, path)] = outcome

    def request(self, method, url, params=None, json=None, timeout=None):
        path = urlparse(url).path
        self.requests.append({"method": method, "path": path, "params": params, "json": json, "timeout": timeout})
        outcome = self.routes.get((method, path), FakeResponse(404, NO_JSON, "not found"))
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    def close(self):
        self.closed = True


class StubClient:
    """In-memory DashboardClient replacement for view and web tests."""

    base_url = "http://stub"

    def __init__(self):
        self.health = {"status": "healthy"}
        self.logs = make_logs(5)
        self.logs_for = {}
        self.metrics = normalize_metrics({
            "log_counts": {"ERROR": 10, "WARN": 20, "INFO": 70},
            "top_services": {"checkout": 12, "auth": 3},
        })
        self.advanced = AdvancedMetrics(total_timeouts=4)
        self.answer = AIAnswer(answer="Checkout failed, see [Log #3].")
        self.comparison = ComparisonResult(healthy_count=10, crash_count=42, analysis="Spike in errors [Log #7]")
        self.fail = {}
        self.calls = []
        self.closed = False

    def _call(self, name, *args):
        self.calls.append((name,) + args)
        if name in self.fail:
            raise self.fail[name]

    def check_health(self):
        self._call("check_health")
        return dict(self.health)

    def get_logs(self, window=None, limit=50):
        self._call("get_logs", window, limit)
        if window is not None and window.label in self.logs_for:
            return list(self.logs_for[window.label])
        return list(self.logs)

    def get_metrics(self):
        self._call("get_metrics")
        return self.metrics

    def get_advanced_metrics(self):
        self._call("get_advanced_metrics")
        return self.advanced

    def ask_ai(self, question, image=None, mime_type=None):
        self._call("ask_ai", question, image, mime_type)
        return self.answer

    def compare_periods(self, healthy, crash, image=None, mime_type=None):
        self._call("compare_periods", healthy, crash, image, mime_type)
        return self.comparison

    def close(self):
        self.closed = True

    def calls_named(self, name):
        return [call for call in self.calls if call[0] == name]


def make_logs(count, start_id=1, service="checkout"):
    return [
        LogEntry(
            id=start_id + offset,
            level="ERROR" if offset % 3 == 0 else "INFO",
            service=service,
            message=f"event {start_id + offset}",
            timestamp=NOW - timedelta(seconds=offset),
        )
        for offset in range(count)
    ]


@pytest.fixture
def fake_session():
    return FakeSession()


@pytest.fixture
def stub_client():
    return StubClient()


@pytest.fixture
def logs_factory():
    return make_logs


@pytest.fixture
def fixed_clock():
    return lambda: NOW


@pytest.fixture
def slow_config():
    """Config whose timers never fire during a test; only immediate fetches run."""
    config = dict(DEFAULTS)
    config.update({
        "heartbeat_seconds": 60.0,
        "sidebar_poll_seconds": 60.0,
        "live_feed_poll_seconds": 60.0,
        "metrics_poll_seconds": 60.0,
        "overview_poll_seconds": 60.0,
    })
    return config


@pytest.fixture
def wait_until():
    def _wait(predicate, timeout=2.0):
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            if predicate():
                return True
            time.sleep(0.005)
        return predicate()

    return _wait
