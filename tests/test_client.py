"""DashboardClient tests against a fake requests session."""

import base64
from datetime import datetime, timedelta, timezone

import pytest
import requests

from logflow.client import DashboardClient, normalize_logs, normalize_metrics
from logflow.errors import BackendError, MalformedResponse, NetworkError
from logflow.models import LogEntry, LogLevel, LogWindow

UTC = timezone.utc
START = datetime(2024, 5, 1, 4, 30, tzinfo=UTC)

RAW_LOGS = [
    {"id": 11, "level": "ERROR", "service": "auth", "message": "timeout", "timestamp": "2024-05-01T04:31:00Z"},
    {"id": 12, "level": "WARNING", "service": "db", "message": "slow query", "timestamp": "2024-05-01T04:32:00.250Z"},
]


@pytest.fixture
def client(fake_session):
    return DashboardClient("http://backend:8080/", timeout=3.0, session=fake_session)


class TestRequest:
    def test_base_url_trailing_slash_dropped(self, client):
        assert client.base_url == "http://backend:8080"

    def test_timeout_passed_to_every_call(self, client, fake_session):
        fake_session.add("GET", "/health", {"status": "healthy"})
        client.check_health()
        assert fake_session.requests[0]["timeout"] == 3.0

    def test_transport_failure_is_network_error(self, client, fake_session):
        fake_session.add("GET", "/health", raises=requests.ConnectionError("refused"))
        with pytest.raises(NetworkError):
            client.check_health()

    def test_timeout_is_network_error(self, client, fake_session):
        fake_session.add("GET", "/metrics", raises=requests.Timeout("slow"))
        with pytest.raises(NetworkError):
            client.get_metrics()

    def test_non_2xx_is_backend_error(self, client, fake_session):
        fake_session.add("GET", "/health", status=503, body='{"status":"unhealthy"}')
        with pytest.raises(BackendError) as exc_info:
            client.check_health()
        assert exc_info.value.status_code == 503
        assert "unhealthy" in exc_info.value.body_excerpt

    def test_backend_error_body_is_truncated(self, client, fake_session):
        fake_session.add("GET", "/logs", status=500, body="x" * 1000)
        with pytest.raises(BackendError) as exc_info:
            client.get_logs()
        assert len(exc_info.value.body_excerpt) == 200
        assert str(exc_info.value).startswith("API 500: ")

    def test_non_json_body_is_malformed(self, client, fake_session):
        fake_session.add("GET", "/metrics", body="<html>gateway</html>")
        with pytest.raises(MalformedResponse):
            client.get_metrics()

    def test_context_manager_closes_session(self, fake_session):
        with DashboardClient("http://backend", session=fake_session):
            pass
        assert fake_session.closed


class TestGetLogs:
    def test_window_sent_as_utc_z_params(self, client, fake_session):
        fake_session.add("GET", "/logs", [])
        window = LogWindow(start=START, end=START + timedelta(minutes=7))

        client.get_logs(window, limit=20)

        assert fake_session.requests[0]["params"] == {
            "from": "2024-05-01T04:30:00.000Z",
            "to": "2024-05-01T04:37:00.000Z",
            "limit": "20",
        }

    def test_no_window_means_no_time_params(self, client, fake_session):
        fake_session.add("GET", "/logs", [])
        client.get_logs(limit=50)
        assert fake_session.requests[0]["params"] == {"limit": "50"}

    @pytest.mark.parametrize("payload", [RAW_LOGS, {"logs": RAW_LOGS}], ids=["bare-list", "wrapped"])
    def test_both_payload_shapes(self, client, fake_session, payload):
        fake_session.add("GET", "/logs", payload)
        logs = client.get_logs()
        assert [entry.id for entry in logs] == [11, 12]
        assert all(isinstance(entry, LogEntry) for entry in logs)

    def test_level_alias_and_utc_timestamps(self, client, fake_session):
        fake_session.add("GET", "/logs", RAW_LOGS)
        logs = client.get_logs()
        assert logs[1].level == LogLevel.WARN
        assert logs[1].timestamp == datetime(2024, 5, 1, 4, 32, 0, 250000, tzinfo=UTC)

    def test_empty_wrapped_payload(self, client, fake_session):
        fake_session.add("GET", "/logs", {"logs": None})
        assert client.get_logs() == []

    def test_unexpected_payload_type(self, client, fake_session):
        fake_session.add("GET", "/logs", "not logs")
        with pytest.raises(MalformedResponse):
            client.get_logs()


class TestNormalizeLogs:
    def test_unknown_level_becomes_debug(self):
        logs = normalize_logs([{"id": 1, "level": "TRACE", "timestamp": "2024-05-01T00:00:00Z"}])
        assert logs[0].level == LogLevel.DEBUG

    def test_missing_service_and_message_default(self):
        entry = normalize_logs([{"id": "a1", "level": "info", "service": None, "timestamp": "2024-05-01T00:00:00Z"}])[0]
        assert entry.id == "a1"
        assert entry.service == "unknown"
        assert entry.message == ""

    def test_entry_without_timestamp_is_malformed(self):
        with pytest.raises(MalformedResponse):
            normalize_logs([{"id": 1, "level": "INFO"}])


class TestNormalizeMetrics:
    def test_missing_fields_default_to_zero(self):
        metrics = normalize_metrics({})
        assert metrics.uptime == 0
        assert metrics.error_rate == 0
        assert metrics.total_count == 0
        assert metrics.services == []
        assert metrics.top_service == "N/A"

    def test_zero_counts_give_zero_error_rate(self):
        metrics = normalize_metrics({"log_counts": {"ERROR": 0, "WARN": 0, "INFO": 0}})
        assert metrics.error_rate == 0
        assert metrics.total_count == 0

    @pytest.mark.parametrize(
        "counts, expected",
        [
            ({"ERROR": 1, "INFO": 2}, 33),
            ({"ERROR": 2, "INFO": 1}, 67),
            ({"ERROR": 1, "INFO": 7}, 13),
            ({"ERROR": 1, "INFO": 199}, 1),
        ],
        ids=["rounds-down", "rounds-up", "half-rounds-up", "half-percent-rounds-up"],
    )
    def test_error_rate_rounds_to_nearest_percent(self, counts, expected):
        assert normalize_metrics({"log_counts": counts}).error_rate == expected

    def test_backend_error_rate_wins(self):
        metrics = normalize_metrics({"log_counts": {"ERROR": 1, "INFO": 2}, "error_rate": 5})
        assert metrics.error_rate == 5

    def test_explicit_total_preferred(self):
        metrics = normalize_metrics({"log_counts": {"ERROR": 10, "total": 200}})
        assert metrics.total_count == 200
        assert metrics.error_rate == 5

    def test_lowercase_level_keys_recognised(self):
        metrics = normalize_metrics({"log_counts": {"error": 3, "warning": 4, "info": 5}})
        assert (metrics.error_count, metrics.warning_count, metrics.info_count) == (3, 4, 5)

    def test_top_services_list_shape(self):
        metrics = normalize_metrics({"top_services": [{"name": "auth", "errors": 7}, {"name": "db", "errors": 2}]})
        assert metrics.top_services == {"auth": 7, "db": 2}
        assert metrics.top_service == "auth"

    def test_services_fall_back_to_top_services(self):
        metrics = normalize_metrics({"top_services": {"api": 4}})
        assert [(s.name, s.healthy) for s in metrics.services] == [("api", True)]

    def test_failing_services_only_lists_errors(self):
        metrics = normalize_metrics({
            "all_services": [
                {"name": "auth", "errors": 3, "status": "Degraded"},
                {"name": "cache", "errors": 0, "status": "Online"},
            ]
        })
        failing = metrics.failing_services()
        assert [(s.name, s.status, s.healthy) for s in failing] == [("auth", "Degraded", False)]

    def test_non_numeric_values_become_zero(self):
        metrics = normalize_metrics({"cpu_usage": "n/a", "memory_usage": "42.5", "log_counts": {"ERROR": None}})
        assert metrics.cpu_usage == 0
        assert metrics.memory_usage == 42.5
        assert metrics.log_counts == {"ERROR": 0}

    def test_non_mapping_is_malformed(self):
        with pytest.raises(MalformedResponse):
            normalize_metrics([1, 2, 3])


class TestAdvancedMetrics:
    def test_ranked_lists_and_defaults(self, client, fake_session):
        fake_session.add("GET", "/metrics/advanced", {
            "top_users": [{"name": "u1", "count": 9}],
            "total_timeouts": 3,
        })
        metrics = client.get_advanced_metrics()
        assert [(item.name, item.count) for item in metrics.top_users] == [("u1", 9)]
        assert metrics.top_orders == []
        assert metrics.total_timeouts == 3
        assert metrics.avg_stock_level == 0


class TestAiEndpoints:
    def test_compare_body(self, client, fake_session):
        fake_session.add("POST", "/ai/compare", {"healthy_count": 3, "crash_count": 9, "analysis": "see [Log #4]"})
        crash = START + timedelta(hours=2)

        result = client.compare_periods(START, crash)

        assert fake_session.requests[0]["json"] == {
            "healthy": "2024-05-01T04:30:00.000Z",
            "crash": "2024-05-01T06:30:00.000Z",
            "image_data": "",
            "mime_type": "",
        }
        assert (result.healthy_count, result.crash_count) == (3, 9)

    def test_compare_with_image(self, client, fake_session):
        fake_session.add("POST", "/ai/compare", {"analysis": ""})
        client.compare_periods(START, START, image=b"\x89PNG", mime_type="image/png")
        body = fake_session.requests[0]["json"]
        assert base64.b64decode(body["image_data"]) == b"\x89PNG"
        assert body["mime_type"] == "image/png"

    def test_compare_rejects_non_object(self, client, fake_session):
        fake_session.add("POST", "/ai/compare", ["nope"])
        with pytest.raises(MalformedResponse):
            client.compare_periods(START, START)

    def test_ask_with_time_range(self, client, fake_session):
        fake_session.add("POST", "/ai/query", {
            "answer": "Errors spiked [Log #5]",
            "from_time": "2024-05-01T04:00:00Z",
            "to_time": "2024-05-01T05:00:00Z",
            "time_range": "last hour",
            "relevant_logs": RAW_LOGS,
        })

        answer = client.ask_ai("what happened?")

        assert fake_session.requests[0]["json"]["question"] == "what happened?"
        window = answer.detected_window()
        assert window.start == datetime(2024, 5, 1, 4, 0, tzinfo=UTC)
        assert window.label == "last hour"
        assert len(answer.relevant_logs) == 2

    def test_ask_without_time_range(self, client, fake_session):
        fake_session.add("POST", "/ai/query", {"answer": "All good"})
        assert client.ask_ai("status?").detected_window() is None

    def test_summary_string_payload(self, client, fake_session):
        fake_session.add("GET", "/ai/summary", "Quiet day")
        assert client.get_summary().summary == "Quiet day"


class TestIngest:
    def test_log_entry_serialized_with_z(self, client, fake_session):
        fake_session.add("POST", "/ingest", {"status": "ok"})
        entry = LogEntry(level="ERROR", service="auth", message="boom", timestamp=START)

        ack = client.ingest_log(entry)

        body = fake_session.requests[0]["json"]
        assert body["timestamp"] == "2024-05-01T04:30:00.000Z"
        assert body["level"] == "ERROR"
        assert "id" not in body
        assert ack == {"status": "ok"}
