"""HTTP client for the LogFlow backend.

Wraps every backend endpoint behind one method, classifies failures into the
LogFlow error taxonomy and normalizes response-shape drift so that callers
only ever receive pydantic models.

No retries happen here; repeated attempts are the poller's job.
"""

import base64
import math
import logging
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Union

import requests
from pydantic import ValidationError

from .errors import BackendError, MalformedResponse, NetworkError
from .models import (
    AdvancedMetrics,
    AIAnswer,
    ComparisonResult,
    LogEntry,
    LogWindow,
    MetricsSnapshot,
    RankedItem,
    ServiceStatus,
    Summary,
)
from .timeutil import to_wire

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "http://localhost:8080"
DEFAULT_TIMEOUT_SECONDS = 10.0
BODY_EXCERPT_CHARS = 200

ERROR_LEVEL_KEYS = ("ERROR", "error", "Error")
WARNING_LEVEL_KEYS = ("WARNING", "WARN", "warning", "warn")
INFO_LEVEL_KEYS = ("INFO", "info", "Info")


def _number(value: Any, default: Union[int, float] = 0) -> Union[int, float]:
    """Coerce a JSON value to a number; anything unusable becomes `default`."""
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, str):
        try:
            number = float(value)
        except ValueError:
            return default
        return int(number) if number.is_integer() else number
    return default


def _count_map(value: Any) -> Dict[str, int]:
    """Coerce a {name: count} mapping, dropping non-numeric counts to 0."""
    if not isinstance(value, Mapping):
        return {}
    return {str(key): int(_number(count)) for key, count in value.items()}


def _first_count(counts: Mapping[str, int], keys) -> Optional[int]:
    for key in keys:
        if key in counts:
            return counts[key]
    return None


def _service_list(value: Any) -> List[ServiceStatus]:
    if not isinstance(value, list):
        return []
    services = []
    for item in value:
        if not isinstance(item, Mapping) or not item.get("name"):
            continue
        status = str(item.get("status") or "Online")
        services.append(ServiceStatus(
            name=str(item["name"]),
            errors=int(_number(item.get("errors"))),
            status=status,
            healthy=bool(item.get("healthy", status != "Degraded")),
        ))
    return services


def _ranked_list(value: Any) -> List[RankedItem]:
    if not isinstance(value, list):
        return []
    return [
        RankedItem(name=str(item["name"]), count=int(_number(item.get("count"))))
        for item in value
        if isinstance(item, Mapping) and item.get("name") is not None
    ]


def normalize_logs(payload: Any) -> List[LogEntry]:
    """Unify the two accepted log payload shapes into a list of LogEntry.

    The backend may answer with a bare list or with `{"logs": [...]}`.

    Raises:
        MalformedResponse: If the payload is neither shape or an entry is unusable.
    """
    if isinstance(payload, list):
        records = payload
    elif isinstance(payload, Mapping):
        records = payload.get("logs") or []
        if not isinstance(records, list):
            raise MalformedResponse(f"Expected 'logs' to be a list, got {type(records).__name__}")
    elif payload is None:
        records = []
    else:
        raise MalformedResponse(f"Unexpected logs payload type: {type(payload).__name__}")

    try:
        return [LogEntry.model_validate(record) for record in records]
    except ValidationError as e:
        raise MalformedResponse(f"Invalid log entry in response: {e}") from e


def normalize_metrics(payload: Any) -> MetricsSnapshot:
    """Build a MetricsSnapshot, defaulting absent numbers to 0 and deriving rates locally."""
    if payload is None:
        payload = {}
    if not isinstance(payload, Mapping):
        raise MalformedResponse(f"Unexpected metrics payload type: {type(payload).__name__}")

    log_counts = _count_map(payload.get("log_counts"))

    raw_top = payload.get("top_services")
    if isinstance(raw_top, list):
        top_services = {service.name: service.errors for service in _service_list(raw_top)}
    else:
        top_services = _count_map(raw_top)

    if "total" in log_counts:
        total = log_counts["total"]
    else:
        total = sum(log_counts.values())

    error_count = _first_count(log_counts, ERROR_LEVEL_KEYS) or 0
    warning_count = _first_count(log_counts, WARNING_LEVEL_KEYS) or 0
    info_count = _first_count(log_counts, INFO_LEVEL_KEYS) or 0
    # Half-up rounding to the nearest whole percent.
    derived_error_rate = math.floor(error_count * 100 / total + 0.5) if total else 0

    if isinstance(payload.get("services"), list):
        services = _service_list(payload["services"])
    else:
        services = [ServiceStatus(name=name, healthy=True) for name in top_services]

    def pick(key: str, fallback: Union[int, float] = 0) -> Union[int, float]:
        value = payload.get(key)
        return fallback if value is None else _number(value, fallback)

    return MetricsSnapshot(
        uptime=pick("uptime"),
        error_rate=int(pick("error_rate", derived_error_rate)),
        avg_latency=pick("avg_latency"),
        active_connections=int(pick("active_connections")),
        memory_usage=pick("memory_usage"),
        cpu_usage=pick("cpu_usage"),
        requests_per_second=pick("requests_per_second"),
        services=services,
        error_count=int(pick("error_count", error_count)),
        info_count=int(pick("info_count", info_count)),
        warning_count=int(pick("warning_count", warning_count)),
        unique_services=int(pick("unique_services")),
        all_services=_service_list(payload.get("all_services")),
        log_counts=log_counts,
        top_services=top_services,
    )


def normalize_advanced_metrics(payload: Any) -> AdvancedMetrics:
    if payload is None:
        payload = {}
    if not isinstance(payload, Mapping):
        raise MalformedResponse(f"Unexpected advanced metrics payload type: {type(payload).__name__}")
    return AdvancedMetrics(
        top_users=_ranked_list(payload.get("top_users")),
        top_orders=_ranked_list(payload.get("top_orders")),
        top_products=_ranked_list(payload.get("top_products")),
        top_error_reasons=_ranked_list(payload.get("top_error_reasons")),
        avg_response_time=_number(payload.get("avg_response_time")),
        total_timeouts=int(_number(payload.get("total_timeouts"))),
        avg_retry_attempts=_number(payload.get("avg_retry_attempts")),
        avg_stock_level=_number(payload.get("avg_stock_level")),
    )


def _validate(model, payload: Any, what: str):
    if not isinstance(payload, Mapping):
        raise MalformedResponse(f"Unexpected {what} payload type: {type(payload).__name__}")
    try:
        return model.model_validate(payload)
    except ValidationError as e:
        raise MalformedResponse(f"Invalid {what} response: {e}") from e


def encode_image(image: Optional[bytes], mime_type: Optional[str]) -> Dict[str, str]:
    """Attachment fields for AI endpoints; empty strings when there is no image."""
    if not image:
        return {"image_data": "", "mime_type": ""}
    return {
        "image_data": base64.b64encode(image).decode("ascii"),
        "mime_type": mime_type or "application/octet-stream",
    }


class DashboardClient:
    """Typed client for the LogFlow backend JSON API.

    Example:
        >>> with DashboardClient("http://localhost:8080") as client:
        ...     logs = client.get_logs(rolling_window(), limit=20)
    """

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        session: Optional[requests.Session] = None,
    ):
        """Initialize the client.

        Args:
            base_url: Backend base URL without trailing slash.
            timeout: Per-request timeout in seconds.
            session: Optional pre-built session (tests inject fakes here).
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._session = session

    @classmethod
    def from_config(cls, config: Mapping[str, Any], session: Optional[requests.Session] = None) -> "DashboardClient":
        return cls(
            base_url=config["api_base_url"],
            timeout=config["request_timeout_seconds"],
            session=session,
        )

    def _get_session(self) -> requests.Session:
        """Get or create the HTTP session."""
        if self._session is None:
            self._session = requests.Session()
            self._session.headers.update({"Content-Type": "application/json"})
        return self._session

    def close(self):
        """Close the underlying HTTP session."""
        if self._session is not None and hasattr(self._session, "close"):
            self._session.close()
            self._session = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def _request(self, method: str, path: str, params: Optional[Dict[str, Any]] = None, payload: Any = None) -> Any:
        """Issue one request and return decoded JSON.

        Raises:
            NetworkError: No response was received.
            BackendError: Response status was not 2xx.
            MalformedResponse: Response body was not JSON.
        """
        url = f"{self.base_url}{path}"
        logger.debug(f"API: {method} {url} params={params}")

        try:
            response = self._get_session().request(
                method,
                url,
                params=params,
                json=payload,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.warning(f"API unreachable: {method} {url}: {e}")
            raise NetworkError(f"{method} {path} failed: {e}") from e

        if not 200 <= response.status_code < 300:
            excerpt = (response.text or "")[:BODY_EXCERPT_CHARS]
            logger.warning(f"API FAIL: {method} {url} {response.status_code} {excerpt}")
            raise BackendError(response.status_code, excerpt)

        try:
            return response.json()
        except ValueError as e:
            raise MalformedResponse(f"{method} {path} returned non-JSON body") from e

    def check_health(self) -> Dict[str, Any]:
        """GET /health. Returns the raw status mapping."""
        payload = self._request("GET", "/health")
        if not isinstance(payload, Mapping):
            raise MalformedResponse(f"Unexpected health payload type: {type(payload).__name__}")
        return dict(payload)

    def get_logs(self, window: Optional[LogWindow] = None, limit: Optional[int] = 50) -> List[LogEntry]:
        """GET /logs for `window` (all time when None), at most `limit` entries."""
        params: Dict[str, Any] = {}
        if window is not None:
            params["from"] = to_wire(window.start)
            params["to"] = to_wire(window.end)
        if limit:
            params["limit"] = str(limit)
        return normalize_logs(self._request("GET", "/logs", params=params))

    def get_metrics(self) -> MetricsSnapshot:
        return normalize_metrics(self._request("GET", "/metrics"))

    def get_advanced_metrics(self) -> AdvancedMetrics:
        return normalize_advanced_metrics(self._request("GET", "/metrics/advanced"))

    def ingest_log(self, entry: Union[LogEntry, Mapping[str, Any]]) -> Dict[str, Any]:
        """POST /ingest. Returns the backend's acknowledgement."""
        if isinstance(entry, LogEntry):
            body = entry.model_dump(mode="json", exclude_none=True)
            body["timestamp"] = to_wire(entry.timestamp)
        else:
            body = dict(entry)
        payload = self._request("POST", "/ingest", payload=body)
        return dict(payload) if isinstance(payload, Mapping) else {"result": payload}

    def ask_ai(self, question: str, image: Optional[bytes] = None, mime_type: Optional[str] = None) -> AIAnswer:
        """POST /ai/query with a free-form question and optional image."""
        body = {"question": question, **encode_image(image, mime_type)}
        return _validate(AIAnswer, self._request("POST", "/ai/query", payload=body), "AI answer")

    def compare_periods(
        self,
        healthy: datetime,
        crash: datetime,
        image: Optional[bytes] = None,
        mime_type: Optional[str] = None,
    ) -> ComparisonResult:
        """POST /ai/compare for two period start instants."""
        body = {
            "healthy": to_wire(healthy),
            "crash": to_wire(crash),
            **encode_image(image, mime_type),
        }
        return _validate(ComparisonResult, self._request("POST", "/ai/compare", payload=body), "comparison")

    def get_summary(self) -> Summary:
        """GET /ai/summary. A bare string answer becomes the summary text."""
        payload = self._request("GET", "/ai/summary")
        if isinstance(payload, str):
            return Summary(summary=payload)
        return _validate(Summary, payload, "summary")
