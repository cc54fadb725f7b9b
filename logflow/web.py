"""
Bottle web surface over a running Dashboard.

Routes:
- GET /                - Status page (health, active window, sidebar logs)
- GET /api/state       - JSON snapshot of every view
- POST /api/window     - Set the shared log window
- DELETE /api/window   - Back to the live window
- POST /api/highlight  - Highlight a log across views
- POST /api/tab        - Switch the active main panel
- POST /api/compare    - Healthy vs crash period comparison
- POST /api/ask        - Ask the AI assistant
- POST /api/report     - Render an HTML report
"""

import base64
import binascii
import json
import logging
from typing import Any, Dict, Optional, Tuple

from bottle import Bottle, HTTPResponse, abort, request, response, template
from pydantic import ValidationError

from .citations import extract_citations
from .dashboard import Dashboard
from .errors import InvalidInput, LogFlowError
from .models import LogWindow
from .report import render_report
from .timeutil import derive_window, parse_wire, require_fields, to_absolute_instant

logger = logging.getLogger(__name__)

STATUS_PAGE = """<!DOCTYPE html>
<html>
  <head>
    <meta charset="utf-8">
    <meta http-equiv="refresh" content="{{refresh}}">
    <title>LogFlow</title>
  </head>
  <body>
    <h1>LogFlow</h1>
    <p>Status: <strong>{{health}}</strong></p>
    <p>Window: {{window_text}}</p>
    <h2>{{sidebar['title']}}</h2>
    % if sidebar['offline']:
    <p><em>Backend unreachable, showing placeholder data.</em></p>
    % end
    <ul>
    % for entry in sidebar['logs']:
      <li>[{{entry['level']}}] {{entry['service']}}: {{entry['message']}} <small>#{{entry['id']}}</small></li>
    % end
    </ul>
  </body>
</html>
"""


def _json_body() -> Dict[str, Any]:
    try:
        data = request.json
    except ValueError:
        abort(400, "Request body is not valid JSON")
    if data is None:
        return {}
    if not isinstance(data, dict):
        abort(400, "Request body must be a JSON object")
    return data


def _image_from(data: Dict[str, Any]) -> Tuple[Optional[bytes], Optional[str]]:
    encoded = data.get("image_data")
    if not encoded:
        return None, None
    try:
        return base64.b64decode(encoded, validate=True), data.get("mime_type")
    except (binascii.Error, ValueError):
        abort(400, "image_data must be base64")


def _window_from(data: Dict[str, Any], timezone_name: str) -> LogWindow:
    """Build a window from absolute instants or from a civil date/time plus duration."""
    label = data.get("label")
    if "start" in data or "end" in data:
        require_fields(start=data.get("start"), end=data.get("end"))
        try:
            return LogWindow(start=parse_wire(data["start"]), end=parse_wire(data["end"]), label=label)
        except ValidationError as e:
            raise InvalidInput(f"Invalid window: {e.errors()[0]['msg']}") from e

    require_fields(date=data.get("date"), time=data.get("time"), meridiem=data.get("meridiem"))
    instant = to_absolute_instant(data["date"], data["time"], data["meridiem"], timezone_name)
    try:
        minutes = int(data.get("minutes", 7))
    except (TypeError, ValueError) as e:
        raise InvalidInput(f"Invalid minutes: {data.get('minutes')!r}") from e
    return derive_window(instant, minutes, label=label)


def create_app(dashboard: Dashboard) -> Bottle:
    """Build the Bottle app bound to `dashboard`."""
    app = Bottle()

    @app.hook('after_request')
    def enable_utf8():
        if response.content_type.startswith('text/'):
            if 'charset' not in response.content_type:
                response.content_type += '; charset=utf-8'

    @app.route('/')
    def index():
        state = dashboard.snapshot()
        window = state["window"]
        if window:
            window_text = f"{window['label'] or 'Custom'}: {window['start']} -> {window['end']}"
        else:
            window_text = "Live (last hour)"
        return template(
            STATUS_PAGE,
            refresh=int(dashboard.config["sidebar_poll_seconds"]) or 3,
            health=state["health"]["text"],
            window_text=window_text,
            sidebar=state["sidebar"],
        )

    @app.route('/api/state')
    def state():
        return dashboard.snapshot()

    @app.route('/api/window', method='POST')
    def set_window():
        data = _json_body()
        try:
            window = _window_from(data, dashboard.config["timezone"])
        except InvalidInput as e:
            logger.warning(f"Window rejected: {e}")
            abort(400, str(e))
        dashboard.coordinator.set_window(window)
        return {"window": window.model_dump(mode="json")}

    @app.route('/api/window', method='DELETE')
    def clear_window():
        dashboard.coordinator.clear_window()
        return {"window": None}

    @app.route('/api/highlight', method='POST')
    def highlight():
        log_id = _json_body().get("log_id")
        if log_id is None or str(log_id).strip() == "":
            abort(400, "log_id is required")
        triggered_at = dashboard.coordinator.set_highlight(str(log_id))
        return {"log_id": str(log_id), "triggered_at": triggered_at}

    @app.route('/api/tab', method='POST')
    def select_tab():
        tab = _json_body().get("tab", "")
        try:
            dashboard.select_tab(tab)
        except ValueError as e:
            abort(400, str(e))
        return {"active_tab": dashboard.active_tab}

    @app.route('/api/compare', method='POST')
    def compare():
        data = _json_body()
        image, mime_type = _image_from(data)
        try:
            result = dashboard.time_travel.compare(
                data.get("healthy_date", ""),
                data.get("healthy_time", ""),
                data.get("healthy_meridiem", ""),
                data.get("crash_date", ""),
                data.get("crash_time", ""),
                data.get("crash_meridiem", ""),
                image=image,
                mime_type=mime_type,
            )
        except InvalidInput as e:
            abort(400, str(e))
        except LogFlowError as e:
            logger.error(f"Comparison failed: {e}")
            abort(502, str(e))
        return {
            "result": result.model_dump(mode="json"),
            "window": dashboard.coordinator.window.model_dump(mode="json"),
        }

    @app.route('/api/ask', method='POST')
    def ask():
        data = _json_body()
        image, mime_type = _image_from(data)
        try:
            reply = dashboard.assistant.ask(data.get("question", ""), image=image, mime_type=mime_type)
        except LogFlowError as e:
            logger.error(f"AI query failed: {e}")
            abort(502, str(e))
        return {
            "reply": reply.text if reply else None,
            "citations": extract_citations(reply.text) if reply else [],
            "assistant": dashboard.assistant.snapshot(),
        }

    @app.route('/api/report', method='POST')
    def report():
        data = _json_body()
        title = data.get("title") or "Analysis"
        content = data.get("content")
        if not content:
            abort(400, "content is required")
        generated_at = None
        if data.get("generated_at"):
            try:
                generated_at = parse_wire(data["generated_at"])
            except InvalidInput as e:
                abort(400, str(e))
        html = render_report(title, content, generated_at, tz=dashboard.config["timezone"])
        return HTTPResponse(body=html, status=200, headers={"Content-Type": "text/html; charset=utf-8"})

    def json_error(err, title):
        response.content_type = 'application/json'
        message = str(err.body) if err.body else title
        return json.dumps({"error": title, "message": message})

    @app.error(400)
    def error400(err):
        return json_error(err, "Bad Request")

    @app.error(404)
    def error404(err):
        return json_error(err, "Not Found")

    @app.error(405)
    def error405(err):
        return json_error(err, "Method Not Allowed")

    @app.error(502)
    def error502(err):
        return json_error(err, "Bad Gateway")

    @app.error(500)
    def error500(err):
        logger.error(f"500 error: {err}")
        if hasattr(err, 'traceback') and err.traceback:
            logger.error(err.traceback)
        return json_error(err, "Internal Server Error")

    return app
