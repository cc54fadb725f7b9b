"""
LogFlow command line.

Usage:
    # Web surface
    python -m logflow serve

    # Terminal heartbeat + sidebar logs
    python -m logflow watch

    # Healthy vs crash comparison
    python -m logflow compare 2024-05-01 10:00 AM 2024-05-01 02:30 PM

    # Ask the AI assistant
    python -m logflow ask "Why did checkout fail yesterday?"

    # Export an analysis as HTML
    python -m logflow report --title "Checkout outage" --input analysis.txt --output report.html
"""

import argparse
import json
import mimetypes
import sys
import time
from pathlib import Path
from typing import Optional, Tuple

from .citations import extract_citations, join_spans, split_for_rendering
from .client import DashboardClient
from .config import Config, get_config
from .dashboard import Dashboard
from .errors import InvalidInput, LogFlowError
from .logging_helper import LEVEL_COLORS, colorize, configure_logging, json_dumps_readable
from .models import HealthStatus
from .report import write_report

HEALTH_COLORS = {
    HealthStatus.HEALTHY: "green",
    HealthStatus.DEGRADED: "yellow",
    HealthStatus.OFFLINE: "red",
}


def _banner(title: str) -> None:
    print(f"\n{'='*80}")
    print(f" {title}")
    print(f"{'='*80}\n")


def _read_image(path: Optional[str]) -> Tuple[Optional[bytes], Optional[str]]:
    if not path:
        return None, None
    image_path = Path(path)
    mime_type = mimetypes.guess_type(image_path.name)[0] or "application/octet-stream"
    return image_path.read_bytes(), mime_type


def _write_json_output(json_path: str, payload) -> None:
    """Write the JSON payload to disk, creating parent directories if needed."""
    path = Path(json_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as f:
        json.dump(payload, f, ensure_ascii=False, indent=2)
    print(f"JSON output saved to {path}")


def _parse_cli_args(argv):
    parser = argparse.ArgumentParser(prog="logflow", description="LogFlow dashboard client")
    parser.add_argument("--config", metavar="FILE", help="YAML config file (default: $LOGFLOW_CONFIG or ./logflow.yaml)")
    parser.add_argument("--log-level", help="Override the configured log level")
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the web surface")
    serve.add_argument("--host", help="Bind address")
    serve.add_argument("--port", type=int, help="Bind port")

    watch = sub.add_parser("watch", help="Print backend health and sidebar logs")
    watch.add_argument("--iterations", type=int, default=0, help="Stop after N refreshes (0 = until Ctrl-C)")

    compare = sub.add_parser("compare", help="Compare a healthy period with a crash period")
    for prefix in ("healthy", "crash"):
        compare.add_argument(f"{prefix}_date", help=f"{prefix.title()} date (YYYY-MM-DD)")
        compare.add_argument(f"{prefix}_time", help=f"{prefix.title()} time (HH:MM, 12-hour)")
        compare.add_argument(f"{prefix}_meridiem", help="AM or PM")
    compare.add_argument("--image", metavar="FILE", help="Attach a screenshot")
    compare.add_argument("--json", dest="json_path", metavar="FILE", help="Also write the result as JSON")

    ask = sub.add_parser("ask", help="Ask the AI assistant")
    ask.add_argument("question", nargs="+", help="Question about logs, metrics or health")
    ask.add_argument("--image", metavar="FILE", help="Attach a screenshot")
    ask.add_argument("--json", dest="json_path", metavar="FILE", help="Also write the answer as JSON")

    report = sub.add_parser("report", help="Export an analysis as a standalone HTML report")
    report.add_argument("--title", required=True, help="Report subject")
    report.add_argument("--input", dest="input_path", default="-", metavar="FILE", help="Analysis text file ('-' for stdin)")
    report.add_argument("--output", required=True, metavar="FILE", help="HTML file to write")

    return parser.parse_args(argv)


def _serve(config: Config, args) -> int:
    from .web import create_app

    host = args.host or config["host"]
    port = args.port or config["port"]
    dashboard = Dashboard(config)

    print("LogFlow dashboard starting...")
    print(f"Backend: {config['api_base_url']}")
    print(f"Timezone: {config['timezone']}")
    print(f"URL: http://{host}:{port}/")
    print()

    dashboard.start()
    try:
        create_app(dashboard).run(host=host, port=port, debug=False, reloader=False)
    finally:
        dashboard.stop()
    return 0


def _print_health(dashboard: Dashboard) -> None:
    status = dashboard.heartbeat.status
    text = dashboard.heartbeat.status_text
    print(f"Status: {colorize(text, HEALTH_COLORS[status]) if status else text}")


def _print_logs(dashboard: Dashboard) -> None:
    state = dashboard.sidebar.snapshot()
    print(f"{state['title']} ({len(state['logs'])})" + (" [offline]" if state["offline"] else ""))
    for entry in state["logs"]:
        level = entry["level"]
        print(f"  {entry['timestamp']} {colorize(f'{level:<5}', LEVEL_COLORS.get(level, 'cyan'))} "
              f"{entry['service']}: {entry['message']} (#{entry['id']})")


def _watch(config: Config, args) -> int:
    refresh = config["sidebar_poll_seconds"]
    count = 0
    with Dashboard(config) as dashboard:
        try:
            while True:
                time.sleep(refresh)
                _banner(time.strftime("%Y-%m-%d %H:%M:%S"))
                _print_health(dashboard)
                _print_logs(dashboard)
                count += 1
                if args.iterations and count >= args.iterations:
                    break
        except KeyboardInterrupt:
            print("\nStopped.")
    return 0


def _compare(config: Config, args) -> int:
    image, mime_type = _read_image(args.image)
    dashboard = Dashboard(config)
    try:
        result = dashboard.time_travel.compare(
            args.healthy_date, args.healthy_time, args.healthy_meridiem,
            args.crash_date, args.crash_time, args.crash_meridiem,
            image=image, mime_type=mime_type,
        )
    finally:
        dashboard.client.close()

    _banner("PERIOD COMPARISON")
    print(f"Healthy period logs: {result.healthy_count}")
    print(f"Crash period logs:   {result.crash_count}")
    window = dashboard.coordinator.window
    print(f"Crash window:        {window.start.isoformat()} -> {window.end.isoformat()}")

    _banner("ANALYSIS")
    print(result.analysis)
    cited = extract_citations(result.analysis)
    if cited:
        print(f"\nCited logs: {', '.join('#' + log_id for log_id in cited)}")

    if args.json_path:
        _write_json_output(args.json_path, {
            "result": result.model_dump(mode="json"),
            "window": window.model_dump(mode="json"),
        })
    return 0


def _ask(config: Config, args) -> int:
    question = " ".join(args.question).strip()
    image, mime_type = _read_image(args.image)
    with DashboardClient.from_config(config) as client:
        answer = client.ask_ai(question, image=image, mime_type=mime_type)

    _banner("ANSWER")
    print(join_spans(split_for_rendering(answer.answer)))
    try:
        window = answer.detected_window()
    except ValueError as e:
        print(colorize(f"\nIgnoring inverted time range: {e}", "yellow"), file=sys.stderr)
        window = None
    if window is not None:
        print(f"\nTime range: {answer.time_range or 'detected'} ({window.start.isoformat()} -> {window.end.isoformat()})")
    if answer.relevant_logs:
        _banner(f"RELEVANT LOGS ({len(answer.relevant_logs)})")
        print(json_dumps_readable([entry.model_dump(mode="json") for entry in answer.relevant_logs]))

    if args.json_path:
        _write_json_output(args.json_path, answer.model_dump(mode="json"))
    return 0


def _report(config: Config, args) -> int:
    if args.input_path == "-":
        content = sys.stdin.read()
    else:
        content = Path(args.input_path).read_text(encoding="utf-8")
    if not content.strip():
        raise InvalidInput("Report content is empty")
    path = write_report(args.output, args.title, content, tz=config["timezone"])
    print(f"Report written to {path}")
    return 0


COMMANDS = {
    "serve": _serve,
    "watch": _watch,
    "compare": _compare,
    "ask": _ask,
    "report": _report,
}


def main(argv=None) -> int:
    """Run the LogFlow CLI. Returns the process exit code."""
    args = _parse_cli_args(sys.argv[1:] if argv is None else argv)

    try:
        config = get_config(Path(args.config) if args.config else None)
    except InvalidInput as e:
        print(colorize(f"Configuration error: {e}", "red"), file=sys.stderr)
        return 2

    configure_logging(args.log_level or config["log_level"])

    try:
        return COMMANDS[args.command](config, args)
    except InvalidInput as e:
        print(colorize(f"Invalid input: {e}", "red"), file=sys.stderr)
        return 2
    except LogFlowError as e:
        print(colorize(f"Request failed: {e}", "red"), file=sys.stderr)
        print("Hint: verify the backend is running at the configured api_base_url.", file=sys.stderr)
        return 1
    except OSError as e:
        print(colorize(f"File error: {e}", "red"), file=sys.stderr)
        return 1
