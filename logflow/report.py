"""Standalone HTML report export for AI analyses."""

from datetime import datetime
from pathlib import Path
from typing import Optional, Union
from zoneinfo import ZoneInfo

from bottle import SimpleTemplate

from .timeutil import DEFAULT_TIMEZONE

# {{...}} escapes HTML; content keeps its line breaks through pre-wrap.
REPORT_TEMPLATE = SimpleTemplate("""<!DOCTYPE html>
<html>
  <head>
    <meta charset="utf-8">
    <title>LogFlow SRE Report - {{title}}</title>
    <style>
      body { font-family: 'Segoe UI', Tahoma, Geneva, Verdana, sans-serif; padding: 40px; color: #111827; line-height: 1.6; }
      .header { border-bottom: 2px solid #2563eb; padding-bottom: 20px; margin-bottom: 30px; }
      .header h1 { color: #2563eb; margin: 0; font-size: 24px; }
      .meta { color: #6b7280; font-size: 12px; margin-top: 5px; }
      .content { white-space: pre-wrap; background: #f9fafb; padding: 20px; border-radius: 8px; border: 1px solid #e5e7eb; }
      .footer { margin-top: 50px; font-size: 10px; color: #9ca3af; text-align: center; border-top: 1px solid #e5e7eb; padding-top: 10px; }
      @media print { body { padding: 0; } }
    </style>
  </head>
  <body>
    <div class="header">
      <h1>LogFlow SRE Analysis Report</h1>
      <div class="meta">Generated on {{generated}} | Subject: {{title}}</div>
    </div>
    <div class="content">{{content}}</div>
    <div class="footer">Confidential SRE Document | Generated by LogFlow</div>
  </body>
</html>
""")


def render_report(title: str, content: str, generated_at: Optional[datetime] = None, tz: str = DEFAULT_TIMEZONE) -> str:
    """
    Render a printable HTML report.

    Args:
        title: Report subject, shown in the page title and header.
        content: Analysis text. Escaped, line breaks preserved.
        generated_at: Timestamp to print (defaults to now).
        tz: Zone used to display the timestamp.

    Returns:
        Complete HTML document.
    """
    generated_at = generated_at or datetime.now(ZoneInfo(tz))
    if generated_at.tzinfo is not None:
        generated_at = generated_at.astimezone(ZoneInfo(tz))
    return REPORT_TEMPLATE.render(
        title=title or "Untitled",
        content=content or "",
        generated=generated_at.strftime("%Y-%m-%d %I:%M:%S %p %Z").strip(),
    )


def write_report(path: Union[str, Path], title: str, content: str, generated_at: Optional[datetime] = None, tz: str = DEFAULT_TIMEZONE) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(render_report(title, content, generated_at, tz), encoding="utf-8")
    return path
