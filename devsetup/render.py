"""
Output rendering and formatting.
"""

import json
import os
import re
import sys
from typing import Optional, Sequence, TextIO

from wcwidth import wcswidth

from .maintenance import TaskResult
from .reconcile import APPLIED, FAILED, PLANNED, SKIPPED, Report


USE_EMOJI = os.environ.get("DEVSETUP_EMOJI", "1") == "1"
USE_COLOR = os.environ.get("DEVSETUP_COLOR", "1") == "1"

GREEN = "\033[32m"
YELLOW = "\033[33m"
BLUE = "\033[34m"
RED = "\033[31m"
RESET = "\033[0m"

_ANSI_RE = re.compile(r"\x1b\[[0-9;]*m")

_STATUS_COLOR = {
    APPLIED: GREEN,
    SKIPPED: BLUE,
    FAILED: RED,
    PLANNED: YELLOW,
}


def status_icon(status: str) -> str:
    """Get the icon for an outcome status."""
    if not USE_EMOJI:
        return {APPLIED: "+", SKIPPED: "=", FAILED: "x", PLANNED: "~"}.get(status, "?")
    return {APPLIED: "✅", SKIPPED: "✓", FAILED: "❌", PLANNED: "📝"}.get(status, "❓")


def colorize(text: str, color: str) -> str:
    if not USE_COLOR or not text:
        return text
    return f"{color}{text}{RESET}"


def display_width(text: str) -> int:
    """Terminal column width of text, ignoring ANSI color codes."""
    width = wcswidth(_ANSI_RE.sub("", text))
    return width if width >= 0 else len(text)


def _pad(text: str, width: int) -> str:
    return text + " " * max(0, width - display_width(text))


def format_rows(rows: Sequence[Sequence[str]], separator: str = " | ") -> list[str]:
    """Align rows into columns by display width."""
    if not rows:
        return []
    widths = [max(display_width(row[i]) for row in rows) for i in range(len(rows[0]))]
    return [
        separator.join(_pad(cell, widths[i]) for i, cell in enumerate(row)).rstrip()
        for row in rows
    ]


def render_report(report: Report, out: Optional[TextIO] = None) -> None:
    """Render one report as an aligned table."""
    if out is None:
        out = sys.stdout
    if not report.outcomes:
        return

    print(f"# {report.backend} ({report.mode})", file=out)
    rows = [("", "kind", "item", "operation", "detail")]
    for outcome in report.outcomes:
        rows.append((
            status_icon(outcome.status),
            outcome.item.kind,
            outcome.item.identifier,
            outcome.operation.kind if outcome.operation else "-",
            colorize(outcome.reason or outcome.status, _STATUS_COLOR.get(outcome.status, "")),
        ))
    for line in format_rows(rows):
        print(line, file=out)


def render_task(result: TaskResult, out: Optional[TextIO] = None) -> None:
    """Render one maintenance task."""
    if out is None:
        out = sys.stdout
    if result.skipped:
        print(f"{status_icon(SKIPPED)} {result.task}: {colorize(result.skipped, BLUE)}", file=out)
        return
    if result.planned:
        print(f"{status_icon(PLANNED)} {result.task}:", file=out)
        for step in result.planned:
            print(f"    {' '.join(step.command)}", file=out)
        return
    status = APPLIED if result.ok else FAILED
    print(f"{status_icon(status)} {result.task}", file=out)
    for step_result in result.results:
        if not step_result.success:
            print(f"    {colorize(step_result.error_message or 'failed', RED)}", file=out)


def print_summary(
    reports: Sequence[Report],
    tasks: Sequence[TaskResult] = (),
    out: Optional[TextIO] = None,
) -> None:
    """Print totals across all reports and maintenance tasks."""
    if out is None:
        out = sys.stderr
    applied = sum(len(r.applied) for r in reports)
    skipped = sum(len(r.skipped) for r in reports)
    failed = sum(len(r.failed) for r in reports)
    planned = sum(len(r.planned) for r in reports)

    parts = [f"{applied} applied", f"{skipped} skipped", f"{failed} failed"]
    if planned:
        parts.append(f"{planned} planned")
    if tasks:
        failed_tasks = sum(1 for t in tasks if not t.ok)
        parts.append(f"{len(tasks)} maintenance tasks ({failed_tasks} with errors)")

    print(f"\nSummary: {', '.join(parts)}", file=out)


def render_json(
    reports: Sequence[Report],
    tasks: Sequence[TaskResult] = (),
    out: Optional[TextIO] = None,
) -> None:
    if out is None:
        out = sys.stdout
    json.dump(
        {
            "reports": [r.to_dict() for r in reports],
            "maintenance": [t.to_dict() for t in tasks],
        },
        out,
        indent=2,
        ensure_ascii=False,
    )
    out.write("\n")
