"""``hiveclock run``: one scheduling pass."""

from __future__ import annotations

import asyncio

from rich.console import Console
from rich.markup import escape

from hiveclock.cli.context import build_scheduler
from hiveclock.scheduler.engine import PassReport
from hiveclock.scheduler.schedule import format_timestamp

console = Console()
err_console = Console(stderr=True)


def print_report(report: PassReport) -> None:
    console.print(
        f"Scheduler at {format_timestamp(report.started_at)} (total instances: {len(report.decisions)})",
        highlight=False,
        soft_wrap=True,
    )
    if not report.due:
        upcoming = ", ".join(f"{d.handle} at {format_timestamp(d.next_run_at)}" for d in report.upcoming)
        console.print(f"No agent due now. Next: {escape(upcoming) or 'none'}", highlight=False, soft_wrap=True)
        return
    console.print(
        f"Due: {len(report.due)}, running: {len(report.selected)}, deferred: {len(report.deferred)}",
        highlight=False,
        soft_wrap=True,
    )
    for outcome in report.outcomes:
        if outcome.success:
            target = f" -> {outcome.log_path}" if outcome.log_path is not None else ""
            console.print(f"  {escape(outcome.handle)} session done{escape(target)}", highlight=False, soft_wrap=True)
        else:
            err_console.print(f"  {escape(outcome.handle)} failed: {escape(outcome.error or 'unknown error')}", highlight=False, soft_wrap=True)
    for handle in report.persist_errors:
        err_console.print(f"  {escape(handle)} state could not be saved", highlight=False, soft_wrap=True)


def run_command(config: str | None = None, instances: str | None = None) -> PassReport:
    """Run one pass and print its summary. Per-instance failures do not raise."""
    scheduler = build_scheduler(config, instances)
    report = asyncio.run(scheduler.run_pass())
    print_report(report)
    return report
