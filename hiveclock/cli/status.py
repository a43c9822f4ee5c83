"""``hiveclock status``: next run time and due state per instance."""

from __future__ import annotations

from rich.console import Console
from rich.table import Table

from hiveclock.cli.context import build_scheduler
from hiveclock.scheduler.engine import StatusRow
from hiveclock.scheduler.schedule import format_timestamp


def _print_status_table(rows: list[StatusRow]) -> None:
    console = Console()
    table = Table(title="Instances", show_header=True, header_style="bold")
    table.add_column("instance")
    table.add_column("next_run_at")
    table.add_column("state")
    table.add_column("interval_min", justify="right")
    table.add_column("runs", justify="right")
    table.add_column("last_error", style="red")
    for row in rows:
        table.add_row(
            row.handle,
            format_timestamp(row.next_run_at),
            "due" if row.due else "waiting",
            str(row.interval_minutes),
            str(row.run_count),
            row.last_error or "",
        )
    console.print(table)


def status_command(config: str | None = None, instances: str | None = None) -> list[StatusRow]:
    scheduler = build_scheduler(config, instances)
    rows = scheduler.status()
    if not rows:
        Console().print(f"No instances in {scheduler.store.root}. Run bootstrap first.", highlight=False, markup=False, soft_wrap=True)
        return rows
    _print_status_table(rows)
    return rows
