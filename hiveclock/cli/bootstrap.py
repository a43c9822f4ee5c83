"""``hiveclock bootstrap``: create and register configured instances."""

from __future__ import annotations

import asyncio

from rich.console import Console
from rich.markup import escape

from hiveclock.cli.context import build_scheduler
from hiveclock.scheduler.engine import BootstrapResult

console = Console()


def bootstrap_command(config: str | None = None, instances: str | None = None) -> list[BootstrapResult]:
    """Bootstrap every configured agent; registration failures are reported, not raised."""
    scheduler = build_scheduler(config, instances)
    results = asyncio.run(scheduler.bootstrap())
    for result in results:
        console.print(f"\n{escape(result.handle)}...", highlight=False, soft_wrap=True)
        if result.error:
            console.print(f"  [yellow]warning:[/yellow] {escape(result.error)}", highlight=False, soft_wrap=True)
        elif result.already_registered:
            console.print("  already registered", highlight=False, soft_wrap=True)
        elif result.registered:
            console.print("  registered", highlight=False, soft_wrap=True)
        console.print(f"  done: {escape(str(result.instance_dir))}", highlight=False, soft_wrap=True)
    console.print(f"\nBootstrap complete. Instances: {escape(str(scheduler.store.root))}", highlight=False, soft_wrap=True)
    return results
