"""CLI tools: hiveclock bootstrap, hiveclock run, hiveclock status."""

from __future__ import annotations

import sys
from importlib import metadata

import typer

from hiveclock.cli.bootstrap import bootstrap_command
from hiveclock.cli.context import configure_logging
from hiveclock.cli.run import run_command
from hiveclock.cli.status import status_command
from hiveclock.errors import ConfigurationError

app = typer.Typer(
    name="hiveclock",
    help="hiveclock: due-aware scheduler for a fleet of agent instances.",
    no_args_is_help=True,
    add_completion=False,
)

_CONFIG_HELP = "Path to the fleet config (default: $HIVECLOCK_CONFIG or ./agents.yaml)"
_INSTANCES_HELP = "Instance root (default: $HIVECLOCK_INSTANCES or ./instances)"


def _version() -> str:
    try:
        return metadata.version("hiveclock")
    except metadata.PackageNotFoundError:
        from hiveclock import __version__

        return __version__


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"hiveclock {_version()}")
        raise typer.Exit(0)


@app.callback()
def main_callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
    version: bool = typer.Option(
        False, "--version", "-V", callback=_version_callback, is_eager=True, help="Show installed version and exit"
    ),
) -> None:
    """hiveclock: due-aware scheduler for a fleet of agent instances."""
    configure_logging(verbose)


def _fail(prefix: str, exc: Exception) -> None:
    typer.echo(f"{prefix}: {exc}", err=True)
    raise typer.Exit(1)


@app.command("bootstrap")
def bootstrap(
    config: str = typer.Option("", "--config", help=_CONFIG_HELP),
    instances: str = typer.Option("", "--instances", help=_INSTANCES_HELP),
) -> None:
    """Create and register all configured instances without running actions."""
    try:
        bootstrap_command(config=config or None, instances=instances or None)
    except ConfigurationError as exc:
        _fail("bootstrap failed", exc)
    except OSError as exc:
        _fail("bootstrap failed", exc)


@app.command("run")
def run(
    config: str = typer.Option("", "--config", help=_CONFIG_HELP),
    instances: str = typer.Option("", "--instances", help=_INSTANCES_HELP),
) -> None:
    """Run one scheduling pass over due instances."""
    try:
        run_command(config=config or None, instances=instances or None)
    except ConfigurationError as exc:
        _fail("run failed", exc)
    except OSError as exc:
        _fail("run failed", exc)


@app.command("status")
def status(
    config: str = typer.Option("", "--config", help=_CONFIG_HELP),
    instances: str = typer.Option("", "--instances", help=_INSTANCES_HELP),
) -> None:
    """Show each instance's next run time and due/waiting state."""
    try:
        status_command(config=config or None, instances=instances or None)
    except ConfigurationError as exc:
        _fail("status failed", exc)
    except OSError as exc:
        _fail("status failed", exc)


@app.command("help")
def help_command(ctx: typer.Context) -> None:
    """Show this message and exit."""
    parent = ctx.parent or ctx
    typer.echo(parent.get_help())


def main() -> None:
    """CLI entry point."""
    try:
        app()
    except KeyboardInterrupt:
        sys.exit(130)
