"""Monitor service CLI.

This module provides the CLI commands for the config sidecar:
- serve: Run the HTTP control plane (and the daemon) under uvicorn
- render: Build the initial state, write the config once and exit
- shortcuts: Show the effective alertIf shortcut table
- flags: Print the daemon command line derived from ARG_* variables
"""

import asyncio
import logging
import os
from pathlib import Path

import typer
import uvicorn
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from .config import Settings
from .exceptions import RenderError
from .main import build_service, create_app, load_and_render
from .process import PrometheusProcess
from .shortcuts import ShortcutTable

app = typer.Typer(
    name="monitor-service",
    help="Config sidecar for the metrics daemon",
    no_args_is_help=True,
)


def _setup_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True)],
    )


@app.command("serve")
def serve(
    host: str = typer.Option(None, "--host", help="Bind address (default from HOST)"),
    port: int = typer.Option(None, "--port", "-p", help="Bind port (default from PORT)"),
    no_daemon: bool = typer.Option(False, "--no-daemon", help="Do not start the metrics daemon"),
    log_level: str = typer.Option("info", "--log-level", envvar="LOG_LEVEL"),
) -> None:
    """
    Run the control plane.

    Loads the initial state, writes the config and starts the daemon,
    then serves reconfigure/remove requests until interrupted.
    """
    _setup_logging(log_level)
    config = Settings()
    if no_daemon:
        config.start_daemon = False

    uvicorn.run(
        create_app(config),
        host=host or config.host,
        port=port or config.port,
        log_config=None,
    )


@app.command("render")
def render(
    config_path: Path = typer.Option(None, "--config", "-c", help="Config file to write"),
    log_level: str = typer.Option("info", "--log-level", envvar="LOG_LEVEL"),
) -> None:
    """Write the config from inventory and environment, then exit."""
    _setup_logging(log_level)
    config = Settings()
    if config_path is not None:
        config.config_path = config_path

    service = build_service(config, os.environ)
    try:
        asyncio.run(load_and_render(service, config, os.environ))
    except (RenderError, ValueError) as e:
        print(f"Error: {e}")
        raise typer.Exit(1)

    print(f"Wrote {config.config_path}")
    print(f"  Scrapes: {len(service.store.scrapes)}")
    print(f"  Alerts: {len(service.store.alerts)}")


@app.command("shortcuts")
def shortcuts(
    override_dir: Path = typer.Option(
        None, "--dir", "-d", help="Directory with alertif* override files (default SECRETS_DIR)"
    ),
) -> None:
    """List the effective alertIf shortcuts."""
    table_source = ShortcutTable.load(override_dir or Settings().secrets_dir)

    console = Console()
    table = Table(title="Shortcuts")
    table.add_column("Name", style="cyan")
    table.add_column("Expression")
    table.add_column("Labels")

    for definition in table_source:
        labels = ", ".join(f"{k}={v}" for k, v in sorted(definition.labels.items()))
        table.add_row(definition.name, definition.expanded, labels)

    console.print(table)


@app.command("flags")
def flags() -> None:
    """Print the daemon command line."""
    config = Settings()
    process = PrometheusProcess(
        binary=config.prometheus_binary,
        config_path=config.config_path,
    )
    print(" ".join(process.command()))


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
