#!/usr/bin/env python3
"""Main CLI entry point for InSight."""
from __future__ import annotations

import sys
from typing import Optional

import click
from rich.console import Console

from insight.config import get_settings

from .commands import ask, capture, pending, requests
from .runtime import configure_logging

console = Console()


@click.group()
@click.option("--log-level", help="Logging level (defaults to INSIGHT_LOG_LEVEL)")
@click.version_option(version="0.1.0", prog_name="insight")
def cli(log_level: Optional[str]):
    """
    InSight - capture a region of a web page and read it with OCR or AI.

    Select an area with the mouse, then send the crop to the configured
    OCR or AI service.
    """
    configure_logging(log_level or get_settings().log_level)


# Register all commands
cli.add_command(capture.capture_command)
cli.add_command(pending.pending_command)
cli.add_command(ask.ask_command)
cli.add_command(requests.requests_command)


def main():
    """Entry point for the CLI."""
    try:
        cli()
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted by user[/yellow]")
        sys.exit(130)
    except Exception as e:
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
