"""Terminal output helpers shared by the CLI commands."""

from __future__ import annotations

from collections.abc import Iterable
from pathlib import Path
from typing import TYPE_CHECKING

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from conduit.errors import ConfigError

if TYPE_CHECKING:
    from conduit.app import Application
    from conduit.chat.types import Transport
    from conduit.config.models import ConduitConfig, ServerSpecConfig

console = Console()


def error(msg: str) -> None:
    console.print(f"[red]{escape(msg)}[/red]")


def dim(msg: str) -> None:
    console.print(f"[dim]{escape(msg)}[/dim]")


def servers_table(servers: Iterable[ServerSpecConfig]) -> Table:
    table = Table(title="Configured servers")
    table.add_column("ID", style="cyan")
    table.add_column("Name")
    table.add_column("Command", style="dim")
    table.add_column("Auto-connect", justify="center")
    for server in servers:
        table.add_row(
            server.id,
            server.display_name,
            " ".join([server.command, *server.args]),
            "yes" if server.auto_connect else "no",
        )
    return table


def load_config_or_exit(config_path: Path | None) -> ConduitConfig:
    """Load configuration or exit with status 1 and a readable message."""
    from conduit.config import load_config

    try:
        return load_config(config_path)
    except FileNotFoundError as e:
        error(str(e))
    except (ConfigError, ValidationError) as e:
        error(f"Invalid configuration: {e}")
    raise typer.Exit(1)


def build_or_exit(config: ConduitConfig, transport: Transport) -> Application:
    """Wire the application, exiting when no model backend can be created."""
    from conduit.app import build_application

    try:
        return build_application(config, transport)
    except ConfigError as e:
        error(str(e))
        raise typer.Exit(1) from None
