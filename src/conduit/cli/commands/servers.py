"""List configured tool providers."""

from pathlib import Path
from typing import Annotated

import typer

from conduit.cli.console import console, dim, load_config_or_exit, servers_table


def register(app: typer.Typer) -> None:
    """Register the servers command."""

    @app.command()
    def servers(
        config_path: Annotated[
            Path | None,
            typer.Option(
                "--config",
                "-c",
                help="Path to configuration file",
            ),
        ] = None,
    ) -> None:
        """Show the tool providers available to /connect."""
        config = load_config_or_exit(config_path)
        if not config.servers:
            dim("No servers configured. Add [[servers]] entries or set CONDUIT_SERVERS.")
            return

        console.print(servers_table(config.servers))
