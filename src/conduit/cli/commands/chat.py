"""Chat command for interactive local sessions."""

import asyncio
from pathlib import Path
from typing import Annotated

import typer

from conduit.cli.console import build_or_exit, console, load_config_or_exit


def register(app: typer.Typer) -> None:
    """Register the chat command."""

    @app.command()
    def chat(
        config_path: Annotated[
            Path | None,
            typer.Option(
                "--config",
                "-c",
                help="Path to configuration file",
            ),
        ] = None,
    ) -> None:
        """Start an interactive chat session in the terminal.

        Slash commands work as they do in Telegram, e.g. /connect <server_id>.
        """
        try:
            asyncio.run(_run_chat(config_path))
        except KeyboardInterrupt:
            console.print("\n[dim]Goodbye![/dim]")


async def _run_chat(config_path: Path | None) -> None:
    from conduit.logging import configure_logging
    from conduit.transports.console import ConsoleTransport

    # Keep the terminal readable
    configure_logging(level="WARNING")
    config = load_config_or_exit(config_path)

    application = build_or_exit(config, ConsoleTransport(console))

    try:
        await application.start()
        await application.run()
    finally:
        await application.stop()
