"""Run the Telegram bot."""

import asyncio
import logging
from pathlib import Path
from typing import Annotated

import typer

from conduit.cli.console import build_or_exit, error, load_config_or_exit

logger = logging.getLogger(__name__)


def register(app: typer.Typer) -> None:
    """Register the serve command."""

    @app.command()
    def serve(
        config_path: Annotated[
            Path | None,
            typer.Option(
                "--config",
                "-c",
                help="Path to configuration file",
            ),
        ] = None,
    ) -> None:
        """Start the Telegram bot with the configured providers."""
        try:
            asyncio.run(_run_server(config_path))
        except KeyboardInterrupt:
            # Use print here since logging may not be configured yet
            print("\nServer stopped")


async def _run_server(config_path: Path | None) -> None:
    import signal as signal_module

    from conduit.logging import configure_logging
    from conduit.transports.telegram import TelegramTransport

    configure_logging(use_rich=True)
    config = load_config_or_exit(config_path)

    if config.telegram is None or config.telegram.bot_token is None:
        error("No Telegram bot token. Set TELEGRAM_BOT_TOKEN or [telegram].bot_token")
        raise typer.Exit(1)

    transport = TelegramTransport(config.telegram, config.background.artifact_dir)
    application = build_or_exit(config, transport)

    loop = asyncio.get_running_loop()
    run_task: asyncio.Task | None = None

    def handle_signal() -> None:
        logger.info("shutdown_requested")
        if run_task and not run_task.done():
            run_task.cancel()

    for sig in (signal_module.SIGTERM, signal_module.SIGINT):
        loop.add_signal_handler(sig, handle_signal)

    try:
        await application.start()
        run_task = asyncio.create_task(application.run())
        try:
            await run_task
        except asyncio.CancelledError:
            logger.info("Telegram polling cancelled")
    finally:
        await application.stop()
