"""Main CLI application."""

import typer

from conduit.cli.commands import chat, serve, servers

app = typer.Typer(
    name="conduit",
    help="Conduit - chat front-end for tool providers",
    no_args_is_help=True,
)

serve.register(app)
chat.register(app)
servers.register(app)


if __name__ == "__main__":
    app()
