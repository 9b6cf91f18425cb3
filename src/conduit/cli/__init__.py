"""Command-line interface."""

from conduit.cli.app import app

__all__ = ["app"]
