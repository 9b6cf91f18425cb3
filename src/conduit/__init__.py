"""Conduit: a chat front-end that lets a language model drive external tool providers."""

__version__ = "0.1.0"
