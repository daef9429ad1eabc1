"""Command-line interface for the todo calendar."""

from .main import cli, main

__all__ = ["cli", "main"]
