"""
CLI package for vacancysync.

Contains the typer application and its table formatters.
"""

from .cli import app, main

__all__ = ["app", "main"]
