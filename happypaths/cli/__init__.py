"""happypaths command line interface."""

from . import gate, learn  # noqa: F401  (registers commands)
from .main import main

__all__ = ["main"]
