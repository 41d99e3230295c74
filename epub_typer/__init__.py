"""Core package for EPUB Typer."""

from __future__ import annotations

from .config import TyperConfig
from .session import NavigationController, SessionContext
from .store import ProgressStore

__all__ = [
    "NavigationController",
    "ProgressStore",
    "SessionContext",
    "TyperConfig",
]

__version__ = "0.1.0"
