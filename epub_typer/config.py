"""Runtime configuration for EPUB Typer."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple
import os

SAVE_POLICIES = {"overwrite", "monotonic"}


def default_store_path() -> Path:
    home = os.getenv("EPUB_TYPER_HOME")
    if home:
        return Path(home) / "progress.json"
    return Path.home() / ".local" / "share" / "epub_typer" / "progress.json"


@dataclass
class TyperConfig:
    """Options that control chunking, confirmation keys and persistence."""

    store_path: Optional[Path] = None
    chunk_capacity: int = 6
    auto_advance_delay_ms: int = 100
    confirmation_keys: Tuple[str, ...] = ("Enter", " ")
    save_policy: str = "overwrite"  # overwrite|monotonic
    expand_ligatures: bool = False

    def __post_init__(self) -> None:
        if self.store_path is None:
            self.store_path = default_store_path()
        self.store_path = Path(self.store_path)
        if self.chunk_capacity <= 0:
            raise ValueError("chunk_capacity must be positive")
        if self.auto_advance_delay_ms < 0:
            raise ValueError("auto_advance_delay_ms must not be negative")
        if not self.confirmation_keys:
            raise ValueError("At least one confirmation key is required")
        self.confirmation_keys = tuple(self.confirmation_keys)
        if self.save_policy not in SAVE_POLICIES:
            raise ValueError(f"Unsupported save policy: {self.save_policy}")


__all__ = ["TyperConfig", "default_store_path", "SAVE_POLICIES"]
