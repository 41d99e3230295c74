"""Exception types shared across EPUB Typer."""

from __future__ import annotations


class TyperError(Exception):
    """Base class for recoverable EPUB Typer errors."""


class ContentError(TyperError):
    """A chapter could not be decoded or its markup could not be parsed."""

    def __init__(self, message: str, *, chapter_index: int | None = None) -> None:
        super().__init__(message)
        self.chapter_index = chapter_index


class StoreCorruptError(TyperError):
    """A stored progress record is not valid JSON or has the wrong shape."""


class BoundsError(TyperError):
    """Navigation was requested outside the valid chapter or chunk range."""


class DocumentSourceError(TyperError):
    """The book container itself is invalid or unreadable."""


__all__ = [
    "TyperError",
    "ContentError",
    "StoreCorruptError",
    "BoundsError",
    "DocumentSourceError",
]
