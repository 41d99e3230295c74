"""EPUB document source."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
import logging
import os
from pathlib import Path
import re
import tempfile
from typing import Dict, Iterable, List

import ebooklib
from ebooklib import epub

from ..errors import ContentError, DocumentSourceError
from . import ChapterHandle

LOGGER = logging.getLogger(__name__)


@dataclass
class TocEntry:
    title: str
    href: str


class EpubSource:
    """Expose an EPUB's spine as chapter handles with lazily decoded markup."""

    def __init__(self, book: epub.EpubBook, name: str) -> None:
        self.book = book
        self.name = name
        self._chapters = self._spine_chapters()
        if not self._chapters:
            raise DocumentSourceError(f"EPUB spine of {name} is empty")

    @classmethod
    def open(cls, path: Path | str) -> "EpubSource":
        """Read the EPUB at *path*."""

        path = Path(path)
        try:
            book = epub.read_epub(str(path))
        except Exception as exc:
            raise DocumentSourceError(f"Could not read EPUB {path.name}: {exc}") from exc
        return cls(book, path.name)

    @classmethod
    def from_bytes(cls, name: str, data: bytes) -> "EpubSource":
        fd, tmp_name = tempfile.mkstemp(suffix=".epub")
        try:
            with os.fdopen(fd, "wb") as handle:
                handle.write(data)
            source = cls.open(tmp_name)
        finally:
            Path(tmp_name).unlink(missing_ok=True)
        source.name = name
        return source

    @property
    def chapters(self) -> List[ChapterHandle]:
        return list(self._chapters)

    async def decode(self, handle: ChapterHandle) -> str:
        return await asyncio.to_thread(self.read_markup, handle)

    def read_markup(self, handle: ChapterHandle) -> str:
        item = self.book.get_item_with_href(handle.href)
        if item is None:
            raise ContentError(f"Missing spine item {handle.href}", chapter_index=handle.index)
        try:
            content = item.get_content()
        except Exception as exc:
            raise ContentError(f"Could not read {handle.href}: {exc}", chapter_index=handle.index) from exc
        try:
            return content.decode("utf-8")
        except UnicodeDecodeError:
            LOGGER.warning("Failed to decode %s as UTF-8; attempting latin-1", handle.href)
            return content.decode("latin-1")

    def _spine_chapters(self) -> List[ChapterHandle]:
        titles = {entry.href.split("#", 1)[0]: entry.title for entry in self._flatten_toc(self.book.toc)}
        chapters: List[ChapterHandle] = []
        for idref, *_ in self.book.spine:
            item = self.book.get_item_with_id(idref)
            if item is None or item.get_type() != ebooklib.ITEM_DOCUMENT or isinstance(item, epub.EpubNav):
                LOGGER.debug("Skipping spine entry without document: %s", idref)
                continue
            href = item.get_name()
            chapters.append(ChapterHandle(index=len(chapters), href=href, title=titles.get(href)))
        return chapters

    def _flatten_toc(self, toc: Iterable) -> Iterable[TocEntry]:
        for node in toc:
            if isinstance(node, (list, tuple)) and node:
                first, *rest = node
                if hasattr(first, "title") and hasattr(first, "href"):
                    yield TocEntry(title=self._safe_title(first.title), href=first.href)
                if rest:
                    yield from self._flatten_toc(rest)
            elif hasattr(node, "title") and hasattr(node, "href"):
                yield TocEntry(title=self._safe_title(node.title), href=node.href)

    def _safe_title(self, value: str) -> str:
        if isinstance(value, bytes):
            value = value.decode("utf-8", errors="ignore")
        return re.sub(r"\s+", " ", value or "").strip()

    def metadata(self) -> Dict[str, str]:
        values = {}
        for key in ("title", "creator"):
            found = self.book.get_metadata("DC", key)
            if found:
                values[key] = str(found[0][0])
        return values


__all__ = ["EpubSource"]
