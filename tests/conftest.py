from __future__ import annotations

import sys
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

import pytest
from ebooklib import epub

PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from epub_typer.ingest import ChapterHandle  # noqa: E402


class MemoryKeyValueStore:
    """In-memory stand-in for the JSON file backend."""

    def __init__(self) -> None:
        self.data: Dict[str, str] = {}

    def get(self, key: str) -> Optional[str]:
        return self.data.get(key)

    def set(self, key: str, value: str) -> None:
        self.data[key] = value

    def remove(self, key: str) -> None:
        self.data.pop(key, None)


class FakeSource:
    """Document source whose chapters are given as markup or exceptions."""

    def __init__(self, markup: Sequence[object]) -> None:
        self.markup = list(markup)
        self.decoded: List[int] = []

    @property
    def chapters(self) -> List[ChapterHandle]:
        return [ChapterHandle(index=i, href=f"ch{i}.xhtml") for i in range(len(self.markup))]

    async def decode(self, handle: ChapterHandle) -> str:
        self.decoded.append(handle.index)
        value = self.markup[handle.index]
        if isinstance(value, Exception):
            raise value
        return value


def write_epub(path: Path, chapters: Sequence[Tuple[str, str]]) -> Path:
    book = epub.EpubBook()
    book.set_identifier("epub-typer-sample")
    book.set_title("Sample")
    book.set_language("en")
    book.add_author("Author")
    items = []
    for number, (title, body) in enumerate(chapters, start=1):
        item = epub.EpubHtml(title=title, file_name=f"chap_{number}.xhtml", lang="en")
        item.content = f"<html><head><title>{title}</title></head><body><h1>{title}</h1>{body}</body></html>"
        book.add_item(item)
        items.append(item)
    book.toc = tuple(epub.Link(item.file_name, item.title, f"chap{n}") for n, item in enumerate(items, start=1))
    book.add_item(epub.EpubNcx())
    book.add_item(epub.EpubNav())
    book.spine = items
    epub.write_epub(str(path), book)
    return path


@pytest.fixture
def memory_backend() -> MemoryKeyValueStore:
    return MemoryKeyValueStore()


@pytest.fixture
def sample_epub(tmp_path: Path) -> Path:
    return write_epub(
        tmp_path / "sample.epub",
        [
            ("Chapter One", "<p>First para.</p><p>Second para.</p>"),
            ("Chapter Two", "<p>Another chapter begins here.</p>"),
        ],
    )
