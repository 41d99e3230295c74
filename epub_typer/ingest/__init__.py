"""Document sources that expose a book's chapters as raw markup."""

from dataclasses import dataclass
from typing import Optional, Protocol, Sequence


@dataclass(frozen=True)
class ChapterHandle:
    """One entry of a book's reading order."""

    index: int
    href: str
    title: Optional[str] = None


class DocumentSource(Protocol):
    @property
    def chapters(self) -> Sequence[ChapterHandle]: ...

    async def decode(self, handle: ChapterHandle) -> str: ...


__all__ = ["ChapterHandle", "DocumentSource"]
