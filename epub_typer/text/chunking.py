"""Split canonical chapter text into chunks and map offsets between them.

A chapter's canonical text is a list of paragraphs joined by the paragraph
mark. Chunks group consecutive paragraphs; the mark that would have joined
the last paragraph of one chunk to the first paragraph of the next is not
part of either chunk's text but still occupies one chapter-global position.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import List, NamedTuple, Sequence, Tuple

from ..errors import BoundsError
from .normalize import PARAGRAPH_MARK

logger = logging.getLogger(__name__)

CHUNK_CAPACITY = 6


@dataclass(frozen=True)
class Chunk:
    """A group of consecutive paragraphs displayed and typed as one unit."""

    paragraphs: Tuple[str, ...]

    @property
    def text(self) -> str:
        return PARAGRAPH_MARK.join(self.paragraphs)

    def __len__(self) -> int:
        if not self.paragraphs:
            return 0
        return sum(len(p) for p in self.paragraphs) + len(self.paragraphs) - 1


class ChunkPosition(NamedTuple):
    chunk_index: int
    offset: int


def split_paragraphs(text: str) -> List[str]:
    return [paragraph for paragraph in text.split(PARAGRAPH_MARK) if paragraph]


def chunk_text(text: str, capacity: int = CHUNK_CAPACITY) -> List[Chunk]:
    """Group the paragraphs of *text* into chunks of at most *capacity*."""

    if capacity <= 0:
        raise ValueError("capacity must be positive")
    paragraphs = split_paragraphs(text)
    chunks = [
        Chunk(tuple(paragraphs[start : start + capacity]))
        for start in range(0, len(paragraphs), capacity)
    ]
    if not chunks and text:
        chunks.append(Chunk((text,)))
    logger.debug("Split %d characters into %d chunk(s)", len(text), len(chunks))
    return chunks


def join_chunks(chunks: Sequence[Chunk]) -> str:
    return PARAGRAPH_MARK.join(chunk.text for chunk in chunks)


class ChunkMap:
    """Convert between chapter-global offsets and chunk-local positions."""

    def __init__(self, chunks: Sequence[Chunk]) -> None:
        self.chunks = list(chunks)
        self.lengths = [len(chunk) for chunk in self.chunks]
        self.starts: List[int] = []
        position = 0
        for length in self.lengths:
            self.starts.append(position)
            position += length + 1
        self.chapter_length = max(position - 1, 0)

    def __len__(self) -> int:
        return len(self.chunks)

    def chunk_start(self, chunk_index: int) -> int:
        if not 0 <= chunk_index < len(self.chunks):
            raise BoundsError(f"Chunk {chunk_index} outside [0, {len(self.chunks)})")
        return self.starts[chunk_index]

    def to_global(self, chunk_index: int, local_offset: int) -> int:
        if not self.chunks:
            return 0
        position = self.chunk_start(chunk_index) + local_offset
        return min(max(position, 0), self.chapter_length)

    def to_chunk(self, global_offset: int) -> ChunkPosition:
        """Locate *global_offset* within the chunk list.

        An offset exactly at the end of a chunk resumes at the start of the
        next one; past the end of the chapter it resumes at the end of the
        last chunk.
        """

        if not self.chunks or global_offset <= 0:
            return ChunkPosition(0, 0)
        last = len(self.chunks) - 1
        for index, (start, length) in enumerate(zip(self.starts, self.lengths)):
            if start <= global_offset < start + length:
                return ChunkPosition(index, global_offset - start)
            if global_offset == start + length:
                if index < last:
                    return ChunkPosition(index + 1, 0)
                return ChunkPosition(index, length)
        logger.warning(
            "Offset %d is beyond the chapter end (%d); resuming at the last chunk",
            global_offset,
            self.chapter_length,
        )
        return ChunkPosition(last, self.lengths[last])

    def local_resume_offset(self, chunk_index: int, global_offset: int) -> int:
        start = self.chunk_start(chunk_index)
        return min(max(global_offset - start, 0), self.lengths[chunk_index])


__all__ = [
    "CHUNK_CAPACITY",
    "Chunk",
    "ChunkMap",
    "ChunkPosition",
    "chunk_text",
    "join_chunks",
    "split_paragraphs",
]
