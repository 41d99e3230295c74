"""Session context and the navigation controller that drives it.

Every operation takes a :class:`SessionContext` and returns a new one; the
controller itself only holds its collaborators and the loading guard. Only
the chapter decode calls are awaited, so a load either finishes or fails
before the next input event is handled.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, replace
from enum import Enum
import logging
import math
from pathlib import Path
import time
from typing import Callable, Optional, Tuple

from .config import TyperConfig
from .errors import BoundsError, ContentError, DocumentSourceError
from .ingest import ChapterHandle, DocumentSource
from .ingest.epub_loader import EpubSource
from .store import BookLengthData, ProgressStore
from .text.chunking import Chunk, ChunkMap, chunk_text
from .text.normalize import NormalizationOptions, Normalizer
from .typing_state import ARROW_LEFT, ARROW_RIGHT, KeyEvent, TypingState

logger = logging.getLogger(__name__)

CHARS_PER_WORD = 5


class LoadState(str, Enum):
    IDLE = "idle"
    LOADING = "loading"


@dataclass(frozen=True)
class SessionContext:
    """Everything known about the open book and the active chunk."""

    book_name: Optional[str] = None
    source: Optional[DocumentSource] = None
    chapter_count: int = 0
    lengths: Optional[BookLengthData] = None
    chapter_index: int = 0
    chunks: Tuple[Chunk, ...] = ()
    chunk_map: Optional[ChunkMap] = None
    chunk_index: int = 0
    typing: Optional[TypingState] = None
    message: str = ""

    @property
    def has_book(self) -> bool:
        return self.book_name is not None and self.source is not None

    @property
    def is_last_chunk(self) -> bool:
        return self.chunk_index >= len(self.chunks) - 1

    def global_offset(self) -> int:
        """Chapter-global offset to persist for the current typing position."""

        if self.chunk_map is None or self.typing is None:
            return 0
        return self.chunk_map.to_global(self.chunk_index, self.typing.resume_offset())

    def chapter_handle(self) -> Optional[ChapterHandle]:
        if self.source is None or not 0 <= self.chapter_index < self.chapter_count:
            return None
        return self.source.chapters[self.chapter_index]


@dataclass(frozen=True)
class Transition:
    """Result of one input event."""

    context: SessionContext
    accepted: bool = False
    auto_advance: bool = False
    chapter_request: Optional[int] = None


@dataclass(frozen=True)
class Stats:
    words_per_minute: int
    accuracy_percent: int
    error_count: int
    chapter_label: str
    book_percent: Optional[int]


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


class NavigationController:
    """Load books, chapters and chunks and route key events through them."""

    def __init__(
        self,
        store: ProgressStore,
        config: Optional[TyperConfig] = None,
        *,
        normalizer: Optional[Normalizer] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.store = store
        self.config = config or TyperConfig()
        self.normalizer = normalizer or Normalizer(
            NormalizationOptions(expand_ligatures=self.config.expand_ligatures)
        )
        self.clock = clock
        self.state = LoadState.IDLE

    @property
    def is_loading(self) -> bool:
        return self.state is LoadState.LOADING

    # Book loading ----------------------------------------------------------------
    async def open_epub(self, ctx: SessionContext, path: Path | str) -> SessionContext:
        """Open the EPUB at *path* and resume it where the reader left off."""

        if self._busy("open"):
            return ctx
        path = Path(path)
        self.state = LoadState.LOADING
        try:
            source = await asyncio.to_thread(EpubSource.open, path)
        except DocumentSourceError as exc:
            logger.error("Could not load %s: %s", path.name, exc)
            return SessionContext(message=f"Could not load or parse the EPUB file: {exc}")
        finally:
            self.state = LoadState.IDLE
        return await self.open_book(ctx, path.name, source)

    async def open_book(self, ctx: SessionContext, name: str, source: DocumentSource) -> SessionContext:
        if self._busy("open"):
            return ctx
        self.state = LoadState.LOADING
        try:
            chapter_count = len(source.chapters)
            if chapter_count == 0:
                raise DocumentSourceError(f"{name} has no chapters")
            record = self.store.load(name)
            lengths = record.lengths_for(chapter_count) if record else None
            if lengths is None:
                logger.info("Calculating chapter lengths for %s", name)
                lengths = await self.calculate_lengths(source)
                self.store.save_lengths(name, lengths)
            else:
                logger.debug("Using cached chapter lengths for %s", name)
            self.store.set_last_opened(name)
        except DocumentSourceError as exc:
            logger.error("Could not load %s: %s", name, exc)
            return SessionContext(message=f"Could not load or parse the EPUB file: {exc}")
        finally:
            self.state = LoadState.IDLE

        resume_index = record.resume_chapter_index(chapter_count) if record else 0
        logger.info("Opened %s (%d chapters), resuming at chapter %d", name, chapter_count, resume_index + 1)
        ctx = SessionContext(book_name=name, source=source, chapter_count=chapter_count, lengths=lengths)
        ctx = await self.load_chapter(ctx, resume_index)
        self.save(ctx)
        return ctx

    async def calculate_lengths(self, source: DocumentSource) -> BookLengthData:
        lengths = []
        for handle in source.chapters:
            try:
                text = await self._canonical_text(source, handle)
            except ContentError as exc:
                logger.warning("Chapter %d counted as empty: %s", handle.index + 1, exc)
                text = ""
            lengths.append(len(text))
        data = BookLengthData.from_lengths(lengths)
        logger.debug("Book has %d characters in %d chapters", data.total_chars, len(lengths))
        return data

    async def _canonical_text(self, source: DocumentSource, handle: ChapterHandle) -> str:
        try:
            markup = await source.decode(handle)
        except ContentError:
            raise
        except Exception as exc:
            raise ContentError(f"Could not decode {handle.href}: {exc}", chapter_index=handle.index) from exc
        return self.normalizer.normalize_markup(markup)

    # Chapter and chunk loading -----------------------------------------------------
    async def load_chapter(self, ctx: SessionContext, chapter_index: int) -> SessionContext:
        try:
            self._check_chapter(ctx, chapter_index)
        except BoundsError as exc:
            logger.debug("Ignoring chapter request: %s", exc)
            return ctx
        if self._busy("chapter load"):
            return ctx
        self.state = LoadState.LOADING
        handle = ctx.source.chapters[chapter_index]
        try:
            text = await self._canonical_text(ctx.source, handle)
        except ContentError as exc:
            logger.warning("Chapter %d could not be loaded: %s", chapter_index + 1, exc)
            text = ""
        finally:
            self.state = LoadState.IDLE

        chunks = chunk_text(text, self.config.chunk_capacity)
        chunk_map = ChunkMap(chunks)
        stored = self._stored_offset(ctx.book_name, chapter_index)
        position = chunk_map.to_chunk(stored)
        logger.info(
            "Loaded chapter %d: %d characters in %d chunk(s), resuming at chunk %d offset %d",
            chapter_index + 1,
            len(text),
            len(chunks),
            position.chunk_index,
            position.offset,
        )
        ctx = replace(
            ctx,
            chapter_index=chapter_index,
            lengths=self._refresh_length(ctx, chapter_index, len(text)),
            chunks=tuple(chunks),
            chunk_map=chunk_map,
            chunk_index=0,
            typing=None,
            message="",
        )
        return self.load_chunk(ctx, position.chunk_index, resume=True)

    def load_chunk(self, ctx: SessionContext, chunk_index: int, *, resume: bool = True) -> SessionContext:
        """Start typing *chunk_index*; ``resume`` picks up the stored position."""

        keys = self.config.confirmation_keys
        if not ctx.chunks or ctx.chunk_map is None:
            return replace(ctx, chunk_index=0, typing=TypingState.start("", 0, keys))
        if not 0 <= chunk_index < len(ctx.chunks):
            raise BoundsError(f"Chunk {chunk_index} outside [0, {len(ctx.chunks)})")
        local = 0
        if resume:
            stored = self._stored_offset(ctx.book_name, ctx.chapter_index)
            local = ctx.chunk_map.local_resume_offset(chunk_index, stored)
        logger.debug("Loading chunk %d at local offset %d", chunk_index, local)
        typing = TypingState.start(ctx.chunks[chunk_index].text, local, keys)
        return replace(ctx, chunk_index=chunk_index, typing=typing)

    # Input handling ----------------------------------------------------------------
    def handle_key(self, ctx: SessionContext, event: KeyEvent) -> Transition:
        if self.is_loading or ctx.typing is None:
            return Transition(ctx)
        if event.key == ARROW_LEFT:
            return self.navigate_chunk(ctx, -1)
        if event.key == ARROW_RIGHT:
            return self.navigate_chunk(ctx, 1)

        typing, outcome = ctx.typing.apply(event, self.clock())
        if not outcome.accepted:
            return Transition(ctx)
        if outcome.completed and ctx.is_last_chunk:
            logger.info("Completed the last chunk of chapter %d", ctx.chapter_index + 1)
            typing = typing.resolve_all()
        ctx = replace(ctx, typing=typing)
        self.save(ctx)
        return Transition(ctx, accepted=True, auto_advance=outcome.completed and not ctx.is_last_chunk)

    def navigate_chunk(self, ctx: SessionContext, direction: int) -> Transition:
        if self.is_loading or not ctx.has_book or ctx.typing is None:
            return Transition(ctx)
        if direction > 0:
            if not ctx.typing.is_complete:
                logger.debug("Chunk %d is not finished; staying put", ctx.chunk_index)
                return Transition(ctx)
            if ctx.is_last_chunk:
                return self._request_chapter(ctx, ctx.chapter_index + 1)
            target, resume = ctx.chunk_index + 1, True
        else:
            if ctx.chunk_index <= 0:
                return self._request_chapter(ctx, ctx.chapter_index - 1)
            target, resume = ctx.chunk_index - 1, False
        self.save(ctx)
        return Transition(self.load_chunk(ctx, target, resume=resume), accepted=True)

    def _request_chapter(self, ctx: SessionContext, chapter_index: int) -> Transition:
        try:
            self._check_chapter(ctx, chapter_index)
        except BoundsError as exc:
            logger.debug("Ignoring chapter navigation: %s", exc)
            return Transition(ctx)
        self.save(ctx)
        return Transition(ctx, accepted=True, chapter_request=chapter_index)

    async def navigate_chapter(self, ctx: SessionContext, direction: int) -> SessionContext:
        if not ctx.has_book:
            return ctx
        self.save(ctx)
        return await self.load_chapter(ctx, ctx.chapter_index + direction)

    async def dispatch(self, ctx: SessionContext, event: KeyEvent) -> Transition:
        """Handle *event*, following chapter requests and chunk auto-advance."""

        return await self.follow(self.handle_key(ctx, event))

    async def follow(self, transition: Transition) -> Transition:
        if transition.chapter_request is not None:
            ctx = await self.load_chapter(transition.context, transition.chapter_request)
            return replace(transition, context=ctx, chapter_request=None)
        if transition.auto_advance:
            await asyncio.sleep(self.config.auto_advance_delay_ms / 1000)
            advanced = self.navigate_chunk(transition.context, 1)
            return replace(transition, context=advanced.context, auto_advance=False)
        return transition

    # Persistence and statistics ----------------------------------------------------
    def save(self, ctx: SessionContext) -> None:
        if not ctx.has_book or ctx.chunk_map is None:
            return
        self.store.save(ctx.book_name, ctx.chapter_index, ctx.global_offset(), lengths=ctx.lengths)

    def stats(self, ctx: SessionContext, now: Optional[float] = None) -> Stats:
        now = self.clock() if now is None else now
        typing = ctx.typing
        keystrokes = typing.keystroke_count if typing else 0
        errors = typing.error_count if typing else 0
        wpm = 0
        if typing and typing.started_at is not None and keystrokes:
            minutes = (now - typing.started_at) / 60
            if minutes > 0:
                wpm = max(0, _round_half_up((keystrokes / CHARS_PER_WORD) / minutes))
        accuracy = 100
        if keystrokes:
            accuracy = _round_half_up(max(0, keystrokes - errors) / keystrokes * 100)
        if ctx.chapter_count:
            label = f"Ch: {ctx.chapter_index + 1}/{ctx.chapter_count}"
        else:
            label = "Chapter: - / -"
        return Stats(
            words_per_minute=wpm,
            accuracy_percent=accuracy,
            error_count=errors,
            chapter_label=label,
            book_percent=self._book_percent(ctx),
        )

    def _book_percent(self, ctx: SessionContext) -> Optional[int]:
        lengths = ctx.lengths
        if lengths is None or not ctx.chapter_count or len(lengths.chapter_lengths) != ctx.chapter_count:
            return None
        total_words = max(1, lengths.total_chars // CHARS_PER_WORD) if lengths.total_chars > 0 else 0
        if not total_words:
            return 0
        done = sum(lengths.chapter_lengths[: ctx.chapter_index])
        if ctx.chunk_map is not None and ctx.typing is not None:
            position = ctx.chunk_map.to_global(ctx.chunk_index, ctx.typing.cursor)
            done += min(position, lengths.chapter_lengths[ctx.chapter_index])
        return _round_half_up((done // CHARS_PER_WORD) / total_words * 100)

    # Helpers -----------------------------------------------------------------------
    def _busy(self, action: str) -> bool:
        if self.is_loading:
            logger.warning("Rejected %s request while another load is in progress", action)
            return True
        return False

    def _check_chapter(self, ctx: SessionContext, chapter_index: int) -> None:
        if not ctx.has_book:
            raise BoundsError("No book is open")
        if not 0 <= chapter_index < ctx.chapter_count:
            raise BoundsError(f"Chapter {chapter_index} outside [0, {ctx.chapter_count})")

    def _stored_offset(self, book_name: Optional[str], chapter_index: int) -> int:
        if book_name is None:
            return 0
        record = self.store.load(book_name)
        return record.offset_for(chapter_index) if record else 0

    def _refresh_length(self, ctx: SessionContext, chapter_index: int, length: int) -> Optional[BookLengthData]:
        lengths = ctx.lengths
        if lengths is None or chapter_index >= len(lengths.chapter_lengths):
            return lengths
        if lengths.chapter_lengths[chapter_index] == length:
            return lengths
        logger.warning(
            "Updating cached length of chapter %d from %d to %d",
            chapter_index + 1,
            lengths.chapter_lengths[chapter_index],
            length,
        )
        updated = list(lengths.chapter_lengths)
        updated[chapter_index] = length
        refreshed = BookLengthData.from_lengths(updated)
        if ctx.book_name is not None:
            self.store.save_lengths(ctx.book_name, refreshed)
        return refreshed


__all__ = [
    "LoadState",
    "NavigationController",
    "SessionContext",
    "Stats",
    "Transition",
]
