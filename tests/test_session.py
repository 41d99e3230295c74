"""Tests for the navigation controller."""

from __future__ import annotations

import asyncio
import json

import pytest

from conftest import FakeSource
from epub_typer.config import TyperConfig
from epub_typer.errors import BoundsError, ContentError
from epub_typer.session import LoadState, NavigationController, SessionContext
from epub_typer.store import BookLengthData, ProgressStore
from epub_typer.typing_state import ARROW_LEFT, ARROW_RIGHT, ENTER, KeyEvent

CHAPTER_ONE = "<html><body><p>Hello world.</p><p>This is a test.</p></body></html>"
CHAPTER_TWO = "<html><body><p>Second chapter.</p></body></html>"


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def store(memory_backend):
    return ProgressStore(memory_backend)


def make_controller(store, tmp_path, clock=None, **options):
    options.setdefault("auto_advance_delay_ms", 0)
    config = TyperConfig(store_path=tmp_path / "progress.json", **options)
    return NavigationController(store, config, clock=clock or FakeClock())


def open_book(controller, source, name="book.epub"):
    return asyncio.run(controller.open_book(SessionContext(), name, source))


def press(controller, ctx, keys):
    transition = None
    for key in keys:
        transition = controller.handle_key(ctx, KeyEvent(key))
        ctx = transition.context
    return ctx, transition


def test_open_book_computes_and_caches_lengths(store, memory_backend, tmp_path):
    source = FakeSource([CHAPTER_ONE, CHAPTER_TWO])
    controller = make_controller(store, tmp_path)

    ctx = open_book(controller, source)

    assert ctx.has_book
    assert ctx.chapter_count == 2
    assert ctx.chapter_index == 0
    assert ctx.typing.text == "Hello world.¶This is a test."
    assert ctx.typing.cursor == 0
    assert ctx.lengths == BookLengthData(total_chars=43, chapter_lengths=[28, 15])
    assert source.decoded == [0, 1, 0]
    payload = json.loads(memory_backend.data["epubTyperProgress_book.epub"])
    assert payload == {
        "chapterProgress": {"0": 0},
        "bookLengthData": {"totalChars": 43, "chapLengths": [28, 15]},
    }
    assert store.last_opened() == "book.epub"


def test_progress_is_saved_on_every_keystroke(store, tmp_path):
    controller = make_controller(store, tmp_path)
    ctx = open_book(controller, FakeSource([CHAPTER_ONE, CHAPTER_TWO]))

    ctx, transition = press(controller, ctx, "Hello world.")
    assert transition.accepted
    assert ctx.typing.awaiting_confirmation
    assert store.load("book.epub").offset_for(0) == 11

    ctx, _ = press(controller, ctx, [ENTER])
    assert ctx.typing.cursor == 13
    assert store.load("book.epub").offset_for(0) == 13

    ctx, transition = press(controller, ctx, "This is a test.")
    assert not transition.auto_advance
    assert ctx.typing.is_resolved
    assert store.load("book.epub").offset_for(0) == 28

    assert controller.handle_key(ctx, KeyEvent("x")).accepted is False


def test_reopening_resumes_without_recalculating(store, tmp_path):
    controller = make_controller(store, tmp_path)
    ctx = open_book(controller, FakeSource([CHAPTER_ONE, CHAPTER_TWO]))
    press(controller, ctx, "Hello w")

    source = FakeSource([CHAPTER_ONE, CHAPTER_TWO])
    ctx = open_book(make_controller(store, tmp_path), source)

    assert source.decoded == [0]
    assert ctx.typing.cursor == 7
    assert ctx.typing.statuses[6].value == "correct"


def test_open_resumes_furthest_chapter(store, tmp_path):
    store.save("book.epub", 0, 3)
    store.save("book.epub", 1, 9)

    ctx = open_book(make_controller(store, tmp_path), FakeSource([CHAPTER_ONE, CHAPTER_TWO]))

    assert ctx.chapter_index == 1
    assert ctx.typing.cursor == 9


def test_stale_cached_length_is_refreshed(store, tmp_path):
    store.save_lengths("book.epub", BookLengthData.from_lengths([99, 15]))

    ctx = open_book(make_controller(store, tmp_path), FakeSource([CHAPTER_ONE, CHAPTER_TWO]))

    assert ctx.lengths.chapter_lengths == [28, 15]
    assert store.load("book.epub").book_length.total_chars == 43


def test_chunk_completion_auto_advances(store, tmp_path):
    controller = make_controller(store, tmp_path, chunk_capacity=1)
    ctx = open_book(controller, FakeSource([CHAPTER_ONE, CHAPTER_TWO]))
    assert [chunk.text for chunk in ctx.chunks] == ["Hello world.", "This is a test."]

    ctx, transition = press(controller, ctx, "Hello world")
    transition = asyncio.run(controller.dispatch(ctx, KeyEvent(".")))

    assert transition.accepted
    ctx = transition.context
    assert ctx.chunk_index == 1
    assert ctx.typing.cursor == 0
    assert store.load("book.epub").offset_for(0) == 12

    ctx, _ = press(controller, ctx, "T")
    assert store.load("book.epub").offset_for(0) == 14


def test_resume_lands_in_the_right_chunk(store, tmp_path):
    store.save("book.epub", 0, 14)

    ctx = open_book(make_controller(store, tmp_path, chunk_capacity=1), FakeSource([CHAPTER_ONE]))

    assert ctx.chunk_index == 1
    assert ctx.typing.cursor == 1


def test_forward_navigation_needs_a_finished_chunk(store, tmp_path):
    store.save("book.epub", 0, 14)
    controller = make_controller(store, tmp_path, chunk_capacity=1)
    ctx = open_book(controller, FakeSource([CHAPTER_ONE]))

    ctx, transition = press(controller, ctx, [ARROW_LEFT])
    assert transition.accepted
    assert ctx.chunk_index == 0
    assert ctx.typing.cursor == 0

    transition = controller.handle_key(ctx, KeyEvent(ARROW_RIGHT))
    assert transition.accepted is False
    assert transition.context.chunk_index == 0

    assert controller.handle_key(ctx, KeyEvent(ARROW_LEFT)).accepted is False


def test_finished_chapter_moves_to_the_next_one(store, tmp_path):
    store.save("book.epub", 0, 28)
    controller = make_controller(store, tmp_path)
    ctx = open_book(controller, FakeSource([CHAPTER_ONE, CHAPTER_TWO]))
    assert ctx.typing.is_resolved

    transition = controller.handle_key(ctx, KeyEvent(ARROW_RIGHT))
    assert transition.chapter_request == 1

    transition = asyncio.run(controller.follow(transition))
    ctx = transition.context
    assert ctx.chapter_index == 1
    assert ctx.typing.text == "Second chapter."

    transition = asyncio.run(controller.dispatch(ctx, KeyEvent(ARROW_LEFT)))
    assert transition.context.chapter_index == 0


def test_unreadable_chapter_becomes_empty(store, tmp_path):
    source = FakeSource(["<p>One.</p>", ContentError("bad"), RuntimeError("boom")])
    controller = make_controller(store, tmp_path)

    ctx = open_book(controller, source)
    assert ctx.lengths.chapter_lengths == [4, 0, 0]

    ctx = asyncio.run(controller.load_chapter(ctx, 1))
    assert ctx.chapter_index == 1
    assert ctx.chunks == ()
    assert ctx.typing.is_complete

    transition = controller.handle_key(ctx, KeyEvent(ARROW_RIGHT))
    assert transition.chapter_request == 2


def test_out_of_range_chapter_is_ignored(store, tmp_path):
    controller = make_controller(store, tmp_path)
    ctx = open_book(controller, FakeSource([CHAPTER_ONE]))

    assert asyncio.run(controller.load_chapter(ctx, 5)) is ctx
    assert asyncio.run(controller.navigate_chapter(ctx, -1)) is ctx


def test_requests_are_rejected_while_loading(store, tmp_path):
    controller = make_controller(store, tmp_path)
    ctx = open_book(controller, FakeSource([CHAPTER_ONE]))
    controller.state = LoadState.LOADING

    assert controller.handle_key(ctx, KeyEvent("H")).accepted is False
    assert asyncio.run(controller.open_book(ctx, "other.epub", FakeSource([CHAPTER_TWO]))) is ctx
    assert store.load("other.epub") is None


def test_missing_file_clears_the_session(store, tmp_path):
    controller = make_controller(store, tmp_path)

    ctx = asyncio.run(controller.open_epub(SessionContext(), tmp_path / "missing.epub"))

    assert not ctx.has_book
    assert ctx.message
    assert store.last_opened() is None
    assert controller.state is LoadState.IDLE


def test_open_epub_reads_a_real_book(store, tmp_path, sample_epub):
    controller = make_controller(store, tmp_path)

    ctx = asyncio.run(controller.open_epub(SessionContext(), sample_epub))

    assert ctx.book_name == "sample.epub"
    assert ctx.chapter_count == 2
    assert "First para.¶Second para." in ctx.typing.text


def test_stats_report_speed_accuracy_and_progress(store, tmp_path):
    clock = FakeClock()
    controller = make_controller(store, tmp_path, clock=clock)
    ctx = open_book(controller, FakeSource([CHAPTER_ONE, CHAPTER_TWO]))

    fresh = controller.stats(ctx)
    assert fresh.words_per_minute == 0
    assert fresh.accuracy_percent == 100
    assert fresh.chapter_label == "Ch: 1/2"
    assert fresh.book_percent == 0

    ctx, _ = press(controller, ctx, ["H", "x", "l", "l", "o"])
    stats = controller.stats(ctx, now=60.0)
    assert stats.error_count == 1
    assert stats.accuracy_percent == 80
    assert stats.words_per_minute == 1

    ctx, _ = press(controller, ctx, ["Backspace"] * 4 + list("ello world.") + [ENTER] + list("This is a test."))
    stats = controller.stats(ctx, now=60.0)
    assert stats.error_count == 0
    assert stats.book_percent == 63


def test_empty_context_has_placeholder_stats(store, tmp_path):
    stats = make_controller(store, tmp_path).stats(SessionContext())

    assert stats.chapter_label == "Chapter: - / -"
    assert stats.book_percent is None
    assert stats.accuracy_percent == 100


@pytest.mark.parametrize("policy, expected", [("overwrite", 4), ("monotonic", 5)])
def test_backspace_then_save_follows_the_policy(memory_backend, tmp_path, policy, expected):
    store = ProgressStore(memory_backend, policy=policy)
    controller = make_controller(store, tmp_path, save_policy=policy)
    ctx = open_book(controller, FakeSource([CHAPTER_ONE]))

    ctx, _ = press(controller, ctx, "Hello")
    assert store.load("book.epub").offset_for(0) == 5

    transition = controller.handle_key(ctx, KeyEvent("Backspace"))

    assert transition.accepted
    assert transition.context.typing.cursor == 4
    assert store.load("book.epub").offset_for(0) == expected


def test_loading_an_unknown_chunk_raises(store, tmp_path):
    controller = make_controller(store, tmp_path, chunk_capacity=1)
    ctx = open_book(controller, FakeSource([CHAPTER_ONE]))

    with pytest.raises(BoundsError):
        controller.load_chunk(ctx, 2)
