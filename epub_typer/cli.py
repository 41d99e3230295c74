"""Command line interface for EPUB Typer."""

from __future__ import annotations

import argparse
import asyncio
import logging
from pathlib import Path
from typing import List, Optional

from . import __version__
from .config import SAVE_POLICIES, TyperConfig
from .errors import TyperError
from .ingest.epub_loader import EpubSource
from .session import NavigationController, SessionContext
from .store import ProgressStore
from .text.chunking import ChunkMap, chunk_text

LOGGER = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="epub-typer",
        description="Practice touch typing on the text of an EPUB, one chunk of paragraphs at a time.",
    )
    parser.add_argument("--store", type=Path, help="Progress store file (default: $EPUB_TYPER_HOME/progress.json)")
    parser.add_argument("--chunk-size", type=int, default=6, help="Paragraphs per chunk")
    parser.add_argument(
        "--policy",
        choices=sorted(SAVE_POLICIES),
        default="overwrite",
        help="How saved offsets are merged with earlier ones",
    )
    parser.add_argument("--ligatures", action="store_true", help="Expand typographic ligatures such as ﬁ")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose logging")
    parser.add_argument("-q", "--quiet", action="store_true", help="Only print warnings and errors")
    parser.add_argument("--version", action="version", version=f"epub-typer {__version__}")

    subparsers = parser.add_subparsers(dest="command", required=True)

    status = subparsers.add_parser("status", help="Show stored progress for a book")
    status.add_argument("name", help="Book name (the EPUB file name)")

    clear = subparsers.add_parser("clear", help="Remove stored progress for a book")
    clear.add_argument("name", help="Book name (the EPUB file name)")

    lengths = subparsers.add_parser("lengths", help="Compute canonical chapter lengths")
    lengths.add_argument("path", type=Path, help="EPUB file")

    chunks = subparsers.add_parser("chunks", help="Print the chunks of one chapter")
    chunks.add_argument("path", type=Path, help="EPUB file")
    chunks.add_argument("--chapter", type=int, default=1, help="1-based chapter number")

    open_cmd = subparsers.add_parser("open", help="Load a book and report where typing resumes")
    open_cmd.add_argument("path", type=Path, help="EPUB file")

    gui = subparsers.add_parser("gui", help="Launch the typing window")
    gui.add_argument("path", type=Path, nargs="?", help="EPUB file to open on start")
    return parser


def configure_logging(verbose: bool, quiet: bool) -> None:
    if quiet:
        level = logging.WARNING
    elif verbose:
        level = logging.DEBUG
    else:
        level = logging.INFO
    logging.basicConfig(level=level, format="%(levelname)s: %(message)s")


def create_config(namespace: argparse.Namespace) -> TyperConfig:
    return TyperConfig(
        store_path=namespace.store,
        chunk_capacity=namespace.chunk_size,
        save_policy=namespace.policy,
        expand_ligatures=namespace.ligatures,
    )


def create_store(config: TyperConfig) -> ProgressStore:
    return ProgressStore.at_path(config.store_path, policy=config.save_policy)


def cmd_status(config: TyperConfig, name: str) -> int:
    store = create_store(config)
    record = store.load(name)
    if record is None:
        print(f"No stored progress for {name}")
        return 0
    count = len(record.book_length.chapter_lengths) if record.book_length else None
    for index, offset in sorted(record.chapter_progress.items()):
        suffix = ""
        if record.book_length and index < len(record.book_length.chapter_lengths):
            suffix = f" / {record.book_length.chapter_lengths[index]}"
        print(f"Chapter {index + 1}: {offset}{suffix}")
    if record.book_length:
        print(f"Total characters: {record.book_length.total_chars}")
    if count:
        print(f"Resumes at chapter {record.resume_chapter_index(count) + 1}")
    return 0


def cmd_clear(config: TyperConfig, name: str) -> int:
    create_store(config).clear(name)
    print(f"Cleared progress for {name}")
    return 0


def cmd_lengths(config: TyperConfig, path: Path) -> int:
    controller = NavigationController(create_store(config), config)
    source = EpubSource.open(path)
    data = asyncio.run(controller.calculate_lengths(source))
    for handle, length in zip(source.chapters, data.chapter_lengths):
        title = f" ({handle.title})" if handle.title else ""
        print(f"{handle.index + 1:>4} {length:>8}  {handle.href}{title}")
    print(f"Total: {data.total_chars}")
    return 0


def cmd_chunks(config: TyperConfig, path: Path, chapter: int) -> int:
    controller = NavigationController(create_store(config), config)
    source = EpubSource.open(path)
    handles = source.chapters
    if not 1 <= chapter <= len(handles):
        raise TyperError(f"Chapter must be between 1 and {len(handles)}")
    markup = asyncio.run(source.decode(handles[chapter - 1]))
    text = controller.normalizer.normalize_markup(markup)
    chunks = chunk_text(text, config.chunk_capacity)
    chunk_map = ChunkMap(chunks)
    for index, chunk in enumerate(chunks):
        preview = chunk.paragraphs[0][:60] if chunk.paragraphs else ""
        print(f"[{index}] start={chunk_map.starts[index]} length={len(chunk)} paragraphs={len(chunk.paragraphs)}  {preview}")
    print(f"Chapter length: {chunk_map.chapter_length}")
    return 0


def cmd_open(config: TyperConfig, path: Path) -> int:
    controller = NavigationController(create_store(config), config)
    ctx = asyncio.run(controller.open_epub(SessionContext(), path))
    if not ctx.has_book:
        raise TyperError(ctx.message or f"Could not open {path}")
    stats = controller.stats(ctx)
    offset = ctx.global_offset()
    print(f"{ctx.book_name}: {stats.chapter_label}, chunk {ctx.chunk_index + 1}/{max(len(ctx.chunks), 1)}, offset {offset}")
    book = "N/A" if stats.book_percent is None else f"{stats.book_percent}%"
    print(f"Book progress: {book}")
    return 0


def cmd_gui(config: TyperConfig, path: Optional[Path]) -> int:
    from .app import run_gui

    return run_gui(config, path)


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.verbose, args.quiet)
    try:
        config = create_config(args)
        if args.command == "status":
            return cmd_status(config, args.name)
        if args.command == "clear":
            return cmd_clear(config, args.name)
        if args.command == "lengths":
            return cmd_lengths(config, args.path)
        if args.command == "chunks":
            return cmd_chunks(config, args.path, args.chapter)
        if args.command == "open":
            return cmd_open(config, args.path)
        return cmd_gui(config, args.path)
    except (TyperError, ValueError, OSError) as exc:
        LOGGER.error(str(exc))
        return 1


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
