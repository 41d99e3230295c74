"""Tests for the EPUB document source."""

from __future__ import annotations

import asyncio

import pytest

from conftest import write_epub
from epub_typer.errors import DocumentSourceError
from epub_typer.ingest.epub_loader import EpubSource


def test_spine_documents_become_chapters(sample_epub):
    source = EpubSource.open(sample_epub)

    chapters = source.chapters
    assert source.name == "sample.epub"
    assert [handle.index for handle in chapters] == [0, 1]
    assert [handle.href for handle in chapters] == ["chap_1.xhtml", "chap_2.xhtml"]
    assert chapters[0].title == "Chapter One"


def test_decode_returns_chapter_markup(sample_epub):
    source = EpubSource.open(sample_epub)

    markup = asyncio.run(source.decode(source.chapters[1]))

    assert "Another chapter begins here." in markup


def test_metadata_reads_title_and_author(sample_epub):
    assert EpubSource.open(sample_epub).metadata() == {"title": "Sample", "creator": "Author"}


def test_from_bytes_keeps_the_given_name(sample_epub):
    source = EpubSource.from_bytes("renamed.epub", sample_epub.read_bytes())

    assert source.name == "renamed.epub"
    assert len(source.chapters) == 2


def test_invalid_container_raises(tmp_path):
    path = tmp_path / "broken.epub"
    path.write_bytes(b"not a zip archive")

    with pytest.raises(DocumentSourceError):
        EpubSource.open(path)


def test_missing_file_raises(tmp_path):
    with pytest.raises(DocumentSourceError):
        EpubSource.open(tmp_path / "missing.epub")


def test_chapter_titles_follow_the_table_of_contents(tmp_path):
    path = write_epub(tmp_path / "three.epub", [("A", "<p>a</p>"), ("B", "<p>b</p>"), ("C", "<p>c</p>")])

    assert [handle.title for handle in EpubSource.open(path).chapters] == ["A", "B", "C"]
