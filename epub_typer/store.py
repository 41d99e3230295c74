"""Durable per-book typing progress.

Records keep the layout used by the browser version of the typer so an
exported store stays readable::

    {"chapterProgress": {"0": 50, "2": 120},
     "bookLengthData": {"totalChars": 4096, "chapLengths": [1024, ...]}}
"""

from __future__ import annotations

from dataclasses import dataclass, field
import json
import logging
import os
from pathlib import Path
import tempfile
import time
from typing import Dict, List, Optional, Protocol

from .config import SAVE_POLICIES
from .errors import StoreCorruptError

logger = logging.getLogger(__name__)

PROGRESS_KEY_PREFIX = "epubTyperProgress_"
LAST_OPENED_KEY = "epubTyperLastOpenedFile"


class KeyValueStore(Protocol):
    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...

    def remove(self, key: str) -> None: ...


class JsonFileKeyValueStore:
    """Key/value pairs kept in one JSON file, rewritten atomically.

    A file that cannot be parsed is never overwritten in place: before the
    next write it is moved aside as ``<name>.corrupt-<timestamp>``.
    """

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)

    def get(self, key: str) -> Optional[str]:
        try:
            data = self._read()
        except StoreCorruptError as exc:
            logger.warning("Ignoring unreadable store %s: %s", self.path, exc)
            return None
        value = data.get(key)
        if value is None or isinstance(value, str):
            return value
        return json.dumps(value)

    def set(self, key: str, value: str) -> None:
        data = self._read_for_update()
        data[key] = value
        self._write(data)

    def remove(self, key: str) -> None:
        data = self._read_for_update()
        if data.pop(key, None) is not None:
            self._write(data)

    def _read(self) -> Dict[str, object]:
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return {}
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise StoreCorruptError(f"{self.path} is not valid JSON: {exc}") from exc
        if not isinstance(raw, dict):
            raise StoreCorruptError(f"{self.path}: top level is not an object")
        return raw

    def _read_for_update(self) -> Dict[str, object]:
        try:
            return self._read()
        except StoreCorruptError as exc:
            backup = self._quarantine()
            logger.warning("Moved unreadable store to %s before writing: %s", backup, exc)
            return {}

    def _quarantine(self) -> Path:
        stamp = time.strftime("%Y%m%d-%H%M%S")
        backup = self.path.with_name(f"{self.path.name}.corrupt-{stamp}")
        counter = 1
        while backup.exists():
            backup = self.path.with_name(f"{self.path.name}.corrupt-{stamp}-{counter}")
            counter += 1
        os.replace(self.path, backup)
        return backup

    def _write(self, data: Dict[str, object]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=".progress-", suffix=".json", dir=self.path.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(data, handle, ensure_ascii=False, indent=2, sort_keys=True)
            os.replace(tmp_name, self.path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise


@dataclass
class BookLengthData:
    total_chars: int
    chapter_lengths: List[int]

    @classmethod
    def from_lengths(cls, lengths: List[int]) -> "BookLengthData":
        return cls(total_chars=sum(lengths), chapter_lengths=list(lengths))

    def to_json(self) -> dict:
        return {"totalChars": self.total_chars, "chapLengths": list(self.chapter_lengths)}

    @classmethod
    def from_json(cls, payload: object) -> Optional["BookLengthData"]:
        if not isinstance(payload, dict):
            return None
        total = payload.get("totalChars")
        lengths = payload.get("chapLengths", payload.get("chapterLengths"))
        if not isinstance(total, int) or total < 0 or not isinstance(lengths, list):
            return None
        if not all(isinstance(value, int) and value >= 0 for value in lengths):
            return None
        return cls(total_chars=total, chapter_lengths=list(lengths))


@dataclass
class ProgressRecord:
    """Stored progress for one book."""

    chapter_progress: Dict[int, int] = field(default_factory=dict)
    book_length: Optional[BookLengthData] = None

    def offset_for(self, chapter_index: int) -> int:
        return self.chapter_progress.get(chapter_index, 0)

    def lengths_for(self, chapter_count: int) -> Optional[BookLengthData]:
        if self.book_length and len(self.book_length.chapter_lengths) == chapter_count:
            return self.book_length
        return None

    def resume_chapter_index(self, chapter_count: int) -> int:
        """Chapter with the furthest stored offset, ties going to the later chapter."""

        best_index = 0
        best_offset = -1
        for index, offset in self.chapter_progress.items():
            if not 0 <= index < chapter_count:
                continue
            if offset > best_offset or (offset == best_offset and index > best_index):
                best_index, best_offset = index, offset
        return best_index

    def to_json(self) -> dict:
        payload: dict = {
            "chapterProgress": {str(index): offset for index, offset in sorted(self.chapter_progress.items())}
        }
        if self.book_length is not None:
            payload["bookLengthData"] = self.book_length.to_json()
        return payload

    @classmethod
    def from_json(cls, raw: str) -> "ProgressRecord":
        try:
            payload = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise StoreCorruptError(f"Progress record is not valid JSON: {exc}") from exc
        if not isinstance(payload, dict):
            raise StoreCorruptError("Progress record is not a JSON object")
        progress: Dict[int, int] = {}
        chapter_progress = payload.get("chapterProgress") or {}
        if not isinstance(chapter_progress, dict):
            raise StoreCorruptError("chapterProgress is not an object")
        for key, value in chapter_progress.items():
            try:
                index = int(key)
            except (TypeError, ValueError):
                logger.debug("Skipping non-numeric chapter key %r", key)
                continue
            if isinstance(value, int) and not isinstance(value, bool) and value >= 0:
                progress[index] = value
        return cls(chapter_progress=progress, book_length=BookLengthData.from_json(payload.get("bookLengthData")))


class ProgressStore:
    """Load, merge and clear :class:`ProgressRecord` objects by book name."""

    def __init__(self, backend: KeyValueStore, *, policy: str = "overwrite") -> None:
        if policy not in SAVE_POLICIES:
            raise ValueError(f"Unsupported save policy: {policy}")
        self.backend = backend
        self.policy = policy

    @classmethod
    def at_path(cls, path: Path | str, *, policy: str = "overwrite") -> "ProgressStore":
        return cls(JsonFileKeyValueStore(path), policy=policy)

    def load(self, book_name: str) -> Optional[ProgressRecord]:
        raw = self.backend.get(self._key(book_name))
        if raw is None:
            return None
        try:
            return ProgressRecord.from_json(raw)
        except StoreCorruptError as exc:
            logger.warning("Discarding corrupt progress for %s: %s", book_name, exc)
            return None

    def save(
        self,
        book_name: str,
        chapter_index: int,
        offset: int,
        lengths: Optional[BookLengthData] = None,
    ) -> ProgressRecord:
        record = self.load(book_name) or ProgressRecord()
        previous = record.chapter_progress.get(chapter_index)
        if self.policy == "monotonic" and previous is not None and previous > offset:
            logger.debug("Keeping chapter %d at %d (new offset %d)", chapter_index, previous, offset)
        else:
            record.chapter_progress[chapter_index] = offset
        if lengths is not None:
            record.book_length = lengths
        self._write(book_name, record)
        logger.debug("Saved %s chapter %d at %d", book_name, chapter_index, offset)
        return record

    def save_lengths(self, book_name: str, lengths: BookLengthData) -> ProgressRecord:
        record = self.load(book_name) or ProgressRecord()
        record.book_length = lengths
        self._write(book_name, record)
        return record

    def clear(self, book_name: str) -> None:
        self.backend.remove(self._key(book_name))
        logger.info("Cleared saved progress for %s", book_name)

    def last_opened(self) -> Optional[str]:
        return self.backend.get(LAST_OPENED_KEY)

    def set_last_opened(self, book_name: str) -> None:
        self.backend.set(LAST_OPENED_KEY, book_name)

    def _write(self, book_name: str, record: ProgressRecord) -> None:
        self.backend.set(self._key(book_name), json.dumps(record.to_json()))

    def _key(self, book_name: str) -> str:
        return PROGRESS_KEY_PREFIX + book_name


__all__ = [
    "BookLengthData",
    "JsonFileKeyValueStore",
    "KeyValueStore",
    "LAST_OPENED_KEY",
    "PROGRESS_KEY_PREFIX",
    "ProgressRecord",
    "ProgressStore",
]
