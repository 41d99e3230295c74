"""Keystroke-by-keystroke typing state for a single chunk.

A :class:`TypingState` is immutable: :meth:`TypingState.apply` returns the
next state together with a :class:`KeyOutcome`. Paragraph marks inside the
chunk text are never typed. When the reader finishes the last character of a
paragraph the state waits for a confirmation key (Enter or Space by default)
before the cursor jumps over the mark.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
import logging
import time
from typing import List, Optional, Tuple

from .text.normalize import PARAGRAPH_MARK

logger = logging.getLogger(__name__)

BACKSPACE = "Backspace"
ENTER = "Enter"
SPACE = " "
ARROW_LEFT = "ArrowLeft"
ARROW_RIGHT = "ArrowRight"
DEFAULT_CONFIRMATION_KEYS = (ENTER, SPACE)


class CharStatus(str, Enum):
    UNTOUCHED = "untouched"
    CORRECT = "correct"
    INCORRECT = "incorrect"


@dataclass(frozen=True)
class KeyEvent:
    """A key press as delivered by the input surface."""

    key: str
    word_modifier: bool = False

    @property
    def is_character(self) -> bool:
        return len(self.key) == 1


@dataclass(frozen=True)
class KeyOutcome:
    accepted: bool
    completed: bool = False


REJECTED = KeyOutcome(accepted=False)


@dataclass(frozen=True)
class TypingState:
    """Cursor, per-character status and counters for the active chunk."""

    text: str
    cursor: int = 0
    statuses: Tuple[CharStatus, ...] = ()
    awaiting_confirmation: bool = False
    error_count: int = 0
    keystroke_count: int = 0
    started_at: Optional[float] = None
    confirmation_keys: Tuple[str, ...] = DEFAULT_CONFIRMATION_KEYS

    @classmethod
    def start(
        cls,
        text: str,
        resume_offset: int = 0,
        confirmation_keys: Tuple[str, ...] = DEFAULT_CONFIRMATION_KEYS,
    ) -> "TypingState":
        """Create the state for a freshly loaded chunk resumed at *resume_offset*."""

        cursor = min(max(resume_offset, 0), len(text))
        statuses = tuple(
            CharStatus.CORRECT if index < cursor and char != PARAGRAPH_MARK else CharStatus.UNTOUCHED
            for index, char in enumerate(text)
        )
        state = cls(
            text=text,
            cursor=cursor,
            statuses=statuses,
            confirmation_keys=tuple(confirmation_keys),
        )
        return replace(state, awaiting_confirmation=state._boundary_armed(cursor, statuses))

    # Derived state ---------------------------------------------------------------
    @property
    def is_complete(self) -> bool:
        return self.cursor >= len(self.text) and not self.awaiting_confirmation

    @property
    def is_resolved(self) -> bool:
        """True when the chunk is finished and every character is correct."""

        return self.is_complete and all(
            status is CharStatus.CORRECT
            for char, status in zip(self.text, self.statuses)
            if char != PARAGRAPH_MARK
        )

    def resume_offset(self) -> int:
        # While a paragraph break is pending, progress stops before the
        # character that still needs its confirmation.
        if self.awaiting_confirmation:
            return self.cursor - 1
        return self.cursor

    def status_overlay(self) -> List[str]:
        overlay: List[str] = []
        for index, (char, status) in enumerate(zip(self.text, self.statuses)):
            if char == PARAGRAPH_MARK:
                overlay.append("marker")
            elif self.awaiting_confirmation and index == self.cursor - 1:
                overlay.append("confirmation-pending")
            elif index == self.cursor and not self.awaiting_confirmation:
                overlay.append("cursor")
            else:
                overlay.append(status.value)
        return overlay

    def resolve_all(self) -> "TypingState":
        """Mark the whole chunk as correctly typed, leaving it read-only."""

        statuses = tuple(
            CharStatus.UNTOUCHED if char == PARAGRAPH_MARK else CharStatus.CORRECT
            for char in self.text
        )
        return replace(self, cursor=len(self.text), statuses=statuses, awaiting_confirmation=False)

    # Transitions -----------------------------------------------------------------
    def apply(self, event: KeyEvent, now: Optional[float] = None) -> Tuple["TypingState", KeyOutcome]:
        if now is None:
            now = time.monotonic()
        if self.is_resolved:
            logger.debug("Chunk is read-only; rejected %r", event.key)
            return self, REJECTED
        if event.key == BACKSPACE:
            if event.word_modifier:
                return self._delete_word()
            return self._backspace()
        if self.awaiting_confirmation:
            return self._confirm(event, now)
        if not event.is_character or self.cursor >= len(self.text):
            return self, REJECTED
        expected = self.text[self.cursor]
        if expected == PARAGRAPH_MARK:
            # The character before this break was mistyped and must be fixed first.
            return self, REJECTED
        return self._type(event.key, expected, now)

    def _type(self, key: str, expected: str, now: float) -> Tuple["TypingState", KeyOutcome]:
        statuses = list(self.statuses)
        errors = self.error_count
        correct = key == expected or (key.isspace() and expected.isspace())
        if correct:
            statuses[self.cursor] = CharStatus.CORRECT
        else:
            if statuses[self.cursor] is not CharStatus.INCORRECT:
                errors += 1
            statuses[self.cursor] = CharStatus.INCORRECT
        cursor = self.cursor + 1
        state = replace(
            self,
            cursor=cursor,
            statuses=tuple(statuses),
            awaiting_confirmation=correct and self._next_is_mark(cursor),
            error_count=errors,
            keystroke_count=self.keystroke_count + 1,
            started_at=self._start_time(now),
        )
        return state, KeyOutcome(accepted=True, completed=state.is_complete)

    def _confirm(self, event: KeyEvent, now: float) -> Tuple["TypingState", KeyOutcome]:
        boundary = self.cursor - 1
        statuses = list(self.statuses)
        if event.key in self.confirmation_keys:
            statuses[boundary] = CharStatus.CORRECT
            cursor = self.cursor
            while cursor < len(self.text) and self.text[cursor] == PARAGRAPH_MARK:
                cursor += 1
            state = replace(
                self,
                cursor=cursor,
                statuses=tuple(statuses),
                awaiting_confirmation=False,
                keystroke_count=self.keystroke_count + 1,
                started_at=self._start_time(now),
            )
            return state, KeyOutcome(accepted=True, completed=state.is_complete)
        if not event.is_character:
            return self, REJECTED
        errors = self.error_count
        if statuses[boundary] is not CharStatus.INCORRECT:
            errors += 1
        statuses[boundary] = CharStatus.INCORRECT
        state = replace(
            self,
            statuses=tuple(statuses),
            error_count=errors,
            keystroke_count=self.keystroke_count + 1,
            started_at=self._start_time(now),
        )
        return state, KeyOutcome(accepted=True)

    def _backspace(self) -> Tuple["TypingState", KeyOutcome]:
        if self.cursor == 0:
            return self, REJECTED
        return self._clear_from(self.cursor - 1), KeyOutcome(accepted=True)

    def _delete_word(self) -> Tuple["TypingState", KeyOutcome]:
        target = self.cursor - 1
        while target >= 0 and self.text[target].isspace():
            target -= 1
        while (
            target >= 0
            and not self.text[target].isspace()
            and self.text[target] != PARAGRAPH_MARK
        ):
            target -= 1
        start = target + 1
        if start >= self.cursor:
            return self, REJECTED
        return self._clear_from(start), KeyOutcome(accepted=True)

    def _clear_from(self, start: int) -> "TypingState":
        statuses = list(self.statuses)
        errors = self.error_count
        for index in range(start, self.cursor):
            if statuses[index] is CharStatus.INCORRECT:
                errors = max(0, errors - 1)
            statuses[index] = CharStatus.UNTOUCHED
        started_at = self.started_at
        keystrokes = self.keystroke_count
        if start == 0 and keystrokes <= 1:
            started_at = None
            keystrokes = 0
        return replace(
            self,
            cursor=start,
            statuses=tuple(statuses),
            awaiting_confirmation=self._boundary_armed(start, statuses),
            error_count=errors,
            keystroke_count=keystrokes,
            started_at=started_at,
        )

    # Helpers -----------------------------------------------------------------------
    def _next_is_mark(self, cursor: int) -> bool:
        return cursor < len(self.text) and self.text[cursor] == PARAGRAPH_MARK

    def _boundary_armed(self, cursor: int, statuses) -> bool:
        return (
            cursor > 0
            and self._next_is_mark(cursor)
            and statuses[cursor - 1] is CharStatus.CORRECT
        )

    def _start_time(self, now: float) -> float:
        return self.started_at if self.started_at is not None else now


def apply_key(
    state: TypingState, event: KeyEvent, now: Optional[float] = None
) -> Tuple[TypingState, KeyOutcome]:
    return state.apply(event, now)


__all__ = [
    "ARROW_LEFT",
    "ARROW_RIGHT",
    "BACKSPACE",
    "ENTER",
    "SPACE",
    "CharStatus",
    "KeyEvent",
    "KeyOutcome",
    "TypingState",
    "apply_key",
]
