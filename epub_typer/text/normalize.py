"""Turn chapter markup into canonical text with explicit paragraph breaks."""

from __future__ import annotations

from dataclasses import dataclass
import logging
import re

from bs4 import BeautifulSoup

from ..errors import ContentError

logger = logging.getLogger(__name__)

PARAGRAPH_MARK = "¶"
MARK_SUBSTITUTE = "|"

DEFAULT_LIGATURES = {
    "ﬀ": "ff",
    "ﬁ": "fi",
    "ﬂ": "fl",
    "ﬃ": "ffi",
    "ﬄ": "ffl",
}

TYPOGRAPHY = {
    "“": '"',
    "”": '"',
    "‘": "'",
    "’": "'",
    "—": "-",
    "…": "...",
    "©": "c",
}

_BLOCK_BREAKS = (
    (re.compile(r"</p\s*>", re.I), "\n\n"),
    (re.compile(r"<br\s*/?>\s*<br\s*/?>", re.I), "\n\n"),
    (re.compile(r"<p(?:\s[^>]*)?>", re.I), "\n"),
    (re.compile(r"<br[^>]*>", re.I), "\n"),
)
_HEADING_RE = re.compile(r"(\s|^)(\d+\.\d+)\s+([A-Z])")
_MARK_RUN_RE = re.compile(rf"\s*(?:{PARAGRAPH_MARK}\s*)+")
_EDGE_RE = re.compile(rf"^[{PARAGRAPH_MARK}\s]+|[{PARAGRAPH_MARK}\s]+$")


def mark_headings(text: str, marker: str = PARAGRAPH_MARK) -> str:
    """Force ``1.2 Title`` style headings onto their own paragraph.

    Every code path that measures or renders a chapter goes through this
    function, so stored offsets and displayed text cannot drift apart.
    """

    return _HEADING_RE.sub(lambda m: f"{m.group(1)}{marker}{m.group(2)} {m.group(3)}", text)


@dataclass
class NormalizationOptions:
    """Configuration toggles for text normalization."""

    expand_ligatures: bool = False
    detect_headings: bool = True


class Normalizer:
    """Produce canonical chapter text from raw markup."""

    def __init__(self, options: NormalizationOptions | None = None) -> None:
        self.options = options or NormalizationOptions()

    def normalize_markup(self, markup: str) -> str:
        """Return the canonical text for one chapter's markup.

        Raises :class:`ContentError` when the markup is not text or cannot be
        parsed.
        """

        if not isinstance(markup, str):
            raise ContentError(f"Chapter markup must be text, got {type(markup).__name__}")
        markup = markup.replace(PARAGRAPH_MARK, MARK_SUBSTITUTE)
        try:
            text = self._markup_to_text(markup)
        except Exception as exc:
            raise ContentError(f"Could not parse chapter markup: {exc}") from exc
        return self.normalize_text(text)

    def normalize_text(self, text: str) -> str:
        """Canonicalize plain text that uses blank lines as paragraph breaks."""

        text = text.replace(PARAGRAPH_MARK, MARK_SUBSTITUTE)
        text = text.replace("\r\n", "\n").replace("\r", "\n")
        text = text.replace("\u00a0", " ")
        if self.options.detect_headings:
            text = mark_headings(text)
        text = re.sub(r"\n{2,}", PARAGRAPH_MARK, text)
        text = text.replace("\n", " ")
        text = self._apply_mapping(text, TYPOGRAPHY)
        if self.options.expand_ligatures:
            text = self._apply_mapping(text, DEFAULT_LIGATURES)
        text = re.sub(r"\s+", " ", text)
        text = _MARK_RUN_RE.sub(PARAGRAPH_MARK, text)
        return _EDGE_RE.sub("", text)

    def _markup_to_text(self, markup: str) -> str:
        soup = BeautifulSoup(markup, "html.parser")
        for tag in soup(["script", "style", "head"]):
            tag.decompose()
        body = soup.body or soup
        html = body.decode_contents()
        for pattern, replacement in _BLOCK_BREAKS:
            html = pattern.sub(replacement, html)
        return BeautifulSoup(html, "html.parser").get_text()

    def _apply_mapping(self, text: str, mapping: dict[str, str]) -> str:
        for src, dst in mapping.items():
            text = text.replace(src, dst)
        return text


__all__ = [
    "Normalizer",
    "NormalizationOptions",
    "PARAGRAPH_MARK",
    "MARK_SUBSTITUTE",
    "mark_headings",
]
