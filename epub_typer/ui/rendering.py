"""HTML rendering of the active chunk for the typing view."""

from __future__ import annotations

import html
from typing import List

from ..typing_state import TypingState

STYLESHEET = """
body { font-family: 'DejaVu Sans Mono', 'Menlo', monospace; font-size: 18px; line-height: 160%; }
.untouched { color: #8a96a3; }
.correct { color: #1f2933; }
.incorrect { color: #ffffff; background-color: #d64545; }
.cursor { color: #1f2933; background-color: #b8e6da; }
.confirmation-pending { color: #1f2933; background-color: #f7d070; }
.marker { color: #c3ccd5; }
"""


def render_chunk_html(state: TypingState) -> str:
    """Return one span per character styled by its status.

    Paragraph marks are shown faintly and followed by a line break so the
    chunk keeps its paragraph layout.
    """

    parts: List[str] = []
    for char, css_class in zip(state.text, state.status_overlay()):
        if css_class == "marker":
            parts.append(f'<span class="marker">{html.escape(char)}</span><br/><br/>')
            continue
        parts.append(f'<span class="{css_class}">{html.escape(char)}</span>')
    return f"<html><head><style>{STYLESHEET}</style></head><body>{''.join(parts)}</body></html>"


def render_placeholder(message: str) -> str:
    return f"<html><body><p><i>{html.escape(message)}</i></p></body></html>"


__all__ = ["render_chunk_html", "render_placeholder"]
