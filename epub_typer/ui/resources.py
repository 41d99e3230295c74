"""Embedded resources for the EPUB Typer GUI."""

from __future__ import annotations

from functools import lru_cache

from PySide6.QtCore import Qt
from PySide6.QtGui import QColor, QFont, QIcon, QPainter, QPixmap


@lru_cache(maxsize=1)
def app_icon() -> QIcon:
    """Return a keycap with a paragraph mark, drawn at runtime."""

    size = 96
    pixmap = QPixmap(size, size)
    pixmap.fill(QColor("#0c1d2a"))

    painter = QPainter(pixmap)
    painter.setRenderHint(QPainter.Antialiasing)
    painter.setBrush(QColor("#3cc9a7"))
    painter.setPen(QColor("#3cc9a7"))
    padding = size * 0.14
    painter.drawRoundedRect(
        padding,
        padding,
        size - 2 * padding,
        size - 2 * padding,
        size * 0.16,
        size * 0.16,
    )
    painter.setPen(QColor("#0c1d2a"))
    font = QFont()
    font.setBold(True)
    font.setPixelSize(int(size * 0.5))
    painter.setFont(font)
    painter.drawText(pixmap.rect(), Qt.AlignmentFlag.AlignCenter, "¶")
    painter.end()

    return QIcon(pixmap)


__all__ = ["app_icon"]
