"""Qt GUI for EPUB Typer."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Awaitable, Callable, Optional

from PySide6.QtCore import QThread, QTimer, Qt, Signal, Slot
from PySide6.QtWidgets import (
    QFileDialog,
    QHBoxLayout,
    QLabel,
    QMainWindow,
    QMessageBox,
    QPushButton,
    QStatusBar,
    QTextBrowser,
    QVBoxLayout,
    QWidget,
)

from ..config import TyperConfig
from ..session import NavigationController, SessionContext
from ..store import ProgressStore
from ..typing_state import ARROW_LEFT, ARROW_RIGHT, BACKSPACE, ENTER, KeyEvent
from .rendering import render_chunk_html, render_placeholder
from .resources import app_icon

logger = logging.getLogger(__name__)

STATS_REFRESH_MS = 1000


class SessionWorker(QThread):
    """Run one controller coroutine off the GUI thread."""

    finished = Signal(object)
    error = Signal(str)

    def __init__(self, job: Callable[[], Awaitable[SessionContext]]) -> None:
        super().__init__()
        self.job = job

    def run(self) -> None:  # pragma: no cover - executed in thread
        try:
            ctx = asyncio.run(self.job())
            self.finished.emit(ctx)
        except Exception as exc:  # pragma: no cover - error path
            logger.exception("Background load failed")
            self.error.emit(str(exc))


def key_event_from_qt(event) -> Optional[KeyEvent]:
    """Translate a Qt key press into a :class:`KeyEvent`, or ``None`` to ignore it."""

    key = event.key()
    modifiers = event.modifiers()
    word = bool(modifiers & (Qt.KeyboardModifier.ControlModifier | Qt.KeyboardModifier.AltModifier))
    if key == Qt.Key.Key_Backspace:
        return KeyEvent(BACKSPACE, word_modifier=word)
    if key in (Qt.Key.Key_Return, Qt.Key.Key_Enter):
        return KeyEvent(ENTER)
    if key == Qt.Key.Key_Left:
        return KeyEvent(ARROW_LEFT)
    if key == Qt.Key.Key_Right:
        return KeyEvent(ARROW_RIGHT)
    if modifiers & Qt.KeyboardModifier.ControlModifier:
        return None
    text = event.text()
    if len(text) == 1 and text.isprintable():
        return KeyEvent(text)
    return None


class MainWindow(QMainWindow):
    """Main application window."""

    def __init__(
        self,
        config: Optional[TyperConfig] = None,
        store: Optional[ProgressStore] = None,
        initial_path: Optional[Path] = None,
    ) -> None:
        super().__init__()
        self.setAcceptDrops(True)
        self.config = config or TyperConfig()
        self.store = store or ProgressStore.at_path(self.config.store_path, policy=self.config.save_policy)
        self.controller = NavigationController(self.store, self.config)
        self.ctx = SessionContext()
        self._worker: Optional[SessionWorker] = None
        self._build_ui()
        self.setWindowIcon(app_icon())
        self._configure_widgets()
        self._render()
        if initial_path is not None:
            self._open_path(initial_path)
        else:
            self._show_last_opened()

    # ----- UI setup -----
    def _build_ui(self) -> None:
        self.setWindowTitle("EPUB Typer")
        self.resize(900, 640)
        central = QWidget(self)
        self.setCentralWidget(central)
        root_layout = QVBoxLayout(central)

        top_row = QHBoxLayout()
        self.openButton = QPushButton("Open EPUB…", central)
        self.prevChapterButton = QPushButton("◀ Chapter", central)
        self.nextChapterButton = QPushButton("Chapter ▶", central)
        self.chapterLabel = QLabel("Chapter: - / -", central)
        top_row.addWidget(self.openButton)
        top_row.addWidget(self.prevChapterButton)
        top_row.addWidget(self.chapterLabel)
        top_row.addWidget(self.nextChapterButton)
        top_row.addStretch(1)
        root_layout.addLayout(top_row)

        self.chunkView = QTextBrowser(central)
        self.chunkView.setOpenLinks(False)
        self.chunkView.setFocusPolicy(Qt.FocusPolicy.NoFocus)
        root_layout.addWidget(self.chunkView, 1)

        stats_row = QHBoxLayout()
        self.wpmLabel = QLabel("WPM: 0", central)
        self.accuracyLabel = QLabel("Accuracy: 100%", central)
        self.errorsLabel = QLabel("Errors: 0", central)
        self.bookProgressLabel = QLabel("Book: N/A", central)
        for label in (self.wpmLabel, self.accuracyLabel, self.errorsLabel, self.bookProgressLabel):
            stats_row.addWidget(label)
        stats_row.addStretch(1)
        root_layout.addLayout(stats_row)

        self.statusbar = QStatusBar(self)
        self.setStatusBar(self.statusbar)

        self.statsTimer = QTimer(self)
        self.statsTimer.setInterval(STATS_REFRESH_MS)

    def _configure_widgets(self) -> None:
        for button in (self.openButton, self.prevChapterButton, self.nextChapterButton):
            button.setFocusPolicy(Qt.FocusPolicy.NoFocus)
        self.setFocusPolicy(Qt.FocusPolicy.StrongFocus)
        self.openButton.clicked.connect(self._open_dialog)
        self.prevChapterButton.clicked.connect(lambda: self._change_chapter(-1))
        self.nextChapterButton.clicked.connect(lambda: self._change_chapter(1))
        self.statsTimer.timeout.connect(self._update_stats)
        self.statsTimer.start()

    def _show_last_opened(self) -> None:
        last = self.store.last_opened()
        if last:
            self.statusbar.showMessage(f"Last opened: {last}. Open it again to resume.")
        else:
            self.statusbar.showMessage("Open an EPUB file to start typing.")

    # ----- Loading -----
    def _open_dialog(self) -> None:
        path, _ = QFileDialog.getOpenFileName(self, "Select EPUB", str(Path.home()), "EPUB books (*.epub)")
        if path:
            self._open_path(Path(path))

    def _open_path(self, path: Path) -> None:
        self.statusbar.showMessage(f"Loading {path.name}…")
        self._run(lambda: self.controller.open_epub(self.ctx, path))

    def _change_chapter(self, direction: int) -> None:
        if not self.ctx.has_book:
            return
        self._run(lambda: self.controller.navigate_chapter(self.ctx, direction))

    def _load_chapter(self, chapter_index: int) -> None:
        self._run(lambda: self.controller.load_chapter(self.ctx, chapter_index))

    def _run(self, job: Callable[[], Awaitable[SessionContext]]) -> None:
        if self._worker is not None or self.controller.is_loading:
            self.statusbar.showMessage("Still loading, please wait", 3000)
            return
        worker = SessionWorker(job)
        worker.finished.connect(self._on_loaded)
        worker.error.connect(self._on_error)
        self._worker = worker
        self._set_navigation_enabled(False)
        worker.start()

    @Slot(object)
    def _on_loaded(self, ctx: SessionContext) -> None:
        self._worker = None
        self.ctx = ctx
        self._set_navigation_enabled(True)
        if ctx.message:
            QMessageBox.critical(self, "Failed to load", ctx.message)
        elif ctx.has_book:
            self.statusbar.showMessage(f"Loaded {ctx.book_name}", 3000)
        self._render()

    @Slot(str)
    def _on_error(self, message: str) -> None:
        self._worker = None
        self._set_navigation_enabled(True)
        QMessageBox.critical(self, "Failed to load", message)
        self._render()

    def _set_navigation_enabled(self, enabled: bool) -> None:
        self.openButton.setEnabled(enabled)
        self.prevChapterButton.setEnabled(enabled and self.ctx.chapter_index > 0)
        self.nextChapterButton.setEnabled(enabled and self.ctx.chapter_index < self.ctx.chapter_count - 1)

    # ----- Typing -----
    def keyPressEvent(self, event) -> None:  # type: ignore[override]
        key_event = key_event_from_qt(event)
        if key_event is None or self._worker is not None:
            super().keyPressEvent(event)
            return
        transition = self.controller.handle_key(self.ctx, key_event)
        if not transition.accepted:
            event.accept()
            return
        self.ctx = transition.context
        self._render()
        event.accept()
        if transition.chapter_request is not None:
            self._load_chapter(transition.chapter_request)
        elif transition.auto_advance:
            QTimer.singleShot(self.config.auto_advance_delay_ms, self._advance_chunk)

    def _advance_chunk(self) -> None:
        transition = self.controller.navigate_chunk(self.ctx, 1)
        if transition.accepted:
            self.ctx = transition.context
            self._render()

    # ----- Rendering -----
    def _render(self) -> None:
        ctx = self.ctx
        if ctx.typing is None:
            self.chunkView.setHtml(render_placeholder("No book loaded."))
        elif not ctx.chunks:
            self.chunkView.setHtml(render_placeholder("This chapter has no text. Use the arrows to move on."))
        else:
            self.chunkView.setHtml(render_chunk_html(ctx.typing))
        title = "EPUB Typer"
        if ctx.book_name:
            title = f"{ctx.book_name} - EPUB Typer"
        self.setWindowTitle(title)
        self._set_navigation_enabled(self._worker is None)
        self._update_stats()

    def _update_stats(self) -> None:
        stats = self.controller.stats(self.ctx)
        handle = self.ctx.chapter_handle()
        label = stats.chapter_label
        if handle is not None and handle.title:
            label = f"{label} · {handle.title}"
        self.chapterLabel.setText(label)
        self.wpmLabel.setText(f"WPM: {stats.words_per_minute}")
        self.accuracyLabel.setText(f"Accuracy: {stats.accuracy_percent}%")
        self.errorsLabel.setText(f"Errors: {stats.error_count}")
        book = "N/A" if stats.book_percent is None else f"{stats.book_percent}%"
        self.bookProgressLabel.setText(f"Book: {book}")

    # ----- Window events -----
    def closeEvent(self, event) -> None:  # type: ignore[override]
        self.controller.save(self.ctx)
        super().closeEvent(event)

    def dragEnterEvent(self, event) -> None:  # type: ignore[override]
        if event.mimeData().hasUrls():
            event.acceptProposedAction()
        else:
            super().dragEnterEvent(event)

    def dropEvent(self, event) -> None:  # type: ignore[override]
        for url in event.mimeData().urls():
            local_path = url.toLocalFile()
            if local_path and Path(local_path).suffix.lower() == ".epub":
                self._open_path(Path(local_path))
                event.acceptProposedAction()
                return
        super().dropEvent(event)


__all__ = ["MainWindow", "SessionWorker", "key_event_from_qt"]
