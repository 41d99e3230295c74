"""Application entry point for the EPUB Typer GUI.

This module supports both ``python -m epub_typer.app`` and direct execution
via ``python epub_typer/app.py``. The latter leaves ``__package__`` empty, so
the package root is put on ``sys.path`` before importing the main window.
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Optional

from PySide6.QtWidgets import QApplication

if __package__ in {None, ""}:  # pragma: no cover - executed when run as a script
    package_root = Path(__file__).resolve().parent.parent
    if str(package_root) not in sys.path:
        sys.path.insert(0, str(package_root))
    from epub_typer.config import TyperConfig
    from epub_typer.ui.main_window import MainWindow
else:  # pragma: no cover - exercised when run as a module
    from .config import TyperConfig
    from .ui.main_window import MainWindow


def run_gui(config: Optional[TyperConfig] = None, initial_path: Optional[Path] = None) -> int:
    app = QApplication.instance() or QApplication(sys.argv)
    app.setApplicationName("EPUB Typer")
    window = MainWindow(config=config, initial_path=initial_path)
    window.show()
    return app.exec()


def main() -> None:
    sys.exit(run_gui())


if __name__ == "__main__":
    main()
