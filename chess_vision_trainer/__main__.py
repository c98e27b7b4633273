from __future__ import annotations

import logging
import os
import sys
from pathlib import Path


def _ensure_repo_root_on_path() -> None:
    """Put the directory holding this package on ``sys.path``.

    Needed when the file is run directly (``python chess_vision_trainer/__main__.py``)
    instead of with ``python -m``.
    """
    repo_root = str(Path(__file__).resolve().parent.parent)
    if repo_root not in sys.path:
        sys.path.insert(0, repo_root)


try:
    # Works when executed as a module: python -m chess_vision_trainer
    from .app import run  # type: ignore[attr-defined]
except ImportError:
    _ensure_repo_root_on_path()
    from chess_vision_trainer.app import run  # type: ignore[attr-defined]


def _configure_logging() -> None:
    level_name = os.environ.get("CVT_LOG_LEVEL", "WARNING").strip().upper()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def main() -> int:
    """Entry point for running the trainer from the command line."""
    _configure_logging()
    return run()


if __name__ == "__main__":
    raise SystemExit(main())
