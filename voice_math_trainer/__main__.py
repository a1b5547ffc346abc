from __future__ import annotations

import logging
import sys
from pathlib import Path


def _ensure_repo_root_on_path() -> None:
    """Ensure the repository root (parent of this package) is on ``sys.path``.

    If this module is executed as a script (``python voice_math_trainer/__main__.py``),
    the package may not be discoverable by Python.
    """
    pkg_dir = Path(__file__).resolve().parent
    repo_root_str = str(pkg_dir.parent)
    if repo_root_str not in sys.path:
        sys.path.insert(0, repo_root_str)


try:
    # Works when executed as a module: python -m voice_math_trainer
    from .app import run  # type: ignore[attr-defined]
    from .config import AppSettings  # type: ignore[attr-defined]
except ImportError:
    # Works when executed as a script (VS Code "Run Python File", absolute path, etc.)
    _ensure_repo_root_on_path()
    from voice_math_trainer.app import run  # type: ignore[attr-defined]
    from voice_math_trainer.config import AppSettings  # type: ignore[attr-defined]


def main() -> int:
    """Entry point for running the trainer from the command line."""
    settings = AppSettings.from_env()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    return run(settings=settings)


if __name__ == "__main__":
    raise SystemExit(main())
