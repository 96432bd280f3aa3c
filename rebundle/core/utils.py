"""
Shared utilities for the rebundle CLI.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Optional

# =============================================================================
# Constants
# =============================================================================

DEFAULT_CONFIG_NAME = "rebundle.yaml"
DEFAULT_VENDOR_DIR = "node_modules"


# =============================================================================
# Logging
# =============================================================================


class Logger:
    """Simple colored logger with --no-color support."""

    COLORS = {
        "reset": "\033[0m",
        "red": "\033[91m",
        "green": "\033[92m",
        "yellow": "\033[93m",
        "blue": "\033[94m",
        "magenta": "\033[95m",
        "cyan": "\033[96m",
        "bold": "\033[1m",
        "dim": "\033[2m",
    }

    def __init__(self, use_color: Optional[bool] = None):
        if use_color is None:
            self._use_color = sys.stdout.isatty()
        else:
            self._use_color = use_color

    def set_color(self, use_color: bool) -> None:
        """Set whether to use color output."""
        self._use_color = use_color

    def _color(self, text: str, color: str) -> str:
        if not self._use_color:
            return text
        return f"{self.COLORS.get(color, '')}{text}{self.COLORS['reset']}"

    def header(self, message: str) -> None:
        """Print a section header."""
        print(f"\n{self._color('===', 'cyan')} {self._color(message, 'bold')} {self._color('===', 'cyan')}")

    def info(self, message: str) -> None:
        """Print an info message."""
        print(f"  {message}")

    def success(self, message: str) -> None:
        """Print a success message."""
        print(f"  {self._color('[OK]', 'green')} {message}")

    def warning(self, message: str) -> None:
        """Print a warning message."""
        print(f"  {self._color('[WARN]', 'yellow')} {message}")

    def error(self, message: str) -> None:
        """Print an error message."""
        print(f"  {self._color('[ERROR]', 'red')} {message}")

    def dim(self, message: str) -> None:
        """Print a dim/secondary message."""
        print(f"  {self._color(message, 'dim')}")


# Global logger instance
log = Logger()


def configure_debug_logging(verbose: bool) -> None:
    """Route module-level debug traces to stderr when --verbose is set."""
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="  %(name)s: %(message)s",
        stream=sys.stderr,
    )
    logging.getLogger("rebundle").setLevel(level)


# =============================================================================
# Path Utilities
# =============================================================================


def change_extension(path: Path | str, new_ext: str) -> Path:
    """Swap the final suffix of ``path`` for ``new_ext``.

    ``new_ext`` may contain more than one dot (``.js.map``).
    """
    path = Path(path)
    if path.suffix:
        return path.with_name(path.name[: -len(path.suffix)] + new_ext)
    return path.with_name(path.name + new_ext)


def is_within(path: Path, directory: Path) -> bool:
    """Return True if ``path`` is ``directory`` or lives beneath it."""
    try:
        path.relative_to(directory)
        return True
    except ValueError:
        return False


def get_project_root(start_dir: Optional[Path] = None) -> Path:
    """Find project root (directory containing rebundle.yaml or package.json).

    Searches from start_dir (or cwd) upward; falls back to start_dir.
    """
    if start_dir is None:
        start_dir = Path.cwd()

    start = start_dir.resolve()
    current = start
    while current != current.parent:
        if (current / DEFAULT_CONFIG_NAME).exists() or (current / "package.json").exists():
            return current
        current = current.parent

    return start
