"""Decide which directories and files a scan should look at."""

from __future__ import annotations

from pathlib import Path, PurePath
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from wormsign.scanner.engine import ScanConfig

# Directories to always skip
SKIP_DIRS = frozenset(
    {
        ".git",
        ".svn",
        ".hg",
        "vendor",
        "dist",
        "build",
        "__pycache__",
    }
)

NODE_MODULES = "node_modules"

SCANNABLE_EXTENSIONS = frozenset(
    {".js", ".ts", ".mjs", ".cjs", ".json", ".yaml", ".yml", ".sh"}
)


def prune_dir(name: str, config: ScanConfig) -> bool:
    """Return True if a directory with this name must not be descended into."""
    if name in SKIP_DIRS:
        return True
    return name == NODE_MODULES and not config.include_node_modules


def is_in_scope(path: str | PurePath, config: ScanConfig) -> bool:
    """Check whether a file path should reach the detector."""
    path = PurePath(path)
    parts = _relative_parts(path, config.root)

    # Last component is the file itself
    if any(prune_dir(part, config) for part in parts[:-1]):
        return False

    return path.suffix.lower() in SCANNABLE_EXTENSIONS


def _relative_parts(path: PurePath, root: Path | None) -> tuple[str, ...]:
    if root is not None:
        try:
            return path.relative_to(root).parts
        except ValueError:
            pass
    return path.parts
