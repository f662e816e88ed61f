from __future__ import annotations

"""
FileSystem Infrastructure Layer.

Path discovery, recursive listing and JSON manifest I/O. Acts as an
abstraction over 'os' and 'shutil' so that the packaging stages stay free of
platform-specific path handling (all archive paths use forward slashes).
"""

import json
import logging
import math
import os
import shutil
from typing import Any, Dict, List, Optional

from bundlepack.domain.constants import HUMAN_SIZE_UNITS, PROJECT_ROOT_MARKERS

logger = logging.getLogger(__name__)

# -----------------------------------------------------------------------------
# PATH RESOLUTION API
# -----------------------------------------------------------------------------

def find_up(name: str, directory: Optional[str] = None) -> Optional[str]:
    """
    Find the closest directory containing `name`, walking up from `directory`.

    Args:
        name: File or directory name to look for.
        directory: Starting directory (defaults to the current working dir).

    Returns:
        Optional[str]: Absolute directory containing `name`, or None when the
                       filesystem root is reached without a match.
    """
    current = os.path.abspath(directory or os.getcwd())
    while True:
        if os.path.exists(os.path.join(current, name)):
            return current
        parent = os.path.dirname(current)
        if parent == current:
            return None
        current = parent


def find_project_root(root_dir: Optional[str] = None, start: Optional[str] = None) -> Optional[str]:
    """
    Forward `root_dir` or locate the project root.

    The root is the first ancestor holding a yarn lockfile, then an npm
    lockfile, then any package.json. For workspaces this yields the
    monorepo root rather than the package directory.
    """
    if root_dir:
        return root_dir
    for marker in PROJECT_ROOT_MARKERS:
        found = find_up(marker, start)
        if found:
            return found
    return None


def to_posix(path: str) -> str:
    """Normalize path separators to forward slashes."""
    return path.replace("\\", "/")


def relative_posix(path: str, start: str) -> str:
    """Relative path from `start` to `path` using forward slashes."""
    return to_posix(os.path.relpath(path, start))

# -----------------------------------------------------------------------------
# LISTING API
# -----------------------------------------------------------------------------

def list_files(root: str) -> List[str]:
    """
    Recursively list every file below `root`.

    Dotfiles are included, directories are not, symlinked directories are
    followed. Results are relative, forward-slash separated and sorted so that
    downstream archives are reproducible.

    Args:
        root: Directory to scan.

    Returns:
        List[str]: Sorted relative file paths.
    """
    if not os.path.isdir(root):
        return []

    collected: List[str] = []
    for current, dirs, files in os.walk(root, followlinks=True):
        dirs.sort()
        for file_name in files:
            full_path = os.path.join(current, file_name)
            if os.path.isdir(full_path):
                continue
            collected.append(relative_posix(full_path, root))

    collected.sort()
    return collected


def human_size(size: int) -> str:
    """
    Format a byte count with binary units.

    Args:
        size: Size in bytes.

    Returns:
        str: e.g. "1.50 KB".
    """
    if size <= 0:
        return f"{0:.2f} {HUMAN_SIZE_UNITS[0]}"
    index = min(int(math.floor(math.log(size, 1024))), len(HUMAN_SIZE_UNITS) - 1)
    return f"{size / math.pow(1024, index):.2f} {HUMAN_SIZE_UNITS[index]}"

# -----------------------------------------------------------------------------
# FILE I/O API
# -----------------------------------------------------------------------------

def read_json(path: str) -> Dict[str, Any]:
    """Load a JSON document; errors propagate to the caller."""
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def write_json(path: str, data: Any) -> None:
    """Write `data` as indented JSON, creating parent directories."""
    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2)
        f.write("\n")


def read_text(path: str) -> str:
    with open(path, "r", encoding="utf-8") as f:
        return f.read()


def write_text(path: str, content: str) -> None:
    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        f.write(content)


def copy_file(src: str, dest: str) -> None:
    """Copy a file (dereferencing links) into place, creating parents."""
    os.makedirs(os.path.dirname(dest) or ".", exist_ok=True)
    shutil.copy2(src, dest)


def copy_tree(src: str, dest: str) -> None:
    """Merge-copy a directory tree into `dest`."""
    if not os.path.isdir(src):
        return
    shutil.copytree(src, dest, dirs_exist_ok=True)


def remove_tree(path: str) -> None:
    """Remove a directory tree if it exists."""
    if os.path.isdir(path):
        shutil.rmtree(path)
        logger.debug(f"Removed directory: {path}")
