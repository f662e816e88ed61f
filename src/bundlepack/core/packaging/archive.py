from __future__ import annotations

"""
Archive Writer.

Produces reproducible zip archives from a list of file entries. Every entry
gets the same fixed timestamp and a permission set derived only from the
executable bit, so identical inputs always yield byte-identical archives.
Two backends: the in-process `zipfile` writer and the external `zip` tool.
"""

import asyncio
import logging
import os
import stat
import tempfile
import zipfile
from typing import List, Optional

from bundlepack.domain.errors import ArchiveError
from bundlepack.domain.models import FileEntry
from bundlepack.infra.fs import copy_file
from bundlepack.infra.process import Executor, spawn_process

logger = logging.getLogger(__name__)

# -----------------------------------------------------------------------------
# CONSTANTS
# -----------------------------------------------------------------------------

# Earliest timestamp representable in a zip entry
FIXED_DATE_TIME = (1980, 1, 1, 0, 0, 0)

_MODE_EXECUTABLE = 0o755
_MODE_REGULAR = 0o644
_UNIX_SYSTEM = 3

# -----------------------------------------------------------------------------
# PUBLIC API
# -----------------------------------------------------------------------------

async def zip_files(
        zip_path: str,
        files: List[FileEntry],
        *,
        use_native_zip: bool = False,
        executor: Optional[Executor] = None,
) -> str:
    """
    Write `files` into the archive at `zip_path`.

    Args:
        zip_path: Destination archive path (overwritten if present).
        files: Ordered entries; `local_path` becomes the archive name.
        use_native_zip: Use the external `zip` utility instead of zipfile.
        executor: Process executor for the native backend.

    Returns:
        str: The archive path.

    Raises:
        ArchiveError: If `files` is empty or writing fails.
    """
    if not files:
        raise ArchiveError(f"Packaging: no files to archive into {zip_path}")

    os.makedirs(os.path.dirname(os.path.abspath(zip_path)), exist_ok=True)
    if os.path.exists(zip_path):
        os.remove(zip_path)

    if use_native_zip:
        await _zip_native(zip_path, files, executor or spawn_process)
    else:
        await asyncio.to_thread(write_zip, zip_path, files)

    return zip_path


def write_zip(zip_path: str, files: List[FileEntry]) -> None:
    """
    Write a deterministic archive with the in-process writer.

    Raises:
        ArchiveError: On any I/O failure.
    """
    try:
        with zipfile.ZipFile(zip_path, "w", compression=zipfile.ZIP_DEFLATED) as archive:
            for entry in files:
                mode = os.stat(entry.root_path).st_mode
                if stat.S_ISDIR(mode):
                    continue

                info = zipfile.ZipInfo(entry.local_path, date_time=FIXED_DATE_TIME)
                info.compress_type = zipfile.ZIP_DEFLATED
                info.create_system = _UNIX_SYSTEM
                permissions = _MODE_EXECUTABLE if mode & stat.S_IXUSR else _MODE_REGULAR
                info.external_attr = (stat.S_IFREG | permissions) << 16

                with open(entry.root_path, "rb") as f:
                    archive.writestr(info, f.read())
    except OSError as e:
        raise ArchiveError(f"Failed to write archive {zip_path}: {e}") from e

# -----------------------------------------------------------------------------
# NATIVE BACKEND
# -----------------------------------------------------------------------------

async def _zip_native(zip_path: str, files: List[FileEntry], executor: Executor) -> None:
    """
    Stage entries with epoch mtimes, then archive them with the `zip` tool.

    The entry list is fed on stdin (`-@`) in the given order. `-D` suppresses
    directory entries, whose timestamps would come from the staging run, and
    `-X` drops the extra attribute fields.
    """
    target = os.path.abspath(zip_path)
    names: List[str] = []
    with tempfile.TemporaryDirectory(prefix="bundlepack-zip-") as staging:
        try:
            for entry in files:
                if os.path.isdir(entry.root_path):
                    continue
                staged = os.path.join(staging, *entry.local_path.split("/"))
                copy_file(entry.root_path, staged)
                os.utime(staged, (0, 0))
                names.append(entry.local_path)
        except OSError as e:
            raise ArchiveError(f"Failed to stage files for {zip_path}: {e}") from e

        logger.debug(f"Native zip: {target} ({len(names)} files)")
        listing = "".join(f"{name}\n" for name in names)
        await executor("zip", ["-X", "-D", "-q", target, "-@"], staging, stdin=listing)
