from __future__ import annotations

"""
Extra File Staging.

Copies the files matched by package patterns into the build directory.
Service-level patterns land at the build root; function-level patterns land
under the function's private `__only_<alias>/` prefix, which the packaging
stage strips again when building that function's archive.
"""

import glob
import logging
import os
from typing import Dict, List, Optional, Sequence

from bundlepack.core.packaging.filters import matches_any_glob, only_prefix, split_patterns
from bundlepack.domain.models import FunctionDefinition
from bundlepack.infra.fs import copy_file, to_posix

logger = logging.getLogger(__name__)


def resolve_pattern_files(cwd: str, patterns: Sequence[str]) -> List[str]:
    """
    Expand glob patterns relative to `cwd`.

    `!`-prefixed patterns remove matches. Only files are returned, sorted,
    relative and forward-slash separated.
    """
    included, ignored = split_patterns(patterns)
    found: List[str] = []
    for pattern in included:
        for match in glob.glob(pattern, root_dir=cwd, recursive=True, include_hidden=True):
            if os.path.isdir(os.path.join(cwd, match)):
                continue
            rel = to_posix(os.path.normpath(match))
            if rel not in found and not matches_any_glob(rel, ignored):
                found.append(rel)
    return sorted(found)


def copy_extras(
        service_dir: str,
        build_dir: str,
        service_patterns: Sequence[str],
        functions: Dict[str, FunctionDefinition],
        *,
        log: Optional[logging.Logger] = None,
) -> List[str]:
    """
    Copy pattern-matched extras into the build directory.

    Args:
        service_dir: Directory the patterns are relative to.
        build_dir: Destination build directory.
        service_patterns: Service-level package patterns.
        functions: Eligible functions with their own patterns.
        log: Optional logger.

    Returns:
        List[str]: Build-relative destinations that were written.
    """
    log = log or logger
    written: List[str] = []

    def stage(filename: str, dest_rel: str) -> None:
        src = os.path.join(service_dir, filename)
        dest = os.path.join(build_dir, *dest_rel.split("/"))
        copy_file(src, dest)
        written.append(dest_rel)

    for filename in resolve_pattern_files(service_dir, service_patterns):
        stage(filename, filename)

    for alias, func in functions.items():
        if not func.patterns:
            continue
        for filename in resolve_pattern_files(service_dir, func.patterns):
            stage(filename, f"{only_prefix(alias)}{filename}")

    if written:
        log.debug(f"Copied {len(written)} extra file(s) into {build_dir}")
    return written
