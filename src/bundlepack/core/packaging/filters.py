from __future__ import annotations

"""
Archive File Filtering.

Decides which build output files belong to a deployable unit: manifest and
lockfiles stay out unless explicitly included, `node_modules` content is
restricted to the unit's dependency whitelist, and in per-function mode other
functions' bundles and private extras are dropped.
"""

import fnmatch
from typing import Iterable, List, Optional, Sequence, Set, Tuple

from bundlepack.domain.constants import NODE_MODULES, ONLY_PREFIX
from bundlepack.domain.models import FileEntry

# -----------------------------------------------------------------------------
# PATTERN HELPERS
# -----------------------------------------------------------------------------

def split_patterns(patterns: Iterable[str]) -> Tuple[List[str], List[str]]:
    """
    Separate inclusion patterns from `!`-prefixed ignore patterns.

    Returns:
        Tuple[List[str], List[str]]: (included, ignored) without the '!' marker.
    """
    included: List[str] = []
    ignored: List[str] = []
    for pattern in patterns:
        if not isinstance(pattern, str) or not pattern:
            continue
        if pattern.startswith("!"):
            ignored.append(pattern[1:])
        else:
            included.append(pattern)
    return included, ignored


def merge_patterns(patterns: Sequence[str], include: Sequence[str] = (), exclude: Sequence[str] = ()) -> List[str]:
    """Fold legacy include/exclude lists into a single ordered pattern list."""
    merged: List[str] = []
    for pattern in [*include, *(f"!{p}" for p in exclude), *patterns]:
        if pattern not in merged:
            merged.append(pattern)
    return merged


def matches_any_glob(path: str, patterns: Iterable[str]) -> bool:
    return any(fnmatch.fnmatch(path, pattern) for pattern in patterns)


def does_share_path(child: str, parent: str) -> bool:
    """
    Check whether `child` lies at or under `parent`, segment by segment.

    `node_modules/@scope/pkg/index.js` shares `node_modules/@scope/pkg` but not
    `node_modules/@scope/pkgx`.
    """
    if child == parent:
        return True
    parent_tokens = parent.split("/")
    child_tokens = child.split("/")
    if len(child_tokens) < len(parent_tokens):
        return False
    return all(token == child_tokens[index] for index, token in enumerate(parent_tokens))


def only_prefix(alias: str) -> str:
    return f"{ONLY_PREFIX}{alias}/"


def strip_only_prefix(local_path: str, aliases: Optional[Iterable[str]] = None) -> str:
    """
    Remove a per-function private prefix from an archive path.

    Args:
        local_path: Archive-relative path.
        aliases: Restrict stripping to these aliases; None strips any alias.
    """
    if not local_path.startswith(ONLY_PREFIX):
        return local_path
    head, sep, rest = local_path.partition("/")
    if not sep:
        return local_path
    if aliases is not None and head[len(ONLY_PREFIX):] not in set(aliases):
        return local_path
    return rest

# -----------------------------------------------------------------------------
# FILTERING API
# -----------------------------------------------------------------------------

def is_whitelisted_module(local_path: str, whitelist: Iterable[str]) -> bool:
    return any(does_share_path(local_path, f"{NODE_MODULES}/{dep}") for dep in whitelist)


def filter_unit_files(
        files: Iterable[FileEntry],
        *,
        excluded_files: Sequence[str],
        whitelist: Sequence[str],
        allow_node_modules: bool = True,
        include_patterns: Sequence[str] = (),
        excluded_prefixes: Sequence[str] = (),
        foreign_only_prefixes: Sequence[str] = (),
        own_aliases: Optional[Sequence[str]] = None,
) -> List[FileEntry]:
    """
    Select the archive entries of one deployable unit.

    Args:
        files: Every file of the build output.
        excluded_files: Root-level files excluded by default (lockfiles, manifest).
        whitelist: Packages whose `node_modules` content is shipped.
        allow_node_modules: False drops all `node_modules` content.
        include_patterns: Exact paths always shipped, even under an excluded
                          or foreign prefix.
        excluded_prefixes: Path prefixes of other units' bundles.
        foreign_only_prefixes: Private-extra prefixes of other functions.
        own_aliases: Aliases whose private prefix is stripped (None: any).

    Returns:
        List[FileEntry]: Entries with private prefixes removed, first path wins.
    """
    forced: Set[str] = set(include_patterns)
    selected: List[FileEntry] = []
    seen: Set[str] = set()

    for entry in files:
        local_path = entry.local_path
        target_path = strip_only_prefix(local_path, own_aliases)

        # Exact include matches bypass every exclusion below
        if target_path not in forced and local_path not in forced:
            if any(local_path.startswith(prefix) for prefix in foreign_only_prefixes):
                continue
            if local_path in excluded_files:
                continue
            if any(local_path.startswith(prefix) for prefix in excluded_prefixes):
                continue
            if local_path.startswith(f"{NODE_MODULES}/") or local_path == NODE_MODULES:
                if not allow_node_modules or not is_whitelisted_module(local_path, whitelist):
                    continue

        if target_path in seen:
            continue
        seen.add(target_path)
        selected.append(FileEntry(local_path=target_path, root_path=entry.root_path))

    return selected
