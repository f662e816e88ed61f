from __future__ import annotations

"""
Unit tests for Archive File Filtering.

Verifies:
1. Segment-based path sharing (scoped packages, prefixes of names).
2. Dependency whitelisting of `node_modules` content.
3. Default exclusions and exact-path force inclusion (foreign prefixes too).
4. Per-function private prefixes: own stripped, foreign dropped.
5. Pattern helpers (split, merge).
"""

import pytest

from bundlepack.core.packaging.filters import (
    does_share_path,
    filter_unit_files,
    is_whitelisted_module,
    merge_patterns,
    only_prefix,
    split_patterns,
    strip_only_prefix,
)
from bundlepack.domain.constants import EXCLUDED_FILES_DEFAULT
from bundlepack.domain.models import FileEntry


def _entries(*paths: str):
    return [FileEntry(local_path=p, root_path=f"/build/{p}") for p in paths]


def _paths(entries):
    return [e.local_path for e in entries]


@pytest.mark.parametrize(
    "child, parent, expected",
    [
        ("node_modules/@scope/pkg/index.js", "node_modules/@scope/pkg", True),
        ("node_modules/@scope/pkgx/index.js", "node_modules/@scope/pkg", False),
        ("node_modules/left-pad", "node_modules/left-pad", True),
        ("node_modules/left-padding/index.js", "node_modules/left-pad", False),
        ("node_modules", "node_modules/left-pad", False),
    ],
)
def test_does_share_path(child, parent, expected):
    assert does_share_path(child, parent) is expected


def test_whitelist_matches_packages_only():
    assert is_whitelisted_module("node_modules/left-pad/index.js", ["left-pad"])
    assert not is_whitelisted_module("node_modules/right-pad/index.js", ["left-pad"])


def test_node_modules_restricted_to_whitelist():
    files = _entries(
        "handler.js",
        "node_modules/left-pad/index.js",
        "node_modules/left-pad/package.json",
        "node_modules/lodash/lodash.js",
        "package.json",
        "package-lock.json",
    )

    selected = filter_unit_files(files, excluded_files=EXCLUDED_FILES_DEFAULT, whitelist=["left-pad"])

    assert _paths(selected) == [
        "handler.js",
        "node_modules/left-pad/index.js",
        "node_modules/left-pad/package.json",
    ]


def test_node_modules_dropped_when_not_allowed():
    files = _entries("handler.js", "node_modules/left-pad/index.js")

    selected = filter_unit_files(
        files, excluded_files=[], whitelist=["left-pad"], allow_node_modules=False
    )

    assert _paths(selected) == ["handler.js"]


def test_exact_include_pattern_forces_excluded_file():
    files = _entries("handler.js", "package.json", "yarn.lock")

    selected = filter_unit_files(
        files,
        excluded_files=EXCLUDED_FILES_DEFAULT,
        whitelist=[],
        include_patterns=["package.json"],
    )

    assert _paths(selected) == ["handler.js", "package.json"]


def test_other_bundles_excluded_by_prefix():
    files = _entries("src/a.js", "src/a.js.map", "src/b.js")

    selected = filter_unit_files(files, excluded_files=[], whitelist=[], excluded_prefixes=["src/b.js"])

    assert _paths(selected) == ["src/a.js", "src/a.js.map"]


def test_private_prefixes():
    files = _entries(
        "src/a.js",
        "__only_a/assets/a.txt",
        "__only_b/assets/b.txt",
    )

    selected = filter_unit_files(
        files,
        excluded_files=[],
        whitelist=[],
        foreign_only_prefixes=[only_prefix("b")],
        own_aliases=["a"],
    )

    assert _paths(selected) == ["src/a.js", "assets/a.txt"]
    assert selected[1].root_path == "/build/__only_a/assets/a.txt"


def test_exact_include_wins_over_foreign_prefix():
    files = _entries("src/a.js", "__only_b/assets/b.txt", "__only_b/assets/other.txt")

    selected = filter_unit_files(
        files,
        excluded_files=[],
        whitelist=[],
        include_patterns=["__only_b/assets/b.txt"],
        foreign_only_prefixes=[only_prefix("b")],
        own_aliases=["a"],
    )

    assert _paths(selected) == ["src/a.js", "__only_b/assets/b.txt"]


def test_stripped_duplicate_keeps_first_entry():
    files = _entries("assets/logo.png", "__only_a/assets/logo.png")

    selected = filter_unit_files(files, excluded_files=[], whitelist=[], own_aliases=["a"])

    assert len(selected) == 1
    assert selected[0].root_path == "/build/assets/logo.png"


def test_strip_only_prefix():
    assert strip_only_prefix("__only_a/x.txt") == "x.txt"
    assert strip_only_prefix("__only_a/x.txt", ["b"]) == "__only_a/x.txt"
    assert strip_only_prefix("plain/x.txt") == "plain/x.txt"
    assert strip_only_prefix("__only_a") == "__only_a"


def test_split_and_merge_patterns():
    assert split_patterns(["a/**", "!a/skip", "", None]) == (["a/**"], ["a/skip"])
    assert merge_patterns(["c"], include=["a"], exclude=["b"]) == ["a", "!b", "c"]
    assert merge_patterns(["a"], include=["a"]) == ["a"]
