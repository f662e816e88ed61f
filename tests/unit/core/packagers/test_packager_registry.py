from __future__ import annotations

"""
Unit tests for the package manager registry.

Verifies:
1. Well-known ids map to their adapters.
2. Adapters are memoized per id and options.
3. Unknown ids raise ConfigurationError.
4. Shared file reference rebasing.
"""

import pytest

from bundlepack.core.packagers import (
    NpmPackager,
    PnpmPackager,
    YarnPackager,
    clear_packager_cache,
    get_packager,
    rebase_file_reference,
)
from bundlepack.domain.errors import ConfigurationError


@pytest.mark.parametrize(
    "packager_id, cls",
    [("npm", NpmPackager), ("pnpm", PnpmPackager), ("yarn", YarnPackager)],
)
def test_known_packagers(packager_id, cls):
    assert isinstance(get_packager(packager_id), cls)


def test_packagers_are_memoized():
    first = get_packager("yarn", {"no_install": True})

    assert get_packager("yarn", {"no_install": True}) is first
    assert get_packager("yarn", {"no_install": False}) is not first

    clear_packager_cache()
    assert get_packager("yarn", {"no_install": True}) is not first


def test_options_reach_adapter():
    packager = get_packager("yarn", {"ignore_lockfile": True})

    assert packager.packager_options["ignore_lockfile"] is True


def test_unknown_packager_raises():
    with pytest.raises(ConfigurationError, match="bun"):
        get_packager("bun")


@pytest.mark.parametrize(
    "version, expected",
    [
        ("file:../lib", "file:../../lib"),
        ("../lib", "../../lib"),
        ("./lib", ".././lib"),
        ("^1.0.0", "^1.0.0"),
        ("file:/abs/lib", "file:/abs/lib"),
    ],
)
def test_rebase_file_reference(version, expected):
    assert rebase_file_reference("..", version) == expected


def test_rebase_file_prefix_only():
    assert rebase_file_reference("..", "../lib", file_prefix_only=True) == "../lib"
    assert rebase_file_reference("..", "file:../lib", file_prefix_only=True) == "file:../../lib"
