from __future__ import annotations

"""
Unit tests for the Configuration Validation Service.

Verifies:
1. Defaults for missing or invalid top-level input.
2. Lenient coercion (CSV lists, boolean strings, infinite concurrency).
3. Strict mode raises on invalid values.
4. Packager options are merged over their defaults.
"""

import pytest

from bundlepack.core.validator import validate_config
from bundlepack.domain.config import get_default_config


def test_none_returns_defaults():
    cfg, warnings = validate_config(None)

    assert cfg == get_default_config()
    assert warnings == []


def test_valid_config_passes_unchanged(mock_config_dict):
    cfg, warnings = validate_config(mock_config_dict)

    assert cfg == mock_config_dict
    assert warnings == []


def test_non_dict_lenient_and_strict():
    cfg, warnings = validate_config(["npm"])
    assert cfg == get_default_config()
    assert len(warnings) == 1

    with pytest.raises(TypeError):
        validate_config(["npm"], strict=True)


def test_lenient_coercions():
    cfg, warnings = validate_config({
        "external": "lodash, left-pad",
        "native_zip": "yes",
        "concurrency": float("inf"),
        "zip_concurrency": "4",
    })

    assert cfg["external"] == ["lodash", "left-pad"]
    assert cfg["native_zip"] is True
    assert cfg["concurrency"] == 0
    assert cfg["zip_concurrency"] == 4
    assert len(warnings) == 3


def test_invalid_choice_falls_back():
    cfg, warnings = validate_config({"packager": "bun", "format": "umd"})

    assert cfg["packager"] == "npm"
    assert cfg["format"] == "cjs"
    assert len(warnings) == 2


@pytest.mark.parametrize(
    "config, exc",
    [
        ({"packager": "bun"}, ValueError),
        ({"concurrency": -1}, ValueError),
        ({"native_zip": "yes"}, TypeError),
        ({"external": "lodash"}, TypeError),
    ],
)
def test_strict_mode_raises(config, exc):
    with pytest.raises(exc):
        validate_config(config, strict=True)


def test_packager_options_merged():
    cfg, _ = validate_config({"packager": "yarn", "packager_options": {"scripts": "echo hi", "no_install": True}})

    assert cfg["packager_options"] == {
        "scripts": ["echo hi"],
        "no_install": True,
        "ignore_lockfile": False,
    }


def test_blank_package_path_becomes_none():
    cfg, _ = validate_config({"package_path": "   "})

    assert cfg["package_path"] is None
