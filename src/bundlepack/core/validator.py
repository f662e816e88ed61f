from __future__ import annotations

"""
Configuration Validation Service.

Acts as the gatekeeper for the packaging engine, ensuring the build options
dictionary conforms to the expected schema. Handles type coercion, nested
packager options and default value injection.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

from bundlepack.domain.config import get_default_config, get_default_packager_options
from bundlepack.domain.constants import SUPPORTED_PACKAGERS

logger = logging.getLogger(__name__)

_FORMATS = ("cjs", "esm", "iife")
_PLATFORMS = ("node", "neutral", "browser")
_EXTENSIONS = (".js", ".cjs", ".mjs")


# -----------------------------------------------------------------------------
# PUBLIC API
# -----------------------------------------------------------------------------

def validate_config(
        config: Any,
        *,
        strict: bool = False,
) -> Tuple[Dict[str, Any], List[str]]:
    """
    Validate and normalize the provided build configuration.

    Args:
        config: Raw configuration data (usually a dictionary).
        strict: If True, raises exceptions on invalid values instead of
                falling back to defaults.

    Returns:
        Tuple[Dict[str, Any], List[str]]: The normalized configuration and a
                                          list of warnings.
    """
    warnings: List[str] = []
    defaults = get_default_config()

    # 1. Base Type Validation
    if config is None:
        return defaults, warnings
    if not isinstance(config, dict):
        msg = f"Invalid config type: expected dict, received {type(config).__name__}."
        if strict:
            raise TypeError(msg)
        warnings.append(f"{msg} Using defaults.")
        logger.warning(msg)
        return defaults, warnings

    merged: Dict[str, Any] = dict(defaults)
    merged.update(config)

    # 2. Schema Definition (Declarative mapping)
    string_fields = ["output_work_folder", "output_build_folder"]
    optional_string_fields = ["package_path"]
    bool_fields = ["native_zip", "keep_output_directory"]
    int_fields = ["concurrency", "zip_concurrency"]
    list_fields = ["external", "exclude", "install_extra_args"]
    choice_fields = {
        "packager": SUPPORTED_PACKAGERS,
        "format": _FORMATS,
        "platform": _PLATFORMS,
        "output_file_extension": _EXTENSIONS,
    }

    # 3. Field Processing & Normalization
    for field in string_fields:
        merged[field] = _as_str(merged.get(field), defaults[field], field, warnings, strict)

    for field in optional_string_fields:
        value = merged.get(field)
        merged[field] = _as_str(value, "", field, warnings, strict) or None

    for field in bool_fields:
        merged[field] = _as_bool(merged.get(field), defaults[field], field, warnings, strict)

    for field in int_fields:
        merged[field] = _as_non_negative_int(merged.get(field), defaults[field], field, warnings, strict)

    for field in list_fields:
        merged[field] = _as_list_str(merged.get(field), defaults[field], field, warnings, strict)

    for field, choices in choice_fields.items():
        merged[field] = _as_choice(merged.get(field), defaults[field], choices, field, warnings, strict)

    merged["packager_options"] = _normalize_packager_options(
        merged.get("packager_options"), warnings, strict
    )

    for warning in warnings:
        logger.debug(f"Config: {warning}")

    return merged, warnings


# -----------------------------------------------------------------------------
# PRIVATE HELPERS: TYPE COERCION
# -----------------------------------------------------------------------------

def _fail(msg: str, warnings: List[str], strict: bool, exc: type = TypeError) -> None:
    if strict:
        raise exc(msg)
    warnings.append(f"{msg} Using fallback.")


def _as_str(value: Any, fallback: str, field: str, warnings: List[str], strict: bool) -> str:
    """Validate and sanitize string inputs."""
    if value is None:
        return fallback
    if isinstance(value, str):
        v = value.strip()
        return v if v else fallback
    _fail(f"Invalid field '{field}': expected str, received {type(value).__name__}.", warnings, strict)
    return fallback


def _as_bool(value: Any, fallback: bool, field: str, warnings: List[str], strict: bool) -> bool:
    """Coerce common boolean spellings into native booleans."""
    if isinstance(value, bool):
        return value
    if value is None:
        return fallback

    if not strict and isinstance(value, str):
        s = value.strip().lower()
        if s in ("true", "1", "yes", "y"):
            warnings.append(f"Field '{field}' converted from '{value}' to True.")
            return True
        if s in ("false", "0", "no", "n"):
            warnings.append(f"Field '{field}' converted from '{value}' to False.")
            return False

    _fail(f"Invalid field '{field}': expected bool, received {type(value).__name__}.", warnings, strict)
    return fallback


def _as_non_negative_int(value: Any, fallback: int, field: str, warnings: List[str], strict: bool) -> int:
    """Coerce concurrency-like values; infinity and None mean unbounded (0)."""
    if value is None:
        return fallback
    if isinstance(value, bool):
        _fail(f"Invalid field '{field}': expected int, received bool.", warnings, strict)
        return fallback
    if isinstance(value, float) and value == float("inf"):
        return 0
    if isinstance(value, (int, float)) and value >= 0:
        return int(value)
    if isinstance(value, str) and not strict and value.strip().isdigit():
        warnings.append(f"Field '{field}' converted from '{value}' to int.")
        return int(value.strip())

    _fail(f"Invalid field '{field}': expected non-negative int, received {value!r}.", warnings, strict, ValueError)
    return fallback


def _as_list_str(value: Any, fallback: List[str], field: str, warnings: List[str], strict: bool) -> List[str]:
    """Ensure input is a list of strings, supporting a CSV string in lenient mode."""
    if value is None:
        return list(fallback)

    if isinstance(value, str) and not strict:
        items = [x.strip() for x in value.split(",") if x.strip()]
        warnings.append(f"Field '{field}' converted from CSV string to list.")
        return items

    if isinstance(value, (list, tuple)):
        items = [x.strip() for x in value if isinstance(x, str) and x.strip()]
        if len(items) != len(value):
            _fail(f"Field '{field}' contains non-string items.", warnings, strict)
        return items

    _fail(f"Invalid field '{field}': expected list, received {type(value).__name__}.", warnings, strict)
    return list(fallback)


def _as_choice(
        value: Any,
        fallback: str,
        choices: Tuple[str, ...],
        field: str,
        warnings: List[str],
        strict: bool,
) -> str:
    if value is None:
        return fallback
    if isinstance(value, str) and value.strip() in choices:
        return value.strip()
    _fail(f"Invalid field '{field}': expected one of {list(choices)}, received {value!r}.", warnings, strict, ValueError)
    return fallback


def _normalize_packager_options(value: Any, warnings: List[str], strict: bool) -> Dict[str, Any]:
    """Merge packager options over their defaults."""
    defaults = get_default_packager_options()
    if value is None:
        return defaults
    if not isinstance(value, dict):
        _fail(f"Invalid field 'packager_options': expected dict, received {type(value).__name__}.", warnings, strict)
        return defaults

    options: Dict[str, Any] = dict(defaults)
    options.update(value)
    scripts: Optional[Any] = options.get("scripts")
    if isinstance(scripts, str):
        scripts = [scripts]
    options["scripts"] = _as_list_str(scripts, [], "packager_options.scripts", warnings, strict)
    options["no_install"] = _as_bool(options.get("no_install"), False, "packager_options.no_install", warnings, strict)
    options["ignore_lockfile"] = _as_bool(
        options.get("ignore_lockfile"), False, "packager_options.ignore_lockfile", warnings, strict
    )
    return options
