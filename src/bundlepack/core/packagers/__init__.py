from __future__ import annotations

import json
import logging
from typing import Any, Dict, Optional, Type

from bundlepack.domain.constants import SUPPORTED_PACKAGERS
from bundlepack.domain.errors import ConfigurationError

from .base import Packager, rebase_file_reference
from .npm import NpmPackager
from .pnpm import PnpmPackager
from .yarn import YarnPackager

logger = logging.getLogger(__name__)

_FACTORIES: Dict[str, Type[Packager]] = {
    "npm": NpmPackager,
    "pnpm": PnpmPackager,
    "yarn": YarnPackager,
}

_CACHE: Dict[str, Packager] = {}


def get_packager(packager_id: str, packager_options: Optional[Dict[str, Any]] = None) -> Packager:
    """
    Create (and memoize) the adapter for a well-known package manager id.

    Raises:
        ConfigurationError: If the id is not supported.
    """
    if packager_id not in SUPPORTED_PACKAGERS:
        raise ConfigurationError(f"Could not find packager '{packager_id}'")

    key = f"{packager_id}:{json.dumps(packager_options or {}, sort_keys=True, default=str)}"
    if key not in _CACHE:
        logger.debug(f"Creating packager: {packager_id}")
        _CACHE[key] = _FACTORIES[packager_id](packager_options)
    return _CACHE[key]


def clear_packager_cache() -> None:
    _CACHE.clear()


__all__ = [
    "Packager",
    "NpmPackager",
    "PnpmPackager",
    "YarnPackager",
    "get_packager",
    "clear_packager_cache",
    "rebase_file_reference",
]
