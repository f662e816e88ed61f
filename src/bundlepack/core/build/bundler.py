from __future__ import annotations

"""
Bundle Dispatch.

Compiles each unique entry file once through an injected compiler callable,
with a configurable concurrency cap, then maps the produced bundles back to
the functions that reference them.
"""

import asyncio
import logging
import os
from typing import Any, Awaitable, Callable, Dict, List, Optional

from bundlepack.domain.errors import ConfigurationError
from bundlepack.domain.models import FunctionBuildResult, FunctionEntry

logger = logging.getLogger(__name__)

# compiler(entry, outdir, cfg) -> any
Compiler = Callable[[str, str, Dict[str, Any]], Awaitable[Any]]


def is_esm(cfg: Dict[str, Any]) -> bool:
    """True when the bundles use static ESM imports."""
    return cfg.get("format") == "esm" or (cfg.get("platform") == "neutral" and not cfg.get("format"))


def check_output_extension(cfg: Dict[str, Any]) -> None:
    """
    Reject module format / file extension combinations that cannot load.

    Raises:
        ConfigurationError: esm with `.cjs`, or cjs with `.mjs`.
    """
    extension = cfg.get("output_file_extension", ".js")
    if is_esm(cfg) and extension == ".cjs":
        raise ConfigurationError('format "esm" or platform "neutral" should not output a file with extension ".cjs".')
    if not is_esm(cfg) and extension == ".mjs":
        raise ConfigurationError('Non esm builds should not output a file with extension ".mjs".')


def bundle_path_for(entry: str, extension: str) -> str:
    """Compiled bundle path (build-dir relative, forward slashes) of an entry."""
    stem = entry[:entry.rfind(".")] if "." in os.path.basename(entry) else entry
    return (stem + extension).replace("\\", "/")


async def bundle_entries(
        entries: List[FunctionEntry],
        cfg: Dict[str, Any],
        build_dir: str,
        compiler: Compiler,
        *,
        log: Optional[logging.Logger] = None,
) -> List[FunctionBuildResult]:
    """
    Compile entries with bounded concurrency.

    Args:
        entries: Function entries; entries shared by several functions are
                 compiled once.
        cfg: Validated configuration (`concurrency`, `output_file_extension`).
        build_dir: Output root for compiled bundles.
        compiler: Async compile callable.
        log: Optional logger.

    Returns:
        List[FunctionBuildResult]: One result per function entry.
    """
    log = log or logger
    check_output_extension(cfg)

    extension = cfg.get("output_file_extension", ".js")
    unique_entries: List[str] = []
    for item in entries:
        if item.entry not in unique_entries:
            unique_entries.append(item.entry)

    limit = int(cfg.get("concurrency") or 0)
    semaphore = asyncio.Semaphore(limit if limit > 0 else max(len(unique_entries), 1))
    log.debug(f"Compiling with concurrency: {limit or 'unbounded'}")

    async def compile_one(entry: str) -> str:
        async with semaphore:
            outdir = os.path.join(build_dir, os.path.dirname(entry))
            await compiler(entry, outdir, cfg)
            return bundle_path_for(entry, extension)

    bundle_paths = await asyncio.gather(*(compile_one(entry) for entry in unique_entries))
    by_entry = dict(zip(unique_entries, bundle_paths))

    results = [
        FunctionBuildResult(bundle_path=by_entry[item.entry], alias=item.alias, func=item.func)
        for item in entries
        if item.func is not None and item.alias is not None
    ]
    log.debug("Compiling completed.")
    return results
