from __future__ import annotations

"""
Packaging Orchestrator.

Turns the build directory into deployable archives:
1. Lists the build output (dotfiles included, directories excluded).
2. Resolves the production dependency map once for the whole run.
3. Per unit, computes the `node_modules` whitelist from the externals its
   bundle(s) reference, filters the file list and writes the archive.
4. Binds each artifact path back onto its function or service.

Monolithic mode produces one archive for the service; individual mode packs
every function concurrently (bounded by `zip_concurrency`).
"""

import asyncio
import logging
import os
import time
from typing import Any, Dict, List, Optional, Sequence

from bundlepack.core.dependencies.bundle_refs import get_deps_from_bundle
from bundlepack.core.dependencies.closure import flat_dep
from bundlepack.core.dependencies.externals import resolve_externals
from bundlepack.core.packagers.base import Packager
from bundlepack.core.packaging.archive import zip_files
from bundlepack.core.packaging.filters import filter_unit_files, only_prefix, split_patterns
from bundlepack.domain.constants import AUTO_INSTALL_PROVIDERS, EXCLUDED_FILES_DEFAULT, SERVERLESS_FOLDER
from bundlepack.domain.errors import ConfigurationError
from bundlepack.domain.models import (
    ArtifactRecord,
    DependencyMap,
    FileEntry,
    FunctionBuildResult,
    ServiceDefinition,
)
from bundlepack.infra.fs import human_size, list_files

logger = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# DEPENDENCY HELPERS
# -----------------------------------------------------------------------------

async def load_dependency_map(
        packager: Packager,
        build_dir: str,
        *,
        log: Optional[logging.Logger] = None,
) -> DependencyMap:
    """
    Fetch the normalized production dependency map of the build directory.

    When the tool only reports benign problems, its raw stdout is parsed
    instead; an unparsable stdout degrades to an empty map.
    """
    log = log or logger
    result = await packager.get_prod_dependencies(build_dir)
    if result.dependencies is not None:
        return result.dependencies

    log.warning(f"{packager.tool} listed dependencies with problems: {len(result.problems)} reported")
    try:
        return packager.parse_dependencies(result.stdout or "", build_dir)
    except (ValueError, KeyError, TypeError) as e:
        log.warning(f"Could not parse {packager.tool} output ({e}); no dependencies will be whitelisted")
        return {}


def dependency_whitelist(
        build_dir: str,
        bundle_paths: Sequence[str],
        externals: Sequence[str],
        dependency_map: DependencyMap,
        use_esm: bool,
        *,
        log: Optional[logging.Logger] = None,
) -> List[str]:
    """
    Packages to ship for a unit: the closure of the externals its bundles use.
    """
    log = log or logger
    referenced: List[str] = []
    for bundle_path in bundle_paths:
        full_path = os.path.join(build_dir, *bundle_path.split("/"))
        if not os.path.exists(full_path):
            log.warning(f"Bundle not found, skipping reference scan: {bundle_path}")
            continue
        for name in get_deps_from_bundle(full_path, use_esm):
            if name not in referenced:
                referenced.append(name)

    bundle_externals = [name for name in referenced if name in set(externals)]
    return flat_dep(dependency_map, bundle_externals)


def include_patterns_for(service: ServiceDefinition, func_patterns: Sequence[str] = ()) -> List[str]:
    service_included, _ = split_patterns(service.patterns)
    func_included, _ = split_patterns(func_patterns)
    return [*service_included, *func_included]


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


# -----------------------------------------------------------------------------
# PUBLIC API
# -----------------------------------------------------------------------------

async def pack(
        service: ServiceDefinition,
        cfg: Dict[str, Any],
        *,
        work_dir: str,
        build_dir: str,
        build_results: List[FunctionBuildResult],
        packager: Packager,
        use_esm: bool = False,
        log: Optional[logging.Logger] = None,
) -> List[ArtifactRecord]:
    """
    Package the build directory into one or more archives.

    Args:
        service: Service descriptor; its (or its functions') artifact paths
                 are updated in place.
        cfg: Validated configuration.
        work_dir: Work directory; archives go to `<work_dir>/.serverless`.
        build_dir: Build output directory.
        build_results: Compiled bundles per function.
        packager: Package manager adapter used to list dependencies.
        use_esm: Scan bundles for ESM imports instead of require calls.
        log: Optional logger.

    Returns:
        List[ArtifactRecord]: One record per archive written.

    Raises:
        ConfigurationError: Empty build output, or individual packaging on an
                            auto-install provider.
    """
    log = log or logger
    is_auto_install = service.provider in AUTO_INSTALL_PROVIDERS
    excluded_files: List[str] = [] if is_auto_install else list(EXCLUDED_FILES_DEFAULT)

    if is_auto_install and service.individually:
        raise ConfigurationError(
            f"Packaging failed: cannot package function individually when using {service.provider} provider"
        )

    files = [
        FileEntry(local_path=local_path, root_path=os.path.join(build_dir, *local_path.split("/")))
        for local_path in list_files(build_dir)
    ]
    if not files:
        raise ConfigurationError("Packaging: No files found")

    externals = [spec.name for spec in resolve_externals(cfg.get("external") or [], cfg.get("exclude") or [])]
    has_externals = bool(externals) and not is_auto_install
    dependency_map: DependencyMap = (
        await load_dependency_map(packager, build_dir, log=log) if has_externals else {}
    )

    artifact_dir = os.path.join(work_dir, SERVERLESS_FOLDER)
    use_native_zip = bool(cfg.get("native_zip"))

    async def write_unit(name: str, label: str, unit_files: List[FileEntry]) -> ArtifactRecord:
        artifact_path = os.path.join(artifact_dir, f"{name}.zip")
        start = time.monotonic()
        await zip_files(artifact_path, unit_files, use_native_zip=use_native_zip)
        size = os.path.getsize(artifact_path)
        elapsed = _elapsed_ms(start)
        log.info(f"Zip {label}: {name} - {human_size(size)} [{elapsed} ms]")
        return ArtifactRecord(name=name, path=artifact_path, size=size, elapsed_ms=elapsed)

    # 1) Monolithic: one archive for the whole service
    if not service.individually:
        whitelist = dependency_whitelist(
            build_dir, [r.bundle_path for r in build_results], externals, dependency_map, use_esm, log=log
        ) if has_externals else []
        unit_files = filter_unit_files(
            files,
            excluded_files=excluded_files,
            whitelist=whitelist,
            allow_node_modules=has_externals,
            include_patterns=include_patterns_for(service),
        )
        record = await write_unit(service.name, "service", unit_files)
        service.artifact = os.path.relpath(record.path, service.service_dir)
        return [record]

    # 2) Individually: one archive per function
    bundle_path_list = [r.bundle_path for r in build_results]
    aliases = [r.alias for r in build_results]
    limit = int(cfg.get("zip_concurrency") or 0)
    semaphore = asyncio.Semaphore(limit if limit > 0 else max(len(build_results), 1))

    async def pack_function(result: FunctionBuildResult) -> ArtifactRecord:
        async with semaphore:
            excluded_prefixes = [p for p in bundle_path_list if not result.bundle_path.startswith(p)]
            foreign = [only_prefix(alias) for alias in aliases if alias != result.alias]
            whitelist = dependency_whitelist(
                build_dir, [result.bundle_path], externals, dependency_map, use_esm, log=log
            ) if has_externals else []

            unit_files = filter_unit_files(
                files,
                excluded_files=excluded_files,
                whitelist=whitelist,
                allow_node_modules=has_externals,
                include_patterns=include_patterns_for(service, result.func.patterns),
                excluded_prefixes=excluded_prefixes,
                foreign_only_prefixes=foreign,
                own_aliases=[result.alias],
            )
            record = await write_unit(result.func.name, "function", unit_files)
            result.func.artifact = os.path.relpath(record.path, service.service_dir)
            return record

    return list(await asyncio.gather(*(pack_function(result) for result in build_results)))
