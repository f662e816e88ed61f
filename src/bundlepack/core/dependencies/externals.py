from __future__ import annotations

"""
External Module Installer.

Materializes the packages the bundler left external:
1. Resolves each external (plus its non-optional peers) to a `name@version`.
2. Synthesizes a composite manifest in the build directory.
3. Copies and rebases the project lockfile next to it.
4. Installs, prunes and runs the configured packager scripts.

All installs for all functions share this one staging directory; per-function
selection happens later, at archive time.
"""

import logging
import os
import time
from typing import Any, Dict, List, Optional, Set

from bundlepack.core.packagers.base import Packager, rebase_file_reference
from bundlepack.domain.constants import (
    AUTO_INSTALL_PROVIDERS,
    IGNORED_DEV_DEPENDENCIES,
    MANIFEST_NAME,
    NODE_MODULES,
    WILDCARD,
)
from bundlepack.domain.errors import ConfigurationError, DependencyResolutionError
from bundlepack.domain.models import ExternalModuleSpec, ServiceDefinition
from bundlepack.infra.fs import (
    find_project_root,
    find_up,
    read_json,
    read_text,
    relative_posix,
    write_json,
    write_text,
)

logger = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# EXTERNALS SELECTION
# -----------------------------------------------------------------------------

def resolve_externals(external: List[str], exclude: List[str]) -> List[ExternalModuleSpec]:
    """
    Diff the configured external list against the exclude list.

    A wildcard exclude means nothing is treated as external.
    """
    if WILDCARD in exclude:
        return []
    excluded = set(exclude)
    seen: Set[str] = set()
    specs: List[ExternalModuleSpec] = []
    for name in external:
        if name in excluded or name in seen:
            continue
        seen.add(name)
        specs.append(ExternalModuleSpec(name=name, origin="external"))
    return specs


# -----------------------------------------------------------------------------
# VERSION RESOLUTION
# -----------------------------------------------------------------------------

def _module_package(name: str, package_json_path: str, root_package_json_path: str) -> Dict[str, Any]:
    """Read an installed module's manifest, local node_modules first, then root."""
    for base in (os.path.dirname(package_json_path), os.path.dirname(root_package_json_path)):
        candidate = os.path.join(base, NODE_MODULES, *name.split("/"), MANIFEST_NAME)
        if os.path.exists(candidate):
            return read_json(candidate)
    return {}


def get_prod_modules(
        externals: List[ExternalModuleSpec],
        package_json_path: str,
        root_package_json_path: str,
        exclude: List[str],
        *,
        log: Optional[logging.Logger] = None,
        _seen: Optional[Set[str]] = None,
) -> List[str]:
    """
    Resolve the production modules (with versions) needed for `externals`.

    Args:
        externals: External root packages.
        package_json_path: Manifest declaring the dependencies.
        root_package_json_path: Project (or workspace) root manifest.
        exclude: Packages never installed (also applied to peers).
        log: Optional logger.

    Returns:
        List[str]: `name@version` entries (bare `name` when unversioned).

    Raises:
        DependencyResolutionError: A runtime dependency is only a dev dependency.
    """
    log = log or logger
    seen = _seen if _seen is not None else set()
    package_json = read_json(package_json_path)
    dependencies: Dict[str, str] = package_json.get("dependencies") or {}
    dev_dependencies: Dict[str, str] = package_json.get("devDependencies") or {}

    if not dependencies:
        return []

    prod_modules: List[str] = []
    for external in externals:
        name = external.name
        if name in seen:
            continue
        seen.add(name)

        # (1) Declared only as a development dependency
        if name not in dependencies and name in dev_dependencies:
            if name not in IGNORED_DEV_DEPENDENCIES:
                log.error(f"ERROR: Runtime dependency '{name}' found in devDependencies.")
                raise DependencyResolutionError(name)
            log.info(f"Runtime dependency '{name}' found in devDependencies. It has been excluded automatically.")
            continue

        # (2) Resolve the version from the manifest or the installed module
        module_package = _module_package(name, package_json_path, root_package_json_path)
        version = dependencies.get(name) or module_package.get("version")

        if not version and name not in dependencies and not module_package:
            log.warning(f"WARNING: Runtime dependency '{name}' is not declared in dependencies. It has been excluded.")
            continue

        prod_modules.append(f"{name}@{version}" if version else name)

        # (3) Non-optional, non-excluded peer dependencies
        try:
            peers: Dict[str, str] = module_package.get("peerDependencies") or {}
            peers_meta: Dict[str, Any] = module_package.get("peerDependenciesMeta") or {}
            optional = {peer for peer, meta in peers_meta.items() if isinstance(meta, dict) and meta.get("optional")}
            required_peers = [peer for peer in peers if peer not in optional and peer not in exclude]

            if required_peers:
                log.debug(f"Adding explicit non-optionals peers for dependency {name}")
                prod_modules.extend(get_prod_modules(
                    [ExternalModuleSpec(name=peer, origin=name) for peer in required_peers],
                    package_json_path,
                    root_package_json_path,
                    exclude,
                    log=log,
                    _seen=seen,
                ))
        except DependencyResolutionError:
            raise
        except (OSError, ValueError, AttributeError) as e:
            log.warning(f"WARNING: Could not check for peer dependencies of {name}: {e}")

    return prod_modules


# -----------------------------------------------------------------------------
# MANIFEST SYNTHESIS
# -----------------------------------------------------------------------------

def add_modules_to_package_json(
        external_modules: List[str],
        package_json: Dict[str, Any],
        path_to_root: str,
) -> Dict[str, Any]:
    """
    Add `name@version` entries to a manifest's dependencies.

    Scoped names keep their leading '@'; local file references are rebased
    onto `path_to_root`.
    """
    deps = package_json.setdefault("dependencies", {})
    for module in external_modules:
        if module.startswith("@"):
            scope_end = module.find("@", 1)
            name, version = (module, "") if scope_end == -1 else (module[:scope_end], module[scope_end + 1:])
        else:
            name, _, version = module.partition("@")
        deps[name] = rebase_file_reference(path_to_root, version)
    return package_json


def build_composite_package(
        service_name: str,
        scripts: List[str],
        sections: Dict[str, Any],
) -> Dict[str, Any]:
    """Base manifest for the staging directory, merged with copied sections."""
    package: Dict[str, Any] = {
        "name": service_name,
        "version": "1.0.0",
        "description": f"Packaged externals for {service_name}",
        "private": True,
        "scripts": {f"script{index}": script for index, script in enumerate(scripts)},
    }
    package.update(sections)
    return package


# -----------------------------------------------------------------------------
# PUBLIC API
# -----------------------------------------------------------------------------

async def pack_external_modules(
        service: ServiceDefinition,
        cfg: Dict[str, Any],
        build_dir: str,
        packager: Packager,
        *,
        log: Optional[logging.Logger] = None,
) -> List[str]:
    """
    Install every external module needed by the service into `build_dir`.

    Args:
        service: Service descriptor (name, directory, provider).
        cfg: Validated build configuration.
        build_dir: Staging directory holding the compiled bundles.
        packager: Package manager adapter.
        log: Optional logger.

    Returns:
        List[str]: The composite `name@version` modules written to the manifest.

    Raises:
        ConfigurationError: If no manifest can be located.
        DependencyResolutionError: A runtime dependency is only a dev dependency.
        SpawnError: If install, prune or a script fails.
    """
    log = log or logger
    externals = resolve_externals(cfg.get("external") or [], cfg.get("exclude") or [])
    if not externals:
        return []

    root_dir = find_project_root(start=service.service_dir)
    local_dir = find_up(MANIFEST_NAME, service.service_dir)
    package_path = cfg.get("package_path")
    if package_path and not os.path.isabs(package_path):
        package_path = os.path.join(service.service_dir, package_path)

    if not root_dir or not (package_path or local_dir):
        raise ConfigurationError(f"No {MANIFEST_NAME} found for service '{service.name}'")

    root_package_json_path = os.path.join(root_dir, MANIFEST_NAME)
    package_json_path = package_path or os.path.join(local_dir, MANIFEST_NAME)
    for manifest in (root_package_json_path, package_json_path):
        if not os.path.exists(manifest):
            raise ConfigurationError(f"Manifest not found: {manifest}")

    root_package_json = read_json(root_package_json_path)
    is_workspace = bool(root_package_json.get("workspaces"))
    package_json = read_json(package_json_path) if is_workspace else root_package_json
    if not is_workspace:
        package_json_path = root_package_json_path

    sections = {
        name: package_json[name]
        for name in packager.copy_package_section_names
        if name in package_json
    }
    if sections:
        log.debug(f"Using package.json sections {', '.join(sections)}")

    # (1) Dependency composition
    composite_modules: List[str] = []
    for module in get_prod_modules(
            externals, package_json_path, root_package_json_path, cfg.get("exclude") or [], log=log
    ):
        if module not in composite_modules:
            composite_modules.append(module)

    if not composite_modules:
        log.info("No external modules needed")
        return []

    # (2) Composite manifest
    scripts: List[str] = list((cfg.get("packager_options") or {}).get("scripts") or [])
    composite_package = build_composite_package(service.name, scripts, sections)
    relative_path = relative_posix(os.path.dirname(package_json_path), build_dir)
    add_modules_to_package_json(composite_modules, composite_package, relative_path)
    write_json(os.path.join(build_dir, MANIFEST_NAME), composite_package)

    # (3) Lockfile
    lockfile_path = os.path.join(os.path.dirname(root_package_json_path), packager.lockfile_name)
    has_lockfile = os.path.exists(lockfile_path)
    if has_lockfile:
        log.info("Package lock found - Using locked versions")
        try:
            rebased = packager.rebase_lockfile(relative_path, read_text(lockfile_path))
            write_text(os.path.join(build_dir, packager.lockfile_name), rebased)
        except (OSError, ValueError) as e:
            log.warning(f"Warning: Could not read lock file: {e}")

    if service.provider in AUTO_INSTALL_PROVIDERS:
        return composite_modules

    # (4) Install, prune, scripts
    start = time.monotonic()
    log.info(f"Packing external modules: {', '.join(composite_modules)}")
    await packager.install(build_dir, list(cfg.get("install_extra_args") or []), has_lockfile)
    log.debug(f"Package took [{_elapsed_ms(start)} ms]")

    start = time.monotonic()
    await packager.prune(build_dir)
    log.debug(f"Prune: {build_dir} [{_elapsed_ms(start)} ms]")

    if scripts:
        start = time.monotonic()
        await packager.run_scripts(build_dir, list(composite_package["scripts"].keys()))
        log.debug(f"Packager scripts took [{_elapsed_ms(start)} ms]. Executed scripts: {scripts}")

    return composite_modules


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)
