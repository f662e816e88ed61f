from __future__ import annotations

"""
Yarn Package Manager Adapter.

Supports both yarn classic (v1, `yarn list --json` tree output) and yarn
berry (v2+, newline-delimited `yarn info -AR --json`). Classic `shadow` nodes
become hoisting markers only when the root install satisfies the requested
version; berry output is flat, so any dependency resolved at the root is a
marker.

Yarn specific packager options:
    no_install (False) - Skip the install step entirely.
    ignore_lockfile (False) - Install without freezing the lockfile.
"""

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from semantic_version import NpmSpec, Version

from bundlepack.core.dependencies.graph import split_name_version
from bundlepack.core.packagers.base import Packager
from bundlepack.domain.errors import SpawnError
from bundlepack.domain.models import DependenciesResult, DependencyMap, DependencyNode

logger = logging.getLogger(__name__)

# -----------------------------------------------------------------------------
# REGEX CONSTANTS
# -----------------------------------------------------------------------------

_BERRY_LOCATOR_RE = re.compile(r"^(.+)@npm:(.+)$")
_LOCKFILE_FILE_REF_RE = re.compile(r"""[^"/]@(?:file:)?((?:\./|\.\./).*?)[":,]""", re.MULTILINE)


@dataclass(frozen=True)
class YarnVersion:
    version: str
    is_berry: bool


def _find_classic_tree(stdout: str) -> Optional[Dict[str, Any]]:
    """Locate the `{"type": "tree"}` event among yarn classic JSON lines."""
    candidates = [stdout] + stdout.splitlines()
    for chunk in candidates:
        chunk = chunk.strip()
        if not chunk.startswith("{"):
            continue
        try:
            event = json.loads(chunk)
        except ValueError:
            continue
        if isinstance(event, dict) and event.get("type") == "tree":
            return event
    return None


def satisfies(version: str, spec: str) -> bool:
    """npm-style semver range check; unparsable input never satisfies."""
    try:
        return Version(version.strip()) in NpmSpec(spec.strip())
    except ValueError:
        return False


class YarnPackager(Packager):
    """yarn adapter (classic and berry)."""

    tool = "yarn"

    @property
    def lockfile_name(self) -> str:
        return "yarn.lock"

    @property
    def copy_package_section_names(self) -> List[str]:
        return ["resolutions"]

    # -------------------------------------------------------------------------
    # Command builders
    # -------------------------------------------------------------------------
    def list_command(self, is_berry: bool, depth: Optional[int] = None) -> Tuple[str, List[str]]:
        if is_berry:
            return self.command, ["info", "-AR", "--json"]
        args = ["list"]
        if depth:
            args.append(f"--depth={depth}")
        args.extend(["--json", "--production"])
        return self.command, args

    def install_command(
            self,
            is_berry: bool,
            extra_args: Optional[List[str]] = None,
            has_lockfile: bool = True,
    ) -> Tuple[str, List[str]]:
        frozen = has_lockfile and not self.packager_options.get("ignore_lockfile", False)
        if frozen:
            flags = ["--immutable"] if is_berry else ["--frozen-lockfile", "--non-interactive"]
        else:
            flags = [] if is_berry else ["--non-interactive"]
        return self.command, ["install", *flags, *(extra_args or [])]

    # -------------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------------
    async def get_version(self, cwd: str) -> YarnVersion:
        result = await self._run(["-v"], cwd)
        version = result.stdout.strip()
        major = re.match(r"(\d+)", version)
        return YarnVersion(version=version, is_berry=bool(major) and int(major.group(1)) > 1)

    async def get_prod_dependencies(self, cwd: str, depth: Optional[int] = None) -> DependenciesResult:
        version = await self.get_version(cwd)
        command, args = self.list_command(version.is_berry, depth)

        if not version.is_berry:
            return await self._list_with_fallback(command, args, cwd)

        try:
            result = await self.executor(command, args, cwd)
        except SpawnError as err:
            if err.stdout.strip():
                self.log.warning("yarn reported problems while listing dependencies; continuing.")
                return DependenciesResult(stdout=err.stdout)
            raise
        return DependenciesResult(dependencies=self.parse_berry(result.stdout))

    def parse_dependencies(self, stdout: str, cwd: str) -> DependencyMap:
        if _find_classic_tree(stdout) is not None:
            return self.parse_classic(stdout)
        return self.parse_berry(stdout)

    def parse_classic(self, stdout: str) -> DependencyMap:
        """
        Normalize `yarn list --json` output.

        Top-level trees are the hoisted packages. A `shadow` child points to a
        package resolved elsewhere: it becomes a marker when the root version
        satisfies it and is dropped otherwise (its real install appears as a
        sibling).
        """
        parsed = _find_classic_tree(stdout)
        if parsed is None:
            raise ValueError("yarn list output does not contain a dependency tree")
        trees: List[Dict[str, Any]] = parsed.get("data", {}).get("trees", [])

        root_map: DependencyMap = {}
        for tree in trees:
            name, version = split_name_version(tree.get("name", ""))
            if name not in root_map:
                root_map[name] = DependencyNode(version=version, dependencies={})

        def convert(children: List[Dict[str, Any]], target: DependencyMap) -> None:
            for child in children:
                name, version = split_name_version(child.get("name", ""))
                if name in target:
                    continue
                root_entry = root_map.get(name)

                if child.get("shadow"):
                    if root_entry is not None and satisfies(root_entry.version, version):
                        target[name] = DependencyNode(
                            version=version,
                            dependencies=root_entry.dependencies,
                            is_root_dep=True,
                        )
                    continue

                node = DependencyNode(version=version, dependencies={})
                target[name] = node
                convert(child.get("children") or [], node.dependencies)

        filled = set()
        for tree in trees:
            name, _ = split_name_version(tree.get("name", ""))
            if name in filled:
                continue
            filled.add(name)
            convert(tree.get("children") or [], root_map[name].dependencies)

        return root_map

    def parse_berry(self, stdout: str) -> DependencyMap:
        """
        Normalize newline-delimited `yarn info -AR --json` output.

        Workspace entries are skipped. Every other locator is recorded at the
        root; a dependency whose name is also a root entry becomes a marker
        sharing that entry's map.
        """
        packages: List[Tuple[str, Dict[str, Any]]] = []
        for line in stdout.splitlines():
            if not line.strip():
                continue
            try:
                info = json.loads(line)
            except ValueError:
                continue
            match = _BERRY_LOCATOR_RE.match(str(info.get("value", "")))
            if not match or "workspace:" in match.group(2):
                continue
            packages.append((match.group(1), info.get("children") or {}))

        root_map: DependencyMap = {}
        for name, children in packages:
            if name not in root_map:
                root_map[name] = DependencyNode(version=str(children.get("Version", "")), dependencies={})

        filled = set()
        for name, children in packages:
            if name in filled:
                continue
            filled.add(name)
            target = root_map[name].dependencies
            for dep in children.get("Dependencies") or []:
                match = _BERRY_LOCATOR_RE.match(str(dep.get("descriptor", "")))
                if not match:
                    continue
                dep_name, dep_range = match.group(1), match.group(2)
                if dep_name in target:
                    continue
                root_entry = root_map.get(dep_name)
                if root_entry is not None:
                    target[dep_name] = DependencyNode(
                        version=dep_range,
                        dependencies=root_entry.dependencies,
                        is_root_dep=True,
                    )
                else:
                    target[dep_name] = DependencyNode(version=dep_range)

        return root_map

    async def install(self, cwd: str, extra_args: Optional[List[str]] = None, has_lockfile: bool = True) -> None:
        if self.packager_options.get("no_install", False):
            self.log.info("yarn: no_install is set, skipping install")
            return

        version = await self.get_version(cwd)
        command, args = self.install_command(version.is_berry, extra_args, has_lockfile)
        self.log.debug(f"yarn {version.version}: {' '.join(args)} (cwd={cwd})")
        await self.executor(command, args, cwd)

    async def prune(self, cwd: str) -> None:
        # yarn install prunes
        await self.install(cwd, [])

    def rebase_lockfile(self, path_to_root: str, lockfile: str) -> str:
        def rebase(match: re.Match) -> str:
            old_ref = match.group(1)
            if not old_ref:
                return match.group(0)
            new_ref = f"{path_to_root}/{old_ref}".replace("\\", "/")
            start = match.start(1) - match.start(0)
            whole = match.group(0)
            return whole[:start] + new_ref + whole[start + len(old_ref):]

        return _LOCKFILE_FILE_REF_RE.sub(rebase, lockfile)
