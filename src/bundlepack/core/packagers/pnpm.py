from __future__ import annotations

"""
pnpm Package Manager Adapter.

`pnpm ls --prod --json` reports one object per project; the first project's
path-annotated dependency tree is normalized like npm's. The YAML lockfile is
rebased structurally through PyYAML.
"""

import json
import logging
from typing import List, Optional, Tuple

import yaml

from bundlepack.core.dependencies.graph import normalize_path_tree
from bundlepack.core.packagers.base import Packager, rebase_nested_references
from bundlepack.domain.models import DependenciesResult, DependencyMap

logger = logging.getLogger(__name__)


class PnpmPackager(Packager):
    """pnpm adapter."""

    tool = "pnpm"

    @property
    def lockfile_name(self) -> str:
        return "pnpm-lock.yaml"

    def list_command(self, depth: Optional[int] = None) -> Tuple[str, List[str]]:
        args = ["ls", "--prod", "--json"]
        if depth:
            args.append(f"--depth={depth}")
        return self.command, args

    def install_command(self, extra_args: Optional[List[str]] = None, use_lockfile: bool = True) -> Tuple[str, List[str]]:
        args = ["install"]
        if use_lockfile:
            args.append("--frozen-lockfile")
        return self.command, [*args, *(extra_args or [])]

    async def get_prod_dependencies(self, cwd: str, depth: Optional[int] = None) -> DependenciesResult:
        command, args = self.list_command(depth)
        return await self._list_with_fallback(command, args, cwd)

    def parse_dependencies(self, stdout: str, cwd: str) -> DependencyMap:
        data = json.loads(stdout)
        project = data[0] if isinstance(data, list) and data else data
        if not isinstance(project, dict):
            return {}
        return normalize_path_tree(project.get("path") or cwd, project.get("dependencies"), log=self.log)

    async def install(self, cwd: str, extra_args: Optional[List[str]] = None, has_lockfile: bool = True) -> None:
        command, args = self.install_command(extra_args, has_lockfile)
        await self.executor(command, args, cwd)

    async def prune(self, cwd: str) -> None:
        await self._run(["prune"], cwd)

    def rebase_lockfile(self, path_to_root: str, lockfile: str) -> str:
        try:
            data = yaml.safe_load(lockfile)
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid {self.lockfile_name}: {e}") from e
        if data is None:
            return lockfile
        rebased = rebase_nested_references(path_to_root, data)
        return yaml.safe_dump(rebased, sort_keys=False, default_flow_style=False)
