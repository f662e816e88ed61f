from __future__ import annotations

"""
npm Package Manager Adapter.

Lists the production tree with `npm ls -json -prod -long` (paths are needed
to detect hoisting) and normalizes it through the shared path-tree walker.
"""

import json
import logging
import re
from typing import List, Optional, Tuple

from bundlepack.core.dependencies.graph import normalize_path_tree
from bundlepack.core.packagers.base import Packager, rebase_nested_references
from bundlepack.domain.models import DependenciesResult, DependencyMap

logger = logging.getLogger(__name__)

_VERSION_RE = re.compile(r"(\d+)\.")


class NpmPackager(Packager):
    """npm adapter."""

    tool = "npm"
    benign_errors = (
        ("extraneous", False),
        ("missing", False),
        ("peer dep missing", True),
    )

    @property
    def lockfile_name(self) -> str:
        return "package-lock.json"

    @property
    def must_copy_modules(self) -> bool:
        return True

    # -------------------------------------------------------------------------
    # Command builders
    # -------------------------------------------------------------------------
    def list_command(self, depth: Optional[int] = None, major_version: Optional[int] = None) -> Tuple[str, List[str]]:
        """
        Build the production listing command.

        npm 7 only lists direct dependencies unless `-all` is passed; an
        explicit depth takes precedence.
        """
        args = ["ls", "-json", "-prod", "-long"]
        if depth:
            args.append(f"-depth={depth}")
        elif major_version is not None and major_version >= 7:
            args.append("-all")
        return self.command, args

    def install_command(self, extra_args: Optional[List[str]] = None) -> Tuple[str, List[str]]:
        return self.command, ["install", *(extra_args or [])]

    # -------------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------------
    async def get_major_version(self, cwd: str) -> Optional[int]:
        result = await self._run(["--version"], cwd)
        match = _VERSION_RE.match(result.stdout.strip())
        return int(match.group(1)) if match else None

    async def get_prod_dependencies(self, cwd: str, depth: Optional[int] = None) -> DependenciesResult:
        major = None if depth else await self.get_major_version(cwd)
        command, args = self.list_command(depth, major)
        return await self._list_with_fallback(command, args, cwd)

    def parse_dependencies(self, stdout: str, cwd: str) -> DependencyMap:
        data = json.loads(stdout)
        return normalize_path_tree(data.get("path") or cwd, data.get("dependencies"), log=self.log)

    async def install(self, cwd: str, extra_args: Optional[List[str]] = None, has_lockfile: bool = True) -> None:
        command, args = self.install_command(extra_args)
        await self.executor(command, args, cwd)

    async def prune(self, cwd: str) -> None:
        await self._run(["prune"], cwd)

    def rebase_lockfile(self, path_to_root: str, lockfile: str) -> str:
        data = json.loads(lockfile)
        return json.dumps(rebase_nested_references(path_to_root, data), indent=2)
