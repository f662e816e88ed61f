from __future__ import annotations

"""
Base Definitions for Package Manager Adapters.

Provides the abstract interface every supported tool (npm, pnpm, yarn)
implements, plus the helpers they share: command resolution, benign-stderr
classification and local file reference rebasing.
"""

import asyncio
import logging
import re
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Tuple

from bundlepack.domain.errors import SpawnError
from bundlepack.domain.models import DependenciesResult, DependencyMap
from bundlepack.infra.process import Executor, ProcessResult, command_for, spawn_process

logger = logging.getLogger(__name__)

# Local path references rewritten when a manifest moves to another directory
_FILE_REFERENCE_RE = re.compile(r"^(?:file:[^/]{2}|\./|\.\./)")
_FILE_ONLY_REFERENCE_RE = re.compile(r"^file:[^/]{2}")


def rebase_file_reference(path_to_root: str, version: str, *, file_prefix_only: bool = False) -> str:
    """
    Rebase a local path dependency specifier onto `path_to_root`.

    Registry versions and absolute paths pass through unchanged.

    Args:
        path_to_root: Relative path from the new location to the original one.
        version: Dependency specifier (e.g. "file:../lib", "./lib", "^1.0.0").
        file_prefix_only: Only rewrite specifiers carrying the `file:` protocol.

    Returns:
        str: The rebased specifier, using forward slashes.
    """
    matcher = _FILE_ONLY_REFERENCE_RE if file_prefix_only else _FILE_REFERENCE_RE
    if not isinstance(version, str) or not matcher.match(version):
        return version

    has_protocol = version.startswith("file:")
    file_path = version[len("file:"):] if has_protocol else version
    rebased = f"{'file:' if has_protocol else ''}{path_to_root}/{file_path}"
    return rebased.replace("\\", "/")


def rebase_nested_references(path_to_root: str, data: Any) -> Any:
    """Rebase every `file:` string value found in a parsed lockfile structure."""
    if isinstance(data, dict):
        return {key: rebase_nested_references(path_to_root, value) for key, value in data.items()}
    if isinstance(data, list):
        return [rebase_nested_references(path_to_root, value) for value in data]
    if isinstance(data, str):
        return rebase_file_reference(path_to_root, data, file_prefix_only=True)
    return data


class Packager(ABC):
    """
    Abstract base class for package manager adapters.

    Subclasses expose the tool's lockfile/manifest capabilities and implement
    dependency listing, install and lockfile rebasing. Process execution is
    delegated to an injectable executor.
    """

    tool: str = ""

    # (stderr fragment following "npm ERR! ", whether to log it)
    benign_errors: Tuple[Tuple[str, bool], ...] = ()

    def __init__(
            self,
            packager_options: Optional[Dict[str, Any]] = None,
            *,
            executor: Optional[Executor] = None,
            platform: Optional[str] = None,
            log: Optional[logging.Logger] = None,
    ) -> None:
        self.packager_options: Dict[str, Any] = dict(packager_options or {})
        self.executor: Executor = executor or spawn_process
        self.platform = platform
        self.log = log or logger

    # -------------------------------------------------------------------------
    # Capabilities
    # -------------------------------------------------------------------------
    @property
    @abstractmethod
    def lockfile_name(self) -> str:
        """Lockfile maintained by the tool."""

    @property
    def copy_package_section_names(self) -> List[str]:
        """Manifest sections copied into the synthesized manifest."""
        return []

    @property
    def must_copy_modules(self) -> bool:
        return False

    @property
    def command(self) -> str:
        return command_for(self.tool, self.platform)

    # -------------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------------
    @abstractmethod
    async def get_prod_dependencies(self, cwd: str, depth: Optional[int] = None) -> DependenciesResult:
        """
        List production dependencies as a normalized map.

        Args:
            cwd: Directory holding the installed tree.
            depth: Optional traversal depth passed to the tool.

        Returns:
            DependenciesResult: The map, or the raw stdout when the tool
                                failed with benign diagnostics only.
        """

    @abstractmethod
    def parse_dependencies(self, stdout: str, cwd: str) -> DependencyMap:
        """Parse the tool's listing output into a normalized map."""

    @abstractmethod
    async def install(self, cwd: str, extra_args: Optional[List[str]] = None, has_lockfile: bool = True) -> None:
        """Install the dependencies declared in `cwd`."""

    @abstractmethod
    async def prune(self, cwd: str) -> None:
        """Remove packages not required by the manifest."""

    @abstractmethod
    def rebase_lockfile(self, path_to_root: str, lockfile: str) -> str:
        """
        Rewrite local file references of a lockfile moved to another directory.

        Args:
            path_to_root: Relative path from the new location to the original one.
            lockfile: Raw lockfile contents.

        Returns:
            str: Rebased lockfile contents.
        """

    def script_command(self, script_name: str) -> Tuple[str, List[str]]:
        return self.command, ["run", script_name]

    async def run_scripts(self, cwd: str, script_names: List[str]) -> None:
        """
        Run package scripts concurrently, one process per script.

        Raises:
            SpawnError: The first failing script, with its output attached.
        """
        async def run_one(name: str) -> ProcessResult:
            command, args = self.script_command(name)
            return await self.executor(command, args, cwd)

        await asyncio.gather(*(run_one(name) for name in script_names))

    # -------------------------------------------------------------------------
    # Shared helpers
    # -------------------------------------------------------------------------
    async def _run(self, args: List[str], cwd: str) -> ProcessResult:
        return await self.executor(self.command, args, cwd)

    def benign_problems(self, stderr: str) -> Optional[List[str]]:
        """
        Classify a failed listing's stderr.

        Returns:
            Optional[List[str]]: The benign diagnostic lines when every
                                 non-empty line matches a known pattern,
                                 None when any line is fatal.
        """
        problems: List[str] = []
        for line in (stderr or "").splitlines():
            if not line.strip():
                continue
            matched = next(
                (entry for entry in self.benign_errors if line.startswith(f"npm ERR! {entry[0]}")),
                None,
            )
            if matched is None:
                return None
            if matched[1]:
                self.log.warning(f"{self.tool}: {line}")
            problems.append(line)
        return problems

    async def _list_with_fallback(self, command: str, args: List[str], cwd: str) -> DependenciesResult:
        """Run a listing command, degrading to raw stdout on benign failures."""
        try:
            result = await self.executor(command, args, cwd)
        except SpawnError as err:
            problems = self.benign_problems(err.stderr)
            if problems is not None and err.stdout.strip():
                self.log.warning(f"{self.tool} reported problems while listing dependencies; continuing.")
                return DependenciesResult(stdout=err.stdout, problems=problems)
            raise

        return DependenciesResult(dependencies=self.parse_dependencies(result.stdout, cwd))
