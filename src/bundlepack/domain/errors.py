from __future__ import annotations

"""
Packaging Error Taxonomy.

Fatal conditions raised by the resolution and packaging stages. Non-fatal
conditions (missing versions, peer lookup failures) are logged as warnings
and never reach this hierarchy.
"""

from typing import List, Optional


class PackagingError(Exception):
    """Base class for every fatal packaging condition."""


class ConfigurationError(PackagingError):
    """
    Raised when the requested packaging cannot be performed as configured.

    Examples: empty file set, individual packaging on an auto-install
    platform, missing manifest, unknown package manager.
    """


class DependencyResolutionError(PackagingError):
    """
    Raised when a runtime dependency is only declared as a development
    dependency and is not on the tolerated list.
    """

    def __init__(self, package: str, message: Optional[str] = None) -> None:
        self.package = package
        super().__init__(message or f"Runtime dependency '{package}' found in devDependencies.")


class SpawnError(PackagingError):
    """
    A child process exited with a non-zero status.

    Carries the captured streams so callers can decide whether the failure
    is benign (e.g. npm peer warnings with usable stdout).
    """

    def __init__(
            self,
            command: str,
            args: List[str],
            exit_code: Optional[int],
            stdout: str = "",
            stderr: str = "",
    ) -> None:
        super().__init__(f"{command} {' '.join(args)} failed with code {exit_code}")
        self.command = command
        self.arguments = list(args)
        self.exit_code = exit_code
        self.stdout = stdout
        self.stderr = stderr

    def __str__(self) -> str:
        base = super().__str__()
        return f"{base}\n{self.stderr}" if self.stderr else base


class ArchiveError(PackagingError):
    """Raised when an archive cannot be produced (empty input or I/O failure)."""
