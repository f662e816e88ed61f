from __future__ import annotations

"""
Packaging Domain Data Models.

Defines the normalized dependency graph shared by every package manager
adapter, the file entries flowing between the filtering and archiving stages,
and the service/function descriptors supplied by the host framework.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

# -----------------------------------------------------------------------------
# DEPENDENCY GRAPH
# -----------------------------------------------------------------------------

DependencyMap = Dict[str, "DependencyNode"]


@dataclass(frozen=True)
class DependencyNode:
    """
    One package in a normalized dependency tree.

    Attributes:
        version: Resolved version (or range) as reported by the package manager.
        dependencies: Nested map of the package's own dependencies. Hoisted
                      packages share a single map object between their root
                      entry and every nested marker that references them.
        is_root_dep: True when the node is a nested reference to a package
                     installed at the top level of the install tree.
    """
    version: str
    dependencies: Optional[DependencyMap] = None
    is_root_dep: bool = False

    def to_dict(self) -> Dict[str, Any]:
        """Render the node in the package-manager-like JSON shape."""
        data: Dict[str, Any] = {"version": self.version}
        if self.dependencies:
            data["dependencies"] = {
                name: node.to_dict() for name, node in self.dependencies.items()
            }
        if self.is_root_dep:
            data["isRootDep"] = True
        return data


@dataclass(frozen=True)
class DependenciesResult:
    """
    Outcome of a production dependency listing.

    Exactly one of `dependencies` or `stdout` is set: `stdout` signals that the
    tool exited non-zero with only benign diagnostics and its raw output
    should be inspected instead of failing the build.
    """
    dependencies: Optional[DependencyMap] = None
    stdout: Optional[str] = None
    problems: List[str] = field(default_factory=list)

    @property
    def degraded(self) -> bool:
        return self.dependencies is None


@dataclass(frozen=True)
class ExternalModuleSpec:
    """A root package left external by the bundler."""
    name: str
    origin: Optional[str] = None


# -----------------------------------------------------------------------------
# FILES & ARTIFACTS
# -----------------------------------------------------------------------------

@dataclass(frozen=True)
class FileEntry:
    """
    A file scheduled for archiving.

    Attributes:
        local_path: Archive-relative path (forward slashes).
        root_path: Absolute path of the source file on disk.
    """
    local_path: str
    root_path: str


@dataclass(frozen=True)
class ArtifactRecord:
    """Observability record of one produced archive."""
    name: str
    path: str
    size: int
    elapsed_ms: int


# -----------------------------------------------------------------------------
# SERVICE DESCRIPTORS
# -----------------------------------------------------------------------------

@dataclass
class FunctionDefinition:
    """
    Deployable function as described by the host framework.

    `artifact` is filled in by the packaging stage once the function's archive
    has been written.
    """
    alias: str
    handler: str
    name: str = ""
    runtime: Optional[str] = None
    patterns: List[str] = field(default_factory=list)
    include: List[str] = field(default_factory=list)
    exclude: List[str] = field(default_factory=list)
    skip: bool = False
    artifact: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.name:
            self.name = self.alias


@dataclass
class ServiceDefinition:
    """Service-level packaging descriptor."""
    name: str
    service_dir: str
    provider: str = "aws"
    runtime: str = "nodejs18.x"
    individually: bool = False
    patterns: List[str] = field(default_factory=list)
    include: List[str] = field(default_factory=list)
    exclude: List[str] = field(default_factory=list)
    functions: Dict[str, FunctionDefinition] = field(default_factory=dict)
    artifact: Optional[str] = None


@dataclass(frozen=True)
class FunctionEntry:
    """Source entry file resolved from a function handler."""
    entry: str
    alias: Optional[str]
    func: Optional[FunctionDefinition]


@dataclass(frozen=True)
class FunctionBuildResult:
    """Compiled bundle mapped back to the function that owns it."""
    bundle_path: str
    alias: str
    func: FunctionDefinition
