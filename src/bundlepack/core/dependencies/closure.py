from __future__ import annotations

"""
Dependency Closure Resolver.

Computes the packages that must be materialized for a set of requested
root packages, walking the normalized dependency map depth-first.
"""

from typing import Iterable, List, Optional, Set

from bundlepack.domain.models import DependencyMap


def flat_dep(root_deps: Optional[DependencyMap], filter_names: Optional[Iterable[str]] = None) -> List[str]:
    """
    Flatten the dependency closure of the requested packages.

    The name filter only applies to the root map. Below it, a package is
    added when it is hoisted (`is_root_dep`); private nested packages are
    satisfied by their hoisted ancestor and only walked to reach hoisted
    descendants. A single visited set covers the whole computation, so
    diamonds and cycles yield each name once.

    Args:
        root_deps: Normalized root dependency map.
        filter_names: Requested root package names. None means all roots.

    Returns:
        List[str]: Package names in discovery order, without duplicates.
    """
    if not root_deps:
        return []

    wanted: Optional[Set[str]] = set(filter_names) if filter_names is not None else None
    if wanted is not None and not wanted:
        return []

    result: List[str] = []
    visited: Set[str] = set()
    walked: Set[int] = set()

    def add(name: str) -> bool:
        if name in visited:
            return False
        visited.add(name)
        result.append(name)
        return True

    def walk(deps: Optional[DependencyMap]) -> None:
        if not deps:
            return
        # Shared (hoisted) maps are reachable from many parents
        if id(deps) in walked:
            return
        walked.add(id(deps))

        for name, node in deps.items():
            if node.is_root_dep and not add(name):
                continue
            walk(node.dependencies)

    for name, node in root_deps.items():
        if wanted is not None and name not in wanted:
            continue
        if add(name):
            walk(node.dependencies)

    return result
