from __future__ import annotations

"""
Dependency Graph Normalizer.

Converts the nested, path-annotated trees emitted by `npm ls` and `pnpm ls`
into the unified `DependencyMap` model:

- A package installed at `<root>/node_modules/<name>` is hoisted. It is
  recorded once in the root map; every nested reference to it becomes an
  `is_root_dep` marker sharing the root entry's dependency map.
- A package installed inside another package's private `node_modules` stays
  a child of its parent's map and is never promoted.
- Nodes flagged `deduped` are skipped (their subtree lives elsewhere).
"""

import logging
import os
from typing import Any, Dict, Optional, Tuple

from bundlepack.domain.constants import NODE_MODULES
from bundlepack.domain.models import DependencyMap, DependencyNode

logger = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# PUBLIC API
# -----------------------------------------------------------------------------

def normalize_path_tree(
        root_path: str,
        tree: Optional[Dict[str, Any]],
        *,
        log: Optional[logging.Logger] = None,
) -> DependencyMap:
    """
    Normalize a path-annotated dependency tree.

    Args:
        root_path: Directory the listing was run in.
        tree: The tool's `dependencies` object ({name: {version, path, dependencies}}).
        log: Optional logger for progress output.

    Returns:
        DependencyMap: Root map with shared hoisted subtrees.
    """
    log = log or logger
    root_map: DependencyMap = {}
    root_modules = os.path.normcase(os.path.normpath(os.path.join(root_path, NODE_MODULES)))

    def is_hoisted(name: str, raw: Dict[str, Any], top_level: bool) -> bool:
        installed = raw.get("path")
        if not installed:
            return top_level
        expected = os.path.join(root_modules, *name.split("/"))
        return os.path.normcase(os.path.normpath(str(installed))) == expected

    def walk(children: Dict[str, Any], target: DependencyMap, top_level: bool) -> None:
        for name, raw in children.items():
            if not isinstance(raw, dict):
                continue
            if raw.get("deduped"):
                log.debug(f"Skipping deduped node: {name}")
                continue

            version = str(raw.get("version") or "")
            nested = raw.get("dependencies") or {}

            if is_hoisted(name, raw, top_level):
                entry = root_map.get(name)
                if entry is None:
                    entry = DependencyNode(version=version, dependencies={})
                    root_map[name] = entry
                    walk(nested, entry.dependencies, False)
                if not top_level and name not in target:
                    target[name] = DependencyNode(
                        version=version,
                        dependencies=entry.dependencies,
                        is_root_dep=True,
                    )
                continue

            if name in target:
                continue
            node = DependencyNode(version=version, dependencies={})
            target[name] = node
            walk(nested, node.dependencies, False)

    walk(tree or {}, root_map, True)
    return root_map


def split_name_version(spec: str) -> Tuple[str, str]:
    """
    Split `name@version` at the last '@', keeping scoped names intact.

    Args:
        spec: e.g. "@scope/pkg@1.0.0" or "left-pad@1.3.0".

    Returns:
        Tuple[str, str]: (name, version); version is empty when absent.
    """
    at = spec.rfind("@")
    if at <= 0:
        return spec, ""
    return spec[:at], spec[at + 1:]


def dump_map(deps: Optional[DependencyMap]) -> Dict[str, Any]:
    """Render a map in plain dict form (diagnostics and tests)."""
    return {name: node.to_dict() for name, node in (deps or {}).items()}
