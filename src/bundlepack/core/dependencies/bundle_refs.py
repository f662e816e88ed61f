from __future__ import annotations

"""
Bundle Reference Extractor.

Statically scans a compiled bundle for the external package identifiers it
loads at runtime. ESM bundles contribute static `import`/`export ... from`
sources and literal `import("x")` calls; CommonJS bundles contribute literal
`require("x")` calls. Sources are collapsed to their base package name.

The bundle is parsed with the tree-sitter JavaScript grammar, so comments,
regex literals and string contents never produce false references.
"""

import logging
import re
from typing import Iterator, List, Optional, Set

import tree_sitter_javascript
from tree_sitter import Language, Node, Parser

logger = logging.getLogger(__name__)

# -----------------------------------------------------------------------------
# GRAMMAR
# -----------------------------------------------------------------------------

JS_LANGUAGE = Language(tree_sitter_javascript.language())

# Leading "@scope/name" pair or the first path segment
_BASE_NAME_RE = re.compile(r"^(@[^/]+/[^/]+|[^/]+)")


# -----------------------------------------------------------------------------
# PUBLIC API
# -----------------------------------------------------------------------------

def get_deps_from_bundle(bundle_path: str, use_esm: bool) -> List[str]:
    """
    Extract the base package names referenced by a compiled bundle.

    Args:
        bundle_path: Path to the compiled artifact.
        use_esm: True for static-import style bundles, False for require style.

    Returns:
        List[str]: Base package names, first appearance order, no duplicates.
    """
    with open(bundle_path, "r", encoding="utf-8") as f:
        source = f.read()

    names = extract_references(source, use_esm)
    logger.debug(f"Bundle {bundle_path} references: {names}")
    return names


def extract_references(source: str, use_esm: bool) -> List[str]:
    """
    Extract base package names from JavaScript source text.

    Args:
        source: Bundle contents.
        use_esm: Selects import/export scanning instead of require scanning.

    Returns:
        List[str]: Deduplicated base names in order of first appearance.
    """
    tree = Parser(JS_LANGUAGE).parse(source.encode("utf-8"))
    match = _esm_specifier if use_esm else _require_specifier

    result: List[str] = []
    seen: Set[str] = set()
    for node in _walk_tree(tree.root_node):
        specifier = match(node)
        if specifier is None:
            continue
        name = base_package_name(specifier)
        if name and name not in seen:
            seen.add(name)
            result.append(name)
    return result


def base_package_name(specifier: str) -> str:
    """
    Collapse a module specifier to its package name.

    Relative, absolute and `node:` builtin specifiers have no package and
    yield an empty string.

    Args:
        specifier: e.g. "@scope/pkg/sub/path", "pkg/sub", "./local".

    Returns:
        str: "@scope/pkg", "pkg" or "".
    """
    spec = specifier.strip()
    if not spec or spec.startswith((".", "/")) or spec.startswith("node:"):
        return ""
    match = _BASE_NAME_RE.match(spec)
    return match.group(1) if match else ""


# -----------------------------------------------------------------------------
# SYNTAX TREE HELPERS
# -----------------------------------------------------------------------------

def _walk_tree(root: Node) -> Iterator[Node]:
    """Pre-order walk, which yields nodes in source order."""
    cursor = root.walk()
    while True:
        yield cursor.node
        if cursor.goto_first_child():
            continue
        while not cursor.goto_next_sibling():
            if not cursor.goto_parent():
                return


def _esm_specifier(node: Node) -> Optional[str]:
    # import ... from "a" / import "a" / export ... from "a"
    if node.type in ("import_statement", "export_statement"):
        return _literal_value(node.child_by_field_name("source"))
    # import("a")
    if node.type == "call_expression":
        function = node.child_by_field_name("function")
        if function is not None and function.type == "import":
            return _single_literal_argument(node)
    return None


def _require_specifier(node: Node) -> Optional[str]:
    if node.type != "call_expression":
        return None
    function = node.child_by_field_name("function")
    if function is None or function.type != "identifier" or function.text != b"require":
        return None
    return _single_literal_argument(node)


def _single_literal_argument(call: Node) -> Optional[str]:
    arguments = call.child_by_field_name("arguments")
    if arguments is None:
        return None
    values = [child for child in arguments.named_children if child.type != "comment"]
    if len(values) != 1:
        return None
    return _literal_value(values[0])


def _literal_value(node: Optional[Node]) -> Optional[str]:
    """Text of a string literal or substitution-free template, else None."""
    if node is None:
        return None
    if node.type == "template_string":
        if any(child.type == "template_substitution" for child in node.children):
            return None
    elif node.type != "string":
        return None
    return node.text.decode("utf-8")[1:-1]
