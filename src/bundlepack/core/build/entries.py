from __future__ import annotations

"""
Function Entry Discovery.

Maps function handlers (`path/to/file.exportName`) to the source entry files
the bundler compiles, and selects which functions are eligible at all.
"""

import logging
import os
from typing import Dict, List

from bundlepack.domain.constants import AUTO_INSTALL_PROVIDERS, MANIFEST_NAME, NODE_RUNTIME_PREFIX
from bundlepack.domain.errors import ConfigurationError
from bundlepack.domain.models import FunctionDefinition, FunctionEntry, ServiceDefinition
from bundlepack.infra.fs import read_json

logger = logging.getLogger(__name__)

_SOURCE_EXTENSIONS = (".ts", ".js")


def node_functions(service: ServiceDefinition) -> Dict[str, FunctionDefinition]:
    """
    Select the functions handled by the bundler.

    Functions without a handler, with a non-node runtime, or flagged `skip`
    are left to the host framework.
    """
    selected: Dict[str, FunctionDefinition] = {}
    for alias, func in service.functions.items():
        runtime = func.runtime or service.runtime or ""
        if not func.handler or func.skip:
            continue
        if not runtime.startswith(NODE_RUNTIME_PREFIX):
            logger.debug(f"Skipping function '{alias}' with runtime '{runtime}'")
            continue
        selected[alias] = func
    return selected


def handler_file_name(handler: str) -> str:
    """Strip the exported member from a handler, keeping the file path."""
    _, ext = os.path.splitext(handler)
    if not ext:
        return handler
    return handler[:handler.rfind(ext)]


def extract_function_entries(
        cwd: str,
        provider: str,
        functions: Dict[str, FunctionDefinition],
) -> List[FunctionEntry]:
    """
    Resolve the source entry of every function.

    Auto-install providers use the manifest `main` field (`.js` mapped to
    `.ts`) or `index.ts`; other providers prefer `<file>.ts`, then `<file>.js`.

    Args:
        cwd: Service directory.
        provider: Provider name.
        functions: Eligible functions keyed by alias.

    Returns:
        List[FunctionEntry]: One entry per function.

    Raises:
        ConfigurationError: If an entry file cannot be located.
    """
    if provider in AUTO_INSTALL_PROVIDERS:
        manifest_path = os.path.join(cwd, MANIFEST_NAME)
        if os.path.exists(manifest_path):
            main = read_json(manifest_path).get("main")
            entry = f"{main[:-3]}.ts" if main and main.endswith(".js") else (main or "index.ts")
            if not os.path.exists(os.path.join(cwd, entry)):
                raise ConfigurationError(f"Cannot locate entrypoint, {entry} not found")
            return [FunctionEntry(entry=entry, alias=None, func=None)]

    entries: List[FunctionEntry] = []
    for alias, func in functions.items():
        file_name = handler_file_name(func.handler)
        for ext in _SOURCE_EXTENSIONS:
            if os.path.exists(os.path.join(cwd, file_name + ext)):
                entries.append(FunctionEntry(entry=file_name + ext, alias=alias, func=func))
                break
        else:
            raise ConfigurationError(
                f"Cannot locate handler - {file_name} not found. "
                "Please ensure handlers exists with ext .ts or .js"
            )
    return entries
