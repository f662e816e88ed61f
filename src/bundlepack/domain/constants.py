from __future__ import annotations

"""
Domain Constants.

Folder names, manifest/lockfile names and the small whitelists shared by the
dependency resolution and packaging stages.
"""

from typing import List, Tuple

# -----------------------------------------------------------------------------
# WORKSPACE LAYOUT
# -----------------------------------------------------------------------------

WORK_FOLDER = ".esbuild"
BUILD_FOLDER = ".build"
SERVERLESS_FOLDER = ".serverless"

# Per-function private extras are staged under this prefix + function alias
ONLY_PREFIX = "__only_"

MANIFEST_NAME = "package.json"
NODE_MODULES = "node_modules"

# -----------------------------------------------------------------------------
# PACKAGE MANAGERS
# -----------------------------------------------------------------------------

SUPPORTED_PACKAGERS: Tuple[str, ...] = ("npm", "pnpm", "yarn")

# Lockfiles searched (in order) when walking up to the project root
PROJECT_ROOT_MARKERS: Tuple[str, ...] = ("yarn.lock", "package-lock.json", "package.json")

# Files kept out of archives unless explicitly included by a pattern
EXCLUDED_FILES_DEFAULT: List[str] = [
    "package-lock.json",
    "pnpm-lock.yaml",
    "yarn.lock",
    "package.json",
]

# Runtime-provided packages tolerated in devDependencies
IGNORED_DEV_DEPENDENCIES: List[str] = ["aws-sdk"]

# -----------------------------------------------------------------------------
# PLATFORMS
# -----------------------------------------------------------------------------

# Providers that install dependencies server-side from the shipped manifest
AUTO_INSTALL_PROVIDERS: Tuple[str, ...] = ("google",)

NODE_RUNTIME_PREFIX = "nodejs"

WILDCARD = "*"

HUMAN_SIZE_UNITS: Tuple[str, ...] = ("B", "KB", "MB", "GB", "TB")
