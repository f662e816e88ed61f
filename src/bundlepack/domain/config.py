from __future__ import annotations

"""
Build Configuration Defaults.

The packaging engine is driven by a plain dictionary, mirroring the options
block a host framework hands over. This module owns the default values; the
validator in `bundlepack.core.validator` merges and coerces user input.
"""

from typing import Any, Dict

from bundlepack.domain.constants import BUILD_FOLDER, WORK_FOLDER

# -----------------------------------------------------------------------------
# Constants & Defaults
# -----------------------------------------------------------------------------
DEFAULT_PACKAGER = "npm"
DEFAULT_EXCLUDE = ["aws-sdk"]
DEFAULT_OUTPUT_EXTENSION = ".js"


def get_default_packager_options() -> Dict[str, Any]:
    """
    Default package manager options.

    Returns:
        Dict[str, Any]: Options consumed by the package manager adapters.
    """
    return {
        "scripts": [],
        "no_install": False,
        "ignore_lockfile": False,
    }


# -----------------------------------------------------------------------------
# Configuration Models (Dict-based)
# -----------------------------------------------------------------------------
def get_default_config() -> Dict[str, Any]:
    """
    Generate the default build configuration.

    A concurrency value of 0 means "unbounded".

    Returns:
        Dict[str, Any]: Default configuration values.
    """
    return {
        # Dependency Management
        "packager": DEFAULT_PACKAGER,
        "packager_options": get_default_packager_options(),
        "external": [],
        "exclude": list(DEFAULT_EXCLUDE),
        "install_extra_args": [],
        "package_path": None,

        # Compilation
        "format": "cjs",
        "platform": "node",
        "output_file_extension": DEFAULT_OUTPUT_EXTENSION,
        "concurrency": 0,

        # Packaging
        "zip_concurrency": 0,
        "native_zip": False,

        # Workspace
        "output_work_folder": WORK_FOLDER,
        "output_build_folder": BUILD_FOLDER,
        "keep_output_directory": False,
    }
