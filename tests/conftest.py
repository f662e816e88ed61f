from __future__ import annotations

"""
Global Pytest Configuration and Fixtures.

This module sets up the testing environment, including:
1. Path manipulation to ensure the 'src' directory is importable.
2. Shared fixtures for build configurations and fake service layouts.
"""

import json
import os
import sys
from typing import Any, Callable, Dict, List, Optional, Tuple

import pytest

# -----------------------------------------------------------------------------
# Path Configuration
# -----------------------------------------------------------------------------
_SRC_PATH = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", "src"))
if _SRC_PATH not in sys.path:
    sys.path.insert(0, _SRC_PATH)

from bundlepack.core.packagers import clear_packager_cache  # noqa: E402
from bundlepack.infra.process import ProcessResult  # noqa: E402


# -----------------------------------------------------------------------------
# Shared Fixtures
# -----------------------------------------------------------------------------
@pytest.fixture(autouse=True)
def _reset_packager_cache():
    clear_packager_cache()
    yield
    clear_packager_cache()


@pytest.fixture
def mock_config_dict() -> Dict[str, Any]:
    """
    Return a valid, complete build configuration for testing.

    Returns:
        Dict[str, Any]: A sample configuration dictionary.
    """
    return {
        "packager": "npm",
        "packager_options": {"scripts": [], "no_install": False, "ignore_lockfile": False},
        "external": [],
        "exclude": ["aws-sdk"],
        "install_extra_args": [],
        "package_path": None,
        "format": "cjs",
        "platform": "node",
        "output_file_extension": ".js",
        "concurrency": 0,
        "zip_concurrency": 0,
        "native_zip": False,
        "output_work_folder": ".esbuild",
        "output_build_folder": ".build",
        "keep_output_directory": False,
    }


class RecordingExecutor:
    """
    Fake process executor recording every call.

    Responses are looked up by the joined argument vector; unknown commands
    succeed with empty output. Text piped to stdin is kept in `inputs`.
    """

    def __init__(self, responses: Dict[str, Any] = None) -> None:
        self.calls: List[Tuple[str, List[str], str]] = []
        self.inputs: List[Optional[str]] = []
        self.responses = responses or {}

    async def __call__(
            self, command: str, args: List[str], cwd: str, *, stdin: Optional[str] = None
    ) -> ProcessResult:
        self.calls.append((command, list(args), cwd))
        self.inputs.append(stdin)
        response = self.responses.get(" ".join(args))
        if isinstance(response, BaseException):
            raise response
        if callable(response):
            return response(command, args, cwd)
        return ProcessResult(stdout=response or "", stderr="")


@pytest.fixture
def executor_factory() -> Callable[..., RecordingExecutor]:
    return RecordingExecutor


def write_file(path: str, content: str = "") -> str:
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        f.write(content)
    return path


def write_manifest(path: str, data: Dict[str, Any]) -> str:
    return write_file(path, json.dumps(data, indent=2))


@pytest.fixture
def make_file() -> Callable[..., str]:
    return write_file


@pytest.fixture
def make_manifest() -> Callable[..., str]:
    return write_manifest
