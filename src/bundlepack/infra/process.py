from __future__ import annotations

"""
Process Execution Primitive.

Runs external tools (package managers, the zip utility) as asyncio
subprocesses, capturing both streams without size limits. A non-zero exit
status is raised as `SpawnError` carrying the captured output.
"""

import asyncio
import logging
import os
import sys
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Optional

from bundlepack.domain.errors import SpawnError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProcessResult:
    """Captured output of a successful process run."""
    stdout: str
    stderr: str


# Signature shared by `spawn_process` and injected test doubles:
# (command, args, cwd, *, stdin=None)
Executor = Callable[..., Awaitable[ProcessResult]]


def command_for(tool: str, platform: Optional[str] = None) -> str:
    """
    Resolve the executable name for a node tool.

    Windows ships package managers as `.cmd` shims.

    Args:
        tool: Bare tool name (npm, pnpm, yarn).
        platform: Platform override, defaults to `sys.platform`.

    Returns:
        str: Executable name to spawn.
    """
    current = platform if platform is not None else sys.platform
    return f"{tool}.cmd" if current.startswith("win") else tool


async def spawn_process(
        command: str,
        args: List[str],
        cwd: str,
        *,
        stdin: Optional[str] = None,
) -> ProcessResult:
    """
    Execute a child process and collect its output.

    Args:
        command: Executable name or path.
        args: Argument vector (without the command).
        cwd: Working directory.
        stdin: Text written to the child's standard input, if any.

    Returns:
        ProcessResult: Decoded stdout and stderr.

    Raises:
        SpawnError: If the process exits with a non-zero status.
        FileNotFoundError: If the executable cannot be found.
    """
    logger.debug(f"Spawning: {command} {' '.join(args)} (cwd={cwd})")

    process = await asyncio.create_subprocess_exec(
        command,
        *args,
        stdin=asyncio.subprocess.PIPE if stdin is not None else None,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
        cwd=cwd,
        env=dict(os.environ),
    )
    raw_out, raw_err = await process.communicate(
        stdin.encode("utf-8") if stdin is not None else None
    )

    stdout = raw_out.decode("utf-8", errors="replace")
    stderr = raw_err.decode("utf-8", errors="replace")

    if process.returncode != 0:
        raise SpawnError(command, args, process.returncode, stdout, stderr)

    return ProcessResult(stdout=stdout, stderr=stderr)
