from __future__ import annotations

"""
Core packaging pipeline.

This module coordinates the packaging workflow in host hook order:
1. Validates configuration and prepares the work/build directories.
2. Compiles function entries (bounded concurrency).
3. Installs the external modules into the build directory.
4. Copies pattern-matched extras (service level and per function).
5. Packs the build directory into one or more archives.
6. Moves artifacts next to the service and removes the work directory.
"""

import asyncio
import logging
import os
from typing import Any, Dict, List, Optional

from bundlepack.core.build.bundler import Compiler, bundle_entries, is_esm
from bundlepack.core.build.entries import extract_function_entries, node_functions
from bundlepack.core.dependencies.externals import pack_external_modules
from bundlepack.core.packagers import Packager, get_packager
from bundlepack.core.packaging.extras import copy_extras
from bundlepack.core.packaging.filters import merge_patterns
from bundlepack.core.packaging.pack import pack
from bundlepack.core.validator import validate_config
from bundlepack.domain.constants import SERVERLESS_FOLDER
from bundlepack.domain.errors import ConfigurationError
from bundlepack.domain.models import ArtifactRecord, FunctionBuildResult, FunctionDefinition, ServiceDefinition
from bundlepack.infra.fs import copy_tree, remove_tree

logger = logging.getLogger(__name__)

__all__ = ["PackagingEngine", "run_packaging"]


class PackagingEngine:
    """
    Stateful facade over the packaging stages for one service.

    Stages are coroutines so that a host can call them from its own hooks;
    `package()` runs the deployment sequence end to end.
    """

    def __init__(
            self,
            service: ServiceDefinition,
            config: Optional[Dict[str, Any]] = None,
            *,
            compiler: Optional[Compiler] = None,
            packager: Optional[Packager] = None,
            log: Optional[logging.Logger] = None,
    ) -> None:
        self.log = log or logger
        self.cfg, warnings = validate_config(config, strict=False)
        for warning in warnings:
            self.log.warning(f"Configuration Warning: {warning}")

        self.service = service
        self.compiler = compiler
        self.packager = packager or get_packager(self.cfg["packager"], self.cfg["packager_options"])
        self.work_dir = os.path.join(service.service_dir, self.cfg["output_work_folder"])
        self.build_dir = os.path.join(self.work_dir, self.cfg["output_build_folder"])
        self.build_results: List[FunctionBuildResult] = []
        self.artifacts: List[ArtifactRecord] = []

    @property
    def functions(self) -> Dict[str, FunctionDefinition]:
        return node_functions(self.service)

    # -------------------------------------------------------------------------
    # Stages
    # -------------------------------------------------------------------------
    def prepare(self) -> None:
        """Create the work folders and fold legacy include/exclude lists into patterns."""
        os.makedirs(self.build_dir, exist_ok=True)
        os.makedirs(os.path.join(self.work_dir, SERVERLESS_FOLDER), exist_ok=True)

        self.service.patterns = merge_patterns(
            self.service.patterns, self.service.include, self.service.exclude
        )
        for func in self.functions.values():
            func.patterns = merge_patterns(func.patterns, func.include, func.exclude)

    async def bundle(self) -> List[FunctionBuildResult]:
        if self.compiler is None:
            raise ConfigurationError("No compiler configured for bundling")

        self.prepare()
        self.log.debug("Compiling bundles...")
        entries = extract_function_entries(self.service.service_dir, self.service.provider, self.functions)
        self.build_results = await bundle_entries(
            entries, self.cfg, self.build_dir, self.compiler, log=self.log
        )
        return self.build_results

    async def pack_external_modules(self) -> List[str]:
        return await pack_external_modules(
            self.service, self.cfg, self.build_dir, self.packager, log=self.log
        )

    async def copy_extras(self) -> List[str]:
        return copy_extras(
            self.service.service_dir,
            self.build_dir,
            self.service.patterns,
            self.functions,
            log=self.log,
        )

    async def pack(self) -> List[ArtifactRecord]:
        self.artifacts = await pack(
            self.service,
            self.cfg,
            work_dir=self.work_dir,
            build_dir=self.build_dir,
            build_results=self.build_results,
            packager=self.packager,
            use_esm=is_esm(self.cfg),
            log=self.log,
        )
        return self.artifacts

    async def move_artifacts(self) -> None:
        """Copy archives next to the service and point artifact paths at them."""
        copy_tree(
            os.path.join(self.work_dir, SERVERLESS_FOLDER),
            os.path.join(self.service.service_dir, SERVERLESS_FOLDER),
        )

        if self.service.individually:
            for func in self.functions.values():
                if func.artifact:
                    func.artifact = os.path.join(SERVERLESS_FOLDER, os.path.basename(func.artifact))
            return

        if self.service.artifact:
            self.service.artifact = os.path.join(SERVERLESS_FOLDER, os.path.basename(self.service.artifact))

    async def cleanup(self) -> None:
        await self.move_artifacts()
        if not self.cfg["keep_output_directory"]:
            remove_tree(self.work_dir)

    async def package(self) -> List[ArtifactRecord]:
        """Run bundle, external install, extras copy and pack in order."""
        await self.bundle()
        await self.pack_external_modules()
        await self.copy_extras()
        return await self.pack()


def run_packaging(
        service: ServiceDefinition,
        config: Optional[Dict[str, Any]],
        compiler: Compiler,
        *,
        cleanup: bool = True,
) -> List[ArtifactRecord]:
    """
    Execute the full packaging sequence synchronously.

    Args:
        service: Service descriptor (updated with artifact paths).
        config: Raw build configuration.
        compiler: Async compile callable.
        cleanup: Move artifacts and remove the work directory afterwards.

    Returns:
        List[ArtifactRecord]: Produced archives.
    """
    engine = PackagingEngine(service, config, compiler=compiler)

    async def _run() -> List[ArtifactRecord]:
        records = await engine.package()
        if cleanup:
            await engine.cleanup()
        return records

    logger.info(f"Packaging service '{service.name}' started.")
    records = asyncio.run(_run())
    logger.info(f"Packaging service '{service.name}' finished: {len(records)} artifact(s).")
    return records
