"""Pre-build checks.

Catch problems that would otherwise surface halfway through a build:
an unreachable engine, a context without a Cargo manifest, or an artifact
path the Runtime Stage could never use as a command.
"""

from __future__ import annotations

from pathlib import PurePosixPath
from typing import TYPE_CHECKING

from lucius_build.checks.base import BaseCheck
from lucius_build.checks.models import CheckResult, CheckStatus, CheckSuiteResult
from lucius_build.checks.runner import run_checks

if TYPE_CHECKING:
    from collections.abc import Callable

    from lucius_build.config import PipelineConfig
    from lucius_build.engine.base import ContainerEngine
    from lucius_build.source import SourceTree

PREFLIGHT_SUITE = "preflight"
CARGO_MANIFEST = "Cargo.toml"


class EngineCheck(BaseCheck):
    """Check that the container engine can be created and answers.

    Args:
        connect: Factory returning a connected engine. Connection errors
            are reported as an ERROR result.
    """

    def __init__(self, connect: Callable[[], ContainerEngine]) -> None:
        super().__init__(name="engine")
        self.connect = connect

    def _execute(self) -> CheckResult:
        engine = self.connect()
        engine.ping()
        return self._make_result(
            CheckStatus.PASSED,
            f"{engine.name} engine reachable",
            {"engine": engine.name},
        )


class SourceTreeCheck(BaseCheck):
    """Check that the build context exists and holds a Cargo manifest.

    A missing manifest is reported as a failure; files excluded by the
    ignore patterns do not count.
    """

    def __init__(self, source: SourceTree, manifest: str = CARGO_MANIFEST) -> None:
        super().__init__(name="source_tree")
        self.source = source
        self.manifest = manifest

    def _execute(self) -> CheckResult:
        files = self.source.files()
        details = {"root": str(self.source.root), "files": len(files)}

        if not files:
            return self._make_result(CheckStatus.FAILED, "Build context is empty", details)
        if self.manifest not in files:
            return self._make_result(
                CheckStatus.FAILED,
                f"{self.manifest} not found in build context",
                details,
            )
        return self._make_result(
            CheckStatus.PASSED,
            f"{len(files)} files in build context",
            details,
        )


class ArtifactPathCheck(BaseCheck):
    """Check that the configured artifact path can become the image command."""

    def __init__(self, config: PipelineConfig) -> None:
        super().__init__(name="artifact_path")
        self.config = config

    def _execute(self) -> CheckResult:
        details = {
            "build_path": self.config.artifact_build_path,
            "runtime_path": self.config.artifact_runtime_path,
        }
        if not self.config.artifact_name_is_valid:
            return self._make_result(
                CheckStatus.FAILED,
                f"Artifact name '{self.config.artifact_name}' is not a usable command name",
                details,
            )

        parts = PurePosixPath(self.config.build.artifact).parts
        if "release" not in parts and "--release" in self.config.build.command:
            return self._make_result(
                CheckStatus.WARNING,
                "Release build requested but the artifact path is not under a release directory",
                details,
            )
        return self._make_result(
            CheckStatus.PASSED,
            f"Artifact {self.config.artifact_build_path} -> {self.config.artifact_runtime_path}",
            details,
        )


def run_preflight(
    config: PipelineConfig,
    source: SourceTree,
    *,
    connect: Callable[[], ContainerEngine] | None = None,
    fail_fast: bool = False,
) -> CheckSuiteResult:
    """Run pre-build checks.

    Args:
        config: Pipeline configuration.
        source: Source tree the build would use.
        connect: Engine factory, or None to skip the engine check.
        fail_fast: Stop after the first failed check.

    Returns:
        CheckSuiteResult for the "preflight" suite.
    """
    checks: list[BaseCheck] = [ArtifactPathCheck(config), SourceTreeCheck(source)]
    if connect is not None:
        checks.insert(0, EngineCheck(connect))
    return run_checks(PREFLIGHT_SUITE, checks, fail_fast=fail_fast)
