"""Runtime image verification checks.

Checks that a built runtime image holds what the pipeline promises:
- the tag resolves
- the default command is the artifact, exec form, no arguments
- the only file added on top of the base image is the artifact
- no toolchain or source tree path leaked into the image
"""

from __future__ import annotations

from pathlib import PurePosixPath
from typing import TYPE_CHECKING, Any

import structlog

from lucius_build.checks.base import BaseCheck
from lucius_build.checks.models import CheckResult, CheckStatus, CheckSuiteResult
from lucius_build.checks.runner import determine_overall_status, run_checks
from lucius_build.errors import EngineError

if TYPE_CHECKING:
    from lucius_build.config import PipelineConfig
    from lucius_build.engine.base import ContainerEngine

logger = structlog.get_logger(__name__)

VERIFY_SUITE = "verify"


class ImageSnapshot:
    """Lazily loaded view of an image's configuration and filesystem.

    Listing an image's files means exporting it, so the listing is
    fetched once and shared between checks.
    """

    def __init__(self, engine: ContainerEngine, ref: str) -> None:
        self.engine = engine
        self.ref = ref
        self._config: dict[str, Any] | None = None
        self._files: set[str] | None = None

    @property
    def config(self) -> dict[str, Any]:
        if self._config is None:
            self._config = self.engine.inspect_image(self.ref)
        return self._config

    @property
    def files(self) -> set[str]:
        if self._files is None:
            self._files = self.engine.list_image_files(self.ref)
        return self._files


def _normalize_dir(path: str | None) -> str:
    if not path:
        return "/"
    return path.rstrip("/") or "/"


class ImageExistsCheck(BaseCheck):
    """Verify that the runtime image tag resolves."""

    def __init__(self, engine: ContainerEngine, tag: str) -> None:
        super().__init__(name="image_exists")
        self.engine = engine
        self.tag = tag

    def _execute(self) -> CheckResult:
        if self.engine.image_exists(self.tag):
            return self._make_result(CheckStatus.PASSED, f"Image {self.tag} found")
        return self._make_result(
            CheckStatus.FAILED,
            f"Image {self.tag} not found",
            {"tag": self.tag},
        )


class EntrypointCheck(BaseCheck):
    """Verify the default command runs the artifact as PID 1 with no arguments.

    The command must be exec form (a shell-form command would make
    ``/bin/sh`` PID 1), there must be no entrypoint wrapping it, and the
    working directory must be where the artifact was copied.
    """

    def __init__(self, config: PipelineConfig, image: ImageSnapshot, base: ImageSnapshot) -> None:
        super().__init__(name="entrypoint")
        self.config = config
        self.image = image
        self.base = base

    def _execute(self) -> CheckResult:
        image_config = self.image.config
        expected_cmd = self.config.runtime_command
        expected_workdir = _normalize_dir(self.config.runtime.workdir)

        cmd = image_config.get("Cmd")
        entrypoint = image_config.get("Entrypoint")
        workdir = _normalize_dir(image_config.get("WorkingDir"))
        env = list(image_config.get("Env") or [])
        base_env = list(self.base.config.get("Env") or [])

        details: dict[str, Any] = {
            "cmd": cmd,
            "entrypoint": entrypoint,
            "working_dir": workdir,
        }
        problems: list[str] = []

        if cmd != expected_cmd:
            problems.append(f"Cmd is {cmd!r}, expected {expected_cmd!r}")
        if entrypoint:
            problems.append(f"Entrypoint {entrypoint!r} would wrap the artifact")
        if workdir != expected_workdir:
            problems.append(f"WorkingDir is {workdir}, expected {expected_workdir}")

        declared_env = sorted(set(env) - set(base_env))
        if declared_env:
            details["declared_env"] = declared_env
            problems.append(f"Image declares environment variables: {', '.join(declared_env)}")

        if problems:
            return self._make_result(
                CheckStatus.FAILED,
                "; ".join(problems),
                {**details, "expected_cmd": expected_cmd},
            )
        return self._make_result(
            CheckStatus.PASSED,
            f"Runs {' '.join(expected_cmd)} as PID 1 with no arguments",
            details,
        )


class SingleArtifactCheck(BaseCheck):
    """Verify the artifact is the only file added on top of the base image."""

    def __init__(self, config: PipelineConfig, image: ImageSnapshot, base: ImageSnapshot) -> None:
        super().__init__(name="single_artifact")
        self.config = config
        self.image = image
        self.base = base

    def _execute(self) -> CheckResult:
        artifact_path = self.config.artifact_runtime_path
        # Parent directories may be created by WORKDIR
        parents = {str(p) for p in PurePosixPath(artifact_path).parents}

        added = sorted(p for p in self.image.files - self.base.files if p not in parents)
        details: dict[str, Any] = {"artifact_path": artifact_path, "added": added}

        if artifact_path not in self.image.files:
            return self._make_result(
                CheckStatus.FAILED,
                f"Artifact missing at {artifact_path}",
                details,
            )
        if added != [artifact_path]:
            extra = [p for p in added if p != artifact_path]
            return self._make_result(
                CheckStatus.FAILED,
                f"Image adds {len(extra)} path(s) besides the artifact",
                {**details, "extra": extra},
            )
        return self._make_result(
            CheckStatus.PASSED,
            f"Only {artifact_path} added to {self.config.runtime.base_image}",
            details,
        )


class NoToolchainCheck(BaseCheck):
    """Verify no toolchain or source tree path is present in the image."""

    def __init__(self, config: PipelineConfig, image: ImageSnapshot) -> None:
        super().__init__(name="no_toolchain")
        self.config = config
        self.image = image

    def _execute(self) -> CheckResult:
        forbidden = self.config.toolchain_paths
        files = self.image.files
        found = sorted(
            path
            for path in forbidden
            if path in files or any(f.startswith(f"{path}/") for f in files)
        )
        details: dict[str, Any] = {"checked": forbidden, "found": found}
        if found:
            return self._make_result(
                CheckStatus.FAILED,
                f"Toolchain paths present in image: {', '.join(found)}",
                details,
            )
        return self._make_result(CheckStatus.PASSED, "No toolchain paths in image", details)


def verify_image(
    config: PipelineConfig,
    engine: ContainerEngine,
    *,
    tag: str | None = None,
    fail_fast: bool = False,
) -> CheckSuiteResult:
    """Verify a built runtime image.

    When the image does not exist the remaining checks are skipped.

    Args:
        config: Pipeline configuration the image was built from.
        engine: Container engine holding the image.
        tag: Image to verify. Defaults to ``config.runtime.tag``.
        fail_fast: Stop after the first failed check.

    Returns:
        CheckSuiteResult for the "verify" suite.

    Example:
        >>> result = verify_image(PipelineConfig.default(), DockerEngine())
        >>> result.passed
        True
    """
    tag = tag or config.runtime.tag
    image = ImageSnapshot(engine, tag)
    base = ImageSnapshot(engine, config.runtime.base_image)

    exists = ImageExistsCheck(engine, tag)
    remaining: list[BaseCheck] = [
        EntrypointCheck(config, image, base),
        SingleArtifactCheck(config, image, base),
        NoToolchainCheck(config, image),
    ]

    first = run_checks(VERIFY_SUITE, [exists])
    if first.failed:
        skipped = [
            CheckResult(
                name=check.name,
                status=CheckStatus.SKIPPED,
                message=f"Skipped: image {tag} not available",
            )
            for check in remaining
        ]
        return first.model_copy(update={"checks": [*first.checks, *skipped]})

    try:
        if not engine.image_exists(config.runtime.base_image):
            engine.ensure_image(config.runtime.base_image)
    except EngineError as e:
        # Checks comparing against the base report the missing image
        logger.warning(
            "base_image_unavailable",
            image=config.runtime.base_image,
            error=e.user_message,
        )

    rest = run_checks(VERIFY_SUITE, remaining, fail_fast=fail_fast)
    checks = [*first.checks, *rest.checks]
    return CheckSuiteResult(
        suite=VERIFY_SUITE,
        checks=checks,
        overall_status=determine_overall_status(checks),
        started_at=first.started_at,
        finished_at=rest.finished_at,
        total_duration_ms=first.total_duration_ms + rest.total_duration_ms,
    )
