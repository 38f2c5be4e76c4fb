"""Checks run before a build (preflight) and after it (verify)."""

from __future__ import annotations

from lucius_build.checks.base import BaseCheck
from lucius_build.checks.image import (
    EntrypointCheck,
    ImageExistsCheck,
    ImageSnapshot,
    NoToolchainCheck,
    SingleArtifactCheck,
    verify_image,
)
from lucius_build.checks.models import CheckResult, CheckStatus, CheckSuiteResult
from lucius_build.checks.preflight import (
    ArtifactPathCheck,
    EngineCheck,
    SourceTreeCheck,
    run_preflight,
)
from lucius_build.checks.runner import determine_overall_status, run_checks

__all__ = [
    "ArtifactPathCheck",
    "BaseCheck",
    "CheckResult",
    "CheckStatus",
    "CheckSuiteResult",
    "EngineCheck",
    "EntrypointCheck",
    "ImageExistsCheck",
    "ImageSnapshot",
    "NoToolchainCheck",
    "SingleArtifactCheck",
    "SourceTreeCheck",
    "determine_overall_status",
    "run_checks",
    "run_preflight",
    "verify_image",
]
