"""lucius-build: two-stage container build for the lucius-mcp-worker.

The Build Stage compiles the Source Tree in an ephemeral toolchain
container. The Runtime Stage copies the single compiled artifact onto a
minimal base image and tags the result.
"""

from __future__ import annotations

from lucius_build.config import PipelineConfig
from lucius_build.errors import (
    CompilationFailure,
    ConfigurationError,
    EngineError,
    LuciusBuildError,
    PackagingFailure,
    PipelineStateError,
)
from lucius_build.models import PipelineResult, PipelineState
from lucius_build.pipeline import PipelineRunner, run_pipeline

__version__ = "0.1.0"

__all__ = [
    "CompilationFailure",
    "ConfigurationError",
    "EngineError",
    "LuciusBuildError",
    "PackagingFailure",
    "PipelineConfig",
    "PipelineResult",
    "PipelineRunner",
    "PipelineState",
    "PipelineStateError",
    "__version__",
    "run_pipeline",
]
