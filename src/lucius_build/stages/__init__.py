"""Pipeline stages.

- BuildStage: compile the source tree in an ephemeral builder container
- RuntimeStage: copy the artifact out and tag the minimal runtime image
"""

from __future__ import annotations

from lucius_build.stages.base import Stage
from lucius_build.stages.build import BuildStage
from lucius_build.stages.runtime import RuntimeStage, build_runtime_context, extract_single_file

__all__ = [
    "BuildStage",
    "RuntimeStage",
    "Stage",
    "build_runtime_context",
    "extract_single_file",
]
