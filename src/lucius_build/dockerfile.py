"""Dockerfile rendering.

The Runtime Stage assembles its image from a context holding a generated
single-stage Dockerfile and the artifact. The multi-stage rendering
describes the same pipeline as one file for a plain ``docker build``.
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from lucius_build.config import PipelineConfig

BUILDER_STAGE_NAME = "builder"


def _exec_form(args: list[str]) -> str:
    """Render a JSON exec-form argument list."""
    return json.dumps(args)


def _workdir(path: str) -> str:
    return path if path.endswith("/") or path == "/" else f"{path}/"


def render_runtime_dockerfile(config: PipelineConfig) -> str:
    """Render the Dockerfile used to assemble the Runtime Image.

    The artifact is expected at the root of the build context under its
    own name. The command is exec form so the artifact runs as PID 1.

    Args:
        config: Pipeline configuration.

    Returns:
        Dockerfile text.

    Example:
        >>> print(render_runtime_dockerfile(PipelineConfig.default()))
        FROM debian:buster-slim
        <BLANKLINE>
        WORKDIR /root/
        COPY lucius-mcp-worker .
        <BLANKLINE>
        CMD ["./lucius-mcp-worker"]
    """
    lines = [
        f"FROM {config.runtime.base_image}",
        "",
        f"WORKDIR {_workdir(config.runtime.workdir)}",
        f"COPY {config.artifact_name} .",
        "",
        f"CMD {_exec_form(config.runtime_command)}",
    ]
    return "\n".join(lines) + "\n"


def render_multistage_dockerfile(config: PipelineConfig) -> str:
    """Render the whole pipeline as a two-stage Dockerfile.

    Args:
        config: Pipeline configuration.

    Returns:
        Dockerfile text with a builder stage and a runtime stage.
    """
    build = config.build
    lines = [
        "# Stage 1: compile the worker",
        f"FROM {build.image} AS {BUILDER_STAGE_NAME}",
        "",
        f"WORKDIR {build.workdir}",
        "COPY . .",
    ]
    for key, value in sorted(build.environment.items()):
        lines.append(f"ENV {key}={json.dumps(value)}")
    lines.extend(
        [
            f"RUN {_exec_form(build.command)}",
            "",
            "# Stage 2: minimal runtime image",
            f"FROM {config.runtime.base_image}",
            "",
            f"WORKDIR {_workdir(config.runtime.workdir)}",
            f"COPY --from={BUILDER_STAGE_NAME} {config.artifact_build_path} .",
            "",
            f"CMD {_exec_form(config.runtime_command)}",
        ]
    )
    return "\n".join(lines) + "\n"


def render_dockerignore(patterns: list[str]) -> str:
    """Render ignore patterns as a ``.dockerignore`` file."""
    return "".join(f"{p}\n" for p in patterns)
