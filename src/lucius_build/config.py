"""Pipeline configuration models.

Configuration for the two-stage build, loaded from ``lucius.yaml``.
Defaults match the Dockerfile shipped with
``lucius-mcp-worker``: compile with ``cargo build --release`` on
``rust:1.78`` and ship the binary on ``debian:buster-slim``.
"""

from __future__ import annotations

from pathlib import Path, PurePosixPath
import re
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
import yaml

from lucius_build.errors import ConfigurationError

DEFAULT_CONFIG_FILENAME = "lucius.yaml"
DEFAULT_WORKER_NAME = "lucius-mcp-worker"

# Toolchain locations of the official rust images
RUST_TOOLCHAIN_PATHS = ("/usr/local/cargo", "/usr/local/rustup")

_COMMAND_NAME_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")


class SourceConfig(BaseModel):
    """Source tree (build context) configuration.

    Attributes:
        context: Directory holding the sources, relative to the config file.
        ignore: ``.dockerignore`` patterns excluded from the build context.
        ignore_file: Optional ignore file inside the context (``.dockerignore`` syntax).
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    context: str = Field(default=".", min_length=1, description="Build context directory")
    ignore: list[str] = Field(
        default_factory=lambda: ["target/", ".git/"],
        description="Patterns excluded from the build context",
    )
    ignore_file: str | None = Field(
        default=".dockerignore",
        description="Ignore file read from the context when present",
    )


class BuildStageConfig(BaseModel):
    """Build Stage configuration.

    Attributes:
        image: Toolchain image the sources are compiled in.
        workdir: Absolute directory the sources are copied to.
        command: Release build command, exec form.
        artifact: Path of the compiled executable, relative to ``workdir``.
        environment: Extra environment variables for the build command.

    Example:
        >>> BuildStageConfig(image="rust:1.78", artifact="target/release/my-worker")
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    image: str = Field(default="rust:1.78", min_length=1, description="Toolchain image")
    workdir: str = Field(
        default=f"/usr/src/{DEFAULT_WORKER_NAME}",
        description="Source directory inside the builder",
    )
    command: list[str] = Field(
        default_factory=lambda: ["cargo", "build", "--release"],
        min_length=1,
        description="Build command (exec form)",
    )
    artifact: str = Field(
        default=f"target/release/{DEFAULT_WORKER_NAME}",
        description="Compiled executable, relative to workdir",
    )
    environment: dict[str, str] = Field(
        default_factory=dict,
        description="Environment for the build command",
    )

    @field_validator("workdir")
    @classmethod
    def workdir_must_be_absolute(cls, v: str) -> str:
        """Validate that the build workdir is an absolute POSIX path."""
        if not PurePosixPath(v).is_absolute():
            msg = f"workdir must be an absolute path, got '{v}'"
            raise ValueError(msg)
        return v

    @field_validator("artifact")
    @classmethod
    def artifact_must_be_relative_file(cls, v: str) -> str:
        """Validate that the artifact path stays inside the workdir and names a file."""
        if not v or v.endswith("/"):
            msg = "artifact must name a file, not a directory"
            raise ValueError(msg)
        path = PurePosixPath(v)
        if path.is_absolute():
            msg = f"artifact must be relative to workdir, got '{v}'"
            raise ValueError(msg)
        if ".." in path.parts:
            msg = f"artifact must not leave workdir, got '{v}'"
            raise ValueError(msg)
        if not path.name:
            msg = "artifact must name a file, not a directory"
            raise ValueError(msg)
        return v

    @field_validator("command")
    @classmethod
    def command_must_not_be_blank(cls, v: list[str]) -> list[str]:
        """Validate that the command has a program to run."""
        if not v[0].strip():
            msg = "command must start with a program name"
            raise ValueError(msg)
        return v


class RuntimeStageConfig(BaseModel):
    """Runtime Stage configuration.

    Attributes:
        base_image: Pinned minimal base image.
        workdir: Absolute directory the artifact is copied to.
        tag: Tag applied to the Runtime Image.
        pull: Pull a newer base image before assembling.
        forbidden_paths: Extra paths that must never appear in the image.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    base_image: str = Field(default="debian:buster-slim", min_length=1, description="Base image")
    workdir: str = Field(default="/root/", description="Artifact directory in the image")
    tag: str = Field(default=f"{DEFAULT_WORKER_NAME}:latest", min_length=1, description="Image tag")
    pull: bool = Field(default=True, description="Pull base image before building")
    forbidden_paths: list[str] = Field(
        default_factory=list,
        description="Additional paths that must be absent from the image",
    )

    @field_validator("workdir")
    @classmethod
    def workdir_must_be_absolute(cls, v: str) -> str:
        """Validate that the runtime workdir is an absolute POSIX path."""
        if not PurePosixPath(v).is_absolute():
            msg = f"workdir must be an absolute path, got '{v}'"
            raise ValueError(msg)
        return v


class PipelineConfig(BaseModel):
    """Complete configuration for one build pipeline.

    Attributes:
        name: Pipeline name, used in logs and reports.
        source: Source tree configuration.
        build: Build Stage configuration.
        runtime: Runtime Stage configuration.

    Example:
        >>> config = PipelineConfig.default()
        >>> config.artifact_build_path
        '/usr/src/lucius-mcp-worker/target/release/lucius-mcp-worker'
        >>> config.runtime_command
        ['./lucius-mcp-worker']
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str = Field(default=DEFAULT_WORKER_NAME, min_length=1, description="Pipeline name")
    source: SourceConfig = Field(default_factory=SourceConfig, description="Source tree")
    build: BuildStageConfig = Field(default_factory=BuildStageConfig, description="Build Stage")
    runtime: RuntimeStageConfig = Field(
        default_factory=RuntimeStageConfig, description="Runtime Stage"
    )

    @property
    def artifact_name(self) -> str:
        """File name of the compiled executable."""
        return PurePosixPath(self.build.artifact).name

    @property
    def artifact_build_path(self) -> str:
        """Absolute path of the artifact inside the builder."""
        return str(PurePosixPath(self.build.workdir) / self.build.artifact)

    @property
    def artifact_runtime_path(self) -> str:
        """Absolute path of the artifact inside the Runtime Image."""
        return str(PurePosixPath(self.runtime.workdir) / self.artifact_name)

    @property
    def runtime_command(self) -> list[str]:
        """Default command of the Runtime Image: the artifact, no arguments."""
        return [f"./{self.artifact_name}"]

    @property
    def artifact_name_is_valid(self) -> bool:
        """Whether the artifact name is usable as a bare command."""
        return bool(_COMMAND_NAME_PATTERN.match(self.artifact_name))

    @property
    def toolchain_paths(self) -> list[str]:
        """Paths whose presence in the Runtime Image means the build leaked."""
        paths = [*RUST_TOOLCHAIN_PATHS, self.build.workdir.rstrip("/")]
        paths.extend(p.rstrip("/") for p in self.runtime.forbidden_paths)
        return list(dict.fromkeys(paths))

    @classmethod
    def default(cls) -> PipelineConfig:
        """Return the default configuration for lucius-mcp-worker."""
        return cls()

    @classmethod
    def from_yaml(cls, path: str | Path) -> PipelineConfig:
        """Load and validate a PipelineConfig from a YAML file.

        Args:
            path: Path to lucius.yaml.

        Returns:
            Validated PipelineConfig instance. An empty file yields the defaults.

        Raises:
            FileNotFoundError: If file doesn't exist.
            ConfigurationError: If the YAML is malformed or fails validation.
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"File not found: {path}")

        try:
            with path.open("r") as f:
                data: dict[str, Any] | None = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError(
                f"Invalid YAML: {_describe_yaml_error(e)}",
                file_path=str(path),
            ) from e

        try:
            return cls.model_validate(data or {})
        except ValidationError as e:
            errors = e.errors()
            issues = [f"  - {_loc(err['loc'])}: {err['msg']}" for err in errors]
            raise ConfigurationError(
                "Invalid configuration:\n" + "\n".join(issues),
                file_path=str(path),
                field_path=_loc(errors[0]["loc"]) if errors else None,
            ) from e


def _loc(loc: tuple[int | str, ...]) -> str:
    return ".".join(str(part) for part in loc)


def _describe_yaml_error(err: yaml.YAMLError) -> str:
    """Describe a YAML error, with its position when the parser knows it."""
    mark = getattr(err, "problem_mark", None)
    if mark is None:
        return str(err)
    return f"syntax error at line {mark.line + 1}, column {mark.column + 1}: {err.problem}"  # type: ignore[attr-defined]
