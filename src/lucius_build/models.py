"""Pipeline result models.

Models describing what a pipeline run produced: the compiled artifact,
the runtime image, per-stage outcomes, and the state machine trail.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class PipelineState(str, Enum):
    """State of a pipeline run.

    A run moves NOT_STARTED -> BUILDING -> BUILT -> PACKAGING -> READY.
    BUILD_FAILED and PACKAGE_FAILED are terminal; retrying means starting
    a new run.
    """

    NOT_STARTED = "not_started"
    BUILDING = "building"
    BUILT = "built"
    BUILD_FAILED = "build_failed"
    PACKAGING = "packaging"
    READY = "ready"
    PACKAGE_FAILED = "package_failed"

    @property
    def terminal(self) -> bool:
        """Whether no further transition is allowed."""
        return self in TERMINAL_STATES


TERMINAL_STATES = frozenset(
    {PipelineState.BUILD_FAILED, PipelineState.READY, PipelineState.PACKAGE_FAILED}
)

ALLOWED_TRANSITIONS: dict[PipelineState, frozenset[PipelineState]] = {
    PipelineState.NOT_STARTED: frozenset({PipelineState.BUILDING}),
    PipelineState.BUILDING: frozenset({PipelineState.BUILT, PipelineState.BUILD_FAILED}),
    PipelineState.BUILT: frozenset({PipelineState.PACKAGING}),
    PipelineState.PACKAGING: frozenset({PipelineState.READY, PipelineState.PACKAGE_FAILED}),
    PipelineState.BUILD_FAILED: frozenset(),
    PipelineState.READY: frozenset(),
    PipelineState.PACKAGE_FAILED: frozenset(),
}


class StageName(str, Enum):
    """The two pipeline stages."""

    BUILD = "build"
    RUNTIME = "runtime"


class StageStatus(str, Enum):
    """Outcome of a single stage."""

    SUCCEEDED = "succeeded"
    FAILED = "failed"


class StateTransition(BaseModel):
    """One recorded move of the pipeline state machine."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    source: PipelineState
    target: PipelineState
    at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class BuildOutput(BaseModel):
    """Reference handed from the Build Stage to the Runtime Stage.

    The artifact itself stays in the builder container until the Runtime
    Stage copies it out.

    Attributes:
        container_id: Builder container holding the compiled artifact.
        artifact_path: Absolute path of the artifact inside the builder.
        log_tail: Last lines of build output.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    container_id: str = Field(..., min_length=1)
    artifact_path: str = Field(..., min_length=1)
    log_tail: list[str] = Field(default_factory=list)


class CompiledArtifact(BaseModel):
    """The single executable produced by the Build Stage.

    Attributes:
        name: File name of the executable.
        build_path: Absolute path inside the builder.
        size_bytes: Size of the executable.
        sha256: Hex digest of the executable content.
        mode: File mode bits as copied into the runtime image.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str = Field(..., min_length=1)
    build_path: str = Field(..., min_length=1)
    size_bytes: int = Field(..., ge=0)
    sha256: str = Field(..., min_length=64, max_length=64)
    mode: int = Field(default=0o755)


class RuntimeImage(BaseModel):
    """The tagged, deployable result of a pipeline run.

    Attributes:
        tag: Image tag.
        image_id: Engine image identifier.
        base_image: Base image the artifact was layered on.
        artifact_path: Absolute path of the artifact inside the image.
        command: Default command (exec form).
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    tag: str = Field(..., min_length=1)
    image_id: str = Field(..., min_length=1)
    base_image: str = Field(..., min_length=1)
    artifact_path: str = Field(..., min_length=1)
    command: list[str] = Field(..., min_length=1)


class StageResult(BaseModel):
    """Result of a single stage.

    Attributes:
        stage: Which stage ran.
        status: Stage outcome.
        message: Human-readable result message.
        details: Additional details (exit codes, paths, digests).
        duration_ms: Stage duration in milliseconds.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    stage: StageName
    status: StageStatus
    message: str = Field(default="")
    details: dict[str, Any] = Field(default_factory=dict)
    duration_ms: int = Field(default=0, ge=0)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @property
    def succeeded(self) -> bool:
        """Check if the stage succeeded."""
        return self.status == StageStatus.SUCCEEDED


class PipelineResult(BaseModel):
    """Aggregated result of a pipeline run.

    Attributes:
        name: Pipeline name.
        state: Final state of the run.
        stages: Stage results in execution order.
        transitions: State machine trail.
        artifact: The compiled artifact, once copied out of the builder.
        image: The runtime image, once tagged.
        started_at: When the run started.
        finished_at: When the run finished.
        total_duration_ms: Total duration in milliseconds.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str
    state: PipelineState
    stages: list[StageResult] = Field(default_factory=list)
    transitions: list[StateTransition] = Field(default_factory=list)
    artifact: CompiledArtifact | None = None
    image: RuntimeImage | None = None
    started_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    finished_at: datetime | None = None
    total_duration_ms: int = Field(default=0, ge=0)

    @property
    def succeeded(self) -> bool:
        """Check if the run produced a tagged image."""
        return self.state == PipelineState.READY

    def to_report(self) -> dict[str, Any]:
        """Return a JSON-compatible build report."""
        return self.model_dump(mode="json")
