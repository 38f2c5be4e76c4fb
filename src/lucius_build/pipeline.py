"""Pipeline runner.

Runs the Build Stage and then the Runtime Stage, strictly in that order,
and drives the state machine::

    NOT_STARTED -> BUILDING -> BUILT | BUILD_FAILED
    BUILT -> PACKAGING -> READY | PACKAGE_FAILED

Every transition is one-shot. A failed run is not retried; running again
means a new PipelineRunner.
"""

from __future__ import annotations

from datetime import UTC, datetime
from pathlib import Path
import time
from typing import TYPE_CHECKING, Any

import structlog

from lucius_build.errors import EngineError, LuciusBuildError, PipelineStateError
from lucius_build.models import (
    ALLOWED_TRANSITIONS,
    CompiledArtifact,
    PipelineResult,
    PipelineState,
    RuntimeImage,
    StageResult,
    StateTransition,
)
from lucius_build.source import SourceTree
from lucius_build.stages import BuildStage, RuntimeStage

if TYPE_CHECKING:
    from lucius_build.config import PipelineConfig
    from lucius_build.engine.base import ContainerEngine
    from lucius_build.stages.base import Stage

logger = structlog.get_logger(__name__)


class PipelineRunner:
    """Orchestrates one run of the two-stage build.

    Attributes:
        config: Pipeline configuration.
        engine: Container engine both stages run against.
        source: Source tree handed to the Build Stage.
        state: Current state of the run.

    Example:
        >>> runner = PipelineRunner(PipelineConfig.default(), DockerEngine(), SourceTree("."))
        >>> result = runner.run()
        >>> result.image.tag
        'lucius-mcp-worker:latest'
    """

    def __init__(
        self,
        config: PipelineConfig,
        engine: ContainerEngine,
        source: SourceTree,
    ) -> None:
        self.config = config
        self.engine = engine
        self.source = source
        self.state = PipelineState.NOT_STARTED
        self._transitions: list[StateTransition] = []
        self._stage_results: list[StageResult] = []
        self._log = logger.bind(component="pipeline_runner", pipeline=config.name)

    def _transition(self, target: PipelineState) -> None:
        """Move the state machine, rejecting transitions it does not allow."""
        if target not in ALLOWED_TRANSITIONS[self.state]:
            raise PipelineStateError(self.state.value, target.value)
        self._transitions.append(StateTransition(source=self.state, target=target))
        self._log.info("pipeline_state_changed", source=self.state.value, target=target.value)
        self.state = target

    def _record(self, stage: Stage[Any, Any]) -> None:
        if stage.last_result is not None:
            self._stage_results.append(stage.last_result)

    def run(self) -> PipelineResult:
        """Run the Build Stage, then the Runtime Stage.

        Returns:
            PipelineResult in state READY.

        Raises:
            PipelineStateError: If this runner has already been used.
            CompilationFailure: If the Build Stage fails. State BUILD_FAILED.
            PackagingFailure: If the Runtime Stage fails. State PACKAGE_FAILED.
            LuciusBuildError: Any other stage failure, recorded the same way.
            The partial PipelineResult is attached as ``error.result``.
        """
        if self.state != PipelineState.NOT_STARTED:
            raise PipelineStateError(self.state.value, PipelineState.BUILDING.value)

        start_time = time.monotonic()
        started_at = datetime.now(UTC)
        artifact: CompiledArtifact | None = None
        image: RuntimeImage | None = None

        self._log.info("pipeline_started", source=str(self.source.root))

        build_stage = BuildStage(self.config, self.engine)
        runtime_stage = RuntimeStage(self.config, self.engine)

        try:
            self._transition(PipelineState.BUILDING)
            try:
                build_output = build_stage.run(self.source)
            except LuciusBuildError:
                self._record(build_stage)
                self._transition(PipelineState.BUILD_FAILED)
                raise
            self._record(build_stage)
            self._transition(PipelineState.BUILT)

            self._transition(PipelineState.PACKAGING)
            try:
                artifact, image = runtime_stage.run(build_output)
            except LuciusBuildError:
                self._record(runtime_stage)
                self._transition(PipelineState.PACKAGE_FAILED)
                raise
            self._record(runtime_stage)
            self._transition(PipelineState.READY)

        except LuciusBuildError as e:
            e.result = self._result(started_at, start_time, artifact, image)
            self._log.error("pipeline_failed", state=self.state.value, error=e.user_message)
            raise

        finally:
            self._discard_builder(build_stage)

        result = self._result(started_at, start_time, artifact, image)
        self._log.info(
            "pipeline_completed",
            tag=image.tag if image else None,
            total_duration_ms=result.total_duration_ms,
        )
        return result

    def _discard_builder(self, build_stage: BuildStage) -> None:
        """Remove the ephemeral builder container, whatever the outcome."""
        if build_stage.container_id is None:
            return
        try:
            self.engine.remove_container(build_stage.container_id)
        except EngineError as e:
            # Cleanup failure does not change the run outcome
            self._log.warning(
                "builder_cleanup_failed",
                container_id=build_stage.container_id,
                error=e.user_message,
            )
        else:
            self._log.debug("builder_removed", container_id=build_stage.container_id)

    def _result(
        self,
        started_at: datetime,
        start_time: float,
        artifact: CompiledArtifact | None,
        image: RuntimeImage | None,
    ) -> PipelineResult:
        return PipelineResult(
            name=self.config.name,
            state=self.state,
            stages=list(self._stage_results),
            transitions=list(self._transitions),
            artifact=artifact,
            image=image,
            started_at=started_at,
            finished_at=datetime.now(UTC),
            total_duration_ms=int((time.monotonic() - start_time) * 1000),
        )


def run_pipeline(
    config: PipelineConfig,
    engine: ContainerEngine | None = None,
    base_dir: str | Path | None = None,
) -> PipelineResult:
    """Run the pipeline with the given configuration.

    Convenience function that resolves the source tree, creates the
    engine if needed, and runs a fresh PipelineRunner.

    Args:
        config: Pipeline configuration.
        engine: Container engine. Docker is used if None.
        base_dir: Directory the source context is relative to.

    Returns:
        PipelineResult of a successful run.

    Example:
        >>> result = run_pipeline(PipelineConfig.default())
        >>> result.succeeded
        True
    """
    if engine is None:
        from lucius_build.engine import create_engine

        engine = create_engine()

    source = SourceTree.from_config(config.source, base_dir=Path(base_dir) if base_dir else None)
    return PipelineRunner(config, engine, source).run()
