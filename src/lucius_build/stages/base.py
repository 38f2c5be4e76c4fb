"""Base class for pipeline stages.

Provides timing, structured logging, and result recording around a
stage's work. Failures are recorded and then re-raised: a failed stage
is fatal to the pipeline run.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
import time
from typing import TYPE_CHECKING, Any, Generic, TypeVar

import structlog

from lucius_build.errors import LuciusBuildError
from lucius_build.models import StageName, StageResult, StageStatus

if TYPE_CHECKING:
    from lucius_build.config import PipelineConfig
    from lucius_build.engine.base import ContainerEngine

logger = structlog.get_logger(__name__)

InputT = TypeVar("InputT")
OutputT = TypeVar("OutputT")


class Stage(ABC, Generic[InputT, OutputT]):
    """A single pipeline stage.

    Subclasses implement :meth:`_execute`, returning the stage output, a
    result message and result details.

    Attributes:
        name: Stage name.
        config: Pipeline configuration.
        engine: Container engine the stage runs against.
        last_result: Result of the most recent run, set on success and failure.

    Example:
        >>> class NoopStage(Stage[None, None]):
        ...     name = StageName.BUILD
        ...     def _execute(self, stage_input):
        ...         return None, "nothing to do", {}
    """

    name: StageName

    def __init__(self, config: PipelineConfig, engine: ContainerEngine) -> None:
        self.config = config
        self.engine = engine
        self.last_result: StageResult | None = None
        self._log = logger.bind(stage=self.name.value, pipeline=config.name)

    def run(self, stage_input: InputT) -> OutputT:
        """Run the stage with timing and failure recording.

        Args:
            stage_input: Output of the previous stage (or the source tree).

        Returns:
            The stage output.

        Raises:
            LuciusBuildError: Any stage failure, after it has been recorded.
        """
        start_time = time.monotonic()
        self._log.info("stage_started")

        try:
            output, message, details = self._execute(stage_input)
        except LuciusBuildError as e:
            duration_ms = int((time.monotonic() - start_time) * 1000)
            self.last_result = StageResult(
                stage=self.name,
                status=StageStatus.FAILED,
                message=e.user_message,
                details=self._failure_details(e),
                duration_ms=duration_ms,
            )
            self._log.error(
                "stage_failed",
                error_type=type(e).__name__,
                error=e.user_message,
                duration_ms=duration_ms,
            )
            raise

        duration_ms = int((time.monotonic() - start_time) * 1000)
        self.last_result = StageResult(
            stage=self.name,
            status=StageStatus.SUCCEEDED,
            message=message,
            details=details,
            duration_ms=duration_ms,
        )
        self._log.info("stage_completed", duration_ms=duration_ms)
        return output

    def _failure_details(self, error: LuciusBuildError) -> dict[str, Any]:
        """Collect result details from a stage failure."""
        return {"error_type": type(error).__name__}

    @abstractmethod
    def _execute(self, stage_input: InputT) -> tuple[OutputT, str, dict[str, Any]]:
        """Do the stage's work.

        Returns:
            Tuple of (output, result message, result details).

        Raises:
            LuciusBuildError: When the stage cannot complete.
        """
