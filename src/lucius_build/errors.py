"""Custom exception hierarchy for lucius-build.

This module defines the exception classes raised by the build pipeline:
- LuciusBuildError: Base exception for all lucius-build errors
- ConfigurationError: Raised when lucius.yaml cannot be loaded or validated
- SourceTreeError: Raised when the build context is unusable
- EngineError: Raised when the container engine fails or is unreachable
- CompilationFailure: Raised when the Build Stage cannot produce the artifact
- PackagingFailure: Raised when the Runtime Stage cannot assemble the image
- PipelineStateError: Raised on an illegal pipeline state transition

User-facing messages are safe to display. Technical details (engine
responses, compiler output) are logged internally via structlog.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from lucius_build.models import PipelineResult

logger = structlog.get_logger(__name__)


class LuciusBuildError(Exception):
    """Base exception for lucius-build.

    Args:
        user_message: Safe message to display to the user.
        internal_details: Optional technical details for logging. This is
            logged internally but never part of the user message.

    Example:
        >>> raise LuciusBuildError(
        ...     "Build failed",
        ...     internal_details="docker API returned 500 on /containers/create",
        ... )
    """

    def __init__(
        self,
        user_message: str,
        *,
        internal_details: str | None = None,
    ) -> None:
        super().__init__(user_message)
        self.user_message = user_message
        self.internal_details = internal_details
        self.result: PipelineResult | None = None

        if internal_details:
            logger.error(
                "lucius_build_error",
                error_type=self.__class__.__name__,
                user_message=user_message,
                internal_details=internal_details,
            )


class ConfigurationError(LuciusBuildError):
    """Raised when lucius.yaml parsing or validation fails.

    Attributes:
        file_path: Path to the configuration file (if known).
        field_path: Dot-separated path to the invalid field (e.g., "build.workdir").

    Example:
        >>> raise ConfigurationError(
        ...     "Build workdir must be absolute",
        ...     file_path="lucius.yaml",
        ...     field_path="build.workdir",
        ... )
    """

    def __init__(
        self,
        user_message: str,
        *,
        file_path: str | None = None,
        field_path: str | None = None,
        internal_details: str | None = None,
    ) -> None:
        context_parts: list[str] = []
        if file_path:
            context_parts.append(f"in {file_path}")
        if field_path:
            context_parts.append(f"field '{field_path}'")

        if context_parts:
            full_message = f"{user_message} ({', '.join(context_parts)})"
        else:
            full_message = user_message

        super().__init__(full_message, internal_details=internal_details)

        self.file_path = file_path
        self.field_path = field_path


class SourceTreeError(LuciusBuildError):
    """Raised when the source tree (build context) is missing or unreadable."""


class EngineError(LuciusBuildError):
    """Raised when the container engine is unreachable or an API call fails."""


class ArtifactNotFoundError(EngineError):
    """Raised by an engine when a requested path does not exist in a container.

    Attributes:
        path: Absolute path that was requested.
    """

    def __init__(self, path: str, *, internal_details: str | None = None) -> None:
        super().__init__(f"Path not found in container: {path}", internal_details=internal_details)
        self.path = path


class CompilationFailure(LuciusBuildError):
    """Raised when the Build Stage cannot produce the compiled artifact.

    Signals a defect in the source tree or a toolchain mismatch. Never
    retried; no artifact is handed to the Runtime Stage.

    Attributes:
        exit_code: Exit status of the build command, if it ran.
        log_tail: Last lines of compiler output.

    Example:
        >>> raise CompilationFailure(
        ...     "Compilation failed with exit code 101",
        ...     exit_code=101,
        ...     log_tail=["error[E0425]: cannot find value `x` in this scope"],
        ... )
    """

    def __init__(
        self,
        user_message: str,
        *,
        exit_code: int | None = None,
        log_tail: list[str] | None = None,
        internal_details: str | None = None,
    ) -> None:
        super().__init__(user_message, internal_details=internal_details)
        self.exit_code = exit_code
        self.log_tail = log_tail or []


class PackagingFailure(LuciusBuildError):
    """Raised when the Runtime Stage cannot locate, copy, or package the artifact.

    Signals a broken contract between the stages, e.g. a path mismatch
    between the configured artifact path and what the build produced.

    Attributes:
        artifact_path: Artifact path the Runtime Stage tried to copy.
    """

    def __init__(
        self,
        user_message: str,
        *,
        artifact_path: str | None = None,
        internal_details: str | None = None,
    ) -> None:
        super().__init__(user_message, internal_details=internal_details)
        self.artifact_path = artifact_path


class PipelineStateError(LuciusBuildError):
    """Raised when the pipeline attempts a transition its state machine forbids.

    Attributes:
        current: State the pipeline was in.
        target: State that was requested.
    """

    def __init__(self, current: str, target: str) -> None:
        super().__init__(f"Illegal pipeline transition: {current} -> {target}")
        self.current = current
        self.target = target
