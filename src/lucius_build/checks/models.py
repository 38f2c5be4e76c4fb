"""Check result models.

``lucius-build preflight`` runs its checks against the configuration and
build context before any container starts; ``lucius-build verify`` runs
its checks against a tagged runtime image. Both report through the
models here, so the text and JSON renderers only deal with one shape.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class CheckStatus(str, Enum):
    """Outcome of one check, or of a whole suite.

    Attributes:
        PASSED: The property holds (e.g. the image runs the artifact as PID 1).
        FAILED: The property does not hold; the message says what was found.
        SKIPPED: Not run, usually because the image under test is missing.
        WARNING: Usable but suspicious, such as an artifact name that is not
            a plain program name.
        ERROR: The engine could not answer (lookup or export failed).
    """

    PASSED = "passed"
    FAILED = "failed"
    SKIPPED = "skipped"
    WARNING = "warning"
    ERROR = "error"


_OK_STATUSES = (CheckStatus.PASSED, CheckStatus.SKIPPED, CheckStatus.WARNING)
_FAILED_STATUSES = (CheckStatus.FAILED, CheckStatus.ERROR)


class CheckResult(BaseModel):
    """Result of a single check.

    ``details`` holds what the check looked at (the image ``Cmd``, added
    files, leaked toolchain paths) so JSON output can be acted on without
    parsing ``message``.

    Example:
        >>> CheckResult(
        ...     name="no_toolchain",
        ...     status=CheckStatus.FAILED,
        ...     message="Toolchain paths present in image: /usr/local/cargo",
        ...     details={"found": ["/usr/local/cargo"]},
        ... ).failed
        True
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str = Field(..., min_length=1, description="Check name, e.g. 'single_artifact'")
    status: CheckStatus = Field(..., description="Outcome")
    message: str = Field(default="", description="One line for the console")
    details: dict[str, Any] = Field(default_factory=dict, description="Inspected values")
    duration_ms: int = Field(default=0, ge=0, description="Wall time of the check")
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(UTC), description="When the check started"
    )

    @property
    def passed(self) -> bool:
        """Skipped and warning results do not fail a suite."""
        return self.status in _OK_STATUSES

    @property
    def failed(self) -> bool:
        return self.status in _FAILED_STATUSES


class CheckSuiteResult(BaseModel):
    """All results of one ``preflight`` or ``verify`` run.

    ``overall_status`` is computed by the runner from the individual
    results; a single FAILED or ERROR check fails the suite and the
    command exits with 1.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    suite: str = Field(..., min_length=1, description="'preflight' or 'verify'")
    checks: list[CheckResult] = Field(default_factory=list, description="Results in run order")
    overall_status: CheckStatus = Field(default=CheckStatus.PASSED, description="Suite outcome")
    started_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC), description="When the first check started"
    )
    finished_at: datetime | None = Field(default=None, description="When the last check ended")
    total_duration_ms: int = Field(default=0, ge=0, description="Sum of check durations")

    @property
    def passed(self) -> bool:
        return self.overall_status in (CheckStatus.PASSED, CheckStatus.WARNING)

    @property
    def failed(self) -> bool:
        return self.overall_status in _FAILED_STATUSES

    @property
    def passed_count(self) -> int:
        return sum(1 for c in self.checks if c.passed)

    @property
    def failed_count(self) -> int:
        return sum(1 for c in self.checks if c.failed)
