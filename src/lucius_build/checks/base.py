"""Base class for checks.

Provides common functionality for running checks with timing,
error handling, and logging.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import UTC, datetime
import time
from typing import Any

import structlog

from lucius_build.checks.models import CheckResult, CheckStatus
from lucius_build.errors import LuciusBuildError

logger = structlog.get_logger(__name__)


class BaseCheck(ABC):
    """Base class for checks.

    A check never raises: anything that goes wrong while checking is
    reported as an ERROR result.

    Attributes:
        name: Check name for identification

    Example:
        >>> class MyCheck(BaseCheck):
        ...     def _execute(self) -> CheckResult:
        ...         return self._make_result(CheckStatus.PASSED, "ok")
    """

    def __init__(self, name: str) -> None:
        self.name = name
        self._log = logger.bind(check=name)

    def run(self) -> CheckResult:
        """Run the check with timing and error handling.

        Returns:
            CheckResult with status, message, and duration.
        """
        start_time = time.monotonic()
        timestamp = datetime.now(UTC)

        self._log.info("check_started")

        try:
            result = self._execute()
        except LuciusBuildError as e:
            duration_ms = int((time.monotonic() - start_time) * 1000)
            self._log.error("check_error", error=e.user_message)
            return CheckResult(
                name=self.name,
                status=CheckStatus.ERROR,
                message=e.user_message,
                details={"error_type": type(e).__name__},
                duration_ms=duration_ms,
                timestamp=timestamp,
            )
        except Exception as e:
            duration_ms = int((time.monotonic() - start_time) * 1000)
            self._log.error("check_error", error=str(e))
            return CheckResult(
                name=self.name,
                status=CheckStatus.ERROR,
                message=f"Check failed with error: {type(e).__name__}",
                details={"error": str(e), "error_type": type(e).__name__},
                duration_ms=duration_ms,
                timestamp=timestamp,
            )

        duration_ms = int((time.monotonic() - start_time) * 1000)
        final_result = result.model_copy(
            update={"duration_ms": duration_ms, "timestamp": timestamp}
        )
        self._log.info(
            "check_completed",
            status=final_result.status.value,
            duration_ms=duration_ms,
        )
        return final_result

    @abstractmethod
    def _execute(self) -> CheckResult:
        """Execute the actual check logic.

        Returns:
            CheckResult with the check outcome.
        """

    def _make_result(
        self,
        status: CheckStatus,
        message: str = "",
        details: dict[str, Any] | None = None,
    ) -> CheckResult:
        """Create a CheckResult with common fields."""
        return CheckResult(
            name=self.name,
            status=status,
            message=message,
            details=details or {},
        )
