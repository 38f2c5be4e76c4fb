"""Check suite runner."""

from __future__ import annotations

from datetime import UTC, datetime
import time
from typing import TYPE_CHECKING

import structlog

from lucius_build.checks.models import CheckResult, CheckStatus, CheckSuiteResult

if TYPE_CHECKING:
    from collections.abc import Sequence

    from lucius_build.checks.base import BaseCheck

logger = structlog.get_logger(__name__)


def determine_overall_status(results: Sequence[CheckResult]) -> CheckStatus:
    """Determine the overall status from individual check results.

    ERROR outranks FAILED, which outranks WARNING. A suite where nothing
    ran, or everything was skipped, is SKIPPED.
    """
    if not results:
        return CheckStatus.SKIPPED
    if any(r.status == CheckStatus.ERROR for r in results):
        return CheckStatus.ERROR
    if any(r.status == CheckStatus.FAILED for r in results):
        return CheckStatus.FAILED
    if any(r.status == CheckStatus.WARNING for r in results):
        return CheckStatus.WARNING
    if all(r.status == CheckStatus.SKIPPED for r in results):
        return CheckStatus.SKIPPED
    return CheckStatus.PASSED


def run_checks(
    suite: str,
    checks: Sequence[BaseCheck],
    *,
    fail_fast: bool = False,
) -> CheckSuiteResult:
    """Run checks in order and aggregate their results.

    Args:
        suite: Suite name for the result and logs.
        checks: Checks to run.
        fail_fast: Stop after the first failed check.

    Returns:
        CheckSuiteResult with all executed check outcomes.
    """
    log = logger.bind(suite=suite)
    start_time = time.monotonic()
    started_at = datetime.now(UTC)
    results: list[CheckResult] = []

    log.info("suite_started", count=len(checks), fail_fast=fail_fast)

    for check in checks:
        result = check.run()
        results.append(result)
        if fail_fast and result.failed:
            log.warning("fail_fast_triggered", check=check.name, status=result.status.value)
            break

    overall_status = determine_overall_status(results)
    total_duration_ms = int((time.monotonic() - start_time) * 1000)

    log.info(
        "suite_completed",
        overall_status=overall_status.value,
        total_duration_ms=total_duration_ms,
        passed=sum(1 for r in results if r.passed),
        failed=sum(1 for r in results if r.failed),
    )

    return CheckSuiteResult(
        suite=suite,
        checks=results,
        overall_status=overall_status,
        started_at=started_at,
        finished_at=datetime.now(UTC),
        total_duration_ms=total_duration_ms,
    )
