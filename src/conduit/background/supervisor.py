"""Background retry supervisor for long-running capability invocations.

Jobs run outside the chat turn. Each job gets a fixed number of attempts;
a failure that looks like a lost acknowledgment triggers a best-effort scan
for the artifact before the attempt is counted as failed. Progress and the
terminal outcome go to an ``OutcomeSink``.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

from conduit.background.artifacts import (
    ArtifactExpectation,
    reported_artifact,
    scan_for_artifact,
)
from conduit.capabilities.providers.base import is_timeout_like
from conduit.capabilities.router import InvocationRouter
from conduit.config.models import BackgroundConfig

logger = logging.getLogger(__name__)


class OutcomeStatus(str, Enum):
    RUNNING = "running"
    RETRYING = "retrying"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class LongRunningJob:
    user_id: str
    chat_id: str | int
    capability_name: str
    arguments: dict[str, Any]
    artifact: ArtifactExpectation | None = None


@dataclass(frozen=True, slots=True)
class BackgroundOutcome:
    """Progress or terminal event for one job.

    ``recovered`` marks a success found by the artifact scan after a
    timeout-like failure. ``retry_in_seconds`` is set on RETRYING events.
    """

    job: LongRunningJob
    status: OutcomeStatus
    attempt: int
    max_attempts: int
    artifact_path: Path | None = None
    recovered: bool = False
    error: str | None = None
    retry_in_seconds: float | None = None
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def is_terminal(self) -> bool:
        return self.status in (OutcomeStatus.SUCCEEDED, OutcomeStatus.FAILED)


OutcomeSink = Callable[[BackgroundOutcome], Awaitable[None]]


class _AttemptFailed(Exception):
    pass


class BackgroundSupervisor:
    """Runs long-running jobs with retries and timeout recovery."""

    def __init__(
        self,
        router: InvocationRouter,
        sink: OutcomeSink,
        config: BackgroundConfig | None = None,
    ) -> None:
        self._router = router
        self._sink = sink
        self._config = config or BackgroundConfig()
        self._semaphore = asyncio.Semaphore(self._config.max_concurrent)
        self._tasks: set[asyncio.Task[BackgroundOutcome]] = set()

    @property
    def active_count(self) -> int:
        return len(self._tasks)

    def submit(self, job: LongRunningJob) -> asyncio.Task[BackgroundOutcome]:
        """Schedule a job and return its task.

        The task resolves to the terminal outcome, which is also published.
        """
        task = asyncio.create_task(
            self._run_job(job), name=f"background:{job.capability_name}"
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        logger.info(
            "background_job_submitted",
            extra={
                "user.id": job.user_id,
                "gen_ai.tool.name": job.capability_name,
                "job.active": self.active_count,
            },
        )
        return task

    async def wait_idle(self) -> None:
        """Wait for every submitted job to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def shutdown(self) -> None:
        """Cancel outstanding jobs."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.info("background_jobs_cancelled", extra={"job.count": len(tasks)})

    async def _run_job(self, job: LongRunningJob) -> BackgroundOutcome:
        async with self._semaphore:
            outcome = await self._attempt_all(job)
        await self._publish(outcome)
        return outcome

    async def _attempt_all(self, job: LongRunningJob) -> BackgroundOutcome:
        max_attempts = self._config.max_attempts
        last_error = "Unknown error"
        log_extra = {"user.id": job.user_id, "gen_ai.tool.name": job.capability_name}

        for attempt in range(1, max_attempts + 1):
            if attempt > 1:
                await asyncio.sleep(self._config.retry_delay_seconds)
            await self._publish(
                BackgroundOutcome(
                    job=job,
                    status=OutcomeStatus.RUNNING,
                    attempt=attempt,
                    max_attempts=max_attempts,
                )
            )
            logger.info(
                "background_attempt_started",
                extra={**log_extra, "attempt": attempt, "max_attempts": max_attempts},
            )

            try:
                path, details = await self._attempt(job)
                logger.info(
                    "background_job_succeeded",
                    extra={**log_extra, "attempt": attempt, "file.path": str(path)},
                )
                return BackgroundOutcome(
                    job=job,
                    status=OutcomeStatus.SUCCEEDED,
                    attempt=attempt,
                    max_attempts=max_attempts,
                    artifact_path=path,
                    details=details,
                )
            except asyncio.CancelledError:
                raise
            except Exception as e:
                last_error = str(e) or type(e).__name__
                logger.error(
                    "background_attempt_failed",
                    extra={**log_extra, "attempt": attempt, "error.message": last_error},
                )
                if is_timeout_like(e) and job.artifact is not None:
                    recovered = await self._recover_after_timeout(job.artifact)
                    if recovered is not None:
                        logger.warning(
                            "background_job_recovered",
                            extra={**log_extra, "file.path": str(recovered)},
                        )
                        return BackgroundOutcome(
                            job=job,
                            status=OutcomeStatus.SUCCEEDED,
                            attempt=attempt,
                            max_attempts=max_attempts,
                            artifact_path=recovered,
                            recovered=True,
                        )

            if attempt < max_attempts:
                delay = (2**attempt) * self._config.backoff_base_seconds
                await self._publish(
                    BackgroundOutcome(
                        job=job,
                        status=OutcomeStatus.RETRYING,
                        attempt=attempt,
                        max_attempts=max_attempts,
                        error=last_error,
                        retry_in_seconds=delay,
                    )
                )
                await asyncio.sleep(delay)

        logger.error(
            "background_job_failed",
            extra={**log_extra, "max_attempts": max_attempts, "error.message": last_error},
        )
        return BackgroundOutcome(
            job=job,
            status=OutcomeStatus.FAILED,
            attempt=max_attempts,
            max_attempts=max_attempts,
            error=last_error,
        )

    async def _attempt(self, job: LongRunningJob) -> tuple[Path | None, dict[str, Any]]:
        result = await self._router.invoke(job.capability_name, job.arguments)
        expectation = job.artifact
        if expectation is None:
            return None, {}

        if expectation.result_key:
            path, details = reported_artifact(result, expectation.result_key)
            if path is not None:
                if path.exists():
                    return path, details
                raise _AttemptFailed(f"Reported artifact not found: {path}")

        path = scan_for_artifact(expectation)
        if path is None:
            raise _AttemptFailed(
                f"No artifact matching {expectation.pattern} in {expectation.directory}"
            )
        return path, {}

    async def _recover_after_timeout(self, expectation: ArtifactExpectation) -> Path | None:
        logger.warning(
            "background_timeout_recovery",
            extra={
                "file.pattern": expectation.pattern,
                "grace_seconds": self._config.grace_period_seconds,
            },
        )
        await asyncio.sleep(self._config.grace_period_seconds)
        return scan_for_artifact(expectation)

    async def _publish(self, outcome: BackgroundOutcome) -> None:
        try:
            await self._sink(outcome)
        except Exception as e:
            logger.error(
                "background_outcome_delivery_failed",
                extra={
                    "user.id": outcome.job.user_id,
                    "outcome.status": outcome.status.value,
                    "error.message": str(e),
                },
            )
