"""
Job polling.

Drives a ``Job`` from ``pending`` to a terminal state by repeatedly asking a
job provider for progress. Transport failures while polling are transient:
they never fail the job on their own, but the loop is bounded both by a
count of consecutive transient failures and by a wall-clock ceiling.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional

from .config import Settings
from .errors import ProviderUnavailableError
from .job_state import Job, JobStatus
from .providers.base import JobProvider

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PollPolicy:
    interval_seconds: float = 3.0
    max_consecutive_errors: int = 10
    timeout_seconds: float = 900.0

    @classmethod
    def from_settings(cls, settings: Settings) -> "PollPolicy":
        return cls(
            interval_seconds=settings.poll_interval_seconds,
            max_consecutive_errors=settings.poll_max_consecutive_errors,
            timeout_seconds=settings.poll_timeout_seconds,
        )


class JobPoller:
    def __init__(
        self,
        provider: JobProvider,
        policy: Optional[PollPolicy] = None,
        *,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
        on_update: Optional[Callable[[Job], None]] = None,
    ):
        self.provider = provider
        self.policy = policy or PollPolicy()
        self._sleep = sleep
        self._clock = clock
        self._on_update = on_update

    def step(self, job: Job) -> Job:
        """Poll once and apply the resulting transition."""
        if job.status.is_terminal:
            return job

        job.attempts += 1
        try:
            update = self.provider.check_progress(job.job_id)
        except ProviderUnavailableError as exc:
            job.record_transient_error(exc.detail)
            logger.warning(
                "Progress check %d for job %s failed (%d in a row): %s",
                job.attempts,
                job.job_id,
                job.consecutive_errors,
                exc.detail,
            )
            return job

        if update.status is JobStatus.SUCCEEDED and update.result_url:
            job.mark_succeeded(update.result_url, update.text)
            logger.info("Job %s finished: %s", job.job_id, update.result_url)
        elif update.status is JobStatus.FAILED:
            job.mark_failed(update.text or "Provider reported a failure", update.text)
            logger.warning("Job %s failed: %s", job.job_id, job.error)
        else:
            job.record_pending(update.text)
            logger.info("Job %s pending: %s", job.job_id, update.text or "no status text")
        return job

    def run(self, job: Job) -> Job:
        deadline = self._clock() + self.policy.timeout_seconds
        while True:
            self.step(job)
            self._notify(job)
            if job.status.is_terminal:
                return job

            if job.consecutive_errors >= self.policy.max_consecutive_errors:
                job.mark_failed(f"Progress checks failed {job.consecutive_errors} times in a row")
            elif self._clock() >= deadline:
                job.mark_failed(f"Timed out after {self.policy.timeout_seconds:g} seconds")
            if job.status.is_terminal:
                logger.warning("Giving up on job %s: %s", job.job_id, job.error)
                self._notify(job)
                return job

            self._sleep(self.policy.interval_seconds)

    def _notify(self, job: Job) -> None:
        if self._on_update is not None:
            self._on_update(job)
