from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from redis import Redis

from .errors import JobStateError


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def job_events_channel(job_id: str) -> str:
    return f"job:{job_id}:events"


class JobStatus(str, Enum):
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self is not JobStatus.PENDING


@dataclass
class Job:
    """A provider-side conversion job, alive only as long as its poll loop."""

    job_id: str
    status: JobStatus = JobStatus.PENDING
    status_text: str = ""
    result_url: Optional[str] = None
    error: Optional[str] = None
    attempts: int = 0
    consecutive_errors: int = 0

    def _ensure_pending(self) -> None:
        if self.status.is_terminal:
            raise JobStateError(f"Job {self.job_id} is already {self.status.value}")

    def record_pending(self, text: str = "") -> None:
        self._ensure_pending()
        self.consecutive_errors = 0
        self.error = None
        if text:
            self.status_text = text

    def record_transient_error(self, message: str) -> None:
        self._ensure_pending()
        self.consecutive_errors += 1
        self.error = message

    def mark_succeeded(self, result_url: str, text: str = "") -> None:
        self._ensure_pending()
        self.status = JobStatus.SUCCEEDED
        self.result_url = result_url
        self.error = None
        self.consecutive_errors = 0
        if text:
            self.status_text = text

    def mark_failed(self, reason: str, text: str = "") -> None:
        self._ensure_pending()
        self.status = JobStatus.FAILED
        self.error = reason
        if text:
            self.status_text = text

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.job_id,
            "status": self.status.value,
            "text": self.status_text,
            "download_url": self.result_url,
            "error": self.error,
            "attempts": self.attempts,
        }


class JobEventPublisher:
    """Publishes job snapshots on Redis pub/sub; nothing is stored."""

    def __init__(self, client: Redis):
        self.client = client

    def publish(self, job: Job) -> None:
        payload = {
            "timestamp": _now_iso(),
            "event": job.status.value,
            **job.to_dict(),
        }
        self.client.publish(job_events_channel(job.job_id), json.dumps(payload))
