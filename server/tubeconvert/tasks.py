from __future__ import annotations

from typing import Dict

from celery import Celery
from celery.utils.log import get_task_logger
from redis import Redis

from .config import get_settings
from .job_state import Job, JobEventPublisher
from .poller import JobPoller, PollPolicy
from .providers import ProviderKind, build_provider

logger = get_task_logger(__name__)

settings = get_settings()
celery_app = Celery(
    "tubeconvert",
    broker=settings.redis_url,
)
celery_app.conf.update(
    task_ignore_result=True,
    worker_hijack_root_logger=False,
    worker_prefetch_multiplier=1,
)


def _open_redis() -> Redis:
    return Redis.from_url(settings.redis_url, encoding="utf-8", decode_responses=True)


@celery_app.task(name="tubeconvert.tasks.watch_job", bind=True)
def watch_job(self, job_id: str) -> Dict[str, object]:
    """Poll a provider job to completion, publishing every snapshot."""
    provider = build_provider(settings)
    redis_client = _open_redis()
    publisher = JobEventPublisher(redis_client)
    job = Job(job_id=job_id)
    try:
        if provider.kind is not ProviderKind.JOB:
            job.mark_failed(f"Provider {settings.provider} does not run conversion jobs")
            publisher.publish(job)
            return job.to_dict()

        poller = JobPoller(provider, PollPolicy.from_settings(settings), on_update=publisher.publish)
        poller.run(job)
        logger.info("Job %s ended as %s after %d polls", job_id, job.status.value, job.attempts)
        return job.to_dict()
    except Exception as exc:
        logger.exception("Watching job %s failed", job_id)
        if not job.status.is_terminal:
            job.mark_failed(str(exc))
        try:
            publisher.publish(job)
        except Exception:
            logger.exception("Could not publish the failure of job %s", job_id)
        raise
    finally:
        try:
            provider.close()
        finally:
            redis_client.close()
