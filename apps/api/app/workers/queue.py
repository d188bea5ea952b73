from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from redis import Redis
from rq import Queue, Retry

from app.core.config import Settings, get_settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EnqueuedJob:
    """Where a job went. `inline` jobs already ran in this process and carry their return value."""

    job_id: str
    inline: bool = False
    result: Any = None


def _get_queue(settings: Settings) -> Queue:
    conn = Redis.from_url(settings.redis_url)
    return Queue(settings.queue_name, connection=conn, default_timeout=settings.queue_job_timeout_seconds)


def _run_inline(job_name: str, *args: Any) -> Any:
    from app.workers import jobs

    return getattr(jobs, job_name)(*args)


def enqueue_job(job_name: str, *args: Any, description: str | None = None) -> EnqueuedJob:
    """Hand a job from `app.workers.jobs` to rq; run it in-process when inline or when Redis is down.

    Errors raised by an in-process run propagate to the caller.
    """
    settings = get_settings()
    if settings.queue_mode == "inline":
        return EnqueuedJob(job_id=f"inline-{job_name}", inline=True, result=_run_inline(job_name, *args))

    try:
        retry = None
        if settings.queue_retry_max > 0:
            retry = Retry(max=settings.queue_retry_max, interval=settings.queue_retry_interval_seconds)
        job = _get_queue(settings).enqueue(
            f"app.workers.jobs.{job_name}",
            *args,
            retry=retry,
            description=description,
        )
    except Exception:
        logger.exception("redis_enqueue_failed_falling_back_inline", extra={"job_name": job_name})
        return EnqueuedJob(job_id=f"fallback-inline-{job_name}", inline=True, result=_run_inline(job_name, *args))
    logger.info("enqueued_job", extra={"job_name": job_name, "job_id": job.id, "queue": settings.queue_name})
    return EnqueuedJob(job_id=job.id)


def enqueue_learning(payload: dict[str, Any]) -> EnqueuedJob:
    conversation_id = payload.get("conversationId") or payload.get("conversation_id")
    return enqueue_job("learn_from_call", payload, description=f"learn conversation {conversation_id}")
