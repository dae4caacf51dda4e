"""Enqueue and status operations behind the plan job endpoints."""
from __future__ import annotations

import logging
from typing import Optional
from uuid import UUID

from challenge_planner.observability.metrics import log_metric
from challenge_planner.observability.tracing import trace
from challenge_planner.services.errors import InvalidRequest, JobNotFound
from challenge_planner.services.job_store import JobRecord, JobStore


logger = logging.getLogger(__name__)


def enqueue_plan_job(
    store: JobStore,
    *,
    prompt: Optional[str],
    purpose: Optional[str] = None,
    familiarity: Optional[str] = None,
    agent: Optional[str] = None,
    model: Optional[str] = None,
    user_id: Optional[UUID] = None,
) -> JobRecord:
    """Insert a pending job and return it without waiting for generation."""
    cleaned_prompt = (prompt or "").strip()
    if not cleaned_prompt:
        raise InvalidRequest("Prompt is required")

    metadata = {
        "prompt_length": len(cleaned_prompt),
        "agent": _clean(agent) or "default",
        "has_purpose": bool(_clean(purpose)),
    }
    with trace("plan_jobs.enqueue", metadata=metadata):
        job = store.enqueue(
            prompt=cleaned_prompt,
            purpose=_clean(purpose),
            familiarity=_clean(familiarity),
            agent=_clean(agent),
            model=_clean(model),
            user_id=user_id,
        )
    logger.info("Queued plan job %s (agent=%s, model=%s)", job.id, job.agent, job.model)
    log_metric("plan_jobs.enqueued", 1, {"agent": job.agent or "default"})
    return job


def get_plan_job(store: JobStore, job_id: UUID | str) -> JobRecord:
    """Return the job or raise :class:`JobNotFound`; read-only."""
    parsed = _parse_job_id(job_id)
    with trace("plan_jobs.status", job_id=str(job_id)):
        job = store.get(parsed) if parsed else None
    if job is None:
        raise JobNotFound(job_id)
    return job


def _parse_job_id(job_id: UUID | str) -> Optional[UUID]:
    if isinstance(job_id, UUID):
        return job_id
    cleaned = (job_id or "").strip()
    if not cleaned:
        raise InvalidRequest("jobId is required")
    try:
        return UUID(cleaned)
    except ValueError:
        return None


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None
