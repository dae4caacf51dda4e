"""Durable job table operations for AI plan generation."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional
from uuid import UUID

from sqlalchemy import null, select, update
from sqlalchemy.orm import Session

from challenge_planner.db.models.generation_job import (
    STATUS_COMPLETED,
    STATUS_FAILED,
    STATUS_IN_PROGRESS,
    STATUS_PENDING,
    TERMINAL_STATUSES,
    GenerationJob,
)
from challenge_planner.db.types import as_utc, utcnow


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class JobRecord:
    """Detached snapshot of a job row."""

    id: UUID
    prompt: str
    purpose: Optional[str]
    familiarity: Optional[str]
    agent: Optional[str]
    model: Optional[str]
    status: str
    result: Optional[Dict[str, Any]]
    error: Optional[str]
    response_id: Optional[str]
    user_id: Optional[UUID]
    created_at: datetime
    updated_at: datetime

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


def _to_record(job: GenerationJob) -> JobRecord:
    return JobRecord(
        id=job.id,
        prompt=job.prompt,
        purpose=job.purpose,
        familiarity=job.familiarity,
        agent=job.agent,
        model=job.model,
        status=job.status,
        result=job.result,
        error=job.error,
        response_id=job.response_id,
        user_id=job.user_id,
        created_at=as_utc(job.created_at),
        updated_at=as_utc(job.updated_at),
    )


class JobStore:
    """Job persistence over a SQLAlchemy session factory.

    Each operation runs in its own short transaction so the store can be shared
    by the API and by any number of worker processes. The conditional update in
    :meth:`claim` is the only lock primitive.
    """

    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self._session_factory = session_factory

    def enqueue(
        self,
        *,
        prompt: str,
        purpose: Optional[str] = None,
        familiarity: Optional[str] = None,
        agent: Optional[str] = None,
        model: Optional[str] = None,
        user_id: Optional[UUID] = None,
    ) -> JobRecord:
        now = utcnow()
        with self._session_factory() as db:
            job = GenerationJob(
                prompt=prompt,
                purpose=purpose,
                familiarity=familiarity,
                agent=agent,
                model=model,
                user_id=user_id,
                status=STATUS_PENDING,
                created_at=now,
                updated_at=now,
            )
            db.add(job)
            db.commit()
            db.refresh(job)
            return _to_record(job)

    def get(self, job_id: UUID) -> Optional[JobRecord]:
        with self._session_factory() as db:
            job = db.get(GenerationJob, job_id)
            return _to_record(job) if job else None

    def find_oldest_pending(self) -> Optional[JobRecord]:
        """Return the oldest pending job (FIFO by creation time)."""
        with self._session_factory() as db:
            job = db.scalars(
                select(GenerationJob)
                .where(GenerationJob.status == STATUS_PENDING)
                .order_by(GenerationJob.created_at.asc())
                .limit(1)
            ).first()
            return _to_record(job) if job else None

    def claim(self, job_id: UUID) -> Optional[JobRecord]:
        """Move ``job_id`` from pending to in_progress; ``None`` if someone else got it."""
        with self._session_factory() as db:
            result = db.execute(
                update(GenerationJob)
                .where(GenerationJob.id == job_id, GenerationJob.status == STATUS_PENDING)
                .values(status=STATUS_IN_PROGRESS, updated_at=utcnow())
                .execution_options(synchronize_session=False)
            )
            db.commit()
            if result.rowcount != 1:
                return None
            job = db.get(GenerationJob, job_id, populate_existing=True)
            return _to_record(job) if job else None

    def mark_completed(
        self,
        job_id: UUID,
        plan: Dict[str, Any],
        *,
        response_id: Optional[str] = None,
        fallback_user_id: Optional[UUID] = None,
    ) -> bool:
        """Write the completed state; returns False when the job is no longer held."""
        with self._session_factory() as db:
            job = db.get(GenerationJob, job_id)
            if job is None or job.status != STATUS_IN_PROGRESS:
                return False
            values: Dict[str, Any] = {
                "status": STATUS_COMPLETED,
                "result": plan,
                "response_id": response_id,
                "error": None,
                "updated_at": utcnow(),
            }
            if job.user_id is None and fallback_user_id is not None:
                values["user_id"] = fallback_user_id
            result = db.execute(
                update(GenerationJob)
                .where(GenerationJob.id == job_id, GenerationJob.status == STATUS_IN_PROGRESS)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            db.commit()
            return result.rowcount == 1

    def mark_failed(self, job_id: UUID, error: str) -> bool:
        """Write the failed state; returns False when the job is no longer held."""
        with self._session_factory() as db:
            result = db.execute(
                update(GenerationJob)
                .where(GenerationJob.id == job_id, GenerationJob.status == STATUS_IN_PROGRESS)
                .values(status=STATUS_FAILED, error=error, result=null(), updated_at=utcnow())
                .execution_options(synchronize_session=False)
            )
            db.commit()
            return result.rowcount == 1

    def revive_stale(self, older_than: timedelta) -> int:
        """Reset in_progress jobs untouched for ``older_than`` back to pending."""
        now = utcnow()
        cutoff = now - older_than
        with self._session_factory() as db:
            result = db.execute(
                update(GenerationJob)
                .where(GenerationJob.status == STATUS_IN_PROGRESS, GenerationJob.updated_at < cutoff)
                .values(status=STATUS_PENDING, error=None, updated_at=now)
                .execution_options(synchronize_session=False)
            )
            db.commit()
            revived = result.rowcount or 0
        if revived:
            logger.info("Revived %s stale job(s) older than %ss", revived, int(older_than.total_seconds()))
        return revived
