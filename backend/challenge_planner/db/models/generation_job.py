"""AI plan generation job ORM model."""
from __future__ import annotations

from uuid import uuid4

from sqlalchemy import CheckConstraint, Column, DateTime, Index, Text, func, text as sa_text
from sqlalchemy.dialects.postgresql import UUID

from challenge_planner.db.base import Base
from challenge_planner.db.types import JSONBCompat, utcnow

STATUS_PENDING = "pending"
STATUS_IN_PROGRESS = "in_progress"
STATUS_COMPLETED = "completed"
STATUS_FAILED = "failed"

JOB_STATUSES = (STATUS_PENDING, STATUS_IN_PROGRESS, STATUS_COMPLETED, STATUS_FAILED)
TERMINAL_STATUSES = frozenset({STATUS_COMPLETED, STATUS_FAILED})


class GenerationJob(Base):
    __tablename__ = "ai_generation_jobs"
    __table_args__ = (
        CheckConstraint(
            "status in ('pending', 'in_progress', 'completed', 'failed')",
            name="ck_ai_generation_jobs_status",
        ),
        Index("ai_generation_jobs_status_created_idx", "status", "created_at"),
        Index("ai_generation_jobs_agent_idx", "agent"),
        Index("ai_generation_jobs_familiarity_idx", "familiarity"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    prompt = Column(Text, nullable=False)
    purpose = Column(Text, nullable=True)
    familiarity = Column(Text, nullable=True)
    agent = Column(Text, nullable=True)
    model = Column(Text, nullable=True)
    status = Column(Text, nullable=False, default=STATUS_PENDING, server_default=sa_text("'pending'"))
    response_id = Column(Text, nullable=True)
    result = Column(JSONBCompat, nullable=True)
    error = Column(Text, nullable=True)
    user_id = Column(UUID(as_uuid=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=func.now(),
        onupdate=utcnow,
    )
