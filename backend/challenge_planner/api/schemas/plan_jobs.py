"""Schemas for the plan generation job endpoints."""
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

JobStatusLiteral = Literal["pending", "in_progress", "completed", "failed"]


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class EnqueuePlanRequest(_CamelModel):
    prompt: Optional[str] = None
    purpose: Optional[str] = None
    familiarity: Optional[str] = None
    agent: Optional[str] = None
    model: Optional[str] = None
    user_id: Optional[UUID] = None


class EnqueuePlanResponse(_CamelModel):
    job_id: UUID
    status: JobStatusLiteral
    queued_at: datetime


class PlanStatusRequest(_CamelModel):
    job_id: Optional[str] = None


class PlanStatusResponse(_CamelModel):
    status: JobStatusLiteral
    plan: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    updated_at: datetime
    response_id: Optional[str] = None


class GenerationConfigResponse(_CamelModel):
    default_model: str
    agent_profiles: Dict[str, str]
    generation_backend: str
    max_retries: int
    poll_interval_ms: int
    stale_job_retry_seconds: int
    stale_job_sweep_interval_ms: int
    terminal_statuses: List[str]
    request_id: str
