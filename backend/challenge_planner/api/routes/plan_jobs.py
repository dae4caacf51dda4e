"""Plan generation job endpoints: enqueue, status and configuration."""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from sqlalchemy.exc import SQLAlchemyError

from challenge_planner.api.schemas.plan_jobs import (
    EnqueuePlanRequest,
    EnqueuePlanResponse,
    GenerationConfigResponse,
    PlanStatusRequest,
    PlanStatusResponse,
)
from challenge_planner.core.config import settings
from challenge_planner.db.deps import get_job_store
from challenge_planner.db.models.generation_job import TERMINAL_STATUSES
from challenge_planner.observability.tracing import trace
from challenge_planner.services.errors import InvalidRequest, JobNotFound
from challenge_planner.services.job_store import JobRecord, JobStore
from challenge_planner.services.plan_jobs import enqueue_plan_job, get_plan_job

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post(
    "/generate-plan",
    response_model=EnqueuePlanResponse,
    status_code=status.HTTP_202_ACCEPTED,
    tags=["plan-jobs"],
)
def enqueue_plan_endpoint(
    payload: EnqueuePlanRequest,
    store: JobStore = Depends(get_job_store),
) -> EnqueuePlanResponse:
    """Queue a plan generation job and return immediately."""
    try:
        job = enqueue_plan_job(
            store,
            prompt=payload.prompt,
            purpose=payload.purpose,
            familiarity=payload.familiarity,
            agent=payload.agent,
            model=payload.model,
            user_id=payload.user_id,
        )
    except InvalidRequest as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except SQLAlchemyError as exc:
        logger.exception("Failed to enqueue AI generation job")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to enqueue AI generation job",
        ) from exc

    return EnqueuePlanResponse(job_id=job.id, status=job.status, queued_at=job.created_at)


@router.post("/plan-status", response_model=PlanStatusResponse, tags=["plan-jobs"])
def plan_status_endpoint(
    payload: PlanStatusRequest,
    response: Response,
    store: JobStore = Depends(get_job_store),
) -> PlanStatusResponse:
    """Report job state; 202 while queued or running, 200 once terminal."""
    return _status_payload(store, payload.job_id, response)


@router.get("/plan-status/{job_id}", response_model=PlanStatusResponse, tags=["plan-jobs"])
def plan_status_by_path_endpoint(
    job_id: str,
    response: Response,
    store: JobStore = Depends(get_job_store),
) -> PlanStatusResponse:
    return _status_payload(store, job_id, response)


@router.get("/generation/config", response_model=GenerationConfigResponse, tags=["plan-jobs"])
def generation_config_endpoint(request: Request) -> GenerationConfigResponse:
    request_id = getattr(request.state, "request_id", None)
    with trace("plan_jobs.config", request_id=request_id):
        data = GenerationConfigResponse(
            default_model=settings.openai_model,
            agent_profiles=dict(settings.agent_models),
            generation_backend=settings.generation_backend,
            max_retries=settings.openai_max_retries,
            poll_interval_ms=settings.poll_interval_ms,
            stale_job_retry_seconds=settings.stale_job_retry_seconds,
            stale_job_sweep_interval_ms=settings.stale_job_sweep_interval_ms,
            terminal_statuses=sorted(TERMINAL_STATUSES),
            request_id=request_id or "",
        )
    return data


def _status_payload(store: JobStore, job_id: str | None, response: Response) -> PlanStatusResponse:
    try:
        job = get_plan_job(store, job_id or "")
    except InvalidRequest as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except JobNotFound as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Job not found") from exc
    except SQLAlchemyError as exc:
        logger.exception("Failed to fetch job status")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to fetch job status",
        ) from exc

    response.status_code = status.HTTP_200_OK if job.is_terminal else status.HTTP_202_ACCEPTED
    return _to_status_response(job)


def _to_status_response(job: JobRecord) -> PlanStatusResponse:
    return PlanStatusResponse(
        status=job.status,
        plan=job.result if job.status == "completed" else None,
        error=job.error,
        updated_at=job.updated_at,
        response_id=job.response_id,
    )
