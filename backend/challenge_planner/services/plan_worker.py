"""Single-process worker loop that drains the plan job queue."""
from __future__ import annotations

import logging
import threading
import time
from datetime import timedelta
from time import perf_counter
from typing import Callable, Optional
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError

from challenge_planner.core.config import Settings
from challenge_planner.core.context import bound_request_id
from challenge_planner.observability.metrics import log_metric
from challenge_planner.observability.tracing import trace
from challenge_planner.services.errors import GenerationFailed
from challenge_planner.services.generation_client import PlanGenerator
from challenge_planner.services.job_store import JobRecord, JobStore


logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL_SECONDS = 3.0
DEFAULT_STALE_AFTER = timedelta(seconds=300)
DEFAULT_SWEEP_INTERVAL_SECONDS = 60.0
ERROR_BACKOFF_SECONDS = 5.0


class PlanWorker:
    """Select, claim and process pending jobs one at a time.

    Any number of workers may share a store; the conditional claim decides
    which of them owns a job. ``stop_event`` doubles as the idle sleep so a
    shutdown signal interrupts the wait immediately.
    """

    def __init__(
        self,
        store: JobStore,
        generator: PlanGenerator,
        *,
        poll_interval: float = DEFAULT_POLL_INTERVAL_SECONDS,
        stale_after: timedelta = DEFAULT_STALE_AFTER,
        sweep_interval: float = DEFAULT_SWEEP_INTERVAL_SECONDS,
        fallback_user_id: Optional[UUID] = None,
        stop_event: Optional[threading.Event] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._store = store
        self._generator = generator
        self._poll_interval = poll_interval
        self._stale_after = stale_after
        self._sweep_interval = sweep_interval
        self._fallback_user_id = fallback_user_id
        self._stop_event = stop_event or threading.Event()
        self._clock = clock
        self._last_sweep: Optional[float] = None

    @classmethod
    def from_settings(
        cls,
        config: Settings,
        store: JobStore,
        generator: PlanGenerator,
        *,
        stop_event: Optional[threading.Event] = None,
    ) -> "PlanWorker":
        return cls(
            store,
            generator,
            poll_interval=config.poll_interval_ms / 1000,
            stale_after=timedelta(seconds=config.stale_job_retry_seconds),
            sweep_interval=config.stale_job_sweep_interval_ms / 1000,
            fallback_user_id=config.fallback_user_id,
            stop_event=stop_event,
        )

    @property
    def stop_event(self) -> threading.Event:
        return self._stop_event

    def stop(self) -> None:
        self._stop_event.set()

    def run_forever(self) -> None:
        logger.info(
            "Plan worker started (poll=%ss, stale_after=%ss, sweep=%ss)",
            self._poll_interval,
            int(self._stale_after.total_seconds()),
            self._sweep_interval,
        )
        while not self._stop_event.is_set():
            try:
                processed = self.run_once()
            except Exception:
                logger.exception("Plan worker iteration failed")
                self._stop_event.wait(ERROR_BACKOFF_SECONDS)
                continue
            if not processed:
                self._stop_event.wait(self._poll_interval)
        logger.info("Plan worker stopped")

    def run_once(self) -> bool:
        """Run one iteration; True when a job was claimed and processed."""
        self.revive_stale_if_due()
        job = self.reserve_next()
        if job is None:
            return False
        self.process_job(job)
        return True

    def revive_stale_if_due(self) -> int:
        now = self._clock()
        if self._last_sweep is not None and now - self._last_sweep < self._sweep_interval:
            return 0
        self._last_sweep = now
        revived = self._store.revive_stale(self._stale_after)
        if revived:
            log_metric("plan_worker.revived", revived)
        return revived

    def reserve_next(self) -> Optional[JobRecord]:
        candidate = self._store.find_oldest_pending()
        if candidate is None:
            return None
        job = self._store.claim(candidate.id)
        if job is None:
            logger.info("Job %s claimed by another worker", candidate.id)
            log_metric("plan_worker.claim_lost", 1)
        return job

    def process_job(self, job: JobRecord) -> None:
        with bound_request_id(f"job:{job.id}"):
            start = perf_counter()
            logger.info("Processing plan job %s (agent=%s, model=%s)", job.id, job.agent, job.model)
            with trace("plan_worker.process", metadata={"agent": job.agent, "model": job.model}, job_id=str(job.id)):
                try:
                    result = self._generator.generate(
                        job.prompt,
                        purpose=job.purpose,
                        familiarity=job.familiarity,
                        model=job.model,
                        agent=job.agent,
                    )
                except GenerationFailed as exc:
                    self._finish_failed(job, str(exc))
                    return
                except Exception as exc:
                    logger.exception("Unexpected error generating plan for job %s", job.id)
                    self._finish_failed(job, f"Plan generation failed: {exc}")
                    return

                self._finish_completed(job, result.plan, result.response_id)
            log_metric("plan_worker.latency_ms", (perf_counter() - start) * 1000, {"model": result.model})

    def _finish_completed(self, job: JobRecord, plan, response_id: Optional[str]) -> None:
        try:
            written = self._store.mark_completed(
                job.id,
                plan,
                response_id=response_id,
                fallback_user_id=self._fallback_user_id,
            )
        except SQLAlchemyError:
            logger.exception("Failed to store completed plan for job %s; leaving it for the stale sweep", job.id)
            return
        if written:
            logger.info("Plan job %s completed", job.id)
            log_metric("plan_worker.completed", 1)
        else:
            logger.warning("Plan job %s was no longer held; completed result discarded", job.id)

    def _finish_failed(self, job: JobRecord, error: str) -> None:
        try:
            written = self._store.mark_failed(job.id, error)
        except SQLAlchemyError:
            logger.exception("Failed to store failure for job %s; leaving it for the stale sweep", job.id)
            return
        if written:
            logger.warning("Plan job %s failed: %s", job.id, error)
            log_metric("plan_worker.failed", 1)
        else:
            logger.warning("Plan job %s was no longer held; failure discarded", job.id)
