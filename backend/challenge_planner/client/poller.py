"""HTTP client for enqueueing plan jobs and polling them to completion."""
from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

import httpx


logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL_SECONDS = 2.0
DEFAULT_POLL_TIMEOUT_SECONDS = 180.0
TERMINAL_STATUSES = {"completed", "failed"}


class PollTimeout(Exception):
    """The job did not reach a terminal state before the client gave up."""

    def __init__(self, job_id: str, waited: float, last_status: Optional[str]) -> None:
        super().__init__(f"Job {job_id} still {last_status or 'unknown'} after {waited:.0f}s")
        self.job_id = job_id
        self.waited = waited
        self.last_status = last_status


class PollCancelled(Exception):
    """Polling was cancelled by the caller."""


@dataclass
class PlanJobStatus:
    job_id: str
    status: str
    plan: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    updated_at: Optional[str] = None
    response_id: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


class PlanJobClient:
    """Thin wrapper over the enqueue and status endpoints."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        *,
        client: Optional[httpx.Client] = None,
        timeout: float = 30.0,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        if client is None and not base_url:
            raise ValueError("base_url or client is required")
        self._client = client or httpx.Client(base_url=base_url, timeout=timeout)
        self._monotonic = monotonic

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "PlanJobClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def enqueue(self, prompt: str, **options: Any) -> str:
        """Queue a plan job and return its id."""
        payload = {"prompt": prompt}
        payload.update({key: value for key, value in options.items() if value is not None})
        response = self._client.post("/generate-plan", json=payload)
        response.raise_for_status()
        return response.json()["jobId"]

    def status(self, job_id: str) -> PlanJobStatus:
        response = self._client.post("/plan-status", json={"jobId": job_id})
        response.raise_for_status()
        body = response.json()
        return PlanJobStatus(
            job_id=job_id,
            status=body["status"],
            plan=body.get("plan"),
            error=body.get("error"),
            updated_at=body.get("updatedAt"),
            response_id=body.get("responseId"),
        )

    def poll_until_terminal(
        self,
        job_id: str,
        *,
        interval: float = DEFAULT_POLL_INTERVAL_SECONDS,
        timeout: float = DEFAULT_POLL_TIMEOUT_SECONDS,
        cancel_event: Optional[threading.Event] = None,
    ) -> PlanJobStatus:
        """Poll until ``completed`` or ``failed``.

        A failed job is returned rather than raised; :class:`PollTimeout` is
        reserved for the client running out of patience.
        """
        cancel_event = cancel_event or threading.Event()
        started = self._monotonic()
        last_status: Optional[str] = None

        while True:
            if cancel_event.is_set():
                raise PollCancelled(f"Polling for job {job_id} was cancelled")
            current = self.status(job_id)
            if current.status != last_status:
                logger.debug("Job %s is %s", job_id, current.status)
                last_status = current.status
            if current.is_terminal:
                return current
            waited = self._monotonic() - started
            if waited >= timeout:
                raise PollTimeout(job_id, waited, last_status)
            if cancel_event.wait(min(interval, max(timeout - waited, 0.0))):
                raise PollCancelled(f"Polling for job {job_id} was cancelled")

    def generate(
        self,
        prompt: str,
        *,
        interval: float = DEFAULT_POLL_INTERVAL_SECONDS,
        timeout: float = DEFAULT_POLL_TIMEOUT_SECONDS,
        cancel_event: Optional[threading.Event] = None,
        **options: Any,
    ) -> PlanJobStatus:
        """Enqueue and wait for the terminal state in one call."""
        job_id = self.enqueue(prompt, **options)
        return self.poll_until_terminal(job_id, interval=interval, timeout=timeout, cancel_event=cancel_event)
