"""FastAPI dependencies for database access."""
from __future__ import annotations

from challenge_planner.db.session import SessionLocal
from challenge_planner.services.job_store import JobStore


def get_job_store() -> JobStore:
    """Return a job store bound to the application's session factory."""
    return JobStore(SessionLocal)
