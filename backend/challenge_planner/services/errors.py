"""Error taxonomy for the plan generation pipeline."""
from __future__ import annotations


class PlanPipelineError(Exception):
    """Base class for pipeline errors that carry a human-readable message."""


class InvalidRequest(PlanPipelineError):
    """Malformed enqueue input; rejected before any job row exists."""


class JobNotFound(PlanPipelineError):
    """Status query against an unknown job id."""

    def __init__(self, job_id) -> None:
        super().__init__(f"Job {job_id} not found")
        self.job_id = job_id


class SchemaViolation(PlanPipelineError):
    """Generated blueprint broke the structural contract at ``path``."""

    def __init__(self, path: str, message: str) -> None:
        super().__init__(f"Blueprint violates schema at {path or '<root>'}: {message}")
        self.path = path
        self.message = message


class GenerationFailed(PlanPipelineError):
    """Every generation attempt was exhausted."""

    def __init__(self, reason: str, *, attempts: int = 0) -> None:
        super().__init__(reason)
        self.reason = reason
        self.attempts = attempts
