"""ORM models exposed for metadata discovery."""
from challenge_planner.db.models.generation_job import GenerationJob, JOB_STATUSES

__all__ = [
    "GenerationJob",
    "JOB_STATUSES",
]
