"""Database utilities and models."""

from challenge_planner.db.base import Base
from challenge_planner.db import models  # noqa: F401  (imported for side effects)

__all__ = ["Base"]
