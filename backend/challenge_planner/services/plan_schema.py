"""Structural contract for generated challenge blueprints.

The same pydantic models back two checks: their JSON Schema is sent to the
provider as a strict response format, and :func:`validate_blueprint` re-checks
whatever actually comes back.
"""
from __future__ import annotations

from typing import Annotated, Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, StringConstraints, ValidationError

from challenge_planner.services.errors import SchemaViolation

DOMAINS = ("fitness", "business", "learning", "creative", "productivity", "finance", "wellbeing", "other")
TASK_TYPES = ("setup", "research", "practice", "review", "reflection", "outreach", "build", "ship")
LIKELIHOODS = ("low", "medium", "high")
CELEBRATION_TRIGGERS = ("dayComplete", "milestoneComplete")

PHASE_COUNT = 4
DAY_COUNT = 30
WEEKLY_REVIEW_COUNT = 4
HEX_COLOR_PATTERN = r"^#?[0-9A-Fa-f]{6}$"

HexColor = Annotated[str, StringConstraints(pattern=HEX_COLOR_PATTERN)]


class _Strict(BaseModel):
    model_config = ConfigDict(extra="forbid")


class TargetOutcomeBlueprint(_Strict):
    metric: str
    value: float
    unit: str
    timeframe: str


class RiskBlueprint(_Strict):
    risk: str
    likelihood: Literal["low", "medium", "high"]
    mitigation: str


class ReminderBlueprint(_Strict):
    hour: int = Field(..., ge=0, le=23)
    minute: int = Field(..., ge=0, le=59)
    message: str


class CelebrationRuleBlueprint(_Strict):
    trigger: Literal["dayComplete", "milestoneComplete"]
    message: str


class StreakRuleBlueprint(_Strict):
    thresholdMinutes: int = Field(..., ge=10, le=180)
    graceDays: int = Field(..., ge=0, le=5)


class MilestoneBlueprint(_Strict):
    title: str
    detail: str
    targetDay: int = Field(..., ge=1, le=DAY_COUNT)


class PhaseBlueprint(_Strict):
    name: str
    objective: str
    milestones: List[MilestoneBlueprint] = Field(..., min_length=1)
    keyPrinciples: List[str] = Field(..., min_length=2, max_length=3)
    risks: List[RiskBlueprint] = Field(..., min_length=2, max_length=4)


class TaskMetricBlueprint(_Strict):
    name: str
    unit: str
    target: float


class TaskBlueprint(_Strict):
    title: str
    type: Literal["setup", "research", "practice", "review", "reflection", "outreach", "build", "ship"]
    expectedMinutes: int = Field(..., ge=10, le=180)
    instructions: str
    definitionOfDone: str
    tags: List[str] = Field(..., min_length=2)
    metric: Optional[TaskMetricBlueprint]


class DayBlueprint(_Strict):
    dayNumber: int = Field(..., ge=1, le=DAY_COUNT)
    theme: str
    checkInPrompt: str
    celebrationMessage: str
    tasks: List[TaskBlueprint] = Field(..., min_length=2)


class AdaptationRuleBlueprint(_Strict):
    condition: str
    response: str


class WeeklyReviewBlueprint(_Strict):
    weekNumber: int = Field(..., ge=1, le=WEEKLY_REVIEW_COUNT)
    evidenceToCollect: List[str] = Field(..., min_length=3)
    reflectionQuestions: List[str] = Field(..., min_length=3)
    adaptationRules: List[AdaptationRuleBlueprint] = Field(..., min_length=3)


class PlanBlueprint(_Strict):
    """Raw plan as the generator must return it."""

    title: str
    domain: Literal["fitness", "business", "learning", "creative", "productivity", "finance", "wellbeing", "other"]
    primaryGoal: str
    targetOutcome: TargetOutcomeBlueprint
    assumptions: List[str] = Field(..., min_length=2)
    constraints: List[str] = Field(..., min_length=2)
    resources: List[str] = Field(..., min_length=2)
    purpose: str
    keyPrinciples: List[str] = Field(..., min_length=3, max_length=5)
    riskRadar: List[RiskBlueprint] = Field(..., min_length=3, max_length=6)
    callToAction: str
    reminder: ReminderBlueprint
    celebrationRule: CelebrationRuleBlueprint
    streakRule: StreakRuleBlueprint
    accentPalette: List[HexColor] = Field(..., min_length=3, max_length=4)
    cardPalette: List[HexColor] = Field(..., min_length=2, max_length=3)
    phases: List[PhaseBlueprint] = Field(..., min_length=PHASE_COUNT, max_length=PHASE_COUNT)
    dailyPlan: List[DayBlueprint] = Field(..., min_length=DAY_COUNT, max_length=DAY_COUNT)
    weeklyReviews: List[WeeklyReviewBlueprint] = Field(
        ...,
        min_length=WEEKLY_REVIEW_COUNT,
        max_length=WEEKLY_REVIEW_COUNT,
    )


def blueprint_json_schema() -> Dict[str, Any]:
    """JSON Schema handed to the provider as the strict output contract."""
    return PlanBlueprint.model_json_schema()


def validate_blueprint(raw: Any) -> PlanBlueprint:
    """Validate a raw blueprint, raising :class:`SchemaViolation` on the first bad path."""
    if not isinstance(raw, dict):
        raise SchemaViolation("", f"expected an object, got {type(raw).__name__}")
    try:
        return PlanBlueprint.model_validate(raw)
    except ValidationError as exc:
        first = exc.errors()[0]
        raise SchemaViolation(format_error_path(first.get("loc", ())), first.get("msg", "invalid value")) from exc


def format_error_path(loc) -> str:
    """Render a pydantic ``loc`` tuple as ``dailyPlan[3].tasks``."""
    path = ""
    for part in loc:
        if isinstance(part, int):
            path += f"[{part}]"
        elif path:
            path += f".{part}"
        else:
            path = str(part)
    return path
