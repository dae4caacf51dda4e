"""Blueprint -> canonical plan document.

The generator is unreliable even after schema validation, so every field is
coerced rather than rejected: blank text gets a typed fallback, numbers are
clamped, enums fall back to a safe member and missing days, weeks and phases
are backfilled. Every nested entity gets a fresh id.
"""
from __future__ import annotations

import math
import re
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional
from uuid import uuid4

from pydantic import BaseModel

from challenge_planner.services.plan_schema import (
    CELEBRATION_TRIGGERS,
    DAY_COUNT,
    DOMAINS,
    LIKELIHOODS,
    PHASE_COUNT,
    TASK_TYPES,
    WEEKLY_REVIEW_COUNT,
)

MIN_PRINCIPLES = 3
MAX_PRINCIPLES = 5
MIN_RISKS = 3
MAX_RISKS = 6

DEFAULT_DOMAIN = "other"
DEFAULT_TASK_TYPE = "practice"
DEFAULT_LIKELIHOOD = "medium"
DEFAULT_TRIGGER = "dayComplete"
DEFAULT_ACCENT_PALETTE = ["#FF7EB3", "#A855F7", "#3B82F6"]

# Inclusive day spans per phase index; the last phase absorbs days 29-30.
PHASE_DAY_SPANS = ((1, 7), (8, 14), (15, 21), (22, 30))

PLACEHOLDER_TASK = {
    "title": "Keep the momentum going",
    "type": DEFAULT_TASK_TYPE,
    "expectedMinutes": 20,
    "instructions": "Spend a focused block on the next smallest step toward your goal.",
    "definitionOfDone": "You logged what you worked on today.",
    "tags": ["momentum", "consistency"],
}

PLACEHOLDER_EVIDENCE = [
    "Number of days fully completed this week",
    "Total focused minutes logged",
    "One concrete win you can point to",
]
PLACEHOLDER_QUESTIONS = [
    "What helped you show up this week?",
    "Where did you lose momentum, and why?",
    "What will you do differently next week?",
]
PLACEHOLDER_RULES = [
    ("If you missed two or more days", "Shrink each task to its 10-minute version next week."),
    ("If every day felt easy", "Add one stretch task to the hardest day."),
    ("If energy dipped mid-week", "Move the longest task to your strongest time of day."),
]

_HEX_RE = re.compile(r"^#?([0-9A-Fa-f]{6})$")


def normalize_blueprint(
    blueprint: Mapping[str, Any] | BaseModel,
    fallback_purpose: Optional[str] = None,
    *,
    created_at: Optional[datetime] = None,
) -> Dict[str, Any]:
    """Return the canonical plan for ``blueprint``.

    ``fallback_purpose`` is used when the blueprint carries no purpose of its
    own; if both are blank the plan's purpose is ``None``.
    """
    if isinstance(blueprint, BaseModel):
        blueprint = blueprint.model_dump()
    source = _mapping(blueprint)

    phases = [_build_phase(index, raw) for index, raw in enumerate(_list(source.get("phases"))[:PHASE_COUNT])]
    while len(phases) < PHASE_COUNT:
        phases.append(_build_phase(len(phases), {}))

    title = _optional_text(source.get("title"))
    primary_goal = _optional_text(source.get("primaryGoal"))
    accent = _palette(source.get("accentPalette")) or list(DEFAULT_ACCENT_PALETTE)
    card = _palette(source.get("cardPalette")) or accent
    reminder = _mapping(source.get("reminder"))
    celebration = _mapping(source.get("celebrationRule"))
    streak = _mapping(source.get("streakRule"))

    return {
        "id": _new_id(),
        "title": title or primary_goal or "30-Day Challenge",
        "domain": _enum(source.get("domain"), DOMAINS, DEFAULT_DOMAIN),
        "primaryGoal": primary_goal or title or "Complete the 30-day challenge",
        "createdAt": (created_at or datetime.now(timezone.utc)).isoformat(),
        "summary": _optional_text(source.get("summary")),
        "targetOutcome": _target_outcome(source.get("targetOutcome")),
        "assumptions": _string_list(source.get("assumptions")),
        "constraints": _string_list(source.get("constraints")),
        "resources": _string_list(source.get("resources")),
        "purpose": resolve_purpose(source.get("purpose"), fallback_purpose),
        "keyPrinciples": _collect_principles(source.get("keyPrinciples"), phases),
        "riskHighlights": _collect_risks(source.get("riskRadar"), phases),
        "phases": phases,
        "days": _normalize_days(source.get("dailyPlan")),
        "weeklyReviews": _normalize_reviews(source.get("weeklyReviews")),
        "reminderRule": {
            "timeOfDay": {
                "hour": _int_in_range(reminder.get("hour"), 0, 23, 8),
                "minute": _int_in_range(reminder.get("minute"), 0, 59, 0),
            },
            "message": _text(reminder.get("message"), "Time for today's challenge step."),
        },
        "celebrationRule": {
            "trigger": _enum(celebration.get("trigger"), CELEBRATION_TRIGGERS, DEFAULT_TRIGGER, lower=False),
            "message": _text(celebration.get("message"), "Momentum unlocked! Celebrate the win."),
        },
        "streakRule": {
            "thresholdMinutes": _int_in_range(streak.get("thresholdMinutes"), 10, 180, 30),
            "graceDays": _int_in_range(streak.get("graceDays"), 0, 5, 1),
        },
        "callToAction": _text(source.get("callToAction"), "Show up for all 30 days. Day one starts now."),
        "accentPalette": {"stops": [{"hex": hex_value, "opacity": 1.0} for hex_value in accent]},
        "cardPalette": {"stops": [{"hex": hex_value, "opacity": 1.0} for hex_value in card]},
    }


def resolve_purpose(explicit: Any, fallback: Any) -> Optional[str]:
    """Explicit purpose, else the caller's fallback, else ``None``; never invented."""
    return _optional_text(explicit) or _optional_text(fallback)


# --- phases, principles, risks -------------------------------------------------


def _build_phase(index: int, raw: Any) -> Dict[str, Any]:
    phase = _mapping(raw)
    _, span_end = PHASE_DAY_SPANS[min(index, len(PHASE_DAY_SPANS) - 1)]
    milestones = [
        _build_milestone(position, entry, span_end)
        for position, entry in enumerate(_list(phase.get("milestones")))
        if isinstance(entry, Mapping)
    ]
    if not milestones:
        milestones.append(_build_milestone(0, {}, span_end))
    risks = [risk for risk in (_build_risk(entry) for entry in _list(phase.get("risks"))) if risk]
    return {
        "id": _new_id(),
        "index": index,
        "name": _text(phase.get("name"), f"Phase {index + 1}"),
        "objective": _text(phase.get("objective"), "Build steady, visible progress toward the goal."),
        "milestones": milestones,
        "keyPrinciples": _dedupe_text(_string_list(phase.get("keyPrinciples"))),
        "risks": risks,
    }


def _build_milestone(position: int, raw: Mapping[str, Any], default_day: int) -> Dict[str, Any]:
    return {
        "id": _new_id(),
        "title": _text(raw.get("title"), f"Milestone {position + 1}"),
        "detail": _text(raw.get("detail"), "Reach this checkpoint before moving on."),
        "progress": _float_in_range(raw.get("progress"), 0.0, 1.0, 0.0),
        "targetDay": _int_in_range(raw.get("targetDay"), 1, DAY_COUNT, default_day),
    }


def _build_risk(raw: Any) -> Optional[Dict[str, Any]]:
    if not isinstance(raw, Mapping):
        return None
    description = _optional_text(raw.get("risk"))
    if not description:
        return None
    return {
        "id": _new_id(),
        "risk": description,
        "likelihood": _enum(raw.get("likelihood"), LIKELIHOODS, DEFAULT_LIKELIHOOD),
        "mitigation": _optional_text(raw.get("mitigation")) or "",
    }


def _collect_principles(raw: Any, phases: List[Dict[str, Any]]) -> List[str]:
    collected: List[str] = []
    seen: set[str] = set()

    def _take(values: Iterable[str]) -> None:
        for value in values:
            if len(collected) >= MAX_PRINCIPLES:
                return
            key = value.lower()
            if key in seen:
                continue
            seen.add(key)
            collected.append(value)

    _take(_string_list(raw))
    if len(collected) < MIN_PRINCIPLES:
        for phase in phases:
            _take(phase["keyPrinciples"])
    return collected


def _collect_risks(raw: Any, phases: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    collected: List[Dict[str, Any]] = []
    seen: set[str] = set()

    def _take(entries: Iterable[Any]) -> None:
        for entry in entries:
            if len(collected) >= MAX_RISKS:
                return
            risk = _build_risk(entry)
            if risk is None:
                continue
            key = risk["risk"].lower()
            if key in seen:
                continue
            seen.add(key)
            collected.append(risk)

    _take(_list(raw))
    if len(collected) < MIN_RISKS:
        for phase in phases:
            _take(phase["risks"])
    return collected


# --- days ----------------------------------------------------------------------


def _normalize_days(raw_days: Any) -> List[Dict[str, Any]]:
    slots: Dict[int, Mapping[str, Any]] = {}
    unnumbered: List[Mapping[str, Any]] = []
    for entry in _list(raw_days):
        if not isinstance(entry, Mapping):
            continue
        number = _int_or_none(entry.get("dayNumber"))
        if number is not None and 1 <= number <= DAY_COUNT and number not in slots:
            slots[number] = entry
        else:
            unnumbered.append(entry)

    free_numbers = [number for number in range(1, DAY_COUNT + 1) if number not in slots]
    for entry, number in zip(unnumbered, free_numbers):
        slots[number] = entry

    return [_build_day(number, slots.get(number, {})) for number in range(1, DAY_COUNT + 1)]


def _build_day(number: int, raw: Mapping[str, Any]) -> Dict[str, Any]:
    tasks = [
        _build_task(position, entry)
        for position, entry in enumerate(_list(raw.get("tasks")))
        if isinstance(entry, Mapping)
    ]
    if not tasks:
        tasks.append(_build_task(0, PLACEHOLDER_TASK))
    return {
        "id": _new_id(),
        "dayNumber": number,
        "theme": _text(raw.get("theme"), f"Momentum Day {number}"),
        "checkInPrompt": _text(raw.get("checkInPrompt"), "What moved you closer to your goal today?"),
        "celebrationMessage": _text(raw.get("celebrationMessage"), "Another day banked. Keep the streak alive!"),
        "tasks": tasks,
    }


def _build_task(position: int, raw: Mapping[str, Any]) -> Dict[str, Any]:
    return {
        "id": _new_id(),
        "title": _text(raw.get("title"), f"Task {position + 1}"),
        "type": _enum(raw.get("type"), TASK_TYPES, DEFAULT_TASK_TYPE),
        "expectedMinutes": _int_in_range(raw.get("expectedMinutes"), 10, 180, 30),
        "instructions": _text(raw.get("instructions"), "Work through the next concrete step."),
        "definitionOfDone": _text(raw.get("definitionOfDone"), "The step is finished and noted."),
        "metric": _task_metric(raw.get("metric")),
        "tags": _string_list(raw.get("tags")),
        "isComplete": False,
    }


def _task_metric(raw: Any) -> Optional[Dict[str, Any]]:
    if not isinstance(raw, Mapping):
        return None
    name = _optional_text(raw.get("name"))
    target = _number(raw.get("target"))
    if not name or target is None:
        return None
    return {"name": name, "unit": _optional_text(raw.get("unit")) or "", "target": target}


# --- weekly reviews --------------------------------------------------------------


def _normalize_reviews(raw_reviews: Any) -> List[Dict[str, Any]]:
    slots: Dict[int, Mapping[str, Any]] = {}
    unnumbered: List[Mapping[str, Any]] = []
    for entry in _list(raw_reviews):
        if not isinstance(entry, Mapping):
            continue
        number = _int_or_none(entry.get("weekNumber"))
        if number is not None and 1 <= number <= WEEKLY_REVIEW_COUNT and number not in slots:
            slots[number] = entry
        else:
            unnumbered.append(entry)

    free_numbers = [number for number in range(1, WEEKLY_REVIEW_COUNT + 1) if number not in slots]
    for entry, number in zip(unnumbered, free_numbers):
        slots[number] = entry

    return [_build_review(number, slots.get(number, {})) for number in range(1, WEEKLY_REVIEW_COUNT + 1)]


def _build_review(number: int, raw: Mapping[str, Any]) -> Dict[str, Any]:
    rules = []
    for entry in _list(raw.get("adaptationRules")):
        if not isinstance(entry, Mapping):
            continue
        condition = _optional_text(entry.get("condition"))
        response = _optional_text(entry.get("response"))
        if condition and response:
            rules.append({"id": _new_id(), "condition": condition, "response": response})
    if not rules:
        rules = [{"id": _new_id(), "condition": condition, "response": response} for condition, response in PLACEHOLDER_RULES]
    return {
        "id": _new_id(),
        "weekNumber": number,
        "evidenceToCollect": _string_list(raw.get("evidenceToCollect")) or list(PLACEHOLDER_EVIDENCE),
        "reflectionQuestions": _string_list(raw.get("reflectionQuestions")) or list(PLACEHOLDER_QUESTIONS),
        "adaptationRules": rules,
    }


# --- scalar coercion -------------------------------------------------------------


def _target_outcome(raw: Any) -> Dict[str, Any]:
    outcome = _mapping(raw)
    value = _number(outcome.get("value"))
    return {
        "metric": _text(outcome.get("metric"), "Progress"),
        "value": value if value is not None else 1.0,
        "unit": _text(outcome.get("unit"), "milestone"),
        "timeframe": _text(outcome.get("timeframe"), "30 days"),
    }


def _palette(raw: Any) -> List[str]:
    colors: List[str] = []
    for value in _list(raw):
        if not isinstance(value, str):
            continue
        match = _HEX_RE.match(value.strip())
        if match:
            colors.append(f"#{match.group(1).upper()}")
    return colors


def _enum(value: Any, allowed: Iterable[str], default: str, *, lower: bool = True) -> str:
    if not isinstance(value, str):
        return default
    candidate = value.strip().lower() if lower else value.strip()
    return candidate if candidate in allowed else default


def _new_id() -> str:
    return str(uuid4())


def _mapping(value: Any) -> Mapping[str, Any]:
    return value if isinstance(value, Mapping) else {}


def _list(value: Any) -> List[Any]:
    return list(value) if isinstance(value, (list, tuple)) else []


def _optional_text(value: Any) -> Optional[str]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, str):
        stripped = value.strip()
        return stripped or None
    return None


def _text(value: Any, fallback: str) -> str:
    return _optional_text(value) or fallback


def _string_list(value: Any) -> List[str]:
    if isinstance(value, str):
        value = [value]
    return [text for text in (_optional_text(item) for item in _list(value)) if text]


def _dedupe_text(values: List[str]) -> List[str]:
    seen: set[str] = set()
    unique: List[str] = []
    for value in values:
        key = value.lower()
        if key not in seen:
            seen.add(key)
            unique.append(value)
    return unique


def _number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def _int_or_none(value: Any) -> Optional[int]:
    number = _number(value)
    return int(round(number)) if number is not None else None


def _int_in_range(value: Any, low: int, high: int, default: int) -> int:
    number = _int_or_none(value)
    if number is None:
        return default
    return max(low, min(high, number))


def _float_in_range(value: Any, low: float, high: float, default: float) -> float:
    number = _number(value)
    if number is None:
        return default
    return max(low, min(high, number))
