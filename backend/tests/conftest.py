from __future__ import annotations

import copy
import json
from typing import Any, Callable, Dict, List

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from challenge_planner.db.models.generation_job import GenerationJob
from challenge_planner.services.generation_client import GenerationProvider, ProviderResponse
from challenge_planner.services.job_store import JobStore


def _task(day: int, position: int) -> Dict[str, Any]:
    return {
        "title": f"Write section {position} of post {day}",
        "type": "build",
        "expectedMinutes": 45,
        "instructions": "Open the draft and write without editing for the full block.",
        "definitionOfDone": "The section is saved in the drafts folder.",
        "tags": ["writing", "blog"],
        "metric": {"name": "words", "unit": "words", "target": 400} if position == 1 else None,
    }


def _phase(index: int) -> Dict[str, Any]:
    return {
        "name": f"Stage {index}",
        "objective": f"Finish the stage {index} groundwork.",
        "milestones": [
            {"title": f"Checkpoint {index}", "detail": "Ship something visible.", "targetDay": index * 7},
        ],
        "keyPrinciples": [f"Stage {index} principle A", f"Stage {index} principle B"],
        "risks": [
            {"risk": f"Stage {index} drift", "likelihood": "medium", "mitigation": "Timebox the work."},
            {"risk": f"Stage {index} fatigue", "likelihood": "low", "mitigation": "Take a lighter day."},
        ],
    }


def _review(week: int) -> Dict[str, Any]:
    return {
        "weekNumber": week,
        "evidenceToCollect": ["Posts drafted", "Minutes written", "Reader replies"],
        "reflectionQuestions": ["What flowed?", "What stalled?", "What changes next week?"],
        "adaptationRules": [
            {"condition": "Missed two days", "response": "Halve the word target."},
            {"condition": "Finished early", "response": "Add an outline for the next post."},
            {"condition": "Low energy", "response": "Write in the morning."},
        ],
    }


def build_blueprint() -> Dict[str, Any]:
    """A complete blueprint that satisfies the strict schema."""
    return {
        "title": "Launch a blog in 30 days",
        "domain": "creative",
        "primaryGoal": "Publish 10 posts",
        "targetOutcome": {"metric": "Posts published", "value": 10, "unit": "posts", "timeframe": "30 days"},
        "assumptions": ["You can write 45 minutes a day", "A hosting account is available"],
        "constraints": ["Weekdays only before work", "No paid promotion"],
        "resources": ["Static site generator", "Writing app"],
        "purpose": "Writing clarifies thinking",
        "keyPrinciples": ["Ship before polishing", "Write daily", "Collect ideas constantly"],
        "riskRadar": [
            {"risk": "Perfectionism", "likelihood": "high", "mitigation": "Publish at 80%."},
            {"risk": "Running out of topics", "likelihood": "medium", "mitigation": "Keep an idea list."},
            {"risk": "Skipped days", "likelihood": "medium", "mitigation": "Have a 10-minute fallback."},
        ],
        "callToAction": "Thirty days, ten posts. Start typing.",
        "reminder": {"hour": 7, "minute": 30, "message": "Writing block starts now."},
        "celebrationRule": {"trigger": "milestoneComplete", "message": "Post shipped!"},
        "streakRule": {"thresholdMinutes": 30, "graceDays": 1},
        "accentPalette": ["#FF7EB3", "#a855f7", "3B82F6"],
        "cardPalette": ["#FDE68A", "#BBF7D0"],
        "phases": [_phase(index) for index in range(1, 5)],
        "dailyPlan": [
            {
                "dayNumber": day,
                "theme": f"Post {day} focus",
                "checkInPrompt": "How many words did you write?",
                "celebrationMessage": "Words on the page!",
                "tasks": [_task(day, 1), _task(day, 2)],
            }
            for day in range(1, 31)
        ],
        "weeklyReviews": [_review(week) for week in range(1, 5)],
    }


@pytest.fixture()
def blueprint() -> Dict[str, Any]:
    return copy.deepcopy(build_blueprint())


class ScriptedProvider(GenerationProvider):
    """Plays back queued responses; exceptions in the script are raised."""

    name = "scripted"

    def __init__(self, script: List[Any]) -> None:
        self._script = list(script)
        self.requests: List[Dict[str, Any]] = []

    def complete(self, request: Dict[str, Any]) -> ProviderResponse:
        self.requests.append(request)
        step = self._script.pop(0) if len(self._script) > 1 else self._script[0]
        if isinstance(step, Exception):
            raise step
        if isinstance(step, ProviderResponse):
            return step
        return ProviderResponse(content=step, response_id=f"resp-{len(self.requests)}")


@pytest.fixture()
def scripted_provider() -> Callable[..., ScriptedProvider]:
    def _factory(*script: Any) -> ScriptedProvider:
        return ScriptedProvider(list(script))

    return _factory


@pytest.fixture()
def valid_content() -> str:
    return json.dumps(build_blueprint())


@pytest.fixture()
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    GenerationJob.__table__.create(bind=engine)
    TestingSession = sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False, future=True)
    yield TestingSession
    engine.dispose()


@pytest.fixture()
def store(session_factory) -> JobStore:
    return JobStore(session_factory)
