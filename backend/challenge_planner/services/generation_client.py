"""LLM-backed challenge plan generation with retries."""
from __future__ import annotations

import json
import logging
import math
import re
import time
from dataclasses import dataclass
from time import perf_counter
from typing import Any, Callable, Dict, Iterator, Mapping, Optional, Tuple

import httpx
import openai
from tenacity import RetryError, Retrying, stop_after_attempt, wait_incrementing

from challenge_planner.core.config import Settings
from challenge_planner.observability.metrics import log_metric
from challenge_planner.observability.tracing import trace
from challenge_planner.services.blueprint_normalizer import normalize_blueprint
from challenge_planner.services.errors import GenerationFailed
from challenge_planner.services.plan_schema import blueprint_json_schema, validate_blueprint


logger = logging.getLogger(__name__)

DEFAULT_TEMPERATURE = 0.6
FIXED_TEMPERATURE_MODELS = {"gpt-4.1-mini", "gpt-4.1-nano", "gpt-4.1"}
RESPONSE_FORMAT_NAME = "ChallengePlanBlueprint"

BLUEPRINT_SYSTEM_PROMPT = (
    "You are an expert coach who designs science-informed 30-day challenges that carry someone "
    "from their stated goal to a finished result.\n\n"
    "Return a single JSON object that matches the ChallengePlanBlueprint schema. The plan must:\n"
    "- Outline exactly 4 phases (7-8 day spans), each with an objective, 2-3 milestones, "
    "2-3 key principles and 2-4 risks.\n"
    "- List 3-5 challenge-wide keyPrinciples and 3-6 riskRadar entries (likelihood low/medium/high) "
    "covering only the highest-leverage guidance.\n"
    "- Provide a dailyPlan with exactly 30 entries (dayNumber 1..30), each with 2-3 tasks. Every task "
    "needs a title, a type (setup/research/practice/review/reflection/outreach/build/ship), "
    "expectedMinutes, imperative instructions, a definitionOfDone, 2-3 tags and a metric "
    "{name, unit, target} or null. Add a checkInPrompt and celebrationMessage per day.\n"
    "- Provide four weeklyReviews (weekNumber 1..4) with 3 evidence items, 3 reflection questions "
    "and 3 adaptation rules (condition + response) each.\n"
    "- Include assumptions, constraints, resources, purpose, callToAction (a short, high-energy "
    "rally cry for the full 30 days), reminder (hour/minute/message), celebrationRule "
    "(trigger/message), streakRule (thresholdMinutes/graceDays), accentPalette (3-4 hex colours) "
    "and cardPalette (2-3 softer pastel hex colours).\n"
    "- Map the user's goal into the title, phases and tasks with concrete, actionable language.\n\n"
    "Return JSON only, no commentary."
)

_CODE_FENCE_RE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL)


@dataclass
class ProviderResponse:
    content: Any
    response_id: Optional[str] = None


@dataclass
class GenerationResult:
    plan: Dict[str, Any]
    response_id: Optional[str]
    model: str
    attempts: int


class GenerationProvider:
    """Base interface for text-generation backends."""

    name = "base"

    def complete(self, request: Dict[str, Any]) -> ProviderResponse:
        raise NotImplementedError


class OpenAIChatProvider(GenerationProvider):
    """Calls chat completions through an OpenAI SDK client handle."""

    name = "openai"

    def __init__(self, client: "openai.OpenAI") -> None:
        self._client = client

    def complete(self, request: Dict[str, Any]) -> ProviderResponse:
        completion = self._client.chat.completions.create(**request)
        choices = getattr(completion, "choices", None) or []
        message = getattr(choices[0], "message", None) if choices else None
        if message is None:
            raise ValueError("Provider response missing message content")
        return ProviderResponse(content=message.content, response_id=getattr(completion, "id", None))


class HttpChatProvider(GenerationProvider):
    """Posts an OpenAI-compatible chat payload to an arbitrary endpoint."""

    name = "http"

    def __init__(
        self,
        url: str,
        api_key: str,
        *,
        timeout: float = 120.0,
        client: Optional[httpx.Client] = None,
    ) -> None:
        self._url = url
        self._api_key = api_key
        self._client = client or httpx.Client(timeout=timeout)

    def complete(self, request: Dict[str, Any]) -> ProviderResponse:
        response = self._client.post(
            self._url,
            json=request,
            headers={"Authorization": f"Bearer {self._api_key}"},
        )
        response.raise_for_status()
        payload = response.json()
        if not isinstance(payload, dict):
            raise ValueError("Provider response was not a JSON object")
        choices = payload.get("choices") or []
        message = choices[0].get("message") if choices and isinstance(choices[0], dict) else None
        if not isinstance(message, dict):
            raise ValueError("Provider response missing message content")
        return ProviderResponse(content=message.get("content"), response_id=payload.get("id"))


def build_generation_provider(config: Settings) -> GenerationProvider:
    """Select the provider backend once, from configuration."""
    if config.generation_backend == "http":
        if not config.generation_http_url or not config.generation_http_api_key:
            raise RuntimeError("GENERATION_HTTP_URL and GENERATION_HTTP_API_KEY must be provided for the http backend.")
        return HttpChatProvider(
            config.generation_http_url,
            config.generation_http_api_key,
            timeout=config.openai_timeout_seconds,
        )
    if not config.openai_api_key:
        raise RuntimeError("OPENAI_API_KEY must be provided.")
    client = openai.OpenAI(
        api_key=config.openai_api_key,
        base_url=config.openai_base_url,
        timeout=config.openai_timeout_seconds,
        max_retries=0,
    )
    return OpenAIChatProvider(client)


def model_requires_fixed_temperature(model: Optional[str]) -> bool:
    if not model:
        return False
    return model in FIXED_TEMPERATURE_MODELS or model.startswith("gpt-5")


def extract_blueprint(content: Any) -> Dict[str, Any]:
    """Return the first JSON object found in a provider message's content."""
    for candidate in _content_candidates(content):
        parsed = _parse_json_object(candidate)
        if parsed is not None:
            return parsed
    raise ValueError("Provider returned no parseable JSON content")


def _content_candidates(content: Any) -> Iterator[Any]:
    if isinstance(content, (list, tuple)):
        for part in content:
            yield from _part_payloads(part)
    elif isinstance(content, Mapping) and not _has_payload_key(content):
        # the message content is the blueprint itself
        yield content
    else:
        yield from _part_payloads(content)


def _has_payload_key(part: Mapping[str, Any]) -> bool:
    return _json_payload(part.get("json")) is not None or isinstance(part.get("text"), str)


def _json_payload(value: Any) -> Any:
    return value if isinstance(value, (str, Mapping)) and value else None


def _part_payloads(part: Any) -> Iterator[Any]:
    """Yield the ``json`` or ``text`` payload of one content part, if any."""
    if part is None:
        return
    if isinstance(part, str):
        yield part
        return
    if isinstance(part, Mapping):
        payload, text = _json_payload(part.get("json")), part.get("text")
    else:
        # SDK part objects are pydantic models whose ``json`` is a method
        payload, text = _json_payload(getattr(part, "json", None)), getattr(part, "text", None)
    if payload is not None:
        yield payload
    elif isinstance(text, str):
        yield text


def _parse_json_object(candidate: Any) -> Optional[Dict[str, Any]]:
    if isinstance(candidate, Mapping):
        return dict(candidate)
    if not isinstance(candidate, str):
        return None
    text = candidate.strip()
    if not text:
        return None
    fenced = _CODE_FENCE_RE.match(text)
    if fenced:
        text = fenced.group(1)
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError:
        return None
    return parsed if isinstance(parsed, dict) else None


class PlanGenerator:
    """Turns a goal prompt into a normalized plan, retrying transient failures."""

    def __init__(
        self,
        provider: GenerationProvider,
        *,
        default_model: str,
        temperature: float = DEFAULT_TEMPERATURE,
        max_retries: int = 2,
        agent_models: Optional[Mapping[str, str]] = None,
        backoff_seconds: float = 1.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._provider = provider
        self._default_model = default_model
        self._temperature = temperature if math.isfinite(temperature) else DEFAULT_TEMPERATURE
        self._max_retries = max(0, max_retries)
        self._agent_models = {key.lower(): value for key, value in (agent_models or {}).items()}
        self._backoff_seconds = backoff_seconds
        self._sleep = sleep

    @classmethod
    def from_settings(cls, config: Settings, provider: GenerationProvider) -> "PlanGenerator":
        return cls(
            provider,
            default_model=config.openai_model,
            temperature=config.openai_temperature,
            max_retries=config.openai_max_retries,
            agent_models=config.agent_models,
        )

    @property
    def max_attempts(self) -> int:
        return self._max_retries + 1

    def resolve_model(self, model: Optional[str] = None, agent: Optional[str] = None) -> str:
        explicit = (model or "").strip()
        if explicit:
            return explicit
        profile = (agent or "").strip().lower()
        return self._agent_models.get(profile, self._default_model)

    def build_request(
        self,
        prompt: str,
        *,
        model: str,
        purpose: Optional[str] = None,
        familiarity: Optional[str] = None,
    ) -> Dict[str, Any]:
        sections = [prompt]
        if purpose and purpose.strip():
            sections.append(f"Purpose for this goal: {purpose.strip()}")
        if familiarity and familiarity.strip():
            sections.append(f"User familiarity level: {familiarity.strip()}")
        request: Dict[str, Any] = {
            "model": model,
            "response_format": {
                "type": "json_schema",
                "json_schema": {
                    "name": RESPONSE_FORMAT_NAME,
                    "schema": blueprint_json_schema(),
                    "strict": True,
                },
            },
            "messages": [
                {"role": "system", "content": BLUEPRINT_SYSTEM_PROMPT},
                {"role": "user", "content": "\n\n".join(sections)},
            ],
        }
        if not model_requires_fixed_temperature(model):
            request["temperature"] = self._temperature
        return request

    def generate(
        self,
        prompt: str,
        *,
        purpose: Optional[str] = None,
        familiarity: Optional[str] = None,
        model: Optional[str] = None,
        agent: Optional[str] = None,
    ) -> GenerationResult:
        """Generate, validate and normalize a plan; raise :class:`GenerationFailed` when retries run out."""
        model_to_use = self.resolve_model(model, agent)
        request = self.build_request(prompt, model=model_to_use, purpose=purpose, familiarity=familiarity)
        metadata = {"model": model_to_use, "provider": self._provider.name, "prompt_length": len(prompt)}
        retrying = Retrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_incrementing(start=self._backoff_seconds, increment=self._backoff_seconds),
            sleep=self._sleep,
            reraise=False,
        )

        try:
            for attempt in retrying:
                with attempt:
                    number = attempt.retry_state.attempt_number
                    start = perf_counter()
                    response, plan = self._attempt(request, prompt, purpose, number, metadata)
        except RetryError as exc:
            last_error = exc.last_attempt.exception()
            reason = str(last_error).strip() if last_error else ""
            raise GenerationFailed(
                f"Plan generation failed after {self.max_attempts} attempt(s): {reason or 'unknown error'}",
                attempts=self.max_attempts,
            ) from last_error

        log_metric("plan.generate.latency_ms", (perf_counter() - start) * 1000, {"model": model_to_use})
        log_metric("plan.generate.attempts", number, {"model": model_to_use})
        return GenerationResult(
            plan=plan,
            response_id=response.response_id,
            model=model_to_use,
            attempts=number,
        )

    def _attempt(
        self,
        request: Dict[str, Any],
        prompt: str,
        purpose: Optional[str],
        number: int,
        metadata: Dict[str, Any],
    ) -> Tuple[ProviderResponse, Dict[str, Any]]:
        logger.info(
            "Requesting plan (attempt %s/%s, model=%s, prompt_length=%s)",
            number,
            self.max_attempts,
            request["model"],
            len(prompt),
        )
        try:
            with trace("plan.generate", metadata={**metadata, "attempt": number}):
                response = self._provider.complete(request)
                blueprint = extract_blueprint(response.content)
                validate_blueprint(blueprint)
                return response, normalize_blueprint(blueprint, purpose)
        except Exception as exc:
            logger.warning("Plan generation attempt %s failed: %s", number, exc)
            log_metric("plan.generate.attempt_failed", 1, {"model": request["model"], "error": type(exc).__name__})
            raise
