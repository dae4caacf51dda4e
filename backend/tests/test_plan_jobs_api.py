from __future__ import annotations

from uuid import UUID, uuid4

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError

from challenge_planner.db.deps import get_job_store
from challenge_planner.main import app
from challenge_planner.services.job_store import JobStore

PROMPT = "Goal: launch a blog. Motivation: because writing clarifies thinking. Specific win: publish 10 posts."


@pytest.fixture()
def client(store):
    app.dependency_overrides[get_job_store] = lambda: store
    with TestClient(app) as test_client:
        yield test_client, store
    app.dependency_overrides.clear()


def test_enqueue_returns_accepted_pending_job(client) -> None:
    test_client, store = client

    response = test_client.post(
        "/generate-plan",
        json={"prompt": f"  {PROMPT}  ", "purpose": "Clarity", "agent": "fast", "userId": str(uuid4())},
    )

    assert response.status_code == 202
    body = response.json()
    assert body["status"] == "pending"
    assert body["queuedAt"]
    job = store.get(UUID(body["jobId"]))
    assert job.prompt == PROMPT
    assert job.agent == "fast"


@pytest.mark.parametrize("payload", [{}, {"prompt": ""}, {"prompt": "   "}, {"prompt": None}])
def test_enqueue_rejects_blank_prompt(client, payload) -> None:
    test_client, store = client

    response = test_client.post("/generate-plan", json=payload)

    assert response.status_code == 400
    assert response.json()["detail"] == "Prompt is required"
    assert store.find_oldest_pending() is None


def test_enqueue_storage_failure_returns_500(session_factory) -> None:
    class _BrokenStore(JobStore):
        def enqueue(self, **kwargs):
            raise OperationalError("INSERT INTO ai_generation_jobs", {}, Exception("database down"))

    app.dependency_overrides[get_job_store] = lambda: _BrokenStore(session_factory)
    try:
        with TestClient(app) as test_client:
            response = test_client.post("/generate-plan", json={"prompt": PROMPT})
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 500
    assert response.json()["detail"] == "Failed to enqueue AI generation job"


def test_status_of_pending_job_is_202(client) -> None:
    test_client, _ = client
    job_id = test_client.post("/generate-plan", json={"prompt": PROMPT}).json()["jobId"]

    response = test_client.post("/plan-status", json={"jobId": job_id})

    assert response.status_code == 202
    body = response.json()
    assert body["status"] == "pending"
    assert body["plan"] is None
    assert body["updatedAt"]


def test_status_follows_job_to_completion(client) -> None:
    test_client, store = client
    job = store.enqueue(prompt=PROMPT)

    store.claim(job.id)
    in_progress = test_client.post("/plan-status", json={"jobId": str(job.id)})
    store.mark_completed(job.id, {"title": "Blog plan", "days": []}, response_id="resp-9")
    completed = test_client.post("/plan-status", json={"jobId": str(job.id)})

    assert in_progress.status_code == 202
    assert in_progress.json()["status"] == "in_progress"
    assert completed.status_code == 200
    assert completed.json()["status"] == "completed"
    assert completed.json()["plan"]["title"] == "Blog plan"
    assert completed.json()["responseId"] == "resp-9"


def test_failed_job_reports_error(client) -> None:
    test_client, store = client
    job = store.enqueue(prompt=PROMPT)
    store.claim(job.id)
    store.mark_failed(job.id, "Plan generation failed after 3 attempt(s): timeout")

    response = test_client.get(f"/plan-status/{job.id}")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "failed"
    assert body["plan"] is None
    assert body["error"].startswith("Plan generation failed")


def test_status_unknown_job_is_404(client) -> None:
    test_client, _ = client

    assert test_client.post("/plan-status", json={"jobId": str(uuid4())}).status_code == 404
    assert test_client.post("/plan-status", json={"jobId": "not-a-uuid"}).status_code == 404
    assert test_client.get(f"/plan-status/{uuid4()}").status_code == 404


@pytest.mark.parametrize("payload", [{}, {"jobId": ""}, {"jobId": "  "}])
def test_status_requires_job_id(client, payload) -> None:
    test_client, _ = client

    response = test_client.post("/plan-status", json=payload)

    assert response.status_code == 400
    assert response.json()["detail"] == "jobId is required"


def test_status_does_not_mutate_job(client) -> None:
    test_client, store = client
    job = store.enqueue(prompt=PROMPT)

    test_client.post("/plan-status", json={"jobId": str(job.id)})
    test_client.get(f"/plan-status/{job.id}")

    assert store.get(job.id) == job


def test_generation_config_exposes_runtime_settings(client) -> None:
    test_client, _ = client

    response = test_client.get("/generation/config", headers={"X-Request-Id": "cfg-1"})

    assert response.status_code == 200
    body = response.json()
    assert body["defaultModel"]
    assert "balanced" in body["agentProfiles"]
    assert body["terminalStatuses"] == ["completed", "failed"]
    assert body["requestId"] == "cfg-1"
    assert response.headers["X-Request-Id"] == "cfg-1"


def test_health_endpoint_returns_ok(client) -> None:
    test_client, _ = client

    response = test_client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_enqueue_echoes_caller_request_id(client) -> None:
    test_client, _ = client

    response = test_client.post("/generate-plan", json={"prompt": PROMPT}, headers={"X-Request-Id": "enqueue-123"})

    assert response.status_code == 202
    assert response.headers["X-Request-Id"] == "enqueue-123"


def test_status_errors_still_carry_generated_request_id(client) -> None:
    test_client, _ = client

    first = test_client.get(f"/plan-status/{uuid4()}")
    second = test_client.get(f"/plan-status/{uuid4()}")

    assert first.status_code == 404
    assert first.headers["X-Request-Id"]
    assert first.headers["X-Request-Id"] != second.headers["X-Request-Id"]
