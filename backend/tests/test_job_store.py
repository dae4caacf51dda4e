from __future__ import annotations

import threading
from datetime import timedelta
from uuid import uuid4

from sqlalchemy import create_engine, update
from sqlalchemy.orm import sessionmaker

from challenge_planner.db.models.generation_job import GenerationJob
from challenge_planner.db.types import utcnow
from challenge_planner.services.job_store import JobStore


def _age_job(session_factory, job_id, seconds: int, **values) -> None:
    session = session_factory()
    try:
        session.execute(
            update(GenerationJob)
            .where(GenerationJob.id == job_id)
            .values(updated_at=utcnow() - timedelta(seconds=seconds), **values)
        )
        session.commit()
    finally:
        session.close()


def test_enqueue_creates_pending_job(store) -> None:
    owner = uuid4()

    job = store.enqueue(prompt="Run a 5k", purpose="Health", agent="fast", user_id=owner)

    assert job.status == "pending"
    assert job.result is None and job.error is None
    assert job.user_id == owner
    assert job.created_at.tzinfo is not None
    assert store.get(job.id) == job


def test_get_unknown_job_returns_none(store) -> None:
    assert store.get(uuid4()) is None


def test_claim_succeeds_once(store) -> None:
    job = store.enqueue(prompt="Learn Spanish")

    first = store.claim(job.id)
    second = store.claim(job.id)

    assert first is not None and first.status == "in_progress"
    assert second is None


def test_concurrent_claims_have_exactly_one_winner(tmp_path) -> None:
    engine = create_engine(
        f"sqlite:///{tmp_path / 'jobs.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
        future=True,
    )
    GenerationJob.__table__.create(bind=engine)
    store = JobStore(sessionmaker(bind=engine, expire_on_commit=False, future=True))
    job = store.enqueue(prompt="Write a novel")

    workers = 8
    barrier = threading.Barrier(workers)
    outcomes = []
    lock = threading.Lock()

    def _claim() -> None:
        barrier.wait()
        claimed = store.claim(job.id)
        with lock:
            outcomes.append(claimed)

    threads = [threading.Thread(target=_claim) for _ in range(workers)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
    engine.dispose()

    assert len(outcomes) == workers
    assert sum(1 for outcome in outcomes if outcome is not None) == 1


def test_oldest_pending_is_selected_first(store) -> None:
    first = store.enqueue(prompt="one")
    second = store.enqueue(prompt="two")
    third = store.enqueue(prompt="three")

    order = []
    while (candidate := store.find_oldest_pending()) is not None:
        claimed = store.claim(candidate.id)
        order.append(claimed.id)

    assert order == [first.id, second.id, third.id]


def test_completion_is_written_once(store) -> None:
    job = store.enqueue(prompt="Meditate daily")
    store.claim(job.id)

    assert store.mark_completed(job.id, {"title": "Calm"}, response_id="resp-1") is True
    assert store.mark_failed(job.id, "late failure") is False
    assert store.mark_completed(job.id, {"title": "Again"}) is False

    stored = store.get(job.id)
    assert stored.status == "completed"
    assert stored.result == {"title": "Calm"}
    assert stored.error is None
    assert stored.response_id == "resp-1"


def test_failure_clears_result(store) -> None:
    job = store.enqueue(prompt="Save money")
    store.claim(job.id)

    assert store.mark_failed(job.id, "Plan generation failed") is True

    stored = store.get(job.id)
    assert stored.status == "failed"
    assert stored.result is None
    assert stored.error == "Plan generation failed"
    assert stored.is_terminal


def test_terminal_write_requires_claim(store) -> None:
    job = store.enqueue(prompt="Unclaimed")

    assert store.mark_completed(job.id, {"title": "x"}) is False
    assert store.mark_failed(job.id, "x") is False
    assert store.mark_failed(uuid4(), "missing") is False
    assert store.get(job.id).status == "pending"


def test_fallback_user_applies_only_to_unowned_jobs(store) -> None:
    fallback = uuid4()
    owner = uuid4()
    unowned = store.enqueue(prompt="Unowned")
    owned = store.enqueue(prompt="Owned", user_id=owner)
    store.claim(unowned.id)
    store.claim(owned.id)

    store.mark_completed(unowned.id, {"title": "a"}, fallback_user_id=fallback)
    store.mark_completed(owned.id, {"title": "b"}, fallback_user_id=fallback)

    assert store.get(unowned.id).user_id == fallback
    assert store.get(owned.id).user_id == owner


def test_stale_in_progress_job_is_revived(store, session_factory) -> None:
    stale = store.enqueue(prompt="Stale")
    fresh = store.enqueue(prompt="Fresh")
    store.claim(stale.id)
    store.claim(fresh.id)
    _age_job(session_factory, stale.id, 600, error="worker crashed")
    assert store.get(stale.id).error == "worker crashed"

    revived = store.revive_stale(timedelta(seconds=300))

    assert revived == 1
    reloaded = store.get(stale.id)
    assert reloaded.status == "pending"
    assert reloaded.error is None
    assert reloaded.created_at == stale.created_at
    assert store.get(fresh.id).status == "in_progress"
    assert store.claim(stale.id) is not None


def test_pending_job_is_never_touched_by_revival(store, session_factory) -> None:
    job = store.enqueue(prompt="Waiting forever")
    _age_job(session_factory, job.id, 86400)

    assert store.revive_stale(timedelta(seconds=300)) == 0
    assert store.get(job.id).status == "pending"


def test_terminal_jobs_are_never_revived(store, session_factory) -> None:
    job = store.enqueue(prompt="Done")
    store.claim(job.id)
    store.mark_failed(job.id, "boom")
    _age_job(session_factory, job.id, 86400)

    assert store.revive_stale(timedelta(seconds=300)) == 0
    assert store.get(job.id).status == "failed"
