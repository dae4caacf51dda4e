"""Dedicated plan generation worker process."""
from __future__ import annotations

import logging
import signal
import sys
import threading

from challenge_planner.core.config import get_settings
from challenge_planner.core.logging import configure_logging
from challenge_planner.db.session import SessionLocal
from challenge_planner.observability.client import init_opik
from challenge_planner.services.generation_client import PlanGenerator, build_generation_provider
from challenge_planner.services.job_store import JobStore
from challenge_planner.services.plan_worker import PlanWorker


logger = logging.getLogger(__name__)


def main() -> None:
    config = get_settings()
    configure_logging(log_level=config.log_level, process="worker")
    init_opik()

    try:
        provider = build_generation_provider(config)
    except RuntimeError as exc:
        logger.error("Plan worker cannot start: %s", exc)
        sys.exit(1)

    generator = PlanGenerator.from_settings(config, provider)
    store = JobStore(SessionLocal)
    stop_event = threading.Event()
    worker = PlanWorker.from_settings(config, store, generator, stop_event=stop_event)
    logger.info(
        "Plan worker starting (backend=%s, model=%s, max_retries=%s)",
        provider.name,
        config.openai_model,
        config.openai_max_retries,
    )

    def shutdown(signum, frame):  # pragma: no cover - signal handler
        logger.info("Plan worker shutting down (signal=%s)", signum)
        stop_event.set()

    signal.signal(signal.SIGINT, shutdown)
    signal.signal(signal.SIGTERM, shutdown)

    try:
        worker.run_forever()
    except KeyboardInterrupt:  # pragma: no cover - manual stop
        shutdown(signal.SIGINT, None)


if __name__ == "__main__":  # pragma: no cover - manual launch
    main()
