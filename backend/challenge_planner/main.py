"""FastAPI application serving the challenge plan job endpoints."""
from fastapi import FastAPI, Request

from challenge_planner.api.routes.plan_jobs import router as plan_jobs_router
from challenge_planner.core.config import settings
from challenge_planner.core.logging import configure_logging
from challenge_planner.core.middleware import RequestIDMiddleware
from challenge_planner.observability.client import init_opik
from challenge_planner.observability.tracing import trace

configure_logging(log_level=settings.log_level)

app = FastAPI(title=settings.app_name, version="0.1.0")
app.add_middleware(RequestIDMiddleware)
app.include_router(plan_jobs_router)


@app.on_event("startup")
async def startup_observability() -> None:
    """Initialize observability backends after the event loop starts."""
    init_opik()


@app.get("/health", tags=["health"], summary="Readiness probe")
async def health_check(request: Request) -> dict[str, str]:
    """Return a simple status payload so automation can probe the API."""
    with trace("http.health_check", metadata={"route": "/health"}, request_id=request.state.request_id):
        return {"status": "ok"}
