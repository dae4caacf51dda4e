"""Custom FastAPI middleware."""
from __future__ import annotations

from typing import Callable
from uuid import uuid4

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from challenge_planner.core.context import bound_request_id


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Populate request.state.request_id and echo it on the response."""

    async def dispatch(self, request: Request, call_next: Callable[[Request], Response]) -> Response:  # type: ignore[override]
        request_id = request.headers.get("X-Request-Id") or str(uuid4())
        request.state.request_id = request_id

        with bound_request_id(request_id):
            response = await call_next(request)

        response.headers["X-Request-Id"] = request_id
        return response
