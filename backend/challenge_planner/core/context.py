"""Per-request and per-job context utilities."""
from __future__ import annotations

from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator

request_id_ctx_var: ContextVar[str | None] = ContextVar("request_id", default=None)


def get_request_id() -> str | None:
    """Return the current request id if available."""
    return request_id_ctx_var.get()


@contextmanager
def bound_request_id(value: str) -> Iterator[str]:
    """Bind a correlation id (HTTP request or worker job) for the enclosed block."""
    token = request_id_ctx_var.set(value)
    try:
        yield value
    finally:
        request_id_ctx_var.reset(token)
