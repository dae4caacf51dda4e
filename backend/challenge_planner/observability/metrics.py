"""Pipeline metrics recorded as Opik traces."""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from challenge_planner.observability.client import get_opik_client

logger = logging.getLogger(__name__)


def log_metric(name: str, value: float | int, metadata: Optional[Dict[str, Any]] = None) -> None:
    """Record ``name=value`` when Opik is enabled; always mirrored at debug level."""
    logger.debug("metric %s=%s %s", name, value, metadata or {})
    client = get_opik_client()
    if not client:
        return

    payload: Dict[str, Any] = {"value": value}
    if metadata:
        payload.update({key: str(item) if not isinstance(item, (int, float, bool)) else item for key, item in metadata.items()})

    try:
        client.trace(name=f"metric:{name}", metadata=payload)
    except Exception as exc:  # pragma: no cover - exporter failures
        logger.debug("Unable to record metric %s: %s", name, exc)
