"""Correlation ID middleware for request tracing.

Every request gets an X-Request-ID (echoed if the caller sent one). The id is
injected into log lines by ``app.core.logging.add_correlation_id`` and is
forwarded on internal webhook replays so a retried event can be traced back
to the queue run that sent it.
"""

import uuid

from asgi_correlation_id import CorrelationIdMiddleware
from asgi_correlation_id.context import correlation_id
from fastapi import FastAPI

REQUEST_ID_HEADER = "X-Request-ID"


def setup_correlation_middleware(app: FastAPI) -> None:
    """Add correlation ID middleware to FastAPI app."""
    app.add_middleware(
        CorrelationIdMiddleware,
        header_name=REQUEST_ID_HEADER,
        generator=lambda: str(uuid.uuid4()),
        validator=None,  # Accept any format
        transformer=lambda a: a,
    )


def get_correlation_id() -> str | None:
    """Current request's correlation ID, or None outside a request."""
    try:
        return correlation_id.get()
    except LookupError:
        return None


def correlation_headers() -> dict[str, str]:
    """Headers that propagate the current correlation ID to an outbound call."""
    cid = get_correlation_id()
    return {REQUEST_ID_HEADER: cid} if cid else {}


__all__ = ["correlation_headers", "get_correlation_id", "setup_correlation_middleware"]
