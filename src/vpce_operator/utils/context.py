"""Ids that tie together the log lines of one reconcile pass."""

from __future__ import annotations

import contextvars
import uuid
from contextlib import contextmanager
from typing import Any, Iterator

from ..tracing import current_trace_id

correlation_id: contextvars.ContextVar[str | None] = contextvars.ContextVar("correlation_id", default=None)


def get_correlation_id() -> str | None:
    return correlation_id.get()


@contextmanager
def with_correlation_id(corr_id: str | None = None) -> Iterator[str]:
    """Tag everything logged inside the block with one correlation id.

    Args:
        corr_id: Id to use; a fresh 16-hex-digit id when omitted

    Yields:
        The id in effect
    """
    token = correlation_id.set(corr_id or uuid.uuid4().hex[:16])
    try:
        yield correlation_id.get()
    finally:
        correlation_id.reset(token)


def get_context_dict(additional: dict[str, Any] | None = None) -> dict[str, Any]:
    """Correlation and trace ids of the running pass merged with ``additional``."""
    ids = {"correlation_id": get_correlation_id(), "trace_id": current_trace_id()}
    ctx = {key: value for key, value in ids.items() if value}
    ctx.update(additional or {})
    return ctx
