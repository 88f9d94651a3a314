"""Utilities for emitting Kubernetes events."""

from __future__ import annotations

from typing import Any, Protocol

import kopf


class EventRecorder(Protocol):
    """Callable that records an event against a resource."""

    def __call__(self, body: dict[str, Any], reason: str, message: str, type_: str = "Normal") -> None:
        ...


def emit_event(
    body: dict[str, Any],
    reason: str,
    message: str,
    type_: str = "Normal",
) -> None:
    """Emit a Kubernetes event.

    Args:
        body: Resource body (apiVersion, kind and metadata are used)
        reason: Event reason
        message: Event message
        type_: Event type (Normal or Warning)
    """
    kopf.event(
        body,
        reason=reason,
        message=message,
        type=type_,
    )
