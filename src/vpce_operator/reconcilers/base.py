"""Shared state and helpers for the per-subresource reconcilers."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable

from ..cluster import ClusterInfo
from ..constants import CREATED_REQUEUE_SECONDS, KIND_VPC_ENDPOINT
from ..handlers.base import BaseHandler
from ..metrics import OperatorMetrics
from ..services.aws.client import AWSClient
from ..utils.conditions import ConditionSetter
from ..utils.errors import sanitize_exception
from ..utils.events import EventRecorder, emit_event

# (region, (access_key_id, secret_access_key) or None, role ARN or None) -> client
AWSClientFactory = Callable[..., AWSClient]


class RequeueRequested(Exception):
    """Stop the current pass without error and run again after ``delay`` seconds."""

    def __init__(self, message: str, delay: float) -> None:
        super().__init__(message)
        self.delay = delay


class ResourceCreated(RequeueRequested):
    """A provider resource was just created; converge it on the next pass."""

    def __init__(self, message: str, delay: float = CREATED_REQUEUE_SECONDS) -> None:
        super().__init__(message, delay)


class EndpointStateError(Exception):
    """The VPC endpoint is in a state the operator cannot recover from on its own."""


class EndpointNotReadyError(Exception):
    """The VPC endpoint has not published DNS entries yet."""


@dataclass
class ReconcileContext:
    """Everything one reconcile pass of one VpcEndpoint works with.

    ``resource`` is the live object body; reconcilers mutate its status and
    persist it step by step.
    """

    resource: dict[str, Any]
    config: dict[str, Any] | None
    cluster: ClusterInfo
    aws: AWSClient
    region: str

    @property
    def meta(self) -> dict[str, Any]:
        return self.resource["metadata"]

    @property
    def status(self) -> dict[str, Any]:
        return self.resource.setdefault("status", {})

    @property
    def conditions(self) -> list[dict[str, Any]]:
        return self.status.setdefault("conditions", [])

    @property
    def name(self) -> str:
        return self.meta["name"]

    @property
    def namespace(self) -> str:
        return self.meta["namespace"]


class SubresourceReconciler(BaseHandler):
    """Base class for reconcilers that own one slice of a VpcEndpoint's status."""

    def __init__(
        self,
        store: Any,
        metrics: OperatorMetrics,
        recorder: EventRecorder = emit_event,
    ) -> None:
        super().__init__(KIND_VPC_ENDPOINT, metrics, recorder)
        self.store = store

    def persist_status(self, ctx: ReconcileContext) -> None:
        """Write the current status through to the API server."""
        try:
            self.store.update_status(ctx.resource)
        except Exception as e:
            self.log_error(ctx.meta, "Failed to persist status", error=e, reason="StatusUpdateFailed")
            raise

    def set_condition(
        self,
        ctx: ReconcileContext,
        setter: ConditionSetter,
        status: bool,
        reason: str,
        message: str,
    ) -> None:
        """Apply a condition setter to the context's conditions."""
        ctx.status["conditions"] = setter(ctx.conditions, status, reason, message)

    def fail(
        self,
        ctx: ReconcileContext,
        setter: ConditionSetter,
        reason: str,
        error: Exception,
    ) -> None:
        """Record a failure on a condition and persist it.

        The caller re-raises ``error``; a failure to persist is logged and the
        original error wins.
        """
        self.set_condition(ctx, setter, False, reason, sanitize_exception(error))
        try:
            self.persist_status(ctx)
        except Exception:
            # Already logged; the caller re-raises the original error
            return
