"""Logging, events and pass metrics shared by the driver and every reconciler."""

from __future__ import annotations

import logging
from typing import Any, Callable, TypeVar

from ..constants import CONTROLLER_NAME, EVENT_REASON_RECONCILE_FAILED
from ..logging import log_resource_event
from ..metrics import OperatorMetrics
from ..utils.errors import sanitize_exception
from ..utils.events import EventRecorder, emit_event

_T = TypeVar("_T")


class BaseHandler:
    """Structured logging and Kubernetes events scoped to one resource kind.

    Log methods take the object's ``metadata`` so each line names the object
    it is about; extra keyword arguments become JSON fields.
    """

    def __init__(self, kind: str, metrics: OperatorMetrics, recorder: EventRecorder = emit_event):
        self.kind = kind
        self.metrics = metrics
        self.recorder = recorder
        self.logger = logging.getLogger(type(self).__module__)

    def _log(self, level: int, meta: dict[str, Any], message: str, event: str, reason: str, **fields: Any) -> None:
        log_resource_event(
            self.logger,
            CONTROLLER_NAME,
            self.kind,
            meta.get("name", "unknown"),
            meta.get("namespace", "default"),
            meta.get("uid", "unknown"),
            event,
            reason,
            message,
            level=level,
            **fields,
        )

    def log_info(self, meta: dict[str, Any], message: str, event: str = "info", reason: str = "Info",
                 **fields: Any) -> None:
        self._log(logging.INFO, meta, message, event, reason, **fields)

    def log_warning(self, meta: dict[str, Any], message: str, event: str = "warning", reason: str = "Warning",
                    **fields: Any) -> None:
        self._log(logging.WARNING, meta, message, event, reason, **fields)

    def log_error(
        self,
        meta: dict[str, Any],
        message: str,
        error: BaseException | None = None,
        event: str = "error",
        reason: str = "Error",
        **fields: Any,
    ) -> None:
        """Log at ERROR level.

        Args:
            meta: Metadata of the object the failure belongs to
            message: What was being attempted
            error: Exception, logged as its sanitized text and type name
            event: Log event category
            reason: CamelCase reason
            **fields: Extra JSON fields
        """
        if error is not None:
            fields.update(error=sanitize_exception(error), error_type=type(error).__name__)
        self._log(logging.ERROR, meta, message, event, reason, **fields)

    def record_event(self, body: dict[str, Any], reason: str, message: str, type_: str = "Normal") -> None:
        """Emit a Kubernetes Event; an unreachable events API is only logged."""
        try:
            self.recorder(body, reason, message, type_)
        except Exception as e:
            self.log_warning(body.get("metadata", {}), f"Could not emit {reason} event", error=sanitize_exception(e))

    def reconcile_with_metrics(self, body: dict[str, Any], reconcile_fn: Callable[[], _T]) -> _T:
        """Run one pass, counting and timing it.

        A failing pass is counted by exception type, logged, reported as a
        ``ReconcileFailed`` Warning event and re-raised for the handler's
        retry policy.
        """
        passes = self.metrics.reconcile_total
        passes.labels(kind=self.kind, result="started").inc()
        with self.metrics.reconcile_duration_seconds.labels(kind=self.kind).time():
            try:
                result = reconcile_fn()
            except Exception as e:
                passes.labels(kind=self.kind, result="error").inc()
                self.metrics.error_total.labels(kind=self.kind, error_type=type(e).__name__).inc()
                self.log_error(body.get("metadata", {}), "Reconcile pass failed", error=e, reason="ReconcileFailed")
                self.record_event(body, EVENT_REASON_RECONCILE_FAILED,
                                  f"Reconcile failed: {sanitize_exception(e)}", "Warning")
                raise
        passes.labels(kind=self.kind, result="success").inc()
        return result
