"""Prometheus metrics for the VPC Endpoint Operator.

All collectors live on an ``OperatorMetrics`` instance bound to a registry so
reconcilers receive their metrics sink at construction time. ``main`` builds
the process instance against the default registry; tests pass a fresh
``CollectorRegistry``.
"""

from __future__ import annotations

import logging

from prometheus_client import REGISTRY, CollectorRegistry, Counter, Gauge, Histogram

logger = logging.getLogger(__name__)

_PREFIX = "vpce_operator"


class OperatorMetrics:
    """Metrics sink shared by the handlers and reconcilers."""

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        registry = registry if registry is not None else REGISTRY
        self.registry = registry

        # Reconciliation metrics
        self.reconcile_total = Counter(
            f"{_PREFIX}_reconcile_total",
            "Total number of reconciliations",
            ["kind", "result"],
            registry=registry,
        )

        self.reconcile_duration_seconds = Histogram(
            f"{_PREFIX}_reconcile_duration_seconds",
            "Duration of reconciliations in seconds",
            ["kind"],
            buckets=[0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0],
            registry=registry,
        )

        self.error_total = Counter(
            f"{_PREFIX}_error_total",
            "Total number of reconciliation errors",
            ["kind", "error_type"],
            registry=registry,
        )

        # API call metrics
        self.api_call_total = Counter(
            f"{_PREFIX}_api_call_total",
            "Total number of API calls",
            ["api_type", "operation", "result"],
            registry=registry,
        )

        self.api_call_duration_seconds = Histogram(
            f"{_PREFIX}_api_call_duration_seconds",
            "Duration of API calls in seconds",
            ["api_type", "operation"],
            buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 2.5, 5.0],
            registry=registry,
        )

        # Endpoint state metrics
        self.pending_acceptance = Gauge(
            f"{_PREFIX}_pending_acceptance",
            "VPC endpoints waiting for the endpoint service owner to accept the connection",
            ["name", "namespace", "vpce_id"],
            registry=registry,
        )

        self.unauthorized_operation_total = Gauge(
            f"{_PREFIX}_unauthorized_operation_total",
            "AWS operations rejected as unauthorized",
            ["action"],
            registry=registry,
        )

    def set_pending_acceptance(self, name: str, namespace: str, vpce_id: str, pending: bool) -> None:
        """Record whether an endpoint is waiting for acceptance."""
        self.pending_acceptance.labels(name=name, namespace=namespace, vpce_id=vpce_id).set(1 if pending else 0)

    def delete_pending_acceptance(self, name: str, namespace: str, vpce_id: str) -> None:
        """Drop the pending-acceptance series for an endpoint, ignoring unknown labels."""
        try:
            self.pending_acceptance.remove(name, namespace, vpce_id)
        except KeyError:
            logger.debug(f"No pending acceptance series for {namespace}/{name} ({vpce_id})")

    def record_unauthorized(self, action: str) -> None:
        """Count an unauthorized AWS operation."""
        self.unauthorized_operation_total.labels(action=action).inc()
