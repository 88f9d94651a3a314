"""OpenTelemetry tracing for reconcile passes.

Tracing is off unless ``OTEL_TRACES_ENABLED=true``. Spans are named
``vpce.<step>`` and carry the VpcEndpoint name plus the AWS ids a step works
on; the active trace id is also stamped on every structured log line.
"""

from __future__ import annotations

import logging
import os
from contextlib import contextmanager
from typing import Any, Iterator

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.trace import Span, Tracer

logger = logging.getLogger(__name__)

DEFAULT_SERVICE_NAME = "vpce-operator"
SPAN_PREFIX = "vpce"

_tracer: Tracer | None = None


def initialize_tracing(service_name: str = DEFAULT_SERVICE_NAME) -> bool:
    """Install an OTLP span exporter when tracing is enabled.

    Environment Variables:
        OTEL_TRACES_ENABLED: ``true`` turns tracing on (default: off)
        OTEL_EXPORTER_OTLP_ENDPOINT: Collector endpoint (default: http://localhost:4317)
        OTEL_SERVICE_NAME: Overrides ``service_name``

    Returns:
        Whether a tracer was installed
    """
    global _tracer

    if os.getenv("OTEL_TRACES_ENABLED", "false").lower() != "true":
        logger.info("Tracing disabled")
        return False

    endpoint = os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT", "http://localhost:4317")
    resource = Resource.create({
        "service.name": os.getenv("OTEL_SERVICE_NAME", service_name),
        "service.version": os.getenv("OTEL_SERVICE_VERSION", "unknown"),
    })
    try:
        provider = TracerProvider(resource=resource)
        provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=endpoint)))
        trace.set_tracer_provider(provider)
    except Exception as e:
        # The operator keeps reconciling without traces
        logger.warning(f"Failed to initialize tracing: {e}")
        return False

    _tracer = trace.get_tracer(DEFAULT_SERVICE_NAME)
    logger.info(f"Tracing enabled, exporting to {endpoint}")
    return True


def get_tracer() -> Tracer | None:
    return _tracer


def current_trace_id() -> str | None:
    """Hex id of the active trace, or None outside a recorded span."""
    span_context = trace.get_current_span().get_span_context()
    if not span_context.is_valid:
        return None
    return format(span_context.trace_id, "032x")


@contextmanager
def trace_span(
    name: str,
    kind: str | None = None,
    attributes: dict[str, Any] | None = None,
) -> Iterator[Span | None]:
    """Run a block inside a ``vpce.<name>`` span.

    Exceptions leaving the block are recorded on the span and mark it as an
    error before propagating. Attributes whose value is None are dropped.

    Args:
        name: Step name, e.g. ``reconcile_security_group``
        kind: Resource kind of the object being reconciled
        attributes: Extra span attributes

    Yields:
        The span, or None when tracing is disabled
    """
    tracer = _tracer
    if tracer is None:
        yield None
        return

    attrs = {key: value for key, value in (attributes or {}).items() if value is not None}
    if kind:
        attrs["k8s.resource.kind"] = kind

    with tracer.start_as_current_span(
        f"{SPAN_PREFIX}.{name}",
        attributes=attrs,
        record_exception=True,
        set_status_on_exception=True,
    ) as span:
        yield span
