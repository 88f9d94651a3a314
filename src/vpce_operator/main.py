"""Operator entry point: ``kopf run -m vpce_operator.main``."""

from __future__ import annotations

import logging
import os
from typing import Any

import kopf

from . import health
from . import logging as structured_logging
from . import tracing
from .handlers import vpc_endpoint  # noqa: F401

API_REQUEST_TIMEOUT_SECONDS = 30.0


@kopf.on.startup()
def configure(settings: kopf.OperatorSettings, **_: Any) -> None:
    """Wire logging, kopf settings, tracing and the health/metrics server.

    Environment Variables:
        LOG_LEVEL: Root log level name (default: INFO)
        KOPF_MAX_WORKERS: Sync handler thread pool size (default: 4)
        METRICS_PORT: Port for /metrics, /healthz and /readyz (default: 8080)
    """
    structured_logging.setup_structured_logging(logging.getLevelName(os.getenv("LOG_LEVEL", "INFO").upper()))

    # status belongs to the reconcilers; kopf keeps its bookkeeping in annotations
    settings.persistence.progress_storage = kopf.AnnotationsProgressStorage()
    settings.persistence.diffbase_storage = kopf.AnnotationsDiffBaseStorage()

    # Events are recorded explicitly, not from every kopf log line
    settings.posting.level = logging.CRITICAL
    settings.networking.request_timeout = API_REQUEST_TIMEOUT_SECONDS
    settings.execution.max_workers = int(os.getenv("KOPF_MAX_WORKERS", "4"))

    tracing.initialize_tracing()
    health.start_health_server(int(os.getenv("METRICS_PORT", "8080")))
