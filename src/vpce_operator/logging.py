"""JSON log lines for VpcEndpoint reconcile passes.

Every line is one JSON object naming the VpcEndpoint, what happened to it and
the ids of the pass that did it, so a pass can be followed with a single
``jq 'select(.correlation_id == ...)'``.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

from .utils.context import get_context_dict
from .utils.errors import sanitize_dict

# Libraries that log every HTTP request at INFO
NOISY_LOGGERS = ("botocore", "boto3", "urllib3", "kubernetes.client.rest")


def setup_structured_logging(level: int = logging.INFO) -> None:
    """Send bare messages to stdout; the JSON is built by :func:`log_resource_event`."""
    logging.basicConfig(level=level, format="%(message)s", handlers=[logging.StreamHandler(sys.stdout)])
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))


def log_resource_event(
    logger: logging.Logger,
    controller: str,
    resource_kind: str,
    resource_name: str,
    namespace: str,
    uid: str,
    event: str,
    reason: str,
    message: str,
    level: int = logging.INFO,
    **fields: Any,
) -> None:
    """Log one JSON line about a resource.

    Extra ``fields`` (AWS ids, sanitized error text) are redacted and merged
    first, so they can never overwrite the identifying keys.
    """
    if not logger.isEnabledFor(level):
        return
    line = sanitize_dict(fields)
    line.update(get_context_dict())
    line.update(
        ts=datetime.now(timezone.utc).isoformat(),
        controller=controller,
        kind=resource_kind,
        namespace=namespace,
        name=resource_name,
        uid=uid,
        event=event,
        reason=reason,
        message=message,
    )
    logger.log(level, json.dumps(line, default=str))
