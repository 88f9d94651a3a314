"""Liveness, readiness and Prometheus metrics on one HTTP port."""

from __future__ import annotations

import json
import os
import threading
from typing import Any, Callable

from prometheus_client import CollectorRegistry, make_wsgi_app
from werkzeug.serving import make_server
from werkzeug.wrappers import Response


def aws_credentials_available() -> bool:
    """Whether the environment can build an AWS client.

    Static keys cover non-STS clusters; a web identity token file plus role
    ARN covers STS clusters.
    """
    static = os.getenv("AWS_ACCESS_KEY_ID") and os.getenv("AWS_SECRET_ACCESS_KEY")
    web_identity = os.getenv("AWS_WEB_IDENTITY_TOKEN_FILE") and os.getenv("AWS_ROLE_ARN")
    return bool(static or web_identity)


def _liveness() -> tuple[int, dict[str, str]]:
    return 200, {"status": "ok"}


def _readiness() -> tuple[int, dict[str, str]]:
    if aws_credentials_available():
        return 200, {"status": "ready"}
    return 503, {"status": "not ready", "reason": "missing AWS credentials in environment"}


HEALTH_CHECKS: dict[str, Callable[[], tuple[int, dict[str, str]]]] = {
    "/healthz": _liveness,
    "/readyz": _readiness,
}


def create_combined_wsgi_app(registry: CollectorRegistry | None = None) -> Any:
    """Build the WSGI app: health paths answer JSON, everything else is /metrics.

    Args:
        registry: Registry to expose (prometheus default registry when omitted)
    """
    metrics_app = make_wsgi_app() if registry is None else make_wsgi_app(registry)

    def app(environ: dict[str, Any], start_response: Any) -> Any:
        check = HEALTH_CHECKS.get(environ.get("PATH_INFO", ""))
        if check is None:
            return metrics_app(environ, start_response)
        status, payload = check()
        body = json.dumps(payload, separators=(",", ":"))
        return Response(body, status=status, mimetype="application/json")(environ, start_response)

    return app


def start_health_server(port: int, registry: CollectorRegistry | None = None) -> None:
    """Serve health checks and metrics from a daemon thread until the process exits."""
    server = make_server("", port, create_combined_wsgi_app(registry), threaded=True)
    threading.Thread(target=server.serve_forever, name="health-server", daemon=True).start()
