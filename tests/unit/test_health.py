"""Tests for health check endpoints."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
from prometheus_client import CollectorRegistry, Counter

from vpce_operator.health import aws_credentials_available, create_combined_wsgi_app

_AWS_ENV = ("AWS_ACCESS_KEY_ID", "AWS_SECRET_ACCESS_KEY", "AWS_WEB_IDENTITY_TOKEN_FILE", "AWS_ROLE_ARN")


@pytest.fixture
def clean_aws_env(monkeypatch):
    """Remove AWS credential variables from the environment."""
    for name in _AWS_ENV:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


def call(app, path):
    environ = {
        "REQUEST_METHOD": "GET",
        "PATH_INFO": path,
        "SCRIPT_NAME": "",
        "SERVER_NAME": "localhost",
        "SERVER_PORT": "8080",
        "wsgi.url_scheme": "http",
    }
    start_response = MagicMock()
    body = b"".join(app(environ, start_response))
    return start_response.call_args[0][0], body


class TestCredentialsAvailable:
    """Test cases for aws_credentials_available."""

    def test_no_credentials(self, clean_aws_env):
        """Test that an empty environment is not ready."""
        assert not aws_credentials_available()

    def test_static_keys(self, clean_aws_env):
        """Test static access keys."""
        clean_aws_env.setenv("AWS_ACCESS_KEY_ID", "AKIA")
        clean_aws_env.setenv("AWS_SECRET_ACCESS_KEY", "secret")
        assert aws_credentials_available()

    def test_half_static_keys(self, clean_aws_env):
        """Test that an access key alone is not enough."""
        clean_aws_env.setenv("AWS_ACCESS_KEY_ID", "AKIA")
        assert not aws_credentials_available()

    def test_web_identity(self, clean_aws_env):
        """Test STS web identity credentials."""
        clean_aws_env.setenv("AWS_WEB_IDENTITY_TOKEN_FILE", "/var/run/token")
        clean_aws_env.setenv("AWS_ROLE_ARN", "arn:aws:iam::123:role/vpce")
        assert aws_credentials_available()


class TestCombinedApp:
    """Test cases for the combined WSGI app."""

    def test_healthz(self, clean_aws_env):
        """Test /healthz always reports ok."""
        status, body = call(create_combined_wsgi_app(CollectorRegistry()), "/healthz")

        assert "200" in status
        assert b'"status":"ok"' in body

    def test_readyz_without_credentials(self, clean_aws_env):
        """Test /readyz is 503 without credentials."""
        status, body = call(create_combined_wsgi_app(CollectorRegistry()), "/readyz")

        assert "503" in status
        assert b"missing AWS credentials" in body

    def test_readyz_with_credentials(self, clean_aws_env):
        """Test /readyz is 200 with credentials."""
        clean_aws_env.setenv("AWS_ACCESS_KEY_ID", "AKIA")
        clean_aws_env.setenv("AWS_SECRET_ACCESS_KEY", "secret")

        status, body = call(create_combined_wsgi_app(CollectorRegistry()), "/readyz")

        assert "200" in status
        assert b'"status":"ready"' in body

    def test_metrics_delegated(self, clean_aws_env):
        """Test that other paths are served by the prometheus app."""
        registry = CollectorRegistry()
        Counter("vpce_operator_test_events", "test counter", registry=registry).inc()

        status, body = call(create_combined_wsgi_app(registry), "/metrics")

        assert "200" in status
        assert b"vpce_operator_test_events_total 1.0" in body
