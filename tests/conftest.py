"""Shared pytest fixtures."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
from prometheus_client import CollectorRegistry

from vpce_operator.builders.vpc_endpoint import create_endpoint_config_from_spec
from vpce_operator.cluster import ClusterInfo
from vpce_operator.metrics import OperatorMetrics
from vpce_operator.reconcilers.base import ReconcileContext
from vpce_operator.services.aws.client import AWSClient
from vpce_operator.utils import rate_limit

SERVICE_NAME = "com.amazonaws.vpce.us-east-1.vpce-svc-123"


@pytest.fixture(autouse=True)
def no_rate_limit(monkeypatch):
    """Let API calls through without spacing them out."""
    monkeypatch.setattr(rate_limit._k8s_limiter, "min_interval", 0.0)
    monkeypatch.setattr(rate_limit._aws_limiter, "min_interval", 0.0)


@pytest.fixture
def cluster():
    """Cluster identifiers used across reconciler tests."""
    return ClusterInfo(
        infra_name="c1",
        cluster_tag="kubernetes.io/cluster/c1",
        region="us-east-1",
        domain_name="c1.example.com",
        vpc_id="vpc-1",
    )


@pytest.fixture
def metrics():
    """Metrics bound to a fresh registry."""
    return OperatorMetrics(CollectorRegistry())


@pytest.fixture
def store():
    """Mock VpcEndpoint store."""
    return MagicMock()


@pytest.fixture
def recorder():
    """Mock event recorder."""
    return MagicMock()


@pytest.fixture
def aws():
    """Mock AWS client restricted to the real client's methods."""
    return MagicMock(spec=AWSClient)


def make_resource(name="api", namespace="ns", spec=None, status=None, **meta):
    """Build a VpcEndpoint body."""
    metadata = {"name": name, "namespace": namespace, "uid": f"uid-{name}", "finalizers": []}
    metadata.update(meta)
    body = {
        "apiVersion": "vpce.cloud37.dev/v1alpha2",
        "kind": "VpcEndpoint",
        "metadata": metadata,
        "spec": spec if spec is not None else {
            "serviceName": SERVICE_NAME,
            "vpc": {"autoDiscoverSubnets": True},
            "securityGroup": {"ingressRules": [{"fromPort": 443, "toPort": 443, "protocol": "tcp"}]},
        },
    }
    if status is not None:
        body["status"] = status
    return body


@pytest.fixture
def make_context(cluster, aws):
    """Factory for ReconcileContext around a VpcEndpoint body."""

    def _make(resource=None, config=None, **status):
        resource = resource or make_resource(status=dict(status))
        if config is None:
            config = create_endpoint_config_from_spec(resource["spec"])
        return ReconcileContext(resource=resource, config=config, cluster=cluster, aws=aws, region="us-east-1")

    return _make
