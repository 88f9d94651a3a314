"""Tests for cluster context resolution."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from vpce_operator.cluster import (
    ClusterInfo,
    ClusterInfoCache,
    discover_private_subnets,
    hosted_control_plane_domain,
    hosted_control_plane_infra_id,
    resolve_cluster_info,
)


def infrastructure(name="c1", platform="AWS", region="us-east-1"):
    return {
        "status": {
            "infrastructureName": name,
            "platformStatus": {"type": platform, "aws": {"region": region}},
        }
    }


@pytest.fixture
def api():
    api = MagicMock()
    api.get_cluster_custom_object.side_effect = lambda **kw: {
        "infrastructures": infrastructure(),
        "dnses": {"spec": {"baseDomain": "c1.example.com"}},
    }[kw["plural"]]
    return api


class TestResolveClusterInfo:
    """Test cases for resolve_cluster_info."""

    def test_resolves(self, api, aws):
        """Test that cluster identifiers come from config objects and subnets."""
        aws.find_subnets.return_value = [{"SubnetId": "subnet-a"}, {"SubnetId": "subnet-b"}]
        aws.get_vpc_id.return_value = "vpc-1"
        factory = MagicMock(return_value=aws)

        info = resolve_cluster_info(api, factory)

        assert info == ClusterInfo("c1", "kubernetes.io/cluster/c1", "us-east-1", "c1.example.com", "vpc-1")
        factory.assert_called_once_with("us-east-1")
        aws.get_vpc_id.assert_called_once_with(["subnet-a", "subnet-b"])

    def test_non_aws_platform(self, api, aws):
        """Test that other platforms are rejected."""
        api.get_cluster_custom_object.side_effect = lambda **kw: infrastructure(platform="GCP")

        with pytest.raises(ValueError, match="unsupported platform"):
            resolve_cluster_info(api, MagicMock(return_value=aws))

    def test_no_subnets(self, api, aws):
        """Test that a cluster without tagged subnets is rejected."""
        aws.find_subnets.return_value = []

        with pytest.raises(ValueError, match="no subnets"):
            resolve_cluster_info(api, MagicMock(return_value=aws))


class TestDiscoverPrivateSubnets:
    """Test cases for discover_private_subnets."""

    def test_prefers_internal_elb(self, aws):
        """Test that internal-elb subnets are used when present."""
        aws.find_subnets.return_value = [{"SubnetId": "subnet-a"}]

        assert discover_private_subnets(aws, "kubernetes.io/cluster/c1") == [{"SubnetId": "subnet-a"}]
        aws.find_subnets.assert_called_once_with({}, ["kubernetes.io/cluster/c1", "kubernetes.io/role/internal-elb"])

    def test_extra_tags_passed(self, aws):
        """Test that spec.vpc.subnetTags filters are applied."""
        aws.find_subnets.return_value = [{"SubnetId": "subnet-a"}]

        discover_private_subnets(aws, "kubernetes.io/cluster/c1", {"tier": "private"})

        assert aws.find_subnets.call_args.args[0] == {"tier": "private"}

    def test_without_cluster_tag(self, aws):
        """Test that only the internal-elb tag is required without a cluster tag."""
        aws.find_subnets.return_value = []

        assert discover_private_subnets(aws, None) == []
        aws.find_subnets.assert_called_once_with({}, ["kubernetes.io/role/internal-elb"])


class TestClusterInfoCache:
    """Test cases for ClusterInfoCache."""

    def test_resolves_once(self, cluster):
        """Test that the resolver runs only on first use."""
        resolver = MagicMock(return_value=cluster)
        cache = ClusterInfoCache(resolver)

        assert cache.get() is cluster
        assert cache.get() is cluster
        resolver.assert_called_once()

    def test_failure_not_cached(self, cluster):
        """Test that a failed resolution is retried on the next pass."""
        resolver = MagicMock(side_effect=[ValueError("not yet"), cluster])
        cache = ClusterInfoCache(resolver)

        with pytest.raises(ValueError):
            cache.get()
        assert cache.get() is cluster


def hosted_control_plane(services=None, infra_id="hc-1"):
    return {"metadata": {"name": "hcp"}, "spec": {"infraID": infra_id, "services": services or []}}


def api_server(hostname, publishing_type="Route"):
    return {
        "service": "APIServer",
        "servicePublishingStrategy": {"type": publishing_type, "route": {"hostname": hostname}},
    }


class TestHostedControlPlane:
    """Test cases for the hosted control plane readers."""

    def test_infra_id(self):
        """Test that spec.infraID is returned."""
        assert hosted_control_plane_infra_id(hosted_control_plane()) == "hc-1"

    def test_blank_infra_id(self):
        """Test that a blank infraID is rejected."""
        with pytest.raises(ValueError, match="infraID"):
            hosted_control_plane_infra_id(hosted_control_plane(infra_id=""))

    def test_domain_from_api_route(self):
        """Test that the domain is the APIServer hostname without its api. prefix."""
        hcp = hosted_control_plane([{"service": "OAuthServer"}, api_server("api.hc.example.com")])

        assert hosted_control_plane_domain(hcp) == "hc.example.com"

    @pytest.mark.parametrize(
        "services,message",
        [
            ([], "unable to find APIServer in"),
            ([api_server("api.hc.example.com", publishing_type="LoadBalancer")], "route hostname"),
            ([api_server("")], "route hostname"),
            ([api_server("kube.hc.example.com")], "api.<domain>"),
        ],
    )
    def test_domain_errors(self, services, message):
        """Test that an APIServer without a usable route is rejected."""
        with pytest.raises(ValueError, match=message):
            hosted_control_plane_domain(hosted_control_plane(services))

    def test_with_infra_name(self, cluster):
        """Test that another infrastructure name also changes the cluster tag."""
        hosted = cluster.with_infra_name("hc-1")

        assert hosted.infra_name == "hc-1"
        assert hosted.cluster_tag == "kubernetes.io/cluster/hc-1"
        assert hosted.vpc_id == cluster.vpc_id
