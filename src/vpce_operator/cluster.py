"""Cluster-wide context shared by every reconcile pass."""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Any, Callable

from .constants import (
    CLUSTER_CONFIG_NAME,
    CONFIG_GROUP,
    CONFIG_VERSION,
    DNS_PLURAL,
    HOSTED_CONTROL_PLANE_API_PREFIX,
    INFRASTRUCTURE_PLURAL,
    INTERNAL_ELB_TAG_KEY,
)
from .services.aws.base import VpcEndpointOperations
from .utils.naming import get_cluster_tag_key
from .utils.rate_limit import rate_limit_k8s

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ClusterInfo:
    """Identifiers of the cluster the operator runs in."""

    infra_name: str
    cluster_tag: str
    region: str
    domain_name: str
    vpc_id: str

    def with_infra_name(self, infra_name: str) -> ClusterInfo:
        """Same cluster identified by another infrastructure name, as for a hosted control plane."""
        return replace(self, infra_name=infra_name, cluster_tag=get_cluster_tag_key(infra_name))


class ClusterInfoCache:
    """Holds the ClusterInfo for the lifetime of the process.

    Resolution is a read-only lookup, so two workers racing on the first pass
    may both resolve; the last write wins and the values are identical.
    """

    def __init__(self, resolver: Callable[[], ClusterInfo]) -> None:
        self._resolver = resolver
        self._info: ClusterInfo | None = None

    def get(self) -> ClusterInfo:
        info = self._info
        if info is None:
            info = self._resolver()
            self._info = info
            logger.info(
                f"Resolved cluster context: infra={info.infra_name} region={info.region} "
                f"vpc={info.vpc_id} domain={info.domain_name}"
            )
        return info


def discover_private_subnets(
    aws: VpcEndpointOperations,
    cluster_tag: str | None,
    extra_tags: dict[str, str] | None = None,
) -> list[dict[str, Any]]:
    """Find private subnets by tag.

    Subnets tagged for internal load balancers are preferred; clusters that
    never set that tag fall back to every subnet carrying the cluster tag.
    Without a cluster tag, as for VPCs chosen by id or tag that the cluster
    does not own, only the internal load balancer tag is required.
    """
    extra_tags = extra_tags or {}
    tag_keys = [key for key in (cluster_tag, INTERNAL_ELB_TAG_KEY) if key]
    subnets = aws.find_subnets(extra_tags, tag_keys)
    if not subnets and cluster_tag:
        subnets = aws.find_subnets(extra_tags, [cluster_tag])
    return subnets


def hosted_control_plane_infra_id(hcp: dict[str, Any]) -> str:
    """``spec.infraID`` of a HostedControlPlane."""
    infra_id = hcp.get("spec", {}).get("infraID")
    if not infra_id:
        raise ValueError(f"blank spec.infraID for hostedcontrolplane {hcp.get('metadata', {}).get('name')}")
    return infra_id


def hosted_control_plane_domain(hcp: dict[str, Any]) -> str:
    """Base domain of a hosted cluster, taken from its APIServer route ``api.<domain>``."""
    for service in hcp.get("spec", {}).get("services") or []:
        if service.get("service") != "APIServer":
            continue
        strategy = service.get("servicePublishingStrategy") or {}
        hostname = (strategy.get("route") or {}).get("hostname", "")
        if strategy.get("type") != "Route" or not hostname:
            raise ValueError("unable to find APIServer route hostname in hostedcontrolplane spec.services")
        if not hostname.startswith(HOSTED_CONTROL_PLANE_API_PREFIX):
            raise ValueError(f"APIServer route hostname {hostname} is not of the form api.<domain>")
        return hostname[len(HOSTED_CONTROL_PLANE_API_PREFIX):]
    raise ValueError("unable to find APIServer in hostedcontrolplane spec.services")


def get_cluster_config(api: Any, plural: str) -> dict[str, Any]:
    """Read a cluster-scoped ``config.openshift.io`` singleton."""
    return rate_limit_k8s(api.get_cluster_custom_object)(
        group=CONFIG_GROUP,
        version=CONFIG_VERSION,
        plural=plural,
        name=CLUSTER_CONFIG_NAME,
    )


def resolve_cluster_info(
    api: Any,
    aws_factory: Callable[[str], VpcEndpointOperations],
) -> ClusterInfo:
    """Resolve cluster identifiers from the Infrastructure and DNS config objects.

    Args:
        api: Kubernetes CustomObjectsApi instance
        aws_factory: Builds an AWS client for a region

    Returns:
        Resolved ClusterInfo

    Raises:
        ValueError: If the cluster is not an AWS cluster or lacks identifiers
    """
    infrastructure = get_cluster_config(api, INFRASTRUCTURE_PLURAL)
    infra_status = infrastructure.get("status", {})
    infra_name = infra_status.get("infrastructureName")
    if not infra_name:
        raise ValueError("infrastructure status.infrastructureName is empty")

    platform_status = infra_status.get("platformStatus", {})
    if platform_status.get("type") != "AWS":
        raise ValueError(f"unsupported platform {platform_status.get('type')!r}, expected AWS")
    region = platform_status.get("aws", {}).get("region")
    if not region:
        raise ValueError("infrastructure status.platformStatus.aws.region is empty")

    dns = get_cluster_config(api, DNS_PLURAL)
    domain_name = dns.get("spec", {}).get("baseDomain", "")
    if not domain_name:
        raise ValueError("dns spec.baseDomain is empty")

    cluster_tag = get_cluster_tag_key(infra_name)
    aws = aws_factory(region)
    subnets = discover_private_subnets(aws, cluster_tag)
    if not subnets:
        raise ValueError(f"no subnets tagged with {cluster_tag} found")
    vpc_id = aws.get_vpc_id([subnet["SubnetId"] for subnet in subnets])

    return ClusterInfo(
        infra_name=infra_name,
        cluster_tag=cluster_tag,
        region=region,
        domain_name=domain_name,
        vpc_id=vpc_id,
    )
