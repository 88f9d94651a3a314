"""Capability interfaces for the AWS operations the reconcilers use.

Each reconciler depends on the narrowest protocol it needs. ``AWSClient``
satisfies all of them.
Lookups by id return None when AWS reports the resource as missing; other
failures raise ``AWSError``.
"""

from __future__ import annotations

from typing import Any, Iterable, Protocol


class TagOperations(Protocol):
    """Protocol for additive EC2 tagging."""

    def create_tags(self, resource_ids: list[str], tags: dict[str, str]) -> None:
        """Add or overwrite the given tags, leaving other tags alone."""
        ...


class SecurityGroupOperations(TagOperations, Protocol):
    """Protocol defining security group operations."""

    def describe_security_group(self, group_id: str) -> dict[str, Any] | None:
        """Look up a security group by id."""
        ...

    def find_security_groups(self, name: str, cluster_tag: str) -> list[dict[str, Any]]:
        """Find operator-managed security groups by Name and cluster tag."""
        ...

    def find_node_security_groups(self, infra_name: str, cluster_tag: str) -> list[dict[str, Any]]:
        """Find the security groups attached to the cluster's nodes."""
        ...

    def create_security_group(self, name: str, vpc_id: str, description: str, tags: dict[str, str]) -> str:
        """Create a security group and return its id."""
        ...

    def delete_security_group(self, group_id: str) -> None:
        """Delete a security group, treating a missing group as deleted."""
        ...

    def describe_security_group_rules(self, group_id: str) -> list[dict[str, Any]]:
        """List the ingress and egress rules of a security group."""
        ...

    def authorize_security_group_ingress(
        self, group_id: str, permissions: list[dict[str, Any]], tags: dict[str, str]
    ) -> None:
        """Add ingress rules."""
        ...

    def authorize_security_group_egress(
        self, group_id: str, permissions: list[dict[str, Any]], tags: dict[str, str]
    ) -> None:
        """Add egress rules."""
        ...


class VpcEndpointOperations(TagOperations, Protocol):
    """Protocol defining VPC endpoint and subnet operations."""

    def describe_vpc_endpoint(self, vpc_endpoint_id: str) -> dict[str, Any] | None:
        """Look up a VPC endpoint by id."""
        ...

    def find_vpc_endpoints(self, name: str, cluster_tag: str) -> list[dict[str, Any]]:
        """Find operator-managed VPC endpoints by Name and cluster tag."""
        ...

    def create_vpc_endpoint(
        self,
        vpc_id: str,
        service_name: str,
        security_group_ids: list[str],
        tags: dict[str, str],
        private_dns_enabled: bool = False,
    ) -> dict[str, Any]:
        """Create an interface VPC endpoint and return its description."""
        ...

    def delete_vpc_endpoint(self, vpc_endpoint_id: str) -> None:
        """Delete a VPC endpoint, treating a missing endpoint as deleted."""
        ...

    def modify_vpc_endpoint(
        self,
        vpc_endpoint_id: str,
        add_subnet_ids: Iterable[str] = (),
        remove_subnet_ids: Iterable[str] = (),
        add_security_group_ids: Iterable[str] = (),
        remove_security_group_ids: Iterable[str] = (),
    ) -> None:
        """Change subnet and security group membership of an endpoint."""
        ...

    def get_vpc_endpoint_service_azs(self, service_name: str) -> list[str]:
        """Availability zones offered by an endpoint service."""
        ...

    def find_subnets(self, tags: dict[str, str], tag_keys: Iterable[str] = ()) -> list[dict[str, Any]]:
        """Find subnets by tag values and tag key presence."""
        ...

    def get_vpc_id(self, subnet_ids: list[str]) -> str:
        """Return the single VPC that contains all given subnets."""
        ...

    def select_vpc(self, vpc_ids: list[str]) -> str:
        """Pick the VPC hosting the fewest VPC endpoints."""
        ...

    def find_vpc_ids_by_tags(self, tags: dict[str, str]) -> list[str]:
        """Ids of the VPCs carrying all given tags."""
        ...


class DnsOperations(Protocol):
    """Protocol defining Route53 private hosted zone and record operations."""

    def list_hosted_zones_by_vpc(self, vpc_id: str, region: str) -> list[dict[str, Any]]:
        """List hosted zone summaries associated with a VPC."""
        ...

    def get_hosted_zone(self, zone_id: str) -> dict[str, Any] | None:
        """Look up a hosted zone by id."""
        ...

    def get_hosted_zone_vpcs(self, zone_id: str) -> list[dict[str, str]]:
        """VPCs associated with a private hosted zone."""
        ...

    def create_vpc_association_authorization(self, zone_id: str, vpc_id: str, region: str) -> None:
        """Allow a VPC of another account to be associated with a hosted zone."""
        ...

    def associate_vpc_with_hosted_zone(self, zone_id: str, vpc_id: str, region: str) -> None:
        """Associate a VPC with a private hosted zone."""
        ...

    def create_private_hosted_zone(self, domain_name: str, vpc_id: str, region: str) -> dict[str, Any]:
        """Create a private hosted zone associated with a VPC."""
        ...

    def delete_hosted_zone(self, zone_id: str) -> None:
        """Delete a hosted zone, treating a missing zone as deleted."""
        ...

    def list_hosted_zone_tags(self, zone_id: str) -> dict[str, str]:
        """Tags on a hosted zone."""
        ...

    def add_hosted_zone_tags(self, zone_id: str, tags: dict[str, str]) -> None:
        """Add or overwrite tags on a hosted zone."""
        ...

    def get_resource_record_set(self, zone_id: str, name: str, record_type: str) -> dict[str, Any] | None:
        """Look up one record set by exact name and type."""
        ...

    def upsert_resource_record_set(self, zone_id: str, record: dict[str, Any]) -> None:
        """Create or replace a record set."""
        ...

    def delete_resource_record_set(self, zone_id: str, record: dict[str, Any]) -> None:
        """Delete a record set, which must match the stored values exactly."""
        ...
