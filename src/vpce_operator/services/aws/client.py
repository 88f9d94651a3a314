"""AWS EC2 and Route53 client implementation."""

from __future__ import annotations

import logging
import time
from collections import Counter
from typing import Any, Iterable

import boto3
from botocore.config import Config
from botocore.exceptions import ClientError

from ...constants import (
    HOSTED_ZONE_COMMENT,
    NAME_TAG_KEY,
    OPERATOR_TAG_KEY,
    OPERATOR_TAG_VALUE,
)
from ...utils.naming import from_aws_tags, to_aws_tags
from ...utils.rate_limit import rate_limit_aws, rate_limit_aws_pages
from .errors import AWSError, classify_client_error, classify_error_code

logger = logging.getLogger(__name__)

HOSTED_ZONE_ID_PREFIX = "/hostedzone/"
ASSUME_ROLE_SESSION_NAME = "vpce-operator"


def strip_hosted_zone_prefix(zone_id: str) -> str:
    """Route53 returns ids as ``/hostedzone/Z123``; the operator stores ``Z123``."""
    if zone_id.startswith(HOSTED_ZONE_ID_PREFIX):
        return zone_id[len(HOSTED_ZONE_ID_PREFIX):]
    return zone_id


def tag_filters(tags: dict[str, str], tag_keys: Iterable[str] = ()) -> list[dict[str, Any]]:
    """EC2 describe filters matching tag values and tag key presence."""
    filters = [{"Name": f"tag:{key}", "Values": [value]} for key, value in sorted(tags.items())]
    filters.extend({"Name": "tag-key", "Values": [key]} for key in tag_keys)
    return filters


class AWSClient:
    """AWS provider for security groups, VPC endpoints and private DNS."""

    def __init__(
        self,
        region: str,
        access_key: str | None = None,
        secret_key: str | None = None,
        session_token: str | None = None,
        metrics: Any = None,
        role_arn: str | None = None,
    ) -> None:
        """Initialize AWS clients.

        Credentials fall back to the default boto3 chain (environment, web
        identity, instance profile) when no static keys are given.

        Args:
            region: AWS region
            access_key: Optional access key ID
            secret_key: Optional secret access key
            session_token: Optional session token for temporary credentials
            metrics: Optional OperatorMetrics used to count API calls
            role_arn: Optional IAM role assumed with the credentials above,
                for resources living in another account

        Raises:
            AWSError: If the role cannot be assumed
        """
        self.region = region
        self.metrics = metrics

        config = Config(retries={"max_attempts": 5, "mode": "standard"})
        session = boto3.session.Session(
            aws_access_key_id=access_key,
            aws_secret_access_key=secret_key,
            aws_session_token=session_token,
            region_name=region,
        )
        if role_arn:
            credentials = self._assume_role(session.client("sts", config=config), role_arn)
            session = boto3.session.Session(
                aws_access_key_id=credentials["AccessKeyId"],
                aws_secret_access_key=credentials["SecretAccessKey"],
                aws_session_token=credentials["SessionToken"],
                region_name=region,
            )
        self.ec2 = session.client("ec2", config=config)
        self.route53 = session.client("route53", config=config)

    def _assume_role(self, sts: Any, role_arn: str) -> dict[str, Any]:
        try:
            response = rate_limit_aws(sts.assume_role)(RoleArn=role_arn, RoleSessionName=ASSUME_ROLE_SESSION_NAME)
        except ClientError as e:
            self._record_call("sts", "assume_role", "error")
            raise classify_client_error(e, "sts") from e
        self._record_call("sts", "assume_role", "success")
        return response["Credentials"]

    def _record_call(self, service: str, operation: str, result: str) -> None:
        if self.metrics is not None:
            self.metrics.api_call_total.labels(api_type=service, operation=operation, result=result).inc()

    def _client(self, service: str) -> Any:
        return self.route53 if service == "route53" else self.ec2

    def _call(self, service: str, operation: str, **kwargs: Any) -> Any:
        """Invoke a boto3 operation, translating ClientError into AWSError."""
        fn = getattr(self._client(service), operation)
        try:
            response = rate_limit_aws(fn)(**kwargs)
        except ClientError as e:
            self._record_call(service, operation, "error")
            raise classify_client_error(e, service) from e
        self._record_call(service, operation, "success")
        return response

    def _paginate(self, service: str, operation: str, result_key: str, **kwargs: Any) -> list[Any]:
        """Collect every item of a paginated boto3 operation."""
        items: list[Any] = []
        try:
            paginator = self._client(service).get_paginator(operation)
            for page in rate_limit_aws_pages(paginator.paginate(**kwargs)):
                items.extend(page.get(result_key, []))
        except ClientError as e:
            self._record_call(service, operation, "error")
            raise classify_client_error(e, service) from e
        self._record_call(service, operation, "success")
        return items

    # Tags

    def create_tags(self, resource_ids: list[str], tags: dict[str, str]) -> None:
        """Add or overwrite the given tags, leaving other tags alone."""
        if not resource_ids or not tags:
            return
        self._call("ec2", "create_tags", Resources=resource_ids, Tags=to_aws_tags(tags))

    # Security groups

    def describe_security_group(self, group_id: str) -> dict[str, Any] | None:
        """Look up a security group by id."""
        if not group_id:
            # An empty id would describe every group in the account
            return None
        try:
            response = self._call("ec2", "describe_security_groups", GroupIds=[group_id])
        except AWSError as e:
            if e.is_not_found:
                return None
            logger.error(f"Failed to describe security group {group_id}: {e}")
            raise
        groups = response.get("SecurityGroups", [])
        return groups[0] if groups else None

    def find_security_groups(self, name: str, cluster_tag: str) -> list[dict[str, Any]]:
        """Find operator-managed security groups by Name and cluster tag."""
        filters = tag_filters({NAME_TAG_KEY: name, OPERATOR_TAG_KEY: OPERATOR_TAG_VALUE}, [cluster_tag])
        return self._paginate("ec2", "describe_security_groups", "SecurityGroups", Filters=filters)

    def find_node_security_groups(self, infra_name: str, cluster_tag: str) -> list[dict[str, Any]]:
        """Find the security groups attached to the cluster's control plane and worker nodes."""
        filters = [
            {"Name": "tag-key", "Values": [cluster_tag]},
            {
                "Name": f"tag:{NAME_TAG_KEY}",
                "Values": [
                    f"{infra_name}-master-sg",
                    f"{infra_name}-worker-sg",
                    f"{infra_name}-controlplane",
                    f"{infra_name}-node",
                ],
            },
        ]
        return self._paginate("ec2", "describe_security_groups", "SecurityGroups", Filters=filters)

    def create_security_group(self, name: str, vpc_id: str, description: str, tags: dict[str, str]) -> str:
        """Create a security group and return its id."""
        response = self._call(
            "ec2",
            "create_security_group",
            GroupName=name,
            Description=description,
            VpcId=vpc_id,
            TagSpecifications=[{"ResourceType": "security-group", "Tags": to_aws_tags(tags)}],
        )
        return response["GroupId"]

    def delete_security_group(self, group_id: str) -> None:
        """Delete a security group, treating a missing group as deleted."""
        try:
            self._call("ec2", "delete_security_group", GroupId=group_id)
        except AWSError as e:
            if e.is_not_found:
                logger.info(f"Security group {group_id} already deleted")
                return
            raise

    def describe_security_group_rules(self, group_id: str) -> list[dict[str, Any]]:
        """List the ingress and egress rules of a security group."""
        return self._paginate(
            "ec2",
            "describe_security_group_rules",
            "SecurityGroupRules",
            Filters=[{"Name": "group-id", "Values": [group_id]}],
        )

    def authorize_security_group_ingress(
        self, group_id: str, permissions: list[dict[str, Any]], tags: dict[str, str]
    ) -> None:
        """Add ingress rules, a no-op for an empty permission list."""
        if not permissions:
            return
        self._call(
            "ec2",
            "authorize_security_group_ingress",
            GroupId=group_id,
            IpPermissions=permissions,
            TagSpecifications=[{"ResourceType": "security-group-rule", "Tags": to_aws_tags(tags)}],
        )

    def authorize_security_group_egress(
        self, group_id: str, permissions: list[dict[str, Any]], tags: dict[str, str]
    ) -> None:
        """Add egress rules, a no-op for an empty permission list."""
        if not permissions:
            return
        self._call(
            "ec2",
            "authorize_security_group_egress",
            GroupId=group_id,
            IpPermissions=permissions,
            TagSpecifications=[{"ResourceType": "security-group-rule", "Tags": to_aws_tags(tags)}],
        )

    # VPC endpoints

    def describe_vpc_endpoint(self, vpc_endpoint_id: str) -> dict[str, Any] | None:
        """Look up a VPC endpoint by id."""
        if not vpc_endpoint_id:
            return None
        try:
            response = self._call("ec2", "describe_vpc_endpoints", VpcEndpointIds=[vpc_endpoint_id])
        except AWSError as e:
            if e.is_not_found:
                return None
            logger.error(f"Failed to describe VPC endpoint {vpc_endpoint_id}: {e}")
            raise
        endpoints = response.get("VpcEndpoints", [])
        return endpoints[0] if endpoints else None

    def find_vpc_endpoints(self, name: str, cluster_tag: str) -> list[dict[str, Any]]:
        """Find operator-managed VPC endpoints by Name and cluster tag."""
        filters = tag_filters({NAME_TAG_KEY: name, OPERATOR_TAG_KEY: OPERATOR_TAG_VALUE}, [cluster_tag])
        return self._paginate("ec2", "describe_vpc_endpoints", "VpcEndpoints", Filters=filters)

    def create_vpc_endpoint(
        self,
        vpc_id: str,
        service_name: str,
        security_group_ids: list[str],
        tags: dict[str, str],
        private_dns_enabled: bool = False,
    ) -> dict[str, Any]:
        """Create an interface VPC endpoint and return its description."""
        response = self._call(
            "ec2",
            "create_vpc_endpoint",
            VpcEndpointType="Interface",
            VpcId=vpc_id,
            ServiceName=service_name,
            SecurityGroupIds=security_group_ids,
            PrivateDnsEnabled=private_dns_enabled,
            TagSpecifications=[{"ResourceType": "vpc-endpoint", "Tags": to_aws_tags(tags)}],
        )
        return response["VpcEndpoint"]

    def delete_vpc_endpoint(self, vpc_endpoint_id: str) -> None:
        """Delete a VPC endpoint, treating a missing endpoint as deleted."""
        try:
            response = self._call("ec2", "delete_vpc_endpoints", VpcEndpointIds=[vpc_endpoint_id])
        except AWSError as e:
            if e.is_not_found:
                logger.info(f"VPC endpoint {vpc_endpoint_id} already deleted")
                return
            raise

        # Per-endpoint failures are reported in the body rather than raised
        for failure in response.get("Unsuccessful", []):
            error = failure.get("Error", {})
            code = error.get("Code", "Unknown")
            if code.endswith(".NotFound"):
                continue
            raise AWSError(classify_error_code(code), code, "ec2:DeleteVpcEndpoints", error.get("Message", ""))

    def modify_vpc_endpoint(
        self,
        vpc_endpoint_id: str,
        add_subnet_ids: Iterable[str] = (),
        remove_subnet_ids: Iterable[str] = (),
        add_security_group_ids: Iterable[str] = (),
        remove_security_group_ids: Iterable[str] = (),
    ) -> None:
        """Change subnet and security group membership of an endpoint."""
        params: dict[str, Any] = {}
        if add_subnet_ids:
            params["AddSubnetIds"] = list(add_subnet_ids)
        if remove_subnet_ids:
            params["RemoveSubnetIds"] = list(remove_subnet_ids)
        if add_security_group_ids:
            params["AddSecurityGroupIds"] = list(add_security_group_ids)
        if remove_security_group_ids:
            params["RemoveSecurityGroupIds"] = list(remove_security_group_ids)
        if not params:
            return
        self._call("ec2", "modify_vpc_endpoint", VpcEndpointId=vpc_endpoint_id, **params)

    def get_vpc_endpoint_service_azs(self, service_name: str) -> list[str]:
        """Availability zones offered by an endpoint service."""
        if not service_name:
            raise ValueError("service name must be specified")
        response = self._call("ec2", "describe_vpc_endpoint_services", ServiceNames=[service_name])
        details = response.get("ServiceDetails", [])
        if len(details) != 1:
            raise ValueError(f"expected one VPC endpoint service named {service_name}, got {len(details)}")
        return details[0].get("AvailabilityZones", [])

    # Subnets and VPCs

    def find_subnets(self, tags: dict[str, str], tag_keys: Iterable[str] = ()) -> list[dict[str, Any]]:
        """Find subnets by tag values and tag key presence."""
        return self._paginate("ec2", "describe_subnets", "Subnets", Filters=tag_filters(tags, tag_keys))

    def get_vpc_id(self, subnet_ids: list[str]) -> str:
        """Return the single VPC that contains all given subnets.

        Raises:
            ValueError: If no subnets are given or they span several VPCs
        """
        if not subnet_ids:
            raise ValueError("at least one subnet id is required to determine the VPC")
        subnets = self._paginate("ec2", "describe_subnets", "Subnets", SubnetIds=subnet_ids)
        vpc_ids = {subnet["VpcId"] for subnet in subnets}
        if len(vpc_ids) != 1:
            raise ValueError(f"subnets {subnet_ids} must belong to exactly one VPC, found {sorted(vpc_ids)}")
        return vpc_ids.pop()

    def select_vpc(self, vpc_ids: list[str]) -> str:
        """Pick the VPC hosting the fewest VPC endpoints, ties broken by input order."""
        if not vpc_ids:
            raise ValueError("at least one VPC id is required")
        endpoints = self._paginate(
            "ec2",
            "describe_vpc_endpoints",
            "VpcEndpoints",
            Filters=[{"Name": "vpc-id", "Values": vpc_ids}],
        )
        usage = Counter(endpoint["VpcId"] for endpoint in endpoints)
        return min(vpc_ids, key=lambda vpc_id: usage.get(vpc_id, 0))

    def find_vpc_ids_by_tags(self, tags: dict[str, str]) -> list[str]:
        """Ids of the VPCs carrying all given tags, sorted."""
        if not tags:
            raise ValueError("at least one tag is required to find VPCs")
        vpcs = self._paginate("ec2", "describe_vpcs", "Vpcs", Filters=tag_filters(tags))
        return sorted(vpc["VpcId"] for vpc in vpcs)

    # Route53

    def list_hosted_zones_by_vpc(self, vpc_id: str, region: str) -> list[dict[str, Any]]:
        """List hosted zone summaries associated with a VPC."""
        summaries: list[dict[str, Any]] = []
        params: dict[str, Any] = {"VPCId": vpc_id, "VPCRegion": region}
        while True:
            response = self._call("route53", "list_hosted_zones_by_vpc", **params)
            summaries.extend(response.get("HostedZoneSummaries", []))
            next_token = response.get("NextToken")
            if not next_token:
                return summaries
            params["NextToken"] = next_token

    def get_hosted_zone(self, zone_id: str) -> dict[str, Any] | None:
        """Look up a hosted zone by id."""
        if not zone_id:
            return None
        try:
            response = self._call("route53", "get_hosted_zone", Id=zone_id)
        except AWSError as e:
            if e.is_not_found:
                return None
            raise
        return response["HostedZone"]

    def get_hosted_zone_vpcs(self, zone_id: str) -> list[dict[str, str]]:
        """VPCs associated with a private hosted zone, as ``{"VPCId", "VPCRegion"}``."""
        response = self._call("route53", "get_hosted_zone", Id=zone_id)
        return response.get("VPCs", [])

    def create_vpc_association_authorization(self, zone_id: str, vpc_id: str, region: str) -> None:
        """Authorize a VPC owned by another account to be associated with a hosted zone.

        Must be called with the hosted zone owner's credentials.
        """
        self._call(
            "route53",
            "create_vpc_association_authorization",
            HostedZoneId=zone_id,
            VPC={"VPCRegion": region, "VPCId": vpc_id},
        )

    def associate_vpc_with_hosted_zone(self, zone_id: str, vpc_id: str, region: str) -> None:
        """Associate a VPC with a private hosted zone.

        Must be called with the VPC owner's credentials.
        """
        self._call(
            "route53",
            "associate_vpc_with_hosted_zone",
            HostedZoneId=zone_id,
            VPC={"VPCRegion": region, "VPCId": vpc_id},
        )

    def create_private_hosted_zone(self, domain_name: str, vpc_id: str, region: str) -> dict[str, Any]:
        """Create a private hosted zone associated with a VPC."""
        response = self._call(
            "route53",
            "create_hosted_zone",
            Name=domain_name,
            VPC={"VPCRegion": region, "VPCId": vpc_id},
            CallerReference=f"{domain_name}-{time.time_ns()}",
            HostedZoneConfig={"Comment": HOSTED_ZONE_COMMENT, "PrivateZone": True},
        )
        return response["HostedZone"]

    def delete_hosted_zone(self, zone_id: str) -> None:
        """Delete a hosted zone, treating a missing zone as deleted."""
        try:
            self._call("route53", "delete_hosted_zone", Id=zone_id)
        except AWSError as e:
            if e.is_not_found:
                logger.info(f"Hosted zone {zone_id} already deleted")
                return
            raise

    def list_hosted_zone_tags(self, zone_id: str) -> dict[str, str]:
        """Tags on a hosted zone."""
        response = self._call(
            "route53",
            "list_tags_for_resource",
            ResourceType="hostedzone",
            ResourceId=strip_hosted_zone_prefix(zone_id),
        )
        return from_aws_tags(response.get("ResourceTagSet", {}).get("Tags"))

    def add_hosted_zone_tags(self, zone_id: str, tags: dict[str, str]) -> None:
        """Add or overwrite tags on a hosted zone."""
        if not tags:
            return
        self._call(
            "route53",
            "change_tags_for_resource",
            ResourceType="hostedzone",
            ResourceId=strip_hosted_zone_prefix(zone_id),
            AddTags=to_aws_tags(tags),
        )

    def get_resource_record_set(self, zone_id: str, name: str, record_type: str) -> dict[str, Any] | None:
        """Look up one record set by exact name and type."""
        response = self._call(
            "route53",
            "list_resource_record_sets",
            HostedZoneId=zone_id,
            StartRecordName=name,
            StartRecordType=record_type,
            MaxItems="1",
        )
        for record in response.get("ResourceRecordSets", []):
            if record["Name"].rstrip(".") == name.rstrip(".") and record["Type"] == record_type:
                return record
        return None

    def upsert_resource_record_set(self, zone_id: str, record: dict[str, Any]) -> None:
        """Create or replace a record set."""
        self._change_record_set(zone_id, "UPSERT", record)

    def delete_resource_record_set(self, zone_id: str, record: dict[str, Any]) -> None:
        """Delete a record set, which must match the stored values exactly."""
        self._change_record_set(zone_id, "DELETE", record)

    def _change_record_set(self, zone_id: str, action: str, record: dict[str, Any]) -> None:
        self._call(
            "route53",
            "change_resource_record_sets",
            HostedZoneId=zone_id,
            ChangeBatch={
                "Comment": HOSTED_ZONE_COMMENT,
                "Changes": [{"Action": action, "ResourceRecordSet": record}],
            },
        )
