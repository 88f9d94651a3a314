"""Reconciler for the interface VPC endpoint itself."""

from __future__ import annotations

from typing import Any

from ..cluster import discover_private_subnets
from ..constants import (
    EVENT_REASON_TAGS_REPAIRED,
    EVENT_REASON_VPC_ENDPOINT_CREATED,
    KIND_VPC_ENDPOINT,
    REASON_BAD_STATE,
    REASON_NOT_YET_AVAILABLE,
    VPCE_STATE_AVAILABLE,
    VPCE_STATE_PENDING,
    VPCE_STATE_PENDING_ACCEPTANCE,
)
from ..services.aws.base import VpcEndpointOperations
from ..tracing import trace_span
from ..utils.conditions import set_vpc_endpoint_ready_condition
from ..utils.diff import two_way_diff
from ..utils.naming import generate_aws_tags, generate_vpc_endpoint_name
from .base import EndpointStateError, ReconcileContext, SubresourceReconciler
from .discovery import discover_or_create, repair_tags

WAITING_STATES = frozenset({VPCE_STATE_PENDING, VPCE_STATE_PENDING_ACCEPTANCE})


def select_subnets(
    aws: VpcEndpointOperations,
    config: dict[str, Any],
    cluster_tag: str,
    vpc_id: str,
    service_name: str,
) -> list[str]:
    """Choose the subnets an endpoint should be attached to.

    Without ``auto_discover_subnets`` the explicit ``subnet_ids`` are used.
    Otherwise private subnets are discovered and narrowed to the endpoint's
    VPC and to the availability zones the endpoint service offers, keeping one
    subnet per zone since an interface endpoint accepts at most one subnet per
    zone. VPCs chosen by id or tag are not the cluster's own, so their subnets
    are not expected to carry the cluster tag.
    """
    if not config.get("auto_discover_subnets"):
        return sorted(set(config.get("subnet_ids") or []))

    foreign_vpc = bool(config.get("vpc_ids") or config.get("vpc_tags"))
    azs = set(aws.get_vpc_endpoint_service_azs(service_name))
    subnets = discover_private_subnets(aws, None if foreign_vpc else cluster_tag, config.get("subnet_tags"))

    by_zone: dict[str, str] = {}
    for subnet in sorted(subnets, key=lambda s: s["SubnetId"]):
        if subnet.get("VpcId") != vpc_id or subnet.get("AvailabilityZone") not in azs:
            continue
        by_zone.setdefault(subnet["AvailabilityZone"], subnet["SubnetId"])
    return sorted(by_zone.values())


class VpcEndpointReconciler(SubresourceReconciler):
    """Drives the endpoint through its provider lifecycle.

    ``pending`` and ``pendingAcceptance`` are waiting states and end the pass
    quietly. ``available`` leads to subnet and security group membership
    reconciliation. Every other state is reported as BadState and raised.
    """

    def reconcile(self, ctx: ReconcileContext) -> bool:
        """Converge the endpoint.

        Returns:
            True when the endpoint is available and fully attached, False
            while it is still waiting on the provider
        """
        with trace_span("reconcile_vpc_endpoint", kind=KIND_VPC_ENDPOINT, attributes={"vpce.name": ctx.name}):
            try:
                endpoint = self._ensure_vpc_endpoint(ctx)
                state = endpoint.get("State", "")
                self._record_state(ctx, endpoint["VpcEndpointId"], state)

                if state in WAITING_STATES:
                    self.set_condition(
                        ctx,
                        set_vpc_endpoint_ready_condition,
                        False,
                        REASON_NOT_YET_AVAILABLE,
                        f"VPC endpoint {endpoint['VpcEndpointId']} is {state}",
                    )
                    self.persist_status(ctx)
                    return False

                if state != VPCE_STATE_AVAILABLE:
                    self.set_condition(
                        ctx,
                        set_vpc_endpoint_ready_condition,
                        False,
                        REASON_BAD_STATE,
                        f"VPC endpoint {endpoint['VpcEndpointId']} is in state {state!r}",
                    )
                    self.persist_status(ctx)
                    raise EndpointStateError(
                        f"VPC endpoint {endpoint['VpcEndpointId']} is in unrecoverable state {state!r}"
                    )

                self._reconcile_subnets(ctx, endpoint)
                self._reconcile_security_groups(ctx, endpoint)
            except EndpointStateError:
                raise
            except Exception as e:
                self.log_error(ctx.meta, "Failed to reconcile VPC endpoint", error=e, reason="VpcEndpointFailed")
                self.fail(ctx, set_vpc_endpoint_ready_condition, "ReconcileFailed", e)
                raise

            self.set_condition(
                ctx,
                set_vpc_endpoint_ready_condition,
                True,
                "Available",
                f"VPC endpoint {endpoint['VpcEndpointId']} is available",
            )
            self.persist_status(ctx)
            return True

    def _ensure_vpc_endpoint(self, ctx: ReconcileContext) -> dict[str, Any]:
        cluster = ctx.cluster
        name = generate_vpc_endpoint_name(cluster.infra_name, ctx.name)
        tags = generate_aws_tags(name, cluster.cluster_tag)
        config = ctx.config or {}

        def create() -> dict[str, Any]:
            group_id = ctx.status.get("securityGroupId")
            if not group_id:
                raise ValueError("status.securityGroupId must be set before creating a VPC endpoint")
            service_name = ctx.status.get("vpcEndpointServiceName")
            if not service_name:
                raise ValueError("status.vpcEndpointServiceName must be set before creating a VPC endpoint")
            return ctx.aws.create_vpc_endpoint(
                ctx.status["vpcId"],
                service_name,
                [group_id],
                tags,
                private_dns_enabled=config.get("private_dns_enabled", False),
            )

        found = discover_or_create(
            ctx.status.get("vpcEndpointId"),
            ctx.aws.describe_vpc_endpoint,
            lambda: ctx.aws.find_vpc_endpoints(name, cluster.cluster_tag),
            create,
        )
        endpoint = found.resource
        vpce_id = endpoint["VpcEndpointId"]

        if ctx.status.get("vpcEndpointId") != vpce_id:
            ctx.status["vpcEndpointId"] = vpce_id
            self.persist_status(ctx)

        if found.created:
            self.log_info(ctx.meta, f"Created VPC endpoint {vpce_id}", reason="VpcEndpointCreated",
                          vpc_endpoint_id=vpce_id, service_name=endpoint.get("ServiceName"))
            self.record_event(ctx.resource, EVENT_REASON_VPC_ENDPOINT_CREATED, f"VPC endpoint {vpce_id} created")
        else:
            repaired = repair_tags(ctx.aws, vpce_id, endpoint.get("Tags"), tags)
            if repaired:
                self.log_info(ctx.meta, f"Repaired tags on VPC endpoint {vpce_id}", reason="TagsRepaired",
                              vpc_endpoint_id=vpce_id, tags=sorted(repaired))
                self.record_event(ctx.resource, EVENT_REASON_TAGS_REPAIRED, f"Repaired tags on VPC endpoint {vpce_id}")

        return endpoint

    def _record_state(self, ctx: ReconcileContext, vpce_id: str, state: str) -> None:
        ctx.status["status"] = state
        try:
            self.metrics.set_pending_acceptance(
                ctx.name, ctx.namespace, vpce_id, state == VPCE_STATE_PENDING_ACCEPTANCE
            )
        except Exception as e:
            self.log_warning(ctx.meta, "Failed to update pending acceptance metric", error=str(e))

    def _reconcile_subnets(self, ctx: ReconcileContext, endpoint: dict[str, Any]) -> None:
        desired = select_subnets(
            ctx.aws,
            ctx.config or {},
            ctx.cluster.cluster_tag,
            endpoint.get("VpcId") or ctx.status.get("vpcId", ""),
            endpoint.get("ServiceName") or ctx.status.get("vpcEndpointServiceName", ""),
        )
        if not desired:
            raise ValueError(f"no subnets available for VPC endpoint {endpoint['VpcEndpointId']}")

        to_add, to_remove = two_way_diff(endpoint.get("SubnetIds", []), desired)
        # Removal goes first so a replacement subnet in the same zone does not conflict
        if to_remove:
            ctx.aws.modify_vpc_endpoint(endpoint["VpcEndpointId"], remove_subnet_ids=to_remove)
            self.log_info(ctx.meta, f"Removed subnets {to_remove}", reason="SubnetsRemoved",
                          vpc_endpoint_id=endpoint["VpcEndpointId"])
        if to_add:
            ctx.aws.modify_vpc_endpoint(endpoint["VpcEndpointId"], add_subnet_ids=to_add)
            self.log_info(ctx.meta, f"Added subnets {to_add}", reason="SubnetsAdded",
                          vpc_endpoint_id=endpoint["VpcEndpointId"])

    def _reconcile_security_groups(self, ctx: ReconcileContext, endpoint: dict[str, Any]) -> None:
        current = [group["GroupId"] for group in endpoint.get("Groups", [])]
        to_add, to_remove = two_way_diff(current, [ctx.status["securityGroupId"]])
        if not to_add and not to_remove:
            return
        ctx.aws.modify_vpc_endpoint(
            endpoint["VpcEndpointId"],
            add_security_group_ids=to_add,
            remove_security_group_ids=to_remove,
        )
        self.log_info(ctx.meta, "Updated VPC endpoint security groups", reason="SecurityGroupsUpdated",
                      vpc_endpoint_id=endpoint["VpcEndpointId"], added=to_add, removed=to_remove)
