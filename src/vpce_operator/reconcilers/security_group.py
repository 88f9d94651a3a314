"""Reconciler for the security group attached to a VpcEndpoint."""

from __future__ import annotations

from typing import Any

from ..constants import (
    EVENT_REASON_SECURITY_GROUP_CREATED,
    EVENT_REASON_TAGS_REPAIRED,
    KIND_VPC_ENDPOINT,
    SECURITY_GROUP_DESCRIPTION,
)
from ..services.aws.models import SecurityGroupRule, normalize_protocol
from ..tracing import trace_span
from ..utils.conditions import set_security_group_ready_condition
from ..utils.naming import generate_aws_tags, generate_security_group_name, to_aws_tags
from .base import ReconcileContext, ResourceCreated, SubresourceReconciler
from .discovery import discover_or_create, repair_tags


def build_desired_rules(
    ingress_rules: list[dict[str, Any]],
    egress_rules: list[dict[str, Any]],
    node_group_ids: list[str],
) -> list[SecurityGroupRule]:
    """Expand rule specs into concrete rules.

    A rule with ``cidr_ip`` yields one rule; any other rule yields one rule per
    node security group.
    """
    desired: list[SecurityGroupRule] = []
    for is_egress, rules in ((False, ingress_rules), (True, egress_rules)):
        for rule in rules:
            common = {
                "is_egress": is_egress,
                "protocol": normalize_protocol(rule["protocol"]),
                "from_port": rule["from_port"],
                "to_port": rule["to_port"],
            }
            if rule.get("cidr_ip"):
                candidates = [SecurityGroupRule(cidr_ip=rule["cidr_ip"], **common)]
            else:
                candidates = [SecurityGroupRule(group_id=group_id, **common) for group_id in node_group_ids]
            for candidate in candidates:
                if candidate not in desired:
                    desired.append(candidate)
    return desired


def missing_rules(desired: list[SecurityGroupRule], existing: list[SecurityGroupRule]) -> list[SecurityGroupRule]:
    """Desired rules with no exact match among the existing ones."""
    return [rule for rule in desired if not any(rule.matches(current) for current in existing)]


class SecurityGroupReconciler(SubresourceReconciler):
    """Ensures the managed security group exists and carries the desired rules.

    Rules are only ever added. A rule removed from spec.securityGroup stays on the
    group until the group itself is deleted.
    """

    def reconcile(self, ctx: ReconcileContext) -> None:
        """Converge the security group; raises ResourceCreated right after creating it."""
        with trace_span("reconcile_security_group", kind=KIND_VPC_ENDPOINT, attributes={"vpce.name": ctx.name}):
            try:
                group_id = self._ensure_security_group(ctx)
                added = self._reconcile_rules(ctx, group_id)
            except ResourceCreated:
                raise
            except Exception as e:
                self.log_error(ctx.meta, "Failed to reconcile security group", error=e, reason="SecurityGroupFailed")
                self.fail(ctx, set_security_group_ready_condition, "ReconcileFailed", e)
                raise

            self.set_condition(
                ctx,
                set_security_group_ready_condition,
                True,
                "Validated",
                f"Security group {group_id} reconciled",
            )
            self.persist_status(ctx)
            if added:
                self.log_info(ctx.meta, f"Authorized {added} rules on security group {group_id}",
                              reason="RulesAuthorized", security_group_id=group_id)

    def _ensure_security_group(self, ctx: ReconcileContext) -> str:
        cluster = ctx.cluster
        name = generate_security_group_name(cluster.infra_name, ctx.name)
        tags = generate_aws_tags(name, cluster.cluster_tag)
        vpc_id = ctx.status.get("vpcId")

        def create() -> dict[str, Any]:
            if not vpc_id:
                raise ValueError("status.vpcId must be set before creating a security group")
            group_id = ctx.aws.create_security_group(name, vpc_id, SECURITY_GROUP_DESCRIPTION, tags)
            return {"GroupId": group_id, "Tags": to_aws_tags(tags)}

        found = discover_or_create(
            ctx.status.get("securityGroupId"),
            ctx.aws.describe_security_group,
            lambda: ctx.aws.find_security_groups(name, cluster.cluster_tag),
            create,
        )
        group_id = found.resource["GroupId"]

        if ctx.status.get("securityGroupId") != group_id:
            ctx.status["securityGroupId"] = group_id
            self.persist_status(ctx)

        if found.created:
            self.log_info(ctx.meta, f"Created security group {group_id}", reason="SecurityGroupCreated",
                          security_group_id=group_id, security_group_name=name)
            self.record_event(ctx.resource, EVENT_REASON_SECURITY_GROUP_CREATED, f"Security group {group_id} created")
            raise ResourceCreated(f"security group {group_id} created, reconciling again to configure")

        repaired = repair_tags(ctx.aws, group_id, found.resource.get("Tags"), tags)
        if repaired:
            self.log_info(ctx.meta, f"Repaired tags on security group {group_id}", reason="TagsRepaired",
                          security_group_id=group_id, tags=sorted(repaired))
            self.record_event(ctx.resource, EVENT_REASON_TAGS_REPAIRED, f"Repaired tags on security group {group_id}")

        return group_id

    def _reconcile_rules(self, ctx: ReconcileContext, group_id: str) -> int:
        """Authorize missing rules and return how many were added."""
        config = ctx.config or {}
        ingress = config.get("ingress_rules", [])
        egress = config.get("egress_rules", [])
        if not ingress and not egress:
            return 0

        node_group_ids: list[str] = []
        if any(not rule.get("cidr_ip") for rule in ingress + egress):
            node_groups = ctx.aws.find_node_security_groups(ctx.cluster.infra_name, ctx.cluster.cluster_tag)
            node_group_ids = sorted(group["GroupId"] for group in node_groups)
            if not node_group_ids:
                raise ValueError(f"no node security groups found for cluster {ctx.cluster.infra_name}")

        desired = build_desired_rules(ingress, egress, node_group_ids)
        existing = [SecurityGroupRule.from_aws(rule) for rule in ctx.aws.describe_security_group_rules(group_id)]
        to_add = missing_rules(desired, existing)
        if not to_add:
            return 0

        rule_tags = generate_aws_tags("", ctx.cluster.cluster_tag)
        ctx.aws.authorize_security_group_ingress(
            group_id, [rule.to_ip_permission() for rule in to_add if not rule.is_egress], rule_tags
        )
        ctx.aws.authorize_security_group_egress(
            group_id, [rule.to_ip_permission() for rule in to_add if rule.is_egress], rule_tags
        )
        return len(to_add)
