"""Release provider resources of a VpcEndpoint that is being deleted."""

from __future__ import annotations

from typing import Any

from ..constants import (
    COND_EXTERNAL_NAME_SERVICE_READY,
    EVENT_REASON_RESOURCE_DELETED,
    KIND_VPC_ENDPOINT,
    REASON_DELETED,
    VPCE_STATE_DELETING,
)
from ..tracing import trace_span
from ..utils.conditions import (
    find_condition,
    set_external_name_service_ready_condition,
    set_route53_record_ready_condition,
    set_security_group_ready_condition,
    set_vpc_endpoint_ready_condition,
)
from .base import ReconcileContext, SubresourceReconciler


def zone_created_by_operator(config: dict[str, Any] | None) -> bool:
    """Only zones requested by domain name or domain name reference are created, and so owned, by the operator."""
    custom_dns = (config or {}).get("custom_dns") or {}
    by_domain = bool(custom_dns.get("domain_name") or custom_dns.get("domain_name_ref"))
    return by_domain and not custom_dns.get("zone_id") and not custom_dns.get("auto_discover")


def _uses_zone(resource: dict[str, Any], zone_id: str, domain_name: str | None) -> bool:
    if resource.get("status", {}).get("hostedZoneId") == zone_id:
        return True
    zone_spec = resource.get("spec", {}).get("customDns", {}).get("route53PrivateHostedZone", {})
    requested = (zone_spec.get("domainName") or "").rstrip(".")
    return bool(domain_name) and requested == domain_name


class TeardownOrchestrator(SubresourceReconciler):
    """Deletes record, zone, endpoint and security group, in that order.

    Each step runs only while status still references its resource, and
    status is persisted after every step so a retried teardown resumes where
    the previous one stopped. Any provider error aborts the teardown and is
    raised to the caller with later steps untouched.
    """

    def teardown(self, ctx: ReconcileContext) -> None:
        with trace_span("teardown", kind=KIND_VPC_ENDPOINT, attributes={"vpce.name": ctx.name}):
            self._delete_record(ctx)
            self._delete_hosted_zone(ctx)
            self._delete_vpc_endpoint(ctx)
            self._delete_security_group(ctx)

    def _deleted(self, ctx: ReconcileContext, setter: Any, message: str) -> None:
        self.set_condition(ctx, setter, False, REASON_DELETED, message)
        self.persist_status(ctx)
        self.log_info(ctx.meta, message, event="delete", reason="ResourceDeleted")
        self.record_event(ctx.resource, EVENT_REASON_RESOURCE_DELETED, message)

    def _delete_record(self, ctx: ReconcileContext) -> None:
        name = ctx.status.get("resourceRecordSet")
        if not name:
            return

        zone_id = ctx.status.get("hostedZoneId")
        if zone_id:
            # Route53 deletes require the exact current record
            record = ctx.aws.get_resource_record_set(zone_id, name, "CNAME")
            if record is not None:
                ctx.aws.delete_resource_record_set(zone_id, record)

        ctx.status.pop("resourceRecordSet", None)
        self._deleted(ctx, set_route53_record_ready_condition, f"Deleted Route53 record {name}")

        # The alias Service is garbage collected through its owner reference
        if find_condition(ctx.conditions, COND_EXTERNAL_NAME_SERVICE_READY) is not None:
            self.set_condition(ctx, set_external_name_service_ready_condition, False, REASON_DELETED,
                               "Owner is being deleted")
            self.persist_status(ctx)

    def _delete_hosted_zone(self, ctx: ReconcileContext) -> None:
        zone_id = ctx.status.get("hostedZoneId")
        if not zone_id:
            return

        if zone_created_by_operator(ctx.config):
            domain_name = ctx.config["custom_dns"].get("domain_name")
            uid = ctx.meta.get("uid")
            sharing = [
                other for other in self.store.list_all()
                if other.get("metadata", {}).get("uid") != uid and _uses_zone(other, zone_id, domain_name)
            ]
            if sharing:
                self.log_info(ctx.meta, f"Keeping hosted zone {zone_id}, still used by {len(sharing)} VpcEndpoints",
                              event="delete", reason="HostedZoneInUse", hosted_zone_id=zone_id)
            else:
                ctx.aws.delete_hosted_zone(zone_id)
                self.log_info(ctx.meta, f"Deleted hosted zone {zone_id}", event="delete",
                              reason="HostedZoneDeleted", hosted_zone_id=zone_id)

        ctx.status.pop("hostedZoneId", None)
        self.persist_status(ctx)

    def _delete_vpc_endpoint(self, ctx: ReconcileContext) -> None:
        vpce_id = ctx.status.get("vpcEndpointId")
        if not vpce_id:
            return

        try:
            self.metrics.delete_pending_acceptance(ctx.name, ctx.namespace, vpce_id)
        except Exception as e:
            self.log_warning(ctx.meta, "Failed to delete pending acceptance metric", error=str(e))

        ctx.aws.delete_vpc_endpoint(vpce_id)
        ctx.status["status"] = VPCE_STATE_DELETING
        ctx.status.pop("vpcEndpointId", None)
        self._deleted(ctx, set_vpc_endpoint_ready_condition, f"Deleted VPC endpoint {vpce_id}")

    def _delete_security_group(self, ctx: ReconcileContext) -> None:
        group_id = ctx.status.get("securityGroupId")
        if not group_id:
            return

        ctx.aws.delete_security_group(group_id)
        ctx.status.pop("securityGroupId", None)
        self._deleted(ctx, set_security_group_ready_condition, f"Deleted security group {group_id}")
