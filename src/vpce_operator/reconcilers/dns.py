"""Reconciler for the private hosted zone, its CNAME record and the alias Service."""

from __future__ import annotations

from typing import Any

from kubernetes import client

from ..constants import (
    API_GROUP_VERSION,
    EVENT_REASON_HOSTED_ZONE_CREATED,
    EVENT_REASON_RECORD_UPSERTED,
    EVENT_REASON_SERVICE_CREATED,
    EVENT_REASON_TAGS_REPAIRED,
    EVENT_REASON_VPC_ASSOCIATED,
    KIND_VPC_ENDPOINT,
    RECORD_TTL_SECONDS,
    VPCE_STATE_AVAILABLE,
)
from ..cluster import hosted_control_plane_domain
from ..metrics import OperatorMetrics
from ..services.aws.client import strip_hosted_zone_prefix
from ..tracing import trace_span
from ..utils.conditions import (
    set_external_name_service_ready_condition,
    set_route53_record_ready_condition,
)
from ..utils.events import EventRecorder, emit_event
from ..utils.naming import generate_aws_tags, missing_tags
from ..utils.rate_limit import rate_limit_k8s
from ..utils.secrets import read_aws_credential_override
from .base import AWSClientFactory, EndpointNotReadyError, ReconcileContext, SubresourceReconciler
from .teardown import zone_created_by_operator


def _same_domain(left: str, right: str) -> bool:
    return left.rstrip(".").lower() == right.rstrip(".").lower()


def build_cname_record(name: str, value: str) -> dict[str, Any]:
    """Route53 record set for a CNAME with the operator's TTL."""
    return {
        "Name": name,
        "Type": "CNAME",
        "TTL": RECORD_TTL_SECONDS,
        "ResourceRecords": [{"Value": value}],
    }


def build_external_name_service(resource: dict[str, Any], service_name: str, external_name: str) -> dict[str, Any]:
    """ExternalName Service owned by the VpcEndpoint so it is garbage collected with it."""
    meta = resource["metadata"]
    return {
        "apiVersion": "v1",
        "kind": "Service",
        "metadata": {
            "name": service_name,
            "namespace": meta["namespace"],
            "ownerReferences": [{
                "apiVersion": API_GROUP_VERSION,
                "kind": KIND_VPC_ENDPOINT,
                "name": meta["name"],
                "uid": meta["uid"],
                "controller": True,
                "blockOwnerDeletion": True,
            }],
        },
        "spec": {
            "type": "ExternalName",
            "externalName": external_name,
        },
    }


class DnsReconciler(SubresourceReconciler):
    """Publishes the endpoint under a custom name.

    Runs only when ``customDns.route53PrivateHostedZone`` is configured and
    provider private DNS is off. The zone is found or created first, then a
    CNAME pointing at the endpoint's first DNS entry is upserted, and finally
    an optional ExternalName Service aliases the record inside the cluster.
    """

    def __init__(
        self,
        store: Any,
        metrics: OperatorMetrics,
        core_api: client.CoreV1Api,
        aws_factory: AWSClientFactory,
        recorder: EventRecorder = emit_event,
    ) -> None:
        super().__init__(store, metrics, recorder)
        self.core_api = core_api
        self.aws_factory = aws_factory

    def reconcile(self, ctx: ReconcileContext) -> None:
        config = ctx.config or {}
        custom_dns = config.get("custom_dns")
        if not custom_dns or config.get("private_dns_enabled"):
            return

        with trace_span("reconcile_dns", kind=KIND_VPC_ENDPOINT, attributes={"vpce.name": ctx.name}):
            try:
                zone = self._ensure_hosted_zone(ctx, custom_dns)
                self._ensure_associated_vpcs(ctx, zone["Id"], custom_dns.get("associated_vpcs"))
                if custom_dns.get("hostname"):
                    self._ensure_record(ctx, custom_dns["hostname"], zone)
            except Exception as e:
                self.log_error(ctx.meta, "Failed to reconcile Route53 record", error=e, reason="DnsFailed")
                self.fail(ctx, set_route53_record_ready_condition, "ReconcileFailed", e)
                raise

            if custom_dns.get("external_name_service"):
                try:
                    self._ensure_external_name_service(ctx, custom_dns["external_name_service"])
                except Exception as e:
                    self.log_error(ctx.meta, "Failed to reconcile ExternalName service", error=e,
                                   reason="ExternalNameServiceFailed")
                    self.fail(ctx, set_external_name_service_ready_condition, "UnknownError", e)
                    raise

    # Hosted zone

    def _ensure_hosted_zone(self, ctx: ReconcileContext, custom_dns: dict[str, Any]) -> dict[str, Any]:
        """Resolve the hosted zone and record its id in status.

        A zone given by id or auto-discovered is resolved on every pass so a
        changed spec takes effect. Only zones found or created by domain name
        reuse the id recorded in status.

        Returns:
            ``{"Id": ..., "Name": ...}`` for the zone
        """
        if custom_dns.get("zone_id"):
            zone = ctx.aws.get_hosted_zone(custom_dns["zone_id"])
            if zone is None:
                raise ValueError(f"hosted zone {custom_dns['zone_id']} does not exist")
        elif custom_dns.get("auto_discover"):
            vpc_id = ctx.status.get("vpcId") or ctx.cluster.vpc_id
            zone = self._find_zone(ctx, vpc_id, ctx.cluster.domain_name)
            if zone is None:
                raise ValueError(f"no private hosted zone for {ctx.cluster.domain_name} associated with VPC {vpc_id}")
        else:
            recorded = ctx.status.get("hostedZoneId")
            zone = ctx.aws.get_hosted_zone(recorded) if recorded else None
            if zone is None:
                zone = self._find_or_create_zone(ctx, self._resolve_domain_name(ctx, custom_dns))

        zone_id = strip_hosted_zone_prefix(zone["Id"])
        if ctx.status.get("hostedZoneId") != zone_id:
            ctx.status["hostedZoneId"] = zone_id
            self.persist_status(ctx)

        if zone_created_by_operator(ctx.config):
            self._repair_zone_tags(ctx, zone_id)

        return {"Id": zone_id, "Name": zone["Name"]}

    def _resolve_domain_name(self, ctx: ReconcileContext, custom_dns: dict[str, Any]) -> str:
        if custom_dns.get("domain_name"):
            return custom_dns["domain_name"]

        ref = custom_dns.get("domain_name_ref") or {}
        if ref.get("name"):
            domain_name = ref["name"]
        elif ref.get("dns_ref"):
            domain_name = self.store.get_dns_base_domain(ref["dns_ref"])
        elif ref.get("hosted_control_plane_ref"):
            domain_name = hosted_control_plane_domain(self.store.get_hosted_control_plane(ctx.namespace))
        else:
            raise ValueError("customDns route53PrivateHostedZone has no domain name")
        return domain_name.rstrip(".")

    def _find_zone(self, ctx: ReconcileContext, vpc_id: str, domain_name: str) -> dict[str, Any] | None:
        for summary in ctx.aws.list_hosted_zones_by_vpc(vpc_id, ctx.region):
            if _same_domain(summary["Name"], domain_name):
                return {"Id": summary["HostedZoneId"], "Name": summary["Name"]}
        return None

    def _find_or_create_zone(self, ctx: ReconcileContext, domain_name: str) -> dict[str, Any]:
        vpc_id = ctx.status.get("vpcId") or ctx.cluster.vpc_id
        zone = self._find_zone(ctx, vpc_id, domain_name)
        if zone is not None:
            return zone

        created = ctx.aws.create_private_hosted_zone(domain_name, vpc_id, ctx.region)
        zone_id = strip_hosted_zone_prefix(created["Id"])
        ctx.aws.add_hosted_zone_tags(zone_id, generate_aws_tags("", ctx.cluster.cluster_tag))
        self.log_info(ctx.meta, f"Created private hosted zone {zone_id} for {domain_name}",
                      reason="HostedZoneCreated", hosted_zone_id=zone_id, vpc_id=vpc_id)
        self.record_event(ctx.resource, EVENT_REASON_HOSTED_ZONE_CREATED,
                          f"Private hosted zone {zone_id} created for {domain_name}")
        return created

    def _repair_zone_tags(self, ctx: ReconcileContext, zone_id: str) -> None:
        required = generate_aws_tags("", ctx.cluster.cluster_tag)
        to_write = missing_tags(ctx.aws.list_hosted_zone_tags(zone_id), required)
        if not to_write:
            return
        ctx.aws.add_hosted_zone_tags(zone_id, to_write)
        self.log_info(ctx.meta, f"Repaired tags on hosted zone {zone_id}", reason="TagsRepaired",
                      hosted_zone_id=zone_id, tags=sorted(to_write))
        self.record_event(ctx.resource, EVENT_REASON_TAGS_REPAIRED, f"Repaired tags on hosted zone {zone_id}")

    def _ensure_associated_vpcs(
        self,
        ctx: ReconcileContext,
        zone_id: str,
        associated_vpcs: list[dict[str, Any]] | None,
    ) -> None:
        """Associate the zone with additional, possibly cross-account, VPCs.

        The zone owner authorizes each missing VPC, then the VPC owner, using
        the credentials Secret given for that VPC, completes the association.
        """
        if not associated_vpcs:
            return

        associated = {vpc["VPCId"] for vpc in ctx.aws.get_hosted_zone_vpcs(zone_id)}
        for vpc in associated_vpcs:
            vpc_id, region = vpc["vpc_id"], vpc["region"]
            if vpc_id in associated:
                continue

            ctx.aws.create_vpc_association_authorization(zone_id, vpc_id, region)
            secret_ref = vpc["credentials_secret_ref"]
            credentials = read_aws_credential_override(
                self.core_api, secret_ref.get("namespace") or ctx.namespace, secret_ref
            )
            vpc_owner = self.aws_factory(region, credentials, None)
            vpc_owner.associate_vpc_with_hosted_zone(zone_id, vpc_id, region)

            self.log_info(ctx.meta, f"Associated VPC {vpc_id} with hosted zone {zone_id}", reason="VpcAssociated",
                          hosted_zone_id=zone_id, vpc_id=vpc_id, vpc_region=region)
            self.record_event(ctx.resource, EVENT_REASON_VPC_ASSOCIATED,
                              f"VPC {vpc_id} in {region} associated with hosted zone {zone_id}")

    # Record

    def _endpoint_dns_name(self, ctx: ReconcileContext) -> str:
        vpce_id = ctx.status.get("vpcEndpointId")
        endpoint = ctx.aws.describe_vpc_endpoint(vpce_id) if vpce_id else None
        if endpoint is None or endpoint.get("State") != VPCE_STATE_AVAILABLE:
            raise EndpointNotReadyError(f"VPC endpoint {vpce_id} is not available yet")
        entries = [entry["DnsName"] for entry in endpoint.get("DnsEntries", []) if entry.get("DnsName")]
        if not entries:
            raise EndpointNotReadyError(f"VPC endpoint {vpce_id} has no DNS entries yet")
        return entries[0]

    def _ensure_record(self, ctx: ReconcileContext, hostname: str, zone: dict[str, Any]) -> None:
        target = self._endpoint_dns_name(ctx)
        name = f"{hostname}.{zone['Name'].rstrip('.')}"
        record = build_cname_record(name, target)

        existing = ctx.aws.get_resource_record_set(zone["Id"], name, "CNAME")
        current_values = [value["Value"] for value in (existing or {}).get("ResourceRecords", [])]
        if current_values != [target]:
            ctx.aws.upsert_resource_record_set(zone["Id"], record)
            self.log_info(ctx.meta, f"Upserted record {name} -> {target}", reason="RecordUpserted",
                          hosted_zone_id=zone["Id"])
            self.record_event(ctx.resource, EVENT_REASON_RECORD_UPSERTED, f"Record {name} points at {target}")

        ctx.status["resourceRecordSet"] = name
        self.set_condition(ctx, set_route53_record_ready_condition, True, "Created", f"Created: {name}")
        self.persist_status(ctx)

    # Alias service

    def _ensure_external_name_service(self, ctx: ReconcileContext, service_name: str) -> None:
        external_name = ctx.status.get("resourceRecordSet")
        if not external_name:
            raise ValueError(f"cannot create ExternalName service {service_name}: status.resourceRecordSet is empty")

        expected = build_external_name_service(ctx.resource, service_name, external_name)
        try:
            found = rate_limit_k8s(self.core_api.read_namespaced_service)(name=service_name, namespace=ctx.namespace)
        except client.exceptions.ApiException as e:
            if e.status != 404:
                raise
            found = None

        if found is None:
            rate_limit_k8s(self.core_api.create_namespaced_service)(namespace=ctx.namespace, body=expected)
            self.log_info(ctx.meta, f"Created ExternalName service {service_name}", reason="ServiceCreated",
                          external_name=external_name)
            self.record_event(ctx.resource, EVENT_REASON_SERVICE_CREATED,
                              f"ExternalName service {service_name} created")
            reason = "Created"
        elif found.spec.external_name != external_name:
            # Only externalName is corrected; other edits to the Service are left alone
            rate_limit_k8s(self.core_api.patch_namespaced_service)(
                name=service_name,
                namespace=ctx.namespace,
                body={"spec": {"externalName": external_name}},
            )
            self.log_info(ctx.meta, f"Updated ExternalName service {service_name}", reason="ServiceUpdated",
                          external_name=external_name)
            reason = "Reconciled"
        else:
            reason = "Reconciled"

        self.set_condition(
            ctx,
            set_external_name_service_ready_condition,
            True,
            reason,
            f"Service {service_name} points at {external_name}",
        )
        self.persist_status(ctx)
