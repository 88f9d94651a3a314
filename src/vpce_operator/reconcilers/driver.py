"""Top-level reconcile pass for one VpcEndpoint."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from kubernetes import client

from ..builders.vpc_endpoint import create_endpoint_config_from_spec
from ..cluster import ClusterInfo, ClusterInfoCache, hosted_control_plane_infra_id
from ..constants import (
    DEPENDENCY_VIOLATION_REQUEUE_SECONDS,
    FINALIZER,
    KIND_VPC_ENDPOINT,
    REQUEUE_INTERVAL_SECONDS,
)
from ..handlers.base import BaseHandler
from ..handlers.shared import VpcEndpointStore
from ..metrics import OperatorMetrics
from ..services.aws.errors import AWSError
from ..tracing import trace_span
from ..utils.events import EventRecorder, emit_event
from ..utils.secrets import read_aws_credential_override
from .base import AWSClientFactory, ReconcileContext, RequeueRequested
from .dns import DnsReconciler
from .security_group import SecurityGroupReconciler
from .teardown import TeardownOrchestrator
from .vpc_endpoint import VpcEndpointReconciler


@dataclass
class ReconcileResult:
    """Outcome of a pass.

    ``requeue_after`` is None when nothing is left to do; ``released`` is set
    once the finalizer is gone and the object will not be seen again.
    """

    requeue_after: float | None = None
    released: bool = False


class VpcEndpointDriver(BaseHandler):
    """Runs deletion or convergence for a VpcEndpoint.

    Convergence runs security group, endpoint and DNS reconciliation in that
    order and stops at the first error. Errors are raised for the caller's
    backoff; every completed pass asks for a requeue so provider-side drift
    is picked up.
    """

    def __init__(
        self,
        store: VpcEndpointStore,
        metrics: OperatorMetrics,
        cluster_cache: ClusterInfoCache,
        aws_factory: AWSClientFactory,
        core_api: client.CoreV1Api,
        recorder: EventRecorder = emit_event,
    ) -> None:
        super().__init__(KIND_VPC_ENDPOINT, metrics, recorder)
        self.store = store
        self.cluster_cache = cluster_cache
        self.aws_factory = aws_factory
        self.core_api = core_api
        self.security_groups = SecurityGroupReconciler(store, metrics, recorder)
        self.vpc_endpoints = VpcEndpointReconciler(store, metrics, recorder)
        self.dns = DnsReconciler(store, metrics, core_api, aws_factory, recorder)
        self.orchestrator = TeardownOrchestrator(store, metrics, recorder)

    def reconcile(self, namespace: str, name: str) -> ReconcileResult:
        """Run one pass for the object identified by ``namespace``/``name``."""
        cluster = self.cluster_cache.get()

        resource = self.store.get(namespace, name)
        if resource is None:
            return ReconcileResult(released=True)

        meta = resource["metadata"]
        if meta.get("deletionTimestamp"):
            if FINALIZER not in (meta.get("finalizers") or []):
                return ReconcileResult()
            return self.reconcile_with_metrics(resource, lambda: self._delete(resource, cluster))

        return self.reconcile_with_metrics(resource, lambda: self._converge(resource, cluster))

    def _converge(self, resource: dict[str, Any], cluster: ClusterInfo) -> ReconcileResult:
        with trace_span("reconcile_vpc_endpoint_pass", kind=KIND_VPC_ENDPOINT,
                        attributes={"vpce.name": resource["metadata"]["name"],
                                    "vpce.namespace": resource["metadata"].get("namespace")}):
            self.store.add_finalizer(resource)
            config = create_endpoint_config_from_spec(resource.get("spec", {}))
            ctx = self._build_context(resource, config, self._cluster_for(resource, config, cluster))

            try:
                self._prepare_status(ctx)
                self.security_groups.reconcile(ctx)
                if not self.vpc_endpoints.reconcile(ctx):
                    return ReconcileResult(requeue_after=REQUEUE_INTERVAL_SECONDS)
                self.dns.reconcile(ctx)
            except RequeueRequested as e:
                self.log_info(ctx.meta, str(e), reason="Requeued", requeue_after=e.delay)
                return ReconcileResult(requeue_after=e.delay)
            except AWSError as e:
                self._record_unauthorized(e)
                raise

        return ReconcileResult(requeue_after=REQUEUE_INTERVAL_SECONDS)

    def _delete(self, resource: dict[str, Any], cluster: ClusterInfo) -> ReconcileResult:
        meta = resource["metadata"]
        try:
            config = create_endpoint_config_from_spec(resource.get("spec", {}))
        except ValueError as e:
            # Teardown only needs status; without a config the zone is treated as not ours
            self.log_warning(meta, "Invalid spec during deletion", error=str(e))
            config = None

        ctx = self._build_context(resource, config, cluster, deleting=True)
        try:
            self.orchestrator.teardown(ctx)
        except AWSError as e:
            self._record_unauthorized(e)
            if e.is_dependency_violation:
                self.log_info(meta, f"Resources still in use, retrying in {DEPENDENCY_VIOLATION_REQUEUE_SECONDS}s",
                              event="delete", reason="DependencyViolation", action=e.action)
                return ReconcileResult(requeue_after=DEPENDENCY_VIOLATION_REQUEUE_SECONDS)
            raise

        self.store.remove_finalizer(resource)
        self.log_info(meta, "Released all provider resources", event="delete", reason="FinalizerRemoved")
        return ReconcileResult(released=True)

    def _build_context(
        self,
        resource: dict[str, Any],
        config: dict[str, Any] | None,
        cluster: ClusterInfo,
        deleting: bool = False,
    ) -> ReconcileContext:
        meta = resource["metadata"]
        region = (config or {}).get("region") or cluster.region
        try:
            credentials = read_aws_credential_override(
                self.core_api, meta["namespace"], (config or {}).get("credential_ref")
            )
        except ValueError as e:
            if not deleting:
                raise
            # The secret may already be gone when the whole namespace is deleted
            self.log_warning(meta, "Credential override unavailable, using default credentials", error=str(e))
            credentials = None

        return ReconcileContext(
            resource=resource,
            config=config,
            cluster=cluster,
            aws=self.aws_factory(region, credentials, (config or {}).get("assume_role_arn")),
            region=region,
        )

    def _prepare_status(self, ctx: ReconcileContext) -> None:
        """Record identifiers later steps depend on; persisted only when something changed."""
        before = dict(ctx.status)

        ctx.status["infraId"] = ctx.cluster.infra_name
        ctx.status["vpcEndpointServiceName"] = self._resolve_service_name(ctx)
        if not ctx.status.get("vpcId"):
            ctx.status["vpcId"] = self._select_vpc(ctx)

        if ctx.status != before:
            self.persist_status(ctx)

    def _resolve_service_name(self, ctx: ReconcileContext) -> str:
        config = ctx.config or {}
        if config.get("service_name"):
            return config["service_name"]
        if config.get("service_name_ref"):
            return config["service_name_ref"]

        ref = config.get("endpoint_service_ref")
        if ref:
            service_name = self.store.get_endpoint_service_name(ctx.namespace, ref)
            if service_name:
                return service_name
            recorded = ctx.status.get("vpcEndpointServiceName")
            if recorded:
                self.log_warning(ctx.meta, f"AWSEndpointService {ref} has no service name, reusing {recorded}")
                return recorded
            raise ValueError(f"AWSEndpointService {ctx.namespace}/{ref} has no status.endpointServiceName yet")

        raise ValueError("unable to determine the VPC endpoint service name")

    def _select_vpc(self, ctx: ReconcileContext) -> str:
        """Candidates found by tag or listed by id are load balanced, least used first."""
        config = ctx.config or {}
        if config.get("vpc_tags"):
            candidates = ctx.aws.find_vpc_ids_by_tags(config["vpc_tags"])
            if not candidates:
                raise ValueError(f"no VPCs found with tags {config['vpc_tags']}")
            self.log_info(ctx.meta, f"Found candidate VPCs by tag: {', '.join(candidates)}", reason="VpcSelected")
            return ctx.aws.select_vpc(candidates)
        if config.get("vpc_ids"):
            return ctx.aws.select_vpc(config["vpc_ids"])
        if config.get("subnet_ids"):
            return ctx.aws.get_vpc_id(config["subnet_ids"])
        return ctx.cluster.vpc_id

    def _cluster_for(self, resource: dict[str, Any], config: dict[str, Any], cluster: ClusterInfo) -> ClusterInfo:
        """Objects whose domain comes from a hosted control plane take its infrastructure name.

        A previously recorded ``status.infraId`` is reused while the hosted
        control plane cannot be read.
        """
        ref = (config.get("custom_dns") or {}).get("domain_name_ref") or {}
        if not ref.get("hosted_control_plane_ref"):
            return cluster

        meta = resource["metadata"]
        try:
            infra_id = hosted_control_plane_infra_id(self.store.get_hosted_control_plane(meta["namespace"]))
        except ValueError as e:
            infra_id = resource.get("status", {}).get("infraId")
            if not infra_id:
                raise
            self.log_warning(meta, f"Hosted control plane unavailable, reusing infra id {infra_id}", error=str(e))
        return cluster.with_infra_name(infra_id)

    def persist_status(self, ctx: ReconcileContext) -> None:
        try:
            self.store.update_status(ctx.resource)
        except Exception as e:
            self.log_error(ctx.meta, "Failed to persist status", error=e, reason="StatusUpdateFailed")
            raise

    def _record_unauthorized(self, error: AWSError) -> None:
        if not error.is_unauthorized:
            return
        try:
            self.metrics.record_unauthorized(error.action)
        except Exception as e:
            self.logger.warning(f"Failed to record unauthorized operation metric: {e}")
