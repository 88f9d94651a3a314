"""Shared Kubernetes access for handlers and reconcilers."""

from __future__ import annotations

import copy
import time
from typing import Any

from kubernetes import client

from ..constants import (
    API_GROUP,
    API_VERSION,
    AWS_ENDPOINT_SERVICE_GROUP,
    AWS_ENDPOINT_SERVICE_PLURAL,
    AWS_ENDPOINT_SERVICE_VERSION,
    CONFIG_GROUP,
    CONFIG_VERSION,
    DNS_PLURAL,
    FINALIZER,
    HOSTED_CONTROL_PLANE_GROUP,
    HOSTED_CONTROL_PLANE_PLURAL,
    HOSTED_CONTROL_PLANE_VERSION,
    PLURAL_VPC_ENDPOINTS,
)
from ..metrics import OperatorMetrics
from ..utils.rate_limit import rate_limit_k8s


def load_k8s_config() -> None:
    """Load in-cluster configuration, falling back to the local kubeconfig."""
    from kubernetes import config

    try:
        config.load_incluster_config()
    except config.ConfigException:
        config.load_kube_config()


def get_k8s_client() -> client.CustomObjectsApi:
    """Get Kubernetes CustomObjectsApi client.

    Returns:
        CustomObjectsApi instance
    """
    load_k8s_config()
    return client.CustomObjectsApi()


def get_core_client() -> client.CoreV1Api:
    """Get Kubernetes CoreV1Api client.

    Returns:
        CoreV1Api instance
    """
    load_k8s_config()
    return client.CoreV1Api()


class VpcEndpointStore:
    """Reads and writes VpcEndpoint objects and their status sub-resource.

    Writes carry the ``resourceVersion`` last seen so a concurrent writer
    surfaces as a 409 ``ApiException`` instead of being overwritten.
    """

    def __init__(self, api: client.CustomObjectsApi, metrics: OperatorMetrics | None = None) -> None:
        self.api = api
        self.metrics = metrics

    def _timed(self, operation: str, fn: Any, **kwargs: Any) -> Any:
        start_time = time.time()
        try:
            result = rate_limit_k8s(fn)(**kwargs)
        except Exception:
            self._record(operation, "error")
            raise
        finally:
            if self.metrics is not None:
                self.metrics.api_call_duration_seconds.labels(api_type="k8s", operation=operation).observe(
                    time.time() - start_time
                )
        self._record(operation, "success")
        return result

    def _record(self, operation: str, result: str) -> None:
        if self.metrics is not None:
            self.metrics.api_call_total.labels(api_type="k8s", operation=operation, result=result).inc()

    def get(self, namespace: str, name: str) -> dict[str, Any] | None:
        """Get a VpcEndpoint, or None if it no longer exists."""
        try:
            return self._timed(
                "get_vpcendpoint",
                self.api.get_namespaced_custom_object,
                group=API_GROUP,
                version=API_VERSION,
                namespace=namespace,
                plural=PLURAL_VPC_ENDPOINTS,
                name=name,
            )
        except client.exceptions.ApiException as e:
            if e.status == 404:
                return None
            raise

    def list_all(self) -> list[dict[str, Any]]:
        """List VpcEndpoints in every namespace."""
        response = self._timed(
            "list_vpcendpoints",
            self.api.list_cluster_custom_object,
            group=API_GROUP,
            version=API_VERSION,
            plural=PLURAL_VPC_ENDPOINTS,
        )
        return response.get("items", [])

    def _patch_finalizers(self, resource: dict[str, Any], finalizers: list[str]) -> None:
        meta = resource["metadata"]
        updated = self._timed(
            "patch_vpcendpoint",
            self.api.patch_namespaced_custom_object,
            group=API_GROUP,
            version=API_VERSION,
            namespace=meta["namespace"],
            plural=PLURAL_VPC_ENDPOINTS,
            name=meta["name"],
            body={"metadata": {"finalizers": finalizers, "resourceVersion": meta.get("resourceVersion")}},
        )
        meta["finalizers"] = finalizers
        meta["resourceVersion"] = updated["metadata"]["resourceVersion"]

    def add_finalizer(self, resource: dict[str, Any]) -> bool:
        """Attach the operator finalizer. Returns True if it had to be added."""
        finalizers = list(resource["metadata"].get("finalizers") or [])
        if FINALIZER in finalizers:
            return False
        self._patch_finalizers(resource, finalizers + [FINALIZER])
        return True

    def remove_finalizer(self, resource: dict[str, Any]) -> bool:
        """Detach the operator finalizer. Returns True if it was present."""
        finalizers = list(resource["metadata"].get("finalizers") or [])
        if FINALIZER not in finalizers:
            return False
        finalizers.remove(FINALIZER)
        self._patch_finalizers(resource, finalizers)
        return True

    def update_status(self, resource: dict[str, Any]) -> None:
        """Persist ``resource["status"]`` and refresh its resourceVersion."""
        meta = resource["metadata"]
        updated = self._timed(
            "replace_vpcendpoint_status",
            self.api.replace_namespaced_custom_object_status,
            group=API_GROUP,
            version=API_VERSION,
            namespace=meta["namespace"],
            plural=PLURAL_VPC_ENDPOINTS,
            name=meta["name"],
            body=copy.deepcopy(resource),
        )
        meta["resourceVersion"] = updated["metadata"]["resourceVersion"]

    def get_endpoint_service_name(self, namespace: str, name: str) -> str | None:
        """Read ``status.endpointServiceName`` from an AWSEndpointService, None if unset or missing."""
        try:
            endpoint_service = self._timed(
                "get_awsendpointservice",
                self.api.get_namespaced_custom_object,
                group=AWS_ENDPOINT_SERVICE_GROUP,
                version=AWS_ENDPOINT_SERVICE_VERSION,
                namespace=namespace,
                plural=AWS_ENDPOINT_SERVICE_PLURAL,
                name=name,
            )
        except client.exceptions.ApiException as e:
            if e.status == 404:
                return None
            raise
        return endpoint_service.get("status", {}).get("endpointServiceName") or None

    def get_dns_base_domain(self, name: str) -> str:
        """Read ``spec.baseDomain`` of a cluster-scoped ``config.openshift.io`` DNS object.

        Raises:
            ValueError: If the object is missing or has no base domain
        """
        try:
            dns = self._timed(
                "get_dns",
                self.api.get_cluster_custom_object,
                group=CONFIG_GROUP,
                version=CONFIG_VERSION,
                plural=DNS_PLURAL,
                name=name,
            )
        except client.exceptions.ApiException as e:
            if e.status == 404:
                raise ValueError(f"DNS {name} not found") from e
            raise
        base_domain = dns.get("spec", {}).get("baseDomain")
        if not base_domain:
            raise ValueError(f"DNS {name} has no spec.baseDomain")
        return base_domain

    def get_hosted_control_plane(self, namespace: str) -> dict[str, Any]:
        """Return the one HostedControlPlane in ``namespace``.

        Raises:
            ValueError: If the namespace holds no or several hosted control planes
        """
        response = self._timed(
            "list_hostedcontrolplanes",
            self.api.list_namespaced_custom_object,
            group=HOSTED_CONTROL_PLANE_GROUP,
            version=HOSTED_CONTROL_PLANE_VERSION,
            namespace=namespace,
            plural=HOSTED_CONTROL_PLANE_PLURAL,
        )
        items = response.get("items", [])
        if len(items) != 1:
            raise ValueError(f"found {len(items)} hostedcontrolplanes in namespace {namespace}, expected 1")
        return items[0]
