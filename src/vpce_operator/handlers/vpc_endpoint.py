"""Kopf registrations for the VpcEndpoint CRD."""

from __future__ import annotations

import logging
import threading
from typing import Any

import kopf

from ..cluster import ClusterInfoCache, resolve_cluster_info
from ..constants import (
    API_GROUP_VERSION,
    BACKOFF_BASE_SECONDS,
    BACKOFF_MAX_SECONDS,
    KIND_VPC_ENDPOINT,
    REQUEUE_INTERVAL_SECONDS,
)
from ..metrics import OperatorMetrics
from ..reconcilers.driver import ReconcileResult, VpcEndpointDriver
from ..services.aws.client import AWSClient
from ..utils.context import with_correlation_id
from ..utils.errors import sanitize_exception
from .shared import VpcEndpointStore, get_core_client, get_k8s_client

logger = logging.getLogger(__name__)

_driver: VpcEndpointDriver | None = None
_driver_lock = threading.Lock()
_key_locks: dict[tuple[str, str], threading.Lock] = {}
_key_locks_guard = threading.Lock()


def backoff_delay(retry: int) -> float:
    """Exponential retry delay: 1s doubling per retry, capped at 5000s."""
    if retry < 0:
        retry = 0
    # 2**32 is already far past the cap
    return min(BACKOFF_BASE_SECONDS * 2 ** min(retry, 32), BACKOFF_MAX_SECONDS)


def build_driver(metrics: OperatorMetrics | None = None) -> VpcEndpointDriver:
    """Wire the driver against the live cluster."""
    metrics = metrics if metrics is not None else OperatorMetrics()
    custom_api = get_k8s_client()
    core_api = get_core_client()

    def aws_factory(
        region: str,
        credentials: tuple[str, str] | None = None,
        role_arn: str | None = None,
    ) -> AWSClient:
        access_key, secret_key = credentials if credentials else (None, None)
        return AWSClient(region, access_key=access_key, secret_key=secret_key, metrics=metrics, role_arn=role_arn)

    cluster_cache = ClusterInfoCache(lambda: resolve_cluster_info(custom_api, aws_factory))
    return VpcEndpointDriver(
        store=VpcEndpointStore(custom_api, metrics),
        metrics=metrics,
        cluster_cache=cluster_cache,
        aws_factory=aws_factory,
        core_api=core_api,
    )


def get_driver() -> VpcEndpointDriver:
    """Process-wide driver, built on first use."""
    global _driver
    with _driver_lock:
        if _driver is None:
            _driver = build_driver()
        return _driver


def _lock_for(namespace: str, name: str) -> threading.Lock:
    with _key_locks_guard:
        return _key_locks.setdefault((namespace, name), threading.Lock())


def _forget_lock(namespace: str, name: str) -> None:
    with _key_locks_guard:
        _key_locks.pop((namespace, name), None)


def run_reconcile(
    driver: VpcEndpointDriver,
    namespace: str,
    name: str,
    retry: int = 0,
    polled: bool = True,
) -> ReconcileResult:
    """Run one pass and translate its outcome into kopf's retry protocol.

    Kopf may fire a timer while an event handler for the same object is still
    running, so passes are serialized per object. The lock of an object is
    dropped once the object is gone or its finalizer has been removed.

    Args:
        driver: Driver to run
        namespace: Object namespace
        name: Object name
        retry: Kopf retry counter for this handler
        polled: Whether the periodic timer already covers the regular requeue;
            when False every requested requeue is raised to kopf

    Raises:
        kopf.TemporaryError: With the requested delay for early requeues, or
            with exponential backoff when the pass failed
    """
    with with_correlation_id(), _lock_for(namespace, name):
        try:
            result = driver.reconcile(namespace, name)
        except Exception as e:
            delay = backoff_delay(retry)
            logger.warning(f"Reconcile of {namespace}/{name} failed, retrying in {delay}s: {sanitize_exception(e)}")
            raise kopf.TemporaryError(sanitize_exception(e), delay=delay) from e

    if result.released:
        _forget_lock(namespace, name)
    if result.requeue_after is not None and (not polled or result.requeue_after < REQUEUE_INTERVAL_SECONDS):
        raise kopf.TemporaryError(f"requeue {namespace}/{name}", delay=result.requeue_after)
    return result


@kopf.on.create(API_GROUP_VERSION, KIND_VPC_ENDPOINT)
@kopf.on.update(API_GROUP_VERSION, KIND_VPC_ENDPOINT)
@kopf.on.resume(API_GROUP_VERSION, KIND_VPC_ENDPOINT)
def handle_vpc_endpoint(meta: dict[str, Any], retry: int = 0, **kwargs: Any) -> None:
    """Handle VpcEndpoint creation, spec changes and operator restarts."""
    run_reconcile(get_driver(), meta["namespace"], meta["name"], retry)


@kopf.timer(API_GROUP_VERSION, KIND_VPC_ENDPOINT, interval=REQUEUE_INTERVAL_SECONDS)
def poll_vpc_endpoint(meta: dict[str, Any], retry: int = 0, **kwargs: Any) -> None:
    """Periodic pass that picks up provider-side drift."""
    run_reconcile(get_driver(), meta["namespace"], meta["name"], retry)


@kopf.on.delete(API_GROUP_VERSION, KIND_VPC_ENDPOINT, optional=True)
def handle_vpc_endpoint_delete(meta: dict[str, Any], retry: int = 0, **kwargs: Any) -> None:
    """Release provider resources.

    The operator's own finalizer holds the object, so kopf does not add one
    of its own here.
    """
    run_reconcile(get_driver(), meta["namespace"], meta["name"], retry, polled=False)
