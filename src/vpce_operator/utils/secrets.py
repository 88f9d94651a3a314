"""Reading AWS credential overrides out of Kubernetes Secrets."""

from __future__ import annotations

import base64
import binascii
from typing import Any

from kubernetes import client

from ..constants import SECRET_ACCESS_KEY_ID, SECRET_SECRET_ACCESS_KEY
from .rate_limit import rate_limit_k8s


def _decode(value: str | bytes) -> str:
    if isinstance(value, bytes):
        return value.decode("utf-8")
    try:
        return base64.b64decode(value, validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError):
        # Already decoded by the client
        return value


def read_secret_data(api: client.CoreV1Api, namespace: str, secret_name: str) -> dict[str, str]:
    """Return the decoded ``data`` of a Secret.

    Raises:
        ValueError: If the Secret does not exist
        kubernetes.client.exceptions.ApiException: Any other API failure
    """
    try:
        secret = rate_limit_k8s(api.read_namespaced_secret)(name=secret_name, namespace=namespace)
    except client.exceptions.ApiException as e:
        if e.status == 404:
            raise ValueError(f"Secret '{secret_name}' not found in namespace '{namespace}'") from e
        raise
    return {key: _decode(value) for key, value in (secret.data or {}).items()}


def _require(data: dict[str, str], secret_name: str, key: str) -> str:
    if key not in data:
        raise ValueError(f"Key '{key}' not found in secret '{secret_name}'")
    return data[key]


def read_aws_credential_override(
    api: client.CoreV1Api,
    namespace: str,
    credential_ref: dict[str, Any] | None,
) -> tuple[str, str] | None:
    """Resolve a Secret reference, such as ``spec.awsCredentialOverrideRef``, to a static key pair.

    The Secret is read from ``namespace`` and must carry both
    ``aws_access_key_id`` and ``aws_secret_access_key``.

    Returns:
        (access_key_id, secret_access_key), or None when no override is set

    Raises:
        ValueError: If the Secret or one of its keys is missing
    """
    secret_name = (credential_ref or {}).get("name")
    if not secret_name:
        return None

    data = read_secret_data(api, namespace, secret_name)
    return _require(data, secret_name, SECRET_ACCESS_KEY_ID), _require(data, secret_name, SECRET_SECRET_ACCESS_KEY)
