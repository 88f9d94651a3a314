"""Credential redaction for text that leaves the operator.

Error text ends up in log lines, Kubernetes Events and condition messages,
which anyone allowed to read a VpcEndpoint can see.
"""

from __future__ import annotations

import re
from typing import Any

REDACTED = "[REDACTED]"

# key=value / key: value pairs whose value is a credential
_CREDENTIAL_ASSIGNMENT = re.compile(
    r"\b(aws_access_key_id|aws_secret_access_key|aws_session_token|access_key_id|secret_access_key"
    r"|session_token|x-amz-security-token|signature|password)(\s*[:=]\s*)([^\s,;)]+)",
    re.IGNORECASE,
)

# Long-term (AKIA) and STS (ASIA) access key ids
_ACCESS_KEY_ID = re.compile(r"\b(?:AKIA|ASIA)[A-Z0-9]{16}\b")

# Account id inside an ARN, e.g. "User: arn:aws:iam::123456789012:user/ci is not authorized"
_ARN_ACCOUNT = re.compile(r"\b(arn:aws[a-z-]*:[a-z0-9-]+:[a-z0-9-]*:)\d{12}(:)")

# Dict keys containing any of these are redacted whole
SENSITIVE_KEY_PARTS = frozenset({"secret", "session_token", "password", "access_key", "credentials"})


def sanitize_error_message(message: str) -> str:
    """Redact credentials and account ids from a provider or API message."""
    message = _CREDENTIAL_ASSIGNMENT.sub(rf"\1\2{REDACTED}", message)
    message = _ACCESS_KEY_ID.sub(REDACTED, message)
    return _ARN_ACCOUNT.sub(rf"\1{REDACTED}\2", message)


def sanitize_exception(error: BaseException) -> str:
    return sanitize_error_message(str(error))


def sanitize_dict(data: dict[str, Any], sensitive_keys: set[str] | None = None) -> dict[str, Any]:
    """Return a copy of ``data`` that is safe to log.

    Values under credential-like keys are replaced; nested dicts are walked and
    string values are passed through :func:`sanitize_error_message`.

    Args:
        data: Log fields or any JSON-like mapping
        sensitive_keys: Extra key fragments to redact

    Returns:
        Redacted copy
    """
    parts = SENSITIVE_KEY_PARTS | (sensitive_keys or set())
    clean: dict[str, Any] = {}
    for key, value in data.items():
        if any(part in key.lower() for part in parts):
            clean[key] = REDACTED
        elif isinstance(value, dict):
            clean[key] = sanitize_dict(value, sensitive_keys)
        elif isinstance(value, str):
            clean[key] = sanitize_error_message(value)
        else:
            clean[key] = value
    return clean
