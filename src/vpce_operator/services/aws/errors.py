"""Typed classification of AWS API failures.

botocore reports failures as ``ClientError`` with a provider-specific code
string. The AWS client translates every such failure into an ``AWSError``
with a closed ``ErrorKind`` so reconcilers branch on the kind instead of
re-parsing codes.
"""

from __future__ import annotations

from enum import Enum

from botocore.exceptions import ClientError


class ErrorKind(str, Enum):
    """Closed set of AWS failure classes the reconcilers act on."""

    NOT_FOUND = "NotFound"
    DEPENDENCY_VIOLATION = "DependencyViolation"
    UNAUTHORIZED = "Unauthorized"
    THROTTLED = "Throttled"
    INVALID = "Invalid"
    UNKNOWN = "Unknown"


NOT_FOUND_CODES = frozenset({
    "InvalidGroup.NotFound",
    "InvalidGroupId.NotFound",
    "InvalidVpcEndpointId.NotFound",
    "InvalidVpcEndpoint.NotFound",
    "InvalidSubnetID.NotFound",
    "InvalidVpcID.NotFound",
    "InvalidVpcEndpointServiceId.NotFound",
    "InvalidServiceName",
    "NoSuchHostedZone",
})

DEPENDENCY_VIOLATION_CODES = frozenset({
    "DependencyViolation",
    "HostedZoneNotEmpty",
})

UNAUTHORIZED_CODES = frozenset({
    "UnauthorizedOperation",
    "AccessDenied",
    "AccessDeniedException",
})

THROTTLED_CODES = frozenset({
    "Throttling",
    "ThrottlingException",
    "RequestLimitExceeded",
    "PriorRequestNotComplete",
})

INVALID_CODES = frozenset({
    "InvalidParameterValue",
    "InvalidParameterCombination",
    "MissingParameter",
    "InvalidInput",
})


class AWSError(Exception):
    """An AWS API call failed.

    Attributes:
        kind: Classified failure kind
        code: Raw AWS error code
        action: ``service:Operation`` that failed, e.g. ``ec2:CreateVpcEndpoint``
        message: AWS error message
    """

    def __init__(self, kind: ErrorKind, code: str, action: str, message: str) -> None:
        super().__init__(f"{action} failed ({code}): {message}")
        self.kind = kind
        self.code = code
        self.action = action
        self.message = message

    @property
    def is_not_found(self) -> bool:
        return self.kind is ErrorKind.NOT_FOUND

    @property
    def is_dependency_violation(self) -> bool:
        return self.kind is ErrorKind.DEPENDENCY_VIOLATION

    @property
    def is_unauthorized(self) -> bool:
        return self.kind is ErrorKind.UNAUTHORIZED


def classify_error_code(code: str) -> ErrorKind:
    """Map an AWS error code to an ``ErrorKind``."""
    if code in NOT_FOUND_CODES or code.endswith(".NotFound"):
        return ErrorKind.NOT_FOUND
    if code in DEPENDENCY_VIOLATION_CODES:
        return ErrorKind.DEPENDENCY_VIOLATION
    if code in UNAUTHORIZED_CODES:
        return ErrorKind.UNAUTHORIZED
    if code in THROTTLED_CODES:
        return ErrorKind.THROTTLED
    if code in INVALID_CODES:
        return ErrorKind.INVALID
    return ErrorKind.UNKNOWN


def classify_client_error(error: ClientError, service: str) -> AWSError:
    """Translate a botocore ``ClientError`` into an ``AWSError``.

    Args:
        error: Error raised by a boto3 client
        service: Short service name used in the action label, e.g. ``ec2``

    Returns:
        Classified error, ready to be raised ``from`` the original
    """
    details = error.response.get("Error", {})
    code = details.get("Code", "Unknown")
    message = details.get("Message", str(error))
    action = f"{service}:{error.operation_name}"
    return AWSError(classify_error_code(code), code, action, message)
