"""Status conditions of a VpcEndpoint.

Each AWS or Kubernetes subresource the operator manages reports through one
condition type. The list keeps first-insertion order and holds each type at
most once.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Callable

from ..constants import (
    COND_EXTERNAL_NAME_SERVICE_READY,
    COND_ROUTE53_RECORD_READY,
    COND_SECURITY_GROUP_READY,
    COND_VPC_ENDPOINT_READY,
)

Condition = dict[str, Any]
ConditionSetter = Callable[[list[Condition], bool, str, str], list[Condition]]


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def update_condition(
    conditions: list[Condition],
    condition_type: str,
    status: str,
    reason: str,
    message: str,
    observed_generation: int | None = None,
) -> list[Condition]:
    """Write ``condition_type`` into ``conditions`` in place.

    ``lastTransitionTime`` is carried over from the previous entry unless the
    status flips.

    Args:
        conditions: Current ``status.conditions``
        condition_type: e.g. ``AWSVpcEndpointReady``
        status: "True", "False" or "Unknown"
        reason: CamelCase reason
        message: Human-readable detail
        observed_generation: ``metadata.generation`` the condition reflects

    Returns:
        The same list, for chaining
    """
    previous = find_condition(conditions, condition_type)

    condition: Condition = {"type": condition_type, "status": status, "reason": reason, "message": message}
    if previous is not None and previous.get("status") == status and previous.get("lastTransitionTime"):
        condition["lastTransitionTime"] = previous["lastTransitionTime"]
    else:
        condition["lastTransitionTime"] = _now()
    if observed_generation is not None:
        condition["observedGeneration"] = observed_generation

    if previous is None:
        conditions.append(condition)
    else:
        conditions[conditions.index(previous)] = condition
    return conditions


def find_condition(conditions: list[Condition], condition_type: str) -> Condition | None:
    return next((c for c in conditions if c.get("type") == condition_type), None)


def is_condition_true(conditions: list[Condition], condition_type: str) -> bool:
    condition = find_condition(conditions, condition_type)
    return bool(condition) and condition.get("status") == "True"


def _ready_setter(condition_type: str) -> ConditionSetter:
    def setter(conditions: list[Condition], ready: bool, reason: str, message: str) -> list[Condition]:
        return update_condition(conditions, condition_type, "True" if ready else "False", reason, message)

    setter.__doc__ = f"Set the {condition_type} condition to True or False."
    return setter


set_security_group_ready_condition = _ready_setter(COND_SECURITY_GROUP_READY)
set_vpc_endpoint_ready_condition = _ready_setter(COND_VPC_ENDPOINT_READY)
set_route53_record_ready_condition = _ready_setter(COND_ROUTE53_RECORD_READY)
set_external_name_service_ready_condition = _ready_setter(COND_EXTERNAL_NAME_SERVICE_READY)
