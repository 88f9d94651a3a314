"""Utility functions for the VPC Endpoint Operator."""

from .conditions import find_condition, update_condition
from .context import get_context_dict, get_correlation_id, with_correlation_id
from .diff import two_way_diff
from .events import emit_event
from .naming import generate_name
from .rate_limit import rate_limit_aws, rate_limit_k8s
from .secrets import read_aws_credential_override

__all__ = [
    "update_condition",
    "find_condition",
    "two_way_diff",
    "generate_name",
    "emit_event",
    "read_aws_credential_override",
    "rate_limit_aws",
    "rate_limit_k8s",
    "get_correlation_id",
    "with_correlation_id",
    "get_context_dict",
]
