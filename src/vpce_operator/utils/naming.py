"""Name and tag generation for AWS resources owned by the operator."""

from __future__ import annotations

from ..constants import (
    CLUSTER_TAG_KEY_PREFIX,
    CLUSTER_TAG_VALUE,
    MAX_AWS_NAME_LENGTH,
    NAME_TAG_KEY,
    OPERATOR_TAG_KEY,
    OPERATOR_TAG_VALUE,
)


def generate_name(prefix: str, suffix: str, max_length: int) -> str:
    """Build ``{prefix}-{suffix}`` no longer than ``max_length``.

    The prefix is truncated from the right when needed, the suffix is kept
    intact.

    Args:
        prefix: Leading part of the name
        suffix: Trailing part of the name
        max_length: Maximum length of the result

    Returns:
        Generated name

    Raises:
        ValueError: If prefix or suffix is empty, max_length < 1, or the
            suffix alone does not fit
    """
    if not prefix:
        raise ValueError("prefix must not be empty")
    if not suffix:
        raise ValueError("suffix must not be empty")
    if max_length < 1:
        raise ValueError(f"max_length must be at least 1, got {max_length}")

    room = max_length - len(suffix) - 1
    if room < 1:
        raise ValueError(f"suffix {suffix!r} does not fit in {max_length} characters")

    return f"{prefix[:room]}-{suffix}"


def generate_security_group_name(cluster_name: str, purpose: str) -> str:
    """Name of the security group for an endpoint object."""
    return generate_name(f"{cluster_name}-{purpose}", "sg", MAX_AWS_NAME_LENGTH)


def generate_vpc_endpoint_name(cluster_name: str, purpose: str) -> str:
    """Name of the VPC endpoint for an endpoint object."""
    return generate_name(f"{cluster_name}-{purpose}", "vpce", MAX_AWS_NAME_LENGTH)


def get_cluster_tag_key(infra_name: str) -> str:
    """Tag key that marks AWS resources as belonging to this cluster."""
    if not infra_name:
        raise ValueError("infrastructure name must not be empty")
    return f"{CLUSTER_TAG_KEY_PREFIX}{infra_name}"


def generate_aws_tags(name: str, cluster_tag: str) -> dict[str, str]:
    """Required tags for resources created by the operator.

    Args:
        name: Value of the Name tag, omitted when empty
        cluster_tag: Cluster tag key

    Returns:
        Tag mapping
    """
    tags = {
        OPERATOR_TAG_KEY: OPERATOR_TAG_VALUE,
        cluster_tag: CLUSTER_TAG_VALUE,
    }
    if name:
        tags[NAME_TAG_KEY] = name
    return tags


def to_aws_tags(tags: dict[str, str]) -> list[dict[str, str]]:
    """Convert a mapping into the AWS ``[{"Key": ..., "Value": ...}]`` shape."""
    return [{"Key": key, "Value": value} for key, value in sorted(tags.items())]


def from_aws_tags(tags: list[dict[str, str]] | None) -> dict[str, str]:
    """Convert AWS tag lists into a mapping."""
    return {tag["Key"]: tag.get("Value", "") for tag in tags or []}


def missing_tags(current: dict[str, str], required: dict[str, str]) -> dict[str, str]:
    """Required tags that are absent or carry a different value."""
    return {key: value for key, value in required.items() if current.get(key) != value}
