"""Find-by-id, then find-by-tag, else create.

AWS offers no client token for security groups, so convergence relies on
the id recorded in status and on operator tags to recognise resources
created by an earlier pass.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable

from ..services.aws.base import TagOperations
from ..utils.naming import from_aws_tags, missing_tags

logger = logging.getLogger(__name__)

FOUND_BY_ID = "id"
FOUND_BY_TAGS = "tags"
CREATED = "created"


@dataclass
class Discovered:
    """Outcome of a discovery run."""

    resource: dict[str, Any]
    via: str

    @property
    def created(self) -> bool:
        return self.via == CREATED


def discover_or_create(
    recorded_id: str | None,
    describe_by_id: Callable[[str], dict[str, Any] | None],
    find_by_tags: Callable[[], list[dict[str, Any]]],
    create: Callable[[], dict[str, Any]],
) -> Discovered:
    """Locate a provider resource, creating it only when nothing matches.

    Args:
        recorded_id: Id stored in status from an earlier pass, if any
        describe_by_id: Returns the resource or None when AWS no longer has it
        find_by_tags: Returns resources carrying the required tags
        create: Creates the resource and returns its description

    Returns:
        The resource and how it was obtained
    """
    if recorded_id:
        resource = describe_by_id(recorded_id)
        if resource is not None:
            return Discovered(resource, FOUND_BY_ID)
        logger.info(f"Recorded resource {recorded_id} not found, searching by tags")

    matches = find_by_tags()
    if matches:
        if len(matches) > 1:
            logger.warning(f"Found {len(matches)} resources with matching tags, using the first")
        return Discovered(matches[0], FOUND_BY_TAGS)

    return Discovered(create(), CREATED)


def repair_tags(
    tagger: TagOperations,
    resource_id: str,
    current_tags: list[dict[str, str]] | None,
    required: dict[str, str],
) -> dict[str, str]:
    """Add required tags that are missing or wrong; other tags are left alone.

    Returns:
        The tags that were written
    """
    to_write = missing_tags(from_aws_tags(current_tags), required)
    if to_write:
        tagger.create_tags([resource_id], to_write)
    return to_write
