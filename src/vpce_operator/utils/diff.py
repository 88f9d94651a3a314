"""Set difference helpers for membership reconciliation."""

from __future__ import annotations

from typing import Iterable


def two_way_diff(current: Iterable[str], expected: Iterable[str]) -> tuple[list[str], list[str]]:
    """Compare current and expected identifiers.

    Duplicates collapse; output order is sorted so callers get stable API
    requests.

    Args:
        current: Identifiers that exist now
        expected: Identifiers that should exist

    Returns:
        Tuple of (to_create, to_delete): entries only in ``expected`` and
        entries only in ``current``
    """
    current_set = set(current)
    expected_set = set(expected)
    return sorted(expected_set - current_set), sorted(current_set - expected_set)
