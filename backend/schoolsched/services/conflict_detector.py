"""Pure overlap detection for timetable allocations.

Both timetable services route every conflict question through
``find_conflict``; there is no second overlap formula anywhere else.
"""
from __future__ import annotations

from collections.abc import Iterable

from schoolsched.services.allocations import Allocation, ResourceKey


def shared_resources(candidate: Allocation, other: Allocation) -> list[ResourceKey]:
    other_keys = set(other.resource_keys())
    return [key for key in candidate.resource_keys() if key in other_keys]


def is_comparable(candidate: Allocation, other: Allocation) -> bool:
    if not other.active:
        return False
    if candidate.id is not None and other.id == candidate.id:
        return False
    if candidate.family is not other.family:
        return False
    return bool(shared_resources(candidate, other))


def find_conflict(candidate: Allocation, pool: Iterable[Allocation]) -> Allocation | None:
    """Return the first allocation in ``pool`` that overlaps ``candidate``.

    Only allocations that share a teacher or class-section calendar on the same
    day (or exam date) are considered. Inactive or cancelled entries and the
    candidate's own persisted row are skipped. Pool order is preserved, so the
    result is deterministic for a given ordering.
    """
    candidate_range = candidate.time_range
    for other in pool:
        if not is_comparable(candidate, other):
            continue
        if candidate_range.overlaps(other.time_range):
            return other
    return None
