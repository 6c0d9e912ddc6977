"""Value objects shared by the weekly and exam timetables.

``Allocation`` is the storage-independent shape the conflict detector works on;
repositories convert ORM rows into it and services build unsaved candidates from
request payloads. ``ResourceKey`` names one contended calendar: a teacher's day
(or exam date) or a class section's day (or exam date).
"""
from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from datetime import date
from enum import Enum

from schoolsched.services.time_range import TimeRange, normalize


class AllocationFamily(str, Enum):
    weekly = "weekly"
    exam = "exam"


class ResourceKind(str, Enum):
    teacher = "teacher"
    class_section = "class_section"


@dataclass(frozen=True, order=True)
class ResourceKey:
    school_id: str
    kind: ResourceKind
    owner: str
    slot: str

    def lock_id(self) -> int:
        # Stable across processes, fits a signed 64-bit advisory lock key.
        digest = hashlib.sha1(str(self).encode("utf-8")).digest()
        return int.from_bytes(digest[:8], "big", signed=True)

    def __str__(self) -> str:
        return f"{self.school_id}:{self.kind.value}:{self.owner}@{self.slot}"


def teacher_key(school_id: str, teacher_id: str, slot: str) -> ResourceKey:
    return ResourceKey(school_id, ResourceKind.teacher, teacher_id, slot)


def class_section_key(school_id: str, class_id: str, section_id: str, slot: str) -> ResourceKey:
    return ResourceKey(school_id, ResourceKind.class_section, f"{class_id}/{section_id}", slot)


@dataclass(frozen=True)
class Allocation:
    school_id: str
    class_id: str
    section_id: str
    kind: str
    start_time: str
    end_time: str
    id: str | None = None
    subject_id: str | None = None
    teacher_id: str | None = None
    day: str | None = None
    exam_date: date | None = None
    active: bool = True
    # Position of the originating request inside a submitted batch.
    request_index: int | None = field(default=None, compare=False)

    @property
    def family(self) -> AllocationFamily:
        return AllocationFamily.exam if self.exam_date is not None else AllocationFamily.weekly

    @property
    def slot(self) -> str:
        if self.exam_date is not None:
            return self.exam_date.isoformat()
        return self.day or ""

    @property
    def time_range(self) -> TimeRange:
        return normalize(self.start_time, self.end_time)

    def resource_keys(self) -> tuple[ResourceKey, ...]:
        keys = []
        if self.teacher_id:
            keys.append(teacher_key(self.school_id, self.teacher_id, self.slot))
        keys.append(class_section_key(self.school_id, self.class_id, self.section_id, self.slot))
        return tuple(keys)
