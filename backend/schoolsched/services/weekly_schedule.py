"""Recurring (day-of-week) class timetable.

A submitted batch is all-or-nothing: every request is validated, fanned out to
one candidate row per section, conflict-checked against stored rows and against
candidates from other requests in the same batch, and only then written in a
single transaction. Exam timetables are written item-by-item instead (see
``exam_schedule``).
"""
from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from schoolsched.core.exceptions import (
    AppError,
    ConflictError,
    PersistenceError,
    ReferentialError,
    ResourceNotFoundError,
)
from schoolsched.models.schedule import Schedule, ScheduleType, Weekday
from schoolsched.models.user import User
from schoolsched.schemas.schedule import ScheduleRequest, ScheduleUpdate
from schoolsched.services.allocations import Allocation, ResourceKey, ResourceKind
from schoolsched.services.audit import log_activity
from schoolsched.services.conflict_detector import find_conflict, shared_resources
from schoolsched.services.notifications import ScheduleNotifier
from schoolsched.services.repositories import (
    ClassSectionStore,
    ScheduleRepository,
    SubjectStore,
    UserStore,
    acquire_resource_locks,
)
from schoolsched.services.time_range import normalize

logger = logging.getLogger(__name__)


@dataclass
class SoftDeleteResult:
    schedule: Schedule
    already_deleted: bool


@dataclass
class _Labels:
    classes: dict[str, str]
    sections: dict[str, str]
    teachers: dict[str, str]


class WeeklyScheduleService:
    def __init__(self, db: Session, *, notifier: ScheduleNotifier | None = None) -> None:
        self.db = db
        self.classes = ClassSectionStore(db)
        self.subjects = SubjectStore(db)
        self.users = UserStore(db)
        self.schedules = ScheduleRepository(db)
        self.notifier = notifier or ScheduleNotifier(db)

    # -- validation -----------------------------------------------------

    def _validate_references(
        self,
        school_id: str,
        *,
        class_id: str,
        section_ids: list[str],
        schedule_type: ScheduleType,
        subject_id: str | None,
        teacher_id: str | None,
        labels: _Labels,
        prefix: str = "",
    ) -> None:
        klass = self.classes.find_class_with_sections(class_id, school_id)
        if klass is None:
            raise ReferentialError(f"{prefix}Class {class_id} not found", details={"classId": class_id})
        labels.classes[klass.id] = klass.name
        for section_id in section_ids:
            if not klass.has_section(section_id):
                raise ReferentialError(
                    f"{prefix}Section {section_id} does not belong to class {klass.name}",
                    status_code=400,
                    details={"classId": class_id, "sectionId": section_id},
                )
            labels.sections[section_id] = klass.section_name(section_id)

        if schedule_type is not ScheduleType.subject:
            return
        if not subject_id or not teacher_id:
            raise ReferentialError(f"{prefix}Subject and teacher are required for subject schedules", status_code=400)
        if self.subjects.get(subject_id, school_id) is None:
            raise ReferentialError(f"{prefix}Subject {subject_id} not found", details={"subjectId": subject_id})
        for section_id in section_ids:
            if self.subjects.find_assigned_to_class_section(subject_id, class_id, section_id, school_id) is None:
                raise ReferentialError(
                    f"{prefix}Subject does not belong to class {klass.name} section {labels.sections[section_id]}",
                    status_code=400,
                    details={"subjectId": subject_id, "classId": class_id, "sectionId": section_id},
                )
        teacher = self.users.find_teacher(teacher_id, school_id)
        if teacher is None:
            raise ReferentialError(f"{prefix}Teacher {teacher_id} not found", details={"teacherId": teacher_id})
        labels.teachers[teacher.id] = teacher.name

    # -- conflict checks ------------------------------------------------

    def _describe(self, allocation: Allocation, school_id: str) -> str:
        if allocation.kind == ScheduleType.subject.value and allocation.subject_id:
            subject = self.subjects.get(allocation.subject_id, school_id)
            if subject is not None:
                return f"{subject.name} class"
        return allocation.kind

    def _resource_label(self, key: ResourceKey, labels: _Labels) -> str:
        if key.kind is ResourceKind.teacher:
            return f"Teacher {labels.teachers.get(key.owner, key.owner)}"
        class_id, _, section_id = key.owner.partition("/")
        return f"Class {labels.classes.get(class_id, class_id)} section {labels.sections.get(section_id, section_id)}"

    def _check_persisted(
        self,
        candidate: Allocation,
        pools: dict[ResourceKey, list[Allocation]],
        labels: _Labels,
        prefix: str = "",
    ) -> None:
        for key in candidate.resource_keys():
            if key not in pools:
                pools[key] = self.schedules.allocations_for(key)
            existing = find_conflict(candidate, pools[key])
            if existing is None:
                continue
            logger.info(
                "Weekly schedule conflict on %s with %s",
                key,
                existing.id,
                extra={"phase": "conflict-check", "resource_key": str(key), "conflict_id": existing.id},
            )
            raise ConflictError(
                f"{prefix}{self._resource_label(key, labels)} is already busy on {existing.day} "
                f"from {existing.start_time} to {existing.end_time} ({self._describe(existing, key.school_id)})",
                details={
                    "conflict_id": existing.id,
                    "resource": key.kind.value,
                    "day": existing.day,
                    "start_time": existing.start_time,
                    "end_time": existing.end_time,
                    "request_index": candidate.request_index,
                },
            )

    def _check_siblings(self, candidate: Allocation, batch: list[Allocation], labels: _Labels) -> None:
        siblings = [item for item in batch if item.request_index != candidate.request_index]
        other = find_conflict(candidate, siblings)
        if other is None:
            return
        key = shared_resources(candidate, other)[0]
        logger.info(
            "Weekly schedule batch conflict between requests %s and %s on %s",
            candidate.request_index,
            other.request_index,
            key,
            extra={"phase": "conflict-check", "resource_key": str(key)},
        )
        raise ConflictError(
            f"Schedule #{candidate.request_index + 1} ({candidate.start_time}-{candidate.end_time}) conflicts with "
            f"schedule #{other.request_index + 1} ({other.start_time}-{other.end_time}): "
            f"{self._resource_label(key, labels)} on {candidate.day}",
            details={
                "resource": key.kind.value,
                "day": candidate.day,
                "request_index": candidate.request_index,
                "conflicting_request_index": other.request_index,
                "start_time": other.start_time,
                "end_time": other.end_time,
            },
        )

    # -- persistence ----------------------------------------------------

    def _commit(self, work: Callable[[], None]) -> None:
        try:
            work()
            self.db.commit()
        except AppError:
            self.db.rollback()
            raise
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.exception("Failed to persist weekly schedule changes", extra={"phase": "persist"})
            raise PersistenceError() from exc

    def _notify(self, rows: list[Schedule], *, action: str, actor: User | None) -> None:
        try:
            with self.db.begin_nested():
                self.notifier.notify_timetable_changed(rows, action=action, actor_id=actor.id if actor else None)
        except Exception:
            logger.warning("Timetable notification failed (%s)", action, exc_info=True)

    # -- operations -----------------------------------------------------

    def create_batch(
        self,
        school_id: str,
        requests: list[ScheduleRequest],
        *,
        actor: User | None = None,
    ) -> list[Schedule]:
        labels = _Labels(classes={}, sections={}, teachers={})
        candidates: list[Allocation] = []
        for index, request in enumerate(requests):
            prefix = f"Schedule #{index + 1}: "
            self._validate_references(
                school_id,
                class_id=request.class_id,
                section_ids=request.section_ids,
                schedule_type=request.type,
                subject_id=request.subject_id,
                teacher_id=request.teacher_id,
                labels=labels,
                prefix=prefix,
            )
            normalize(request.start_time, request.end_time)
            for section_id in request.section_ids:
                candidates.append(
                    Allocation(
                        school_id=school_id,
                        class_id=request.class_id,
                        section_id=section_id,
                        kind=request.type.value,
                        subject_id=request.subject_id,
                        teacher_id=request.teacher_id,
                        day=request.day.value,
                        start_time=request.start_time,
                        end_time=request.end_time,
                        request_index=index,
                    )
                )

        keys = {key for candidate in candidates for key in candidate.resource_keys()}
        logger.info(
            "Validated %d weekly schedule request(s) -> %d row(s)",
            len(requests),
            len(candidates),
            extra={"phase": "validate", "school_id": school_id, "resource_keys": sorted(str(key) for key in keys)},
        )

        created: list[Schedule] = []

        def work() -> None:
            acquire_resource_locks(self.db, keys)
            pools: dict[ResourceKey, list[Allocation]] = {}
            for candidate in candidates:
                prefix = f"Schedule #{candidate.request_index + 1}: "
                self._check_persisted(candidate, pools, labels, prefix)
                self._check_siblings(candidate, candidates, labels)

            for candidate in candidates:
                created.append(
                    Schedule(
                        school_id=school_id,
                        class_id=candidate.class_id,
                        section_id=candidate.section_id,
                        subject_id=candidate.subject_id,
                        teacher_id=candidate.teacher_id,
                        day=Weekday(candidate.day),
                        type=ScheduleType(candidate.kind),
                        start_time=candidate.start_time,
                        end_time=candidate.end_time,
                        is_active=True,
                    )
                )
            self.schedules.add_all(created)
            self.db.flush()
            for row in created:
                log_activity(
                    self.db,
                    school_id=school_id,
                    user=actor,
                    action="schedule.create",
                    entity_type="schedule",
                    entity_id=row.id,
                    details={"day": row.day.value, "start_time": row.start_time, "end_time": row.end_time},
                )
            self._notify(created, action="updated", actor=actor)

        self._commit(work)
        for row in created:
            self.db.refresh(row)
        logger.info(
            "Persisted %d weekly schedule row(s)",
            len(created),
            extra={"phase": "persist", "school_id": school_id},
        )
        return created

    def update(
        self,
        school_id: str,
        schedule_id: str,
        patch: ScheduleUpdate,
        *,
        actor: User | None = None,
    ) -> Schedule:
        row = self.schedules.get(school_id, schedule_id)
        if row is None or not row.is_active:
            raise ResourceNotFoundError("Schedule", schedule_id)

        data = patch.model_dump(exclude_unset=True)
        effective = {
            "class_id": data.get("class_id") or row.class_id,
            "section_id": data.get("section_id") or row.section_id,
            "type": data.get("type") or row.type,
            "subject_id": data["subject_id"] if "subject_id" in data else row.subject_id,
            "teacher_id": data["teacher_id"] if "teacher_id" in data else row.teacher_id,
            "day": data.get("day") or row.day,
            "start_time": data.get("start_time") or row.start_time,
            "end_time": data.get("end_time") or row.end_time,
        }
        if effective["type"] is not ScheduleType.subject:
            effective["subject_id"] = None
            effective["teacher_id"] = None

        labels = _Labels(classes={}, sections={}, teachers={})
        self._validate_references(
            school_id,
            class_id=effective["class_id"],
            section_ids=[effective["section_id"]],
            schedule_type=effective["type"],
            subject_id=effective["subject_id"],
            teacher_id=effective["teacher_id"],
            labels=labels,
        )
        normalize(effective["start_time"], effective["end_time"])

        candidate = Allocation(
            id=row.id,
            school_id=school_id,
            class_id=effective["class_id"],
            section_id=effective["section_id"],
            kind=effective["type"].value,
            subject_id=effective["subject_id"],
            teacher_id=effective["teacher_id"],
            day=effective["day"].value,
            start_time=effective["start_time"],
            end_time=effective["end_time"],
        )
        def work() -> None:
            acquire_resource_locks(self.db, candidate.resource_keys())
            self._check_persisted(candidate, {}, labels)
            for field_name, value in effective.items():
                setattr(row, field_name, value)
            log_activity(
                self.db,
                school_id=school_id,
                user=actor,
                action="schedule.update",
                entity_type="schedule",
                entity_id=row.id,
                details={"fields": sorted(data)},
            )
            self.db.flush()
            self._notify([row], action="updated", actor=actor)

        self._commit(work)
        self.db.refresh(row)
        return row

    def soft_delete(self, school_id: str, schedule_id: str, *, actor: User | None = None) -> SoftDeleteResult:
        row = self.schedules.get(school_id, schedule_id)
        if row is None:
            raise ResourceNotFoundError("Schedule", schedule_id)
        if not row.is_active:
            return SoftDeleteResult(schedule=row, already_deleted=True)

        def work() -> None:
            row.is_active = False
            log_activity(
                self.db,
                school_id=school_id,
                user=actor,
                action="schedule.delete",
                entity_type="schedule",
                entity_id=row.id,
            )
            self.db.flush()
            self._notify([row], action="cleared", actor=actor)

        self._commit(work)
        self.db.refresh(row)
        return SoftDeleteResult(schedule=row, already_deleted=False)
