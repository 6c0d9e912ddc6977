"""Date-specific exam timetable.

Batch creation is partial-success: each item is validated, conflict-checked and
committed on its own, and failures are collected instead of aborting the batch.
Create and update share one conflict path, ``_check_conflicts``.
"""
from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any
from zoneinfo import ZoneInfo

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from schoolsched.core.config import get_settings
from schoolsched.core.exceptions import (
    AppError,
    ConflictError,
    DuplicateSubjectError,
    PastExamDateError,
    PersistenceError,
    ReferentialError,
    ResourceNotFoundError,
)
from schoolsched.models.exam_schedule import ExamSchedule, ExamStatus, ExamType
from schoolsched.models.schedule import Weekday
from schoolsched.models.user import User
from schoolsched.schemas.exam_schedule import ExamScheduleBatchCreate, ExamScheduleItem, ExamScheduleUpdate
from schoolsched.schemas.common import weekday_name
from schoolsched.services.allocations import Allocation, ResourceKind
from schoolsched.services.audit import log_activity
from schoolsched.services.conflict_detector import find_conflict
from schoolsched.services.notifications import ScheduleNotifier, exam_snapshot
from schoolsched.services.repositories import (
    ClassSectionStore,
    ExamScheduleRepository,
    SubjectStore,
    UserStore,
    acquire_resource_locks,
)
from schoolsched.services.time_range import normalize

logger = logging.getLogger(__name__)

FIELD_LABELS = {
    "class_id": "Class",
    "section_id": "Section",
    "subject_id": "Subject",
    "teacher_id": "Teacher",
    "exam_date": "Exam date",
    "start_time": "Start time",
    "end_time": "End time",
    "type": "Exam type",
    "year": "Year",
    "status": "Status",
}


@dataclass
class ExamItemError:
    index: int
    item: dict[str, Any]
    message: str
    details: dict[str, Any] = field(default_factory=dict)


@dataclass
class ExamBatchResult:
    created: list[ExamSchedule]
    errors: list[ExamItemError]

    @property
    def failed_completely(self) -> bool:
        return not self.created and bool(self.errors)


@dataclass
class ExamUpdateResult:
    schedule: ExamSchedule
    changes: list[str]


def school_today() -> date:
    return datetime.now(ZoneInfo(get_settings().school_timezone)).date()


def _display(value: Any) -> str:
    if isinstance(value, date):
        return value.isoformat()
    if hasattr(value, "value"):
        return str(value.value)
    return str(value)


class ExamScheduleService:
    def __init__(
        self,
        db: Session,
        *,
        notifier: ScheduleNotifier | None = None,
        today: Callable[[], date] | None = None,
    ) -> None:
        self.db = db
        self.today = today or school_today
        self.classes = ClassSectionStore(db)
        self.subjects = SubjectStore(db)
        self.users = UserStore(db)
        self.exams = ExamScheduleRepository(db)
        self.notifier = notifier or ScheduleNotifier(db)

    def _validate_references(
        self,
        school_id: str,
        *,
        class_id: str,
        section_id: str,
        subject_id: str,
        teacher_id: str,
    ) -> dict[str, str]:
        klass = self.classes.find_class_with_sections(class_id, school_id)
        if klass is None:
            raise ReferentialError(f"Class {class_id} not found", details={"classId": class_id})
        if not klass.has_section(section_id):
            raise ReferentialError(
                f"Section {section_id} does not belong to class {klass.name}",
                status_code=400,
                details={"classId": class_id, "sectionId": section_id},
            )
        if self.subjects.get(subject_id, school_id) is None:
            raise ReferentialError(f"Subject {subject_id} not found", details={"subjectId": subject_id})
        if self.subjects.find_assigned_to_class_section(subject_id, class_id, section_id, school_id) is None:
            raise ReferentialError(
                "Subject does not belong to the given class and section",
                status_code=400,
                details={"subjectId": subject_id, "classId": class_id, "sectionId": section_id},
            )
        teacher = self.users.find_teacher(teacher_id, school_id)
        if teacher is None:
            raise ReferentialError(f"Teacher {teacher_id} not found", details={"teacherId": teacher_id})
        return {
            "class": klass.name,
            "section": klass.section_name(section_id) or section_id,
            "teacher": teacher.name,
        }

    def _labels_for(self, exam: ExamSchedule) -> dict[str, str]:
        klass = self.classes.names_for([exam.class_id], exam.school_id).get(exam.class_id)
        teacher = self.users.by_ids([exam.teacher_id], exam.school_id).get(exam.teacher_id)
        return {
            "class": klass.name if klass else exam.class_id,
            "section": (klass.section_name(exam.section_id) if klass else None) or exam.section_id,
            "teacher": teacher.name if teacher else exam.teacher_id,
        }

    def _check_exam_date(self, exam_date: date) -> None:
        if exam_date < self.today():
            raise PastExamDateError(exam_date.isoformat())

    def _check_duplicate(
        self,
        school_id: str,
        *,
        class_id: str,
        section_id: str,
        subject_id: str,
        exam_type: ExamType,
        year: int,
        exclude_id: str | None = None,
    ) -> None:
        existing = self.exams.find_duplicate(
            school_id,
            class_id=class_id,
            section_id=section_id,
            subject_id=subject_id,
            exam_type=exam_type,
            year=year,
            exclude_id=exclude_id,
        )
        if existing is not None:
            raise DuplicateSubjectError(
                f"This subject is already scheduled for {exam_type.value} {year} in this class & section "
                f"(exam schedule {existing.id})",
                existing_id=existing.id,
            )

    def _check_conflicts(self, candidate: Allocation, labels: dict[str, str]) -> None:
        """Reject ``candidate`` if its teacher or class section is busy at that time."""
        for key in candidate.resource_keys():
            existing = find_conflict(candidate, self.exams.allocations_for(key))
            if existing is None:
                continue
            logger.info(
                "Exam schedule conflict on %s with %s",
                key,
                existing.id,
                extra={"phase": "conflict-check", "resource_key": str(key), "conflict_id": existing.id},
            )
            if key.kind is ResourceKind.teacher:
                who = f"Teacher {labels.get('teacher', candidate.teacher_id)} already has an exam"
            else:
                who = f"Class {labels.get('class', candidate.class_id)} section {labels.get('section', candidate.section_id)} already has an exam"
            raise ConflictError(
                f"{who} on {existing.exam_date.isoformat()} from {existing.start_time} to {existing.end_time}",
                details={
                    "conflict_id": existing.id,
                    "resource": key.kind.value,
                    "exam_date": existing.exam_date.isoformat(),
                    "start_time": existing.start_time,
                    "end_time": existing.end_time,
                },
            )

    def _notify(self, action: str, send, *args, **kwargs) -> None:
        try:
            with self.db.begin_nested():
                send(*args, **kwargs)
        except Exception:
            logger.warning("Exam %s notification failed", action, exc_info=True)

    def _persist(self, work) -> None:
        try:
            work()
            self.db.commit()
        except AppError:
            self.db.rollback()
            raise
        except IntegrityError as exc:
            self.db.rollback()
            raise DuplicateSubjectError(
                "This subject is already scheduled for this exam in this class & section"
            ) from exc
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.exception("Failed to persist exam schedule changes", extra={"phase": "persist"})
            raise PersistenceError() from exc

    # -- operations -----------------------------------------------------

    def _create_one(
        self,
        school_id: str,
        exam_type: ExamType,
        year: int,
        item: ExamScheduleItem,
        actor: User | None,
    ) -> ExamSchedule:
        self._check_exam_date(item.exam_date)
        labels = self._validate_references(
            school_id,
            class_id=item.class_id,
            section_id=item.section_id,
            subject_id=item.subject_id,
            teacher_id=item.teacher_id,
        )
        normalize(item.start_time, item.end_time)
        candidate = Allocation(
            school_id=school_id,
            class_id=item.class_id,
            section_id=item.section_id,
            kind=exam_type.value,
            subject_id=item.subject_id,
            teacher_id=item.teacher_id,
            day=item.day.value,
            exam_date=item.exam_date,
            start_time=item.start_time,
            end_time=item.end_time,
        )
        exam = ExamSchedule(
            school_id=school_id,
            class_id=item.class_id,
            section_id=item.section_id,
            subject_id=item.subject_id,
            teacher_id=item.teacher_id,
            exam_date=item.exam_date,
            day=item.day,
            start_time=item.start_time,
            end_time=item.end_time,
            type=exam_type,
            year=year,
            status=ExamStatus.scheduled,
        )

        def work() -> None:
            acquire_resource_locks(self.db, candidate.resource_keys())
            self._check_duplicate(
                school_id,
                class_id=item.class_id,
                section_id=item.section_id,
                subject_id=item.subject_id,
                exam_type=exam_type,
                year=year,
            )
            self._check_conflicts(candidate, labels)
            self.exams.add(exam)
            self.db.flush()
            log_activity(
                self.db,
                school_id=school_id,
                user=actor,
                action="exam_schedule.create",
                entity_type="exam_schedule",
                entity_id=exam.id,
                details={"type": exam_type.value, "year": year, "exam_date": item.exam_date.isoformat()},
            )
            self._notify("create", self.notifier.notify_created, exam, actor_id=actor.id if actor else None)

        self._persist(work)
        self.db.refresh(exam)
        return exam

    def create_batch(
        self,
        school_id: str,
        payload: ExamScheduleBatchCreate,
        *,
        actor: User | None = None,
    ) -> ExamBatchResult:
        result = ExamBatchResult(created=[], errors=[])
        for index, item in enumerate(payload.schedules):
            try:
                exam = self._create_one(school_id, payload.type, payload.year, item, actor)
            except AppError as exc:
                logger.info(
                    "Exam schedule item %d rejected: %s",
                    index,
                    exc.message,
                    extra={"phase": "validate", "school_id": school_id},
                )
                result.errors.append(
                    ExamItemError(
                        index=index,
                        item=item.model_dump(mode="json", by_alias=True),
                        message=exc.message,
                        details=exc.details,
                    )
                )
                continue
            result.created.append(exam)
        logger.info(
            "Exam schedule batch: %d created, %d rejected",
            len(result.created),
            len(result.errors),
            extra={"phase": "persist", "school_id": school_id},
        )
        return result

    def update(
        self,
        school_id: str,
        exam_id: str,
        patch: ExamScheduleUpdate,
        *,
        actor: User | None = None,
    ) -> ExamUpdateResult:
        exam = self.exams.get(school_id, exam_id)
        if exam is None:
            raise ResourceNotFoundError("Exam schedule", exam_id)

        data = {key: value for key, value in patch.model_dump(exclude_unset=True).items() if value is not None}
        data.pop("day", None)
        current = {name: getattr(exam, name) for name in FIELD_LABELS}
        effective = {**current, **data}

        if "exam_date" in data:
            self._check_exam_date(data["exam_date"])
        if {"class_id", "section_id", "subject_id", "teacher_id"} & data.keys():
            labels = self._validate_references(
                school_id,
                class_id=effective["class_id"],
                section_id=effective["section_id"],
                subject_id=effective["subject_id"],
                teacher_id=effective["teacher_id"],
            )
        else:
            labels = self._labels_for(exam)
        normalize(effective["start_time"], effective["end_time"])

        changes = [
            f"{FIELD_LABELS[name]} changed from {_display(current[name])} to {_display(effective[name])}"
            for name in FIELD_LABELS
            if effective[name] != current[name]
        ]
        candidate = Allocation(
            id=exam.id,
            school_id=school_id,
            class_id=effective["class_id"],
            section_id=effective["section_id"],
            kind=effective["type"].value,
            subject_id=effective["subject_id"],
            teacher_id=effective["teacher_id"],
            day=weekday_name(effective["exam_date"]),
            exam_date=effective["exam_date"],
            start_time=effective["start_time"],
            end_time=effective["end_time"],
            active=effective["status"] is not ExamStatus.cancelled,
        )
        previous_teacher_id = exam.teacher_id
        uniqueness_fields = {"class_id", "section_id", "subject_id", "type", "year"}

        def work() -> None:
            acquire_resource_locks(self.db, candidate.resource_keys())
            if uniqueness_fields & data.keys():
                self._check_duplicate(
                    school_id,
                    class_id=effective["class_id"],
                    section_id=effective["section_id"],
                    subject_id=effective["subject_id"],
                    exam_type=effective["type"],
                    year=effective["year"],
                    exclude_id=exam.id,
                )
            if candidate.active:
                self._check_conflicts(candidate, labels)
            for name, value in effective.items():
                setattr(exam, name, value)
            exam.day = Weekday(candidate.day)
            self.db.flush()
            if not changes:
                return
            log_activity(
                self.db,
                school_id=school_id,
                user=actor,
                action="exam_schedule.update",
                entity_type="exam_schedule",
                entity_id=exam.id,
                details={"changes": changes},
            )
            actor_id = actor.id if actor else None
            if current["status"] is not ExamStatus.cancelled and not candidate.active:
                self._notify("cancel", self.notifier.notify_cancelled, exam_snapshot(exam), actor_id=actor_id)
            else:
                self._notify(
                    "update",
                    self.notifier.notify_updated,
                    exam,
                    changes,
                    actor_id=actor_id,
                    previous_teacher_id=previous_teacher_id,
                )

        self._persist(work)
        self.db.refresh(exam)
        return ExamUpdateResult(schedule=exam, changes=changes)

    def delete(self, school_id: str, exam_id: str, *, actor: User | None = None) -> dict:
        exam = self.exams.get(school_id, exam_id)
        if exam is None:
            raise ResourceNotFoundError("Exam schedule", exam_id)
        snapshot = exam_snapshot(exam)

        def work() -> None:
            log_activity(
                self.db,
                school_id=school_id,
                user=actor,
                action="exam_schedule.delete",
                entity_type="exam_schedule",
                entity_id=exam.id,
                details=snapshot,
            )
            self._notify(
                "cancel",
                self.notifier.notify_cancelled,
                snapshot,
                actor_id=actor.id if actor else None,
            )
            self.exams.delete(exam)

        self._persist(work)
        return snapshot
