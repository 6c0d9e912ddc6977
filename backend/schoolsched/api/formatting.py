from __future__ import annotations

from collections.abc import Sequence

from sqlalchemy.orm import Session

from schoolsched.models.exam_schedule import ExamSchedule
from schoolsched.models.schedule import Schedule
from schoolsched.schemas.common import SectionRef, SubjectRef, TeacherRef
from schoolsched.schemas.exam_schedule import ExamScheduleOut
from schoolsched.schemas.schedule import ScheduleOut
from schoolsched.services.repositories import ClassSectionStore, SubjectStore, UserStore


class _Lookup:
    """Batch-loads the names a page of rows refers to."""

    def __init__(self, db: Session, school_id: str, rows: Sequence[Schedule | ExamSchedule]) -> None:
        self.classes = ClassSectionStore(db).names_for((row.class_id for row in rows), school_id)
        self.subjects = SubjectStore(db).by_ids((row.subject_id for row in rows), school_id)
        self.teachers = UserStore(db).by_ids((row.teacher_id for row in rows), school_id)

    def class_name(self, class_id: str) -> str | None:
        klass = self.classes.get(class_id)
        return klass.name if klass else None

    def section_name(self, class_id: str, section_id: str) -> str | None:
        klass = self.classes.get(class_id)
        return klass.section_name(section_id) if klass else None

    def subject(self, subject_id: str | None) -> SubjectRef | None:
        subject = self.subjects.get(subject_id) if subject_id else None
        if subject is None:
            return None
        return SubjectRef(id=subject.id, name=subject.name, code=subject.code)

    def teacher(self, teacher_id: str | None) -> TeacherRef | None:
        teacher = self.teachers.get(teacher_id) if teacher_id else None
        if teacher is None:
            return None
        return TeacherRef(id=teacher.id, name=teacher.name, email=teacher.email)


def schedule_rows(db: Session, school_id: str, rows: Sequence[Schedule]) -> list[ScheduleOut]:
    lookup = _Lookup(db, school_id, rows)
    return [
        ScheduleOut(
            id=row.id,
            class_id=row.class_id,
            class_name=lookup.class_name(row.class_id),
            section_id=row.section_id,
            section_name=lookup.section_name(row.class_id, row.section_id) or row.section_id,
            type=row.type,
            subject=lookup.subject(row.subject_id),
            teacher=lookup.teacher(row.teacher_id),
            day=row.day,
            start_time=row.start_time,
            end_time=row.end_time,
            is_active=row.is_active,
        )
        for row in rows
    ]


def exam_rows(db: Session, school_id: str, rows: Sequence[ExamSchedule]) -> list[ExamScheduleOut]:
    lookup = _Lookup(db, school_id, rows)
    return [
        ExamScheduleOut(
            id=row.id,
            class_id=row.class_id,
            class_name=lookup.class_name(row.class_id),
            section=SectionRef(id=row.section_id, name=lookup.section_name(row.class_id, row.section_id)),
            subject=lookup.subject(row.subject_id),
            teacher=lookup.teacher(row.teacher_id),
            exam_date=row.exam_date,
            day=row.day,
            start_time=row.start_time,
            end_time=row.end_time,
            type=row.type,
            year=row.year,
            status=row.status,
        )
        for row in rows
    ]
