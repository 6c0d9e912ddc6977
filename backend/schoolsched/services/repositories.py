"""Thin persistence ports used by the timetable services.

Every query is scoped by ``school_id``. Conflict reads return ``Allocation``
value objects so the detector never sees ORM state.
"""
from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date

from sqlalchemy import case, func, select, text
from sqlalchemy.orm import Session

from schoolsched.models.class_section import ClassSection, Section
from schoolsched.models.exam_schedule import ExamSchedule, ExamStatus, ExamType
from schoolsched.models.schedule import WEEKDAY_ORDER, Schedule, Weekday
from schoolsched.models.subject import Subject
from schoolsched.models.user import User, UserRole
from schoolsched.services.allocations import Allocation, ResourceKey, ResourceKind


def acquire_resource_locks(db: Session, keys: Iterable[ResourceKey]) -> None:
    """Serialise writers on the given calendars until the transaction ends.

    Keys are locked in sorted order so concurrent batches cannot deadlock.
    SQLite already holds a database-wide write lock, so only PostgreSQL needs
    explicit advisory locks.
    """
    if db.get_bind().dialect.name != "postgresql":
        return
    for key in sorted(set(keys)):
        db.execute(text("SELECT pg_advisory_xact_lock(:lock_id)"), {"lock_id": key.lock_id()})


def _split_owner(key: ResourceKey) -> tuple[str, str]:
    class_id, _, section_id = key.owner.partition("/")
    return class_id, section_id


@dataclass
class ClassWithSections:
    id: str
    name: str
    sections: dict[str, str] = field(default_factory=dict)

    def has_section(self, section_id: str) -> bool:
        return section_id in self.sections

    def section_name(self, section_id: str) -> str | None:
        return self.sections.get(section_id)


class ClassSectionStore:
    def __init__(self, db: Session) -> None:
        self.db = db

    def find_class_with_sections(self, class_id: str, school_id: str) -> ClassWithSections | None:
        record = self.db.execute(
            select(ClassSection).where(ClassSection.id == class_id, ClassSection.school_id == school_id)
        ).scalar_one_or_none()
        if record is None:
            return None
        sections = self.db.execute(
            select(Section).where(Section.class_section_id == record.id).order_by(Section.name)
        ).scalars()
        return ClassWithSections(id=record.id, name=record.name, sections={item.id: item.name for item in sections})

    def names_for(self, class_ids: Iterable[str], school_id: str) -> dict[str, ClassWithSections]:
        ids = [item for item in dict.fromkeys(class_ids) if item]
        if not ids:
            return {}
        classes = list(
            self.db.execute(
                select(ClassSection).where(ClassSection.id.in_(ids), ClassSection.school_id == school_id)
            ).scalars()
        )
        result = {item.id: ClassWithSections(id=item.id, name=item.name) for item in classes}
        if result:
            for section in self.db.execute(select(Section).where(Section.class_section_id.in_(list(result)))).scalars():
                result[section.class_section_id].sections[section.id] = section.name
        return result


class SubjectStore:
    def __init__(self, db: Session) -> None:
        self.db = db

    def get(self, subject_id: str, school_id: str) -> Subject | None:
        return self.db.execute(
            select(Subject).where(Subject.id == subject_id, Subject.school_id == school_id)
        ).scalar_one_or_none()

    def find_assigned_to_class_section(
        self,
        subject_id: str,
        class_id: str,
        section_id: str,
        school_id: str,
    ) -> Subject | None:
        subject = self.get(subject_id, school_id)
        if subject is None or not subject.is_active:
            return None
        if subject.class_section_id != class_id:
            return None
        if subject.section_id and subject.section_id != section_id:
            return None
        return subject

    def by_ids(self, subject_ids: Iterable[str], school_id: str) -> dict[str, Subject]:
        ids = [item for item in dict.fromkeys(subject_ids) if item]
        if not ids:
            return {}
        rows = self.db.execute(select(Subject).where(Subject.id.in_(ids), Subject.school_id == school_id)).scalars()
        return {item.id: item for item in rows}


class UserStore:
    def __init__(self, db: Session) -> None:
        self.db = db

    def find_teacher(self, teacher_id: str, school_id: str) -> User | None:
        return self.db.execute(
            select(User).where(
                User.id == teacher_id,
                User.school_id == school_id,
                User.role == UserRole.teacher,
                User.is_active.is_(True),
            )
        ).scalar_one_or_none()

    def by_ids(self, user_ids: Iterable[str], school_id: str) -> dict[str, User]:
        ids = [item for item in dict.fromkeys(user_ids) if item]
        if not ids:
            return {}
        rows = self.db.execute(select(User).where(User.id.in_(ids), User.school_id == school_id)).scalars()
        return {item.id: item for item in rows}

    def students_in(self, class_id: str, section_id: str, school_id: str) -> list[User]:
        return list(
            self.db.execute(
                select(User).where(
                    User.school_id == school_id,
                    User.role == UserRole.student,
                    User.class_id == class_id,
                    User.section_id == section_id,
                    User.is_active.is_(True),
                )
            ).scalars()
        )


def _day_order():
    return case(
        *[(Schedule.day == day, index) for index, day in enumerate(Weekday)],
        else_=len(WEEKDAY_ORDER),
    )


class ScheduleRepository:
    def __init__(self, db: Session) -> None:
        self.db = db

    @staticmethod
    def to_allocation(row: Schedule) -> Allocation:
        return Allocation(
            id=row.id,
            school_id=row.school_id,
            class_id=row.class_id,
            section_id=row.section_id,
            kind=row.type.value,
            subject_id=row.subject_id,
            teacher_id=row.teacher_id,
            day=row.day.value,
            start_time=row.start_time,
            end_time=row.end_time,
            active=row.is_active,
        )

    def get(self, school_id: str, schedule_id: str) -> Schedule | None:
        return self.db.execute(
            select(Schedule).where(Schedule.id == schedule_id, Schedule.school_id == school_id)
        ).scalar_one_or_none()

    def allocations_for(self, key: ResourceKey) -> list[Allocation]:
        query = select(Schedule).where(
            Schedule.school_id == key.school_id,
            Schedule.day == Weekday(key.slot),
            Schedule.is_active.is_(True),
        )
        if key.kind is ResourceKind.teacher:
            query = query.where(Schedule.teacher_id == key.owner)
        else:
            class_id, section_id = _split_owner(key)
            query = query.where(Schedule.class_id == class_id, Schedule.section_id == section_id)
        rows = self.db.execute(query.order_by(Schedule.insert_seq, Schedule.id)).scalars()
        return [self.to_allocation(row) for row in rows]

    def add_all(self, rows: list[Schedule]) -> None:
        self.db.add_all(rows)

    def list_active(
        self,
        school_id: str,
        *,
        class_id: str | None = None,
        section_id: str | None = None,
        teacher_id: str | None = None,
        day: str | None = None,
        page: int = 1,
        limit: int = 10,
    ) -> tuple[int, list[Schedule]]:
        conditions = [Schedule.school_id == school_id, Schedule.is_active.is_(True)]
        if class_id:
            conditions.append(Schedule.class_id == class_id)
        if section_id:
            conditions.append(Schedule.section_id == section_id)
        if teacher_id:
            conditions.append(Schedule.teacher_id == teacher_id)
        if day:
            conditions.append(Schedule.day == Weekday(day))
        total = self.db.execute(select(func.count()).select_from(Schedule).where(*conditions)).scalar_one()
        rows = list(
            self.db.execute(
                select(Schedule)
                .where(*conditions)
                .order_by(_day_order(), Schedule.start_time, Schedule.id)
                .offset((page - 1) * limit)
                .limit(limit)
            ).scalars()
        )
        return total, rows


class ExamScheduleRepository:
    def __init__(self, db: Session) -> None:
        self.db = db

    @staticmethod
    def to_allocation(row: ExamSchedule) -> Allocation:
        return Allocation(
            id=row.id,
            school_id=row.school_id,
            class_id=row.class_id,
            section_id=row.section_id,
            kind=row.type.value,
            subject_id=row.subject_id,
            teacher_id=row.teacher_id,
            day=row.day.value,
            exam_date=row.exam_date,
            start_time=row.start_time,
            end_time=row.end_time,
            active=row.status is not ExamStatus.cancelled,
        )

    def get(self, school_id: str, exam_id: str) -> ExamSchedule | None:
        return self.db.execute(
            select(ExamSchedule).where(ExamSchedule.id == exam_id, ExamSchedule.school_id == school_id)
        ).scalar_one_or_none()

    def allocations_for(self, key: ResourceKey) -> list[Allocation]:
        query = select(ExamSchedule).where(
            ExamSchedule.school_id == key.school_id,
            ExamSchedule.exam_date == date.fromisoformat(key.slot),
            ExamSchedule.status != ExamStatus.cancelled,
        )
        if key.kind is ResourceKind.teacher:
            query = query.where(ExamSchedule.teacher_id == key.owner)
        else:
            class_id, section_id = _split_owner(key)
            query = query.where(ExamSchedule.class_id == class_id, ExamSchedule.section_id == section_id)
        rows = self.db.execute(query.order_by(ExamSchedule.insert_seq, ExamSchedule.id)).scalars()
        return [self.to_allocation(row) for row in rows]

    def find_duplicate(
        self,
        school_id: str,
        *,
        class_id: str,
        section_id: str,
        subject_id: str,
        exam_type: ExamType,
        year: int,
        exclude_id: str | None = None,
    ) -> ExamSchedule | None:
        query = select(ExamSchedule).where(
            ExamSchedule.school_id == school_id,
            ExamSchedule.class_id == class_id,
            ExamSchedule.section_id == section_id,
            ExamSchedule.subject_id == subject_id,
            ExamSchedule.type == exam_type,
            ExamSchedule.year == year,
        )
        if exclude_id is not None:
            query = query.where(ExamSchedule.id != exclude_id)
        return self.db.execute(query.limit(1)).scalars().first()

    def add(self, row: ExamSchedule) -> None:
        self.db.add(row)

    def delete(self, row: ExamSchedule) -> None:
        self.db.delete(row)

    def list_filtered(
        self,
        school_id: str,
        *,
        class_id: str | None = None,
        section_id: str | None = None,
        teacher_id: str | None = None,
        exam_type: ExamType | None = None,
        year: int | None = None,
        status: ExamStatus | None = None,
        exam_date: date | None = None,
        page: int = 1,
        limit: int = 10,
    ) -> tuple[int, list[ExamSchedule]]:
        conditions = [ExamSchedule.school_id == school_id]
        if class_id:
            conditions.append(ExamSchedule.class_id == class_id)
        if section_id:
            conditions.append(ExamSchedule.section_id == section_id)
        if teacher_id:
            conditions.append(ExamSchedule.teacher_id == teacher_id)
        if exam_type is not None:
            conditions.append(ExamSchedule.type == exam_type)
        if year is not None:
            conditions.append(ExamSchedule.year == year)
        if status is not None:
            conditions.append(ExamSchedule.status == status)
        if exam_date is not None:
            conditions.append(ExamSchedule.exam_date == exam_date)
        total = self.db.execute(select(func.count()).select_from(ExamSchedule).where(*conditions)).scalar_one()
        rows = list(
            self.db.execute(
                select(ExamSchedule)
                .where(*conditions)
                .order_by(ExamSchedule.exam_date, ExamSchedule.start_time, ExamSchedule.id)
                .offset((page - 1) * limit)
                .limit(limit)
            ).scalars()
        )
        return total, rows
