import uuid
from datetime import date, datetime
from enum import Enum

from sqlalchemy import BigInteger, Date, DateTime, Enum as SAEnum, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from schoolsched.db.base import Base, next_insert_sequence
from schoolsched.models.schedule import Weekday, weekday_enum


class ExamType(str, Enum):
    midterm = "midterm"
    midterm2 = "midterm2"
    final = "final"


class ExamStatus(str, Enum):
    scheduled = "scheduled"
    ongoing = "ongoing"
    completed = "completed"
    cancelled = "cancelled"


class ExamSchedule(Base):
    __tablename__ = "exam_schedules"
    __table_args__ = (
        UniqueConstraint(
            "school_id",
            "class_id",
            "section_id",
            "subject_id",
            "type",
            "year",
            name="uq_exam_schedules_subject_per_exam",
        ),
        Index("ix_exam_schedules_teacher_date", "school_id", "teacher_id", "exam_date"),
        Index("ix_exam_schedules_class_section_date", "school_id", "class_id", "section_id", "exam_date"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    school_id: Mapped[str] = mapped_column(String(36), nullable=False)
    class_id: Mapped[str] = mapped_column(String(36), nullable=False)
    section_id: Mapped[str] = mapped_column(String(36), nullable=False)
    subject_id: Mapped[str] = mapped_column(String(36), nullable=False)
    teacher_id: Mapped[str] = mapped_column(String(36), nullable=False)
    exam_date: Mapped[date] = mapped_column(Date, nullable=False)
    day: Mapped[Weekday] = mapped_column(weekday_enum, nullable=False)
    start_time: Mapped[str] = mapped_column(String(5), nullable=False)
    end_time: Mapped[str] = mapped_column(String(5), nullable=False)
    type: Mapped[ExamType] = mapped_column(SAEnum(ExamType, name="exam_type"), nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[ExamStatus] = mapped_column(
        SAEnum(ExamStatus, name="exam_status"),
        nullable=False,
        default=ExamStatus.scheduled,
    )
    insert_seq: Mapped[int] = mapped_column(BigInteger, nullable=False, default=next_insert_sequence)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), onupdate=func.now())
