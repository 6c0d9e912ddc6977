import uuid
from datetime import datetime
from enum import Enum

from sqlalchemy import BigInteger, Boolean, DateTime, Enum as SAEnum, Index, String
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from schoolsched.db.base import Base, next_insert_sequence


class Weekday(str, Enum):
    monday = "Monday"
    tuesday = "Tuesday"
    wednesday = "Wednesday"
    thursday = "Thursday"
    friday = "Friday"
    saturday = "Saturday"
    sunday = "Sunday"


WEEKDAY_ORDER = [item.value for item in Weekday]

weekday_enum = SAEnum(Weekday, name="weekday", values_callable=lambda items: [item.value for item in items])


class ScheduleType(str, Enum):
    subject = "subject"
    break_ = "break"
    holiday = "holiday"


class Schedule(Base):
    __tablename__ = "schedules"
    __table_args__ = (
        Index("ix_schedules_teacher_day", "school_id", "teacher_id", "day"),
        Index("ix_schedules_class_section_day", "school_id", "class_id", "section_id", "day"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    school_id: Mapped[str] = mapped_column(String(36), nullable=False)
    class_id: Mapped[str] = mapped_column(String(36), nullable=False)
    section_id: Mapped[str] = mapped_column(String(36), nullable=False)
    subject_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    teacher_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    day: Mapped[Weekday] = mapped_column(weekday_enum, nullable=False)
    type: Mapped[ScheduleType] = mapped_column(
        SAEnum(ScheduleType, name="schedule_type", values_callable=lambda items: [item.value for item in items]),
        nullable=False,
    )
    start_time: Mapped[str] = mapped_column(String(5), nullable=False)
    end_time: Mapped[str] = mapped_column(String(5), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    insert_seq: Mapped[int] = mapped_column(BigInteger, nullable=False, default=next_insert_sequence)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), onupdate=func.now())
