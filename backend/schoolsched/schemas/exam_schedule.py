from __future__ import annotations

from datetime import date
from typing import Any

from pydantic import Field, field_validator, model_validator

from schoolsched.models.exam_schedule import ExamStatus, ExamType
from schoolsched.models.schedule import Weekday
from schoolsched.schemas.common import (
    CamelModel,
    PageMeta,
    SectionRef,
    SubjectRef,
    TeacherRef,
    coerce_calendar_date,
    validate_time_value,
    weekday_name,
)


class ExamScheduleItem(CamelModel):
    class_id: str = Field(alias="classId", min_length=1, max_length=36)
    section_id: str = Field(alias="sectionId", min_length=1, max_length=36)
    subject_id: str = Field(alias="subjectId", min_length=1, max_length=36)
    teacher_id: str = Field(alias="teacherId", min_length=1, max_length=36)
    exam_date: date = Field(alias="examDate")
    day: Weekday | None = None
    start_time: str = Field(alias="startTime")
    end_time: str = Field(alias="endTime")

    @field_validator("exam_date", mode="before")
    @classmethod
    def reduce_to_date(cls, value: object) -> object:
        return coerce_calendar_date(value)

    @field_validator("start_time", "end_time")
    @classmethod
    def validate_time(cls, value: str) -> str:
        return validate_time_value(value)

    @model_validator(mode="after")
    def align_day(self) -> "ExamScheduleItem":
        expected = Weekday(weekday_name(self.exam_date))
        if self.day is not None and self.day is not expected:
            raise ValueError(f"day {self.day.value} does not match examDate ({expected.value})")
        self.day = expected
        return self


class ExamScheduleBatchCreate(CamelModel):
    type: ExamType
    year: int = Field(ge=2000, le=2100)
    schedules: list[ExamScheduleItem] = Field(min_length=1, max_length=200)


class ExamScheduleUpdate(CamelModel):
    class_id: str | None = Field(default=None, alias="classId", min_length=1, max_length=36)
    section_id: str | None = Field(default=None, alias="sectionId", min_length=1, max_length=36)
    subject_id: str | None = Field(default=None, alias="subjectId", min_length=1, max_length=36)
    teacher_id: str | None = Field(default=None, alias="teacherId", min_length=1, max_length=36)
    exam_date: date | None = Field(default=None, alias="examDate")
    day: Weekday | None = None
    start_time: str | None = Field(default=None, alias="startTime")
    end_time: str | None = Field(default=None, alias="endTime")
    type: ExamType | None = None
    year: int | None = Field(default=None, ge=2000, le=2100)
    status: ExamStatus | None = None

    @field_validator("exam_date", mode="before")
    @classmethod
    def reduce_to_date(cls, value: object) -> object:
        return coerce_calendar_date(value)

    @field_validator("start_time", "end_time")
    @classmethod
    def validate_time(cls, value: str | None) -> str | None:
        return validate_time_value(value)

    @model_validator(mode="after")
    def check_day(self) -> "ExamScheduleUpdate":
        if self.exam_date is not None and self.day is not None:
            expected = Weekday(weekday_name(self.exam_date))
            if self.day is not expected:
                raise ValueError(f"day {self.day.value} does not match examDate ({expected.value})")
        return self


class ExamScheduleOut(CamelModel):
    id: str
    class_id: str = Field(alias="classId")
    class_name: str | None = Field(default=None, alias="className")
    section: SectionRef
    subject: SubjectRef | None = None
    teacher: TeacherRef | None = None
    exam_date: date = Field(alias="examDate")
    day: Weekday
    start_time: str = Field(alias="startTime")
    end_time: str = Field(alias="endTime")
    type: ExamType
    year: int
    status: ExamStatus


class ExamItemErrorOut(CamelModel):
    index: int
    item: dict[str, Any]
    message: str
    details: dict[str, Any] = Field(default_factory=dict)


class ExamBatchOut(CamelModel):
    message: str
    created: int
    schedules: list[ExamScheduleOut]
    errors: list[ExamItemErrorOut]


class ExamScheduleListOut(PageMeta):
    schedule: list[ExamScheduleOut]


class ExamScheduleUpdateOut(CamelModel):
    message: str
    schedule: ExamScheduleOut
    changes: list[str]


class ExamScheduleDeleteOut(CamelModel):
    message: str
    id: str
