from __future__ import annotations

from pydantic import Field, field_validator, model_validator

from schoolsched.models.schedule import ScheduleType, Weekday
from schoolsched.schemas.common import (
    CamelModel,
    PageMeta,
    SubjectRef,
    TeacherRef,
    clean_optional_id,
    validate_time_value,
)


class ScheduleRequest(CamelModel):
    class_id: str = Field(alias="classId", min_length=1, max_length=36)
    section_ids: list[str] = Field(alias="sectionIds", min_length=1, max_length=50)
    type: ScheduleType
    subject_id: str | None = Field(default=None, alias="subjectId", max_length=36)
    teacher_id: str | None = Field(default=None, alias="teacherId", max_length=36)
    day: Weekday
    start_time: str = Field(alias="startTime")
    end_time: str = Field(alias="endTime")

    @field_validator("section_ids")
    @classmethod
    def dedupe_sections(cls, value: list[str]) -> list[str]:
        cleaned = [item.strip() for item in value if item and item.strip()]
        if not cleaned:
            raise ValueError("At least one section is required")
        return list(dict.fromkeys(cleaned))

    @field_validator("subject_id", "teacher_id")
    @classmethod
    def blank_to_none(cls, value: str | None) -> str | None:
        return clean_optional_id(value)

    @field_validator("start_time", "end_time")
    @classmethod
    def validate_time(cls, value: str) -> str:
        return validate_time_value(value)

    @model_validator(mode="after")
    def validate_subject_fields(self) -> "ScheduleRequest":
        if self.type is ScheduleType.subject:
            if not self.subject_id or not self.teacher_id:
                raise ValueError("Subject and teacher are required for subject schedules")
        else:
            self.subject_id = None
            self.teacher_id = None
        return self


class ScheduleBatchCreate(CamelModel):
    schedules: list[ScheduleRequest] = Field(min_length=1, max_length=200)


class ScheduleUpdate(CamelModel):
    class_id: str | None = Field(default=None, alias="classId", min_length=1, max_length=36)
    section_id: str | None = Field(default=None, alias="sectionId", min_length=1, max_length=36)
    type: ScheduleType | None = None
    subject_id: str | None = Field(default=None, alias="subjectId", max_length=36)
    teacher_id: str | None = Field(default=None, alias="teacherId", max_length=36)
    day: Weekday | None = None
    start_time: str | None = Field(default=None, alias="startTime")
    end_time: str | None = Field(default=None, alias="endTime")

    @field_validator("subject_id", "teacher_id")
    @classmethod
    def blank_to_none(cls, value: str | None) -> str | None:
        return clean_optional_id(value)

    @field_validator("start_time", "end_time")
    @classmethod
    def validate_time(cls, value: str | None) -> str | None:
        return validate_time_value(value)


class ScheduleOut(CamelModel):
    id: str
    class_id: str = Field(alias="classId")
    class_name: str | None = Field(default=None, alias="className")
    section_id: str = Field(alias="sectionId")
    section_name: str = Field(alias="sectionName")
    type: ScheduleType
    subject: SubjectRef | None = None
    teacher: TeacherRef | None = None
    day: Weekday
    start_time: str = Field(alias="startTime")
    end_time: str = Field(alias="endTime")
    is_active: bool = Field(alias="isActive")


class ScheduleBatchOut(CamelModel):
    message: str
    count: int
    schedules: list[ScheduleOut]


class ScheduleListOut(PageMeta):
    schedule: list[ScheduleOut]


class ScheduleUpdateOut(CamelModel):
    message: str
    schedule: ScheduleOut


class ScheduleDeleteOut(CamelModel):
    message: str
    already_deleted: bool = Field(alias="alreadyDeleted")
