from __future__ import annotations

from datetime import date, datetime

from pydantic import BaseModel, ConfigDict, Field

from schoolsched.services.time_range import canonical_time


def validate_time_value(value: str | None) -> str | None:
    if value is None:
        return None
    try:
        return canonical_time(value)
    except ValueError as exc:
        raise ValueError("Time must be in HH:MM 24-hour format") from exc


def coerce_calendar_date(value: object) -> object:
    """Accept ``YYYY-MM-DD`` or a full ISO datetime and keep only the date."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, str):
        raw = value.strip()
        if "T" in raw or " " in raw:
            if raw.endswith("Z"):
                raw = f"{raw[:-1]}+00:00"
            try:
                return datetime.fromisoformat(raw).date()
            except ValueError as exc:
                raise ValueError("Date must be YYYY-MM-DD or an ISO datetime") from exc
        return raw
    return value


def clean_optional_id(value: str | None) -> str | None:
    if value is None:
        return None
    trimmed = value.strip()
    return trimmed or None


def weekday_name(value: date) -> str:
    return value.strftime("%A")


class CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class SubjectRef(CamelModel):
    id: str
    name: str
    code: str | None = None


class TeacherRef(CamelModel):
    id: str
    name: str
    email: str


class SectionRef(CamelModel):
    id: str
    name: str | None = None


class PageMeta(CamelModel):
    page: int = Field(ge=1)
    limit: int = Field(ge=1)
    total: int = Field(ge=0)
    total_pages: int = Field(alias="totalPages", ge=0)
