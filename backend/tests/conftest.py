import os

# Point the app at SQLite before any schoolsched module reads settings.
os.environ["DATABASE_URL"] = "sqlite+pysqlite://"
os.environ["AUTO_CREATE_SCHEMA"] = "false"

from dataclasses import dataclass  # noqa: E402
from datetime import date  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

import schoolsched.models  # noqa: E402,F401
from schoolsched.api.deps import get_db  # noqa: E402
from schoolsched.core.security import create_access_token  # noqa: E402
from schoolsched.db.base import Base  # noqa: E402
from schoolsched.main import app  # noqa: E402
from schoolsched.models.class_section import ClassSection, Section  # noqa: E402
from schoolsched.models.subject import Subject  # noqa: E402
from schoolsched.models.user import User, UserRole  # noqa: E402
from schoolsched.services import exam_schedule as exam_schedule_service  # noqa: E402


@dataclass
class SeededSchool:
    id: str
    admin_id: str
    office_id: str
    teacher_id: str
    other_teacher_id: str
    student_id: str
    class1_id: str
    class1_a_id: str
    class1_b_id: str
    class2_id: str
    class2_a_id: str
    math_id: str
    science_id: str
    english_id: str


@pytest.fixture()
def engine():
    engine = create_engine(
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture()
def db_session(session_factory):
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture()
def client(session_factory):
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


def seed_school(db, *, school_id: str = "school-1", prefix: str = "") -> SeededSchool:
    admin = User(school_id=school_id, name="School Admin", email=f"{prefix}admin@school.test", role=UserRole.school)
    office = User(
        school_id=school_id,
        name="Office Clerk",
        email=f"{prefix}office@school.test",
        role=UserRole.admin_office,
    )
    teacher = User(school_id=school_id, name="Alice Teacher", email=f"{prefix}alice@school.test", role=UserRole.teacher)
    other_teacher = User(
        school_id=school_id,
        name="Bob Teacher",
        email=f"{prefix}bob@school.test",
        role=UserRole.teacher,
    )
    db.add_all([admin, office, teacher, other_teacher])

    class1 = ClassSection(school_id=school_id, name="Class 1", order=1)
    class2 = ClassSection(school_id=school_id, name="Class 2", order=2)
    db.add_all([class1, class2])
    db.flush()

    class1_a = Section(class_section_id=class1.id, name="A")
    class1_b = Section(class_section_id=class1.id, name="B")
    class2_a = Section(class_section_id=class2.id, name="A")
    db.add_all([class1_a, class1_b, class2_a])
    db.flush()

    student = User(
        school_id=school_id,
        name="Sam Student",
        email=f"{prefix}sam@school.test",
        role=UserRole.student,
        class_id=class1.id,
        section_id=class1_a.id,
    )
    math = Subject(school_id=school_id, class_section_id=class1.id, name="Math", code="MATH1")
    science = Subject(school_id=school_id, class_section_id=class1.id, name="Science", code="SCI1")
    english = Subject(school_id=school_id, class_section_id=class2.id, name="English", code="ENG2")
    db.add_all([student, math, science, english])
    db.commit()

    return SeededSchool(
        id=school_id,
        admin_id=admin.id,
        office_id=office.id,
        teacher_id=teacher.id,
        other_teacher_id=other_teacher.id,
        student_id=student.id,
        class1_id=class1.id,
        class1_a_id=class1_a.id,
        class1_b_id=class1_b.id,
        class2_id=class2.id,
        class2_a_id=class2_a.id,
        math_id=math.id,
        science_id=science.id,
        english_id=english.id,
    )


@pytest.fixture()
def school(session_factory) -> SeededSchool:
    db = session_factory()
    try:
        return seed_school(db)
    finally:
        db.close()


@pytest.fixture()
def auth():
    def headers_for(user_id: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {create_access_token(user_id)}"}

    return headers_for


@pytest.fixture()
def other_school(session_factory) -> SeededSchool:
    db = session_factory()
    try:
        return seed_school(db, school_id="school-2", prefix="other-")
    finally:
        db.close()


# Fixture data schedules exams in spring 2024; pin the calendar before that.
EXAM_CALENDAR_TODAY = date(2024, 1, 15)


@pytest.fixture(autouse=True)
def exam_calendar(monkeypatch):
    monkeypatch.setattr(exam_schedule_service, "school_today", lambda: EXAM_CALENDAR_TODAY)
    return EXAM_CALENDAR_TODAY
