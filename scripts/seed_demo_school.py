"""Seed a demo school with classes, subjects and staff, and print bearer tokens.

Run:
  PYTHONPATH=backend python scripts/seed_demo_school.py
"""

from __future__ import annotations

import os

from sqlalchemy import select

from schoolsched.core.security import create_access_token
from schoolsched.db.bootstrap import ensure_schema
from schoolsched.db.session import SessionLocal, engine
from schoolsched.models.class_section import ClassSection, Section
from schoolsched.models.subject import Subject
from schoolsched.models.user import User, UserRole

SCHOOL_ID = os.getenv("DEMO_SCHOOL_ID", "demo-school")

DEMO_ACCOUNTS = {
    "school": {"name": "Demo Principal", "email": "principal@demo-school.test", "role": UserRole.school},
    "office": {"name": "Demo Office", "email": "office@demo-school.test", "role": UserRole.admin_office},
    "teacher_1": {"name": "Demo Teacher One", "email": "teacher1@demo-school.test", "role": UserRole.teacher},
    "teacher_2": {"name": "Demo Teacher Two", "email": "teacher2@demo-school.test", "role": UserRole.teacher},
}

CLASSES = {
    "Class 1": ["A", "B"],
    "Class 2": ["A"],
}

SUBJECTS = {
    "Class 1": [("Mathematics", "MATH1"), ("Science", "SCI1")],
    "Class 2": [("English", "ENG2")],
}


def _upsert_user(db, *, name: str, email: str, role: UserRole, class_id=None, section_id=None) -> User:
    user = db.execute(select(User).where(User.email == email)).scalar_one_or_none()
    if user is None:
        user = User(email=email, name=name, role=role)
        db.add(user)
    user.school_id = SCHOOL_ID
    user.name = name
    user.role = role
    user.class_id = class_id
    user.section_id = section_id
    user.is_active = True
    return user


def _upsert_class(db, name: str, order: int, section_names: list[str]) -> tuple[ClassSection, dict[str, Section]]:
    klass = db.execute(
        select(ClassSection).where(ClassSection.school_id == SCHOOL_ID, ClassSection.name == name)
    ).scalar_one_or_none()
    if klass is None:
        klass = ClassSection(school_id=SCHOOL_ID, name=name, order=order)
        db.add(klass)
        db.flush()

    sections: dict[str, Section] = {}
    for section_name in section_names:
        section = db.execute(
            select(Section).where(Section.class_section_id == klass.id, Section.name == section_name)
        ).scalar_one_or_none()
        if section is None:
            section = Section(class_section_id=klass.id, name=section_name)
            db.add(section)
        sections[section_name] = section
    db.flush()
    return klass, sections


def _upsert_subject(db, klass: ClassSection, name: str, code: str) -> Subject:
    subject = db.execute(
        select(Subject).where(Subject.school_id == SCHOOL_ID, Subject.class_section_id == klass.id, Subject.code == code)
    ).scalar_one_or_none()
    if subject is None:
        subject = Subject(school_id=SCHOOL_ID, class_section_id=klass.id, name=name, code=code)
        db.add(subject)
    subject.is_active = True
    return subject


def main() -> None:
    ensure_schema(engine)
    with SessionLocal() as db:
        classes = {}
        for order, (name, section_names) in enumerate(CLASSES.items(), start=1):
            classes[name] = _upsert_class(db, name, order, section_names)

        for class_name, subjects in SUBJECTS.items():
            klass, _ = classes[class_name]
            for name, code in subjects:
                _upsert_subject(db, klass, name, code)

        users = {key: _upsert_user(db, **spec) for key, spec in DEMO_ACCOUNTS.items()}
        klass, sections = classes["Class 1"]
        users["student"] = _upsert_user(
            db,
            name="Demo Student",
            email="student@demo-school.test",
            role=UserRole.student,
            class_id=klass.id,
            section_id=sections["A"].id,
        )
        db.commit()

        print(f"Seeded school {SCHOOL_ID}")
        for class_name, (klass, sections) in classes.items():
            section_ids = ", ".join(f"{label}={section.id}" for label, section in sections.items())
            print(f"  {class_name}: {klass.id} ({section_ids})")
        print("Bearer tokens:")
        for key, user in users.items():
            print(f"  {key:<10} {user.email:<32} {create_access_token(user.id)}")


if __name__ == "__main__":
    main()
