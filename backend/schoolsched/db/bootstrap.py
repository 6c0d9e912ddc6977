from __future__ import annotations

import logging

from sqlalchemy import Engine, inspect

from schoolsched.db.base import Base

logger = logging.getLogger(__name__)

REQUIRED_TABLES: set[str] = {
    "users",
    "class_sections",
    "sections",
    "subjects",
    "schedules",
    "exam_schedules",
    "notifications",
    "activity_logs",
}


def missing_tables(engine: Engine) -> list[str]:
    with engine.connect() as connection:
        existing = set(inspect(connection).get_table_names())
    return sorted(REQUIRED_TABLES - existing)


def ensure_schema(engine: Engine) -> None:
    import schoolsched.models  # noqa: F401

    missing = missing_tables(engine)
    if not missing:
        return
    logger.info("Creating missing tables: %s", ", ".join(missing))
    Base.metadata.create_all(bind=engine)
