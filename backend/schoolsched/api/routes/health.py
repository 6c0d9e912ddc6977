from __future__ import annotations

import logging
from datetime import datetime, timezone

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from schoolsched.db import session as db_session
from schoolsched.db.bootstrap import missing_tables

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/health")
def health() -> dict:
    return {"status": "ok"}


@router.get("/health/live")
def health_live() -> dict:
    return {"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()}


@router.get("/health/ready")
def health_ready() -> JSONResponse:
    db_ok = True
    missing: list[str] = []
    db_error: str | None = None

    try:
        with db_session.engine.connect() as connection:
            connection.execute(text("SELECT 1"))
        missing = missing_tables(db_session.engine)
    except SQLAlchemyError as exc:
        logger.warning("Readiness probe could not reach the database", exc_info=True)
        db_ok = False
        db_error = exc.__class__.__name__

    schema_ok = db_ok and not missing
    ready = db_ok and schema_ok
    payload = {
        "status": "ok" if ready else "degraded",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "database": {
            "ok": db_ok,
            "schema_ok": schema_ok,
            "missing_tables": missing,
            "error": db_error,
        },
    }
    return JSONResponse(status_code=200 if ready else 503, content=payload)
