from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from schoolsched.api.routes import exam_schedules, health, notifications, schedules
from schoolsched.core.config import get_settings
from schoolsched.core.exceptions import AppError
from schoolsched.core.logging import configure_logging
from schoolsched.core.middleware import RequestLoggingMiddleware, RequestSizeLimitMiddleware
from schoolsched.db import session as db_session
from schoolsched.db.bootstrap import ensure_schema

settings = get_settings()


@asynccontextmanager
async def lifespan(_: FastAPI):
    configure_logging(settings)
    if settings.auto_create_schema:
        ensure_schema(db_session.engine)
    yield


async def app_error_handler(request: Request, exc: AppError):
    return JSONResponse(
        status_code=exc.status_code,
        content={"message": exc.message, "details": exc.details},
    )


app = FastAPI(title=settings.project_name, lifespan=lifespan)
app.add_exception_handler(AppError, app_error_handler)

app.add_middleware(RequestSizeLimitMiddleware, max_bytes=settings.max_request_size_bytes)
app.add_middleware(RequestLoggingMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router, prefix=settings.api_prefix, tags=["health"])
app.include_router(schedules.router, prefix=f"{settings.api_prefix}/schedules", tags=["schedules"])
app.include_router(exam_schedules.router, prefix=f"{settings.api_prefix}/exam-schedules", tags=["exam-schedules"])
app.include_router(notifications.router, prefix=f"{settings.api_prefix}/notifications", tags=["notifications"])
