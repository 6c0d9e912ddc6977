from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from schoolsched.api.deps import MANAGER_ROLES, Pagination, get_db, require_roles, school_scope
from schoolsched.api.formatting import exam_rows
from schoolsched.models.exam_schedule import ExamStatus, ExamType
from schoolsched.models.user import User, UserRole
from schoolsched.schemas.exam_schedule import (
    ExamBatchOut,
    ExamItemErrorOut,
    ExamScheduleBatchCreate,
    ExamScheduleDeleteOut,
    ExamScheduleListOut,
    ExamScheduleUpdate,
    ExamScheduleUpdateOut,
)
from schoolsched.services.exam_schedule import ExamScheduleService
from schoolsched.services.repositories import ExamScheduleRepository

router = APIRouter()


def _page(db: Session, school_id: str, pagination: Pagination, **filters) -> ExamScheduleListOut:
    total, rows = ExamScheduleRepository(db).list_filtered(
        school_id,
        page=pagination.page,
        limit=pagination.limit,
        **filters,
    )
    return ExamScheduleListOut(
        page=pagination.page,
        limit=pagination.limit,
        total=total,
        total_pages=pagination.total_pages(total),
        schedule=exam_rows(db, school_id, rows),
    )


@router.post(
    "",
    response_model=ExamBatchOut,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ExamBatchOut}},
)
def create_exam_schedules(
    payload: ExamScheduleBatchCreate,
    current_user: User = Depends(require_roles(*MANAGER_ROLES)),
    db: Session = Depends(get_db),
):
    school_id = school_scope(current_user)
    result = ExamScheduleService(db).create_batch(school_id, payload, actor=current_user)
    errors = [
        ExamItemErrorOut(index=item.index, item=item.item, message=item.message, details=item.details)
        for item in result.errors
    ]
    if result.failed_completely:
        body = ExamBatchOut(message="No exam schedules were created", created=0, schedules=[], errors=errors)
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=body.model_dump(mode="json", by_alias=True))

    message = "Exam schedules created successfully"
    if errors:
        message = f"{len(result.created)} exam schedule(s) created, {len(errors)} failed"
    return ExamBatchOut(
        message=message,
        created=len(result.created),
        schedules=exam_rows(db, school_id, result.created),
        errors=errors,
    )


@router.get("", response_model=ExamScheduleListOut)
def list_exam_schedules(
    class_id: str | None = Query(default=None, alias="classId"),
    section_id: str | None = Query(default=None, alias="sectionId"),
    teacher_id: str | None = Query(default=None, alias="teacherId"),
    exam_type: ExamType | None = Query(default=None, alias="type"),
    year: int | None = Query(default=None, ge=2000, le=2100),
    exam_status: ExamStatus | None = Query(default=None, alias="status"),
    exam_date: date | None = Query(default=None, alias="examDate"),
    pagination: Pagination = Depends(),
    current_user: User = Depends(require_roles(*MANAGER_ROLES, UserRole.teacher)),
    db: Session = Depends(get_db),
) -> ExamScheduleListOut:
    return _page(
        db,
        school_scope(current_user),
        pagination,
        class_id=class_id,
        section_id=section_id,
        teacher_id=teacher_id,
        exam_type=exam_type,
        year=year,
        status=exam_status,
        exam_date=exam_date,
    )


@router.get("/teacher", response_model=ExamScheduleListOut)
def teacher_exam_schedule(
    exam_type: ExamType | None = Query(default=None, alias="type"),
    year: int | None = Query(default=None, ge=2000, le=2100),
    pagination: Pagination = Depends(),
    current_user: User = Depends(require_roles(UserRole.teacher)),
    db: Session = Depends(get_db),
) -> ExamScheduleListOut:
    return _page(
        db,
        school_scope(current_user),
        pagination,
        teacher_id=current_user.id,
        exam_type=exam_type,
        year=year,
    )


@router.get("/student", response_model=ExamScheduleListOut)
def student_exam_schedule(
    exam_type: ExamType | None = Query(default=None, alias="type"),
    year: int | None = Query(default=None, ge=2000, le=2100),
    pagination: Pagination = Depends(),
    current_user: User = Depends(require_roles(UserRole.student)),
    db: Session = Depends(get_db),
) -> ExamScheduleListOut:
    if not current_user.class_id or not current_user.section_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Student is not assigned to a class")
    return _page(
        db,
        school_scope(current_user),
        pagination,
        class_id=current_user.class_id,
        section_id=current_user.section_id,
        exam_type=exam_type,
        year=year,
    )


@router.put("/{exam_id}", response_model=ExamScheduleUpdateOut)
def update_exam_schedule(
    exam_id: str,
    payload: ExamScheduleUpdate,
    current_user: User = Depends(require_roles(*MANAGER_ROLES)),
    db: Session = Depends(get_db),
) -> ExamScheduleUpdateOut:
    school_id = school_scope(current_user)
    result = ExamScheduleService(db).update(school_id, exam_id, payload, actor=current_user)
    message = "Exam schedule updated successfully" if result.changes else "No changes to apply"
    return ExamScheduleUpdateOut(
        message=message,
        schedule=exam_rows(db, school_id, [result.schedule])[0],
        changes=result.changes,
    )


@router.delete("/{exam_id}", response_model=ExamScheduleDeleteOut)
def delete_exam_schedule(
    exam_id: str,
    current_user: User = Depends(require_roles(*MANAGER_ROLES)),
    db: Session = Depends(get_db),
) -> ExamScheduleDeleteOut:
    snapshot = ExamScheduleService(db).delete(school_scope(current_user), exam_id, actor=current_user)
    return ExamScheduleDeleteOut(message="Exam schedule deleted successfully", id=snapshot["id"])
