from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from schoolsched.api.deps import MANAGER_ROLES, Pagination, get_db, require_roles, school_scope
from schoolsched.api.formatting import schedule_rows
from schoolsched.models.schedule import Weekday
from schoolsched.models.user import User, UserRole
from schoolsched.schemas.schedule import (
    ScheduleBatchCreate,
    ScheduleBatchOut,
    ScheduleDeleteOut,
    ScheduleListOut,
    ScheduleUpdate,
    ScheduleUpdateOut,
)
from schoolsched.services.repositories import ScheduleRepository
from schoolsched.services.weekly_schedule import WeeklyScheduleService

router = APIRouter()


def _page(
    db: Session,
    school_id: str,
    pagination: Pagination,
    *,
    class_id: str | None = None,
    section_id: str | None = None,
    teacher_id: str | None = None,
    day: Weekday | None = None,
) -> ScheduleListOut:
    total, rows = ScheduleRepository(db).list_active(
        school_id,
        class_id=class_id,
        section_id=section_id,
        teacher_id=teacher_id,
        day=day.value if day else None,
        page=pagination.page,
        limit=pagination.limit,
    )
    return ScheduleListOut(
        page=pagination.page,
        limit=pagination.limit,
        total=total,
        total_pages=pagination.total_pages(total),
        schedule=schedule_rows(db, school_id, rows),
    )


@router.post("", response_model=ScheduleBatchOut, status_code=status.HTTP_201_CREATED)
def create_schedules(
    payload: ScheduleBatchCreate,
    current_user: User = Depends(require_roles(*MANAGER_ROLES)),
    db: Session = Depends(get_db),
) -> ScheduleBatchOut:
    school_id = school_scope(current_user)
    created = WeeklyScheduleService(db).create_batch(school_id, payload.schedules, actor=current_user)
    return ScheduleBatchOut(
        message="Schedules created successfully",
        count=len(created),
        schedules=schedule_rows(db, school_id, created),
    )


@router.get("", response_model=ScheduleListOut)
def list_schedules(
    class_id: str | None = Query(default=None, alias="classId"),
    section_id: str | None = Query(default=None, alias="sectionId"),
    teacher_id: str | None = Query(default=None, alias="teacherId"),
    day: Weekday | None = Query(default=None),
    pagination: Pagination = Depends(),
    current_user: User = Depends(require_roles(*MANAGER_ROLES, UserRole.teacher)),
    db: Session = Depends(get_db),
) -> ScheduleListOut:
    return _page(
        db,
        school_scope(current_user),
        pagination,
        class_id=class_id,
        section_id=section_id,
        teacher_id=teacher_id,
        day=day,
    )


@router.get("/section", response_model=ScheduleListOut)
def section_schedule(
    class_id: str = Query(alias="classId", min_length=1),
    section_id: str = Query(alias="sectionId", min_length=1),
    day: Weekday | None = Query(default=None),
    pagination: Pagination = Depends(),
    current_user: User = Depends(require_roles(*MANAGER_ROLES)),
    db: Session = Depends(get_db),
) -> ScheduleListOut:
    return _page(
        db,
        school_scope(current_user),
        pagination,
        class_id=class_id,
        section_id=section_id,
        day=day,
    )


@router.get("/teacher", response_model=ScheduleListOut)
def teacher_schedule(
    teacher_id: str | None = Query(default=None, alias="teacherId"),
    day: Weekday | None = Query(default=None),
    pagination: Pagination = Depends(),
    current_user: User = Depends(require_roles(*MANAGER_ROLES, UserRole.teacher)),
    db: Session = Depends(get_db),
) -> ScheduleListOut:
    if current_user.role == UserRole.teacher:
        teacher_id = current_user.id
    elif not teacher_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="teacherId is required")
    return _page(db, school_scope(current_user), pagination, teacher_id=teacher_id, day=day)


@router.get("/student", response_model=ScheduleListOut)
def student_schedule(
    class_id: str | None = Query(default=None, alias="classId"),
    section_id: str | None = Query(default=None, alias="sectionId"),
    day: Weekday | None = Query(default=None),
    pagination: Pagination = Depends(),
    current_user: User = Depends(require_roles(UserRole.student, UserRole.teacher)),
    db: Session = Depends(get_db),
) -> ScheduleListOut:
    if current_user.role == UserRole.student:
        class_id, section_id = current_user.class_id, current_user.section_id
        if not class_id or not section_id:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Student is not assigned to a class")
    elif not class_id or not section_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="classId and sectionId are required")
    return _page(
        db,
        school_scope(current_user),
        pagination,
        class_id=class_id,
        section_id=section_id,
        day=day,
    )


@router.put("/{schedule_id}", response_model=ScheduleUpdateOut)
def update_schedule(
    schedule_id: str,
    payload: ScheduleUpdate,
    current_user: User = Depends(require_roles(*MANAGER_ROLES)),
    db: Session = Depends(get_db),
) -> ScheduleUpdateOut:
    school_id = school_scope(current_user)
    row = WeeklyScheduleService(db).update(school_id, schedule_id, payload, actor=current_user)
    return ScheduleUpdateOut(message="Schedule updated successfully", schedule=schedule_rows(db, school_id, [row])[0])


@router.delete("/{schedule_id}", response_model=ScheduleDeleteOut)
def delete_schedule(
    schedule_id: str,
    current_user: User = Depends(require_roles(*MANAGER_ROLES)),
    db: Session = Depends(get_db),
) -> ScheduleDeleteOut:
    result = WeeklyScheduleService(db).soft_delete(school_scope(current_user), schedule_id, actor=current_user)
    message = "Schedule already deleted" if result.already_deleted else "Schedule deleted successfully"
    return ScheduleDeleteOut(message=message, already_deleted=result.already_deleted)
