from __future__ import annotations

import logging
from collections.abc import Iterable

from sqlalchemy import select
from sqlalchemy.orm import Session

from schoolsched.models.exam_schedule import ExamSchedule
from schoolsched.models.notification import Notification, NotificationType
from schoolsched.models.schedule import Schedule
from schoolsched.models.user import User
from schoolsched.services.repositories import ClassSectionStore, SubjectStore, UserStore

logger = logging.getLogger(__name__)

EXAM_TYPE_LABELS = {
    "midterm": "Midterm",
    "midterm2": "Second midterm",
    "final": "Final",
}


def create_notification(
    db: Session,
    *,
    school_id: str | None,
    user_id: str,
    title: str,
    message: str,
    notification_type: NotificationType = NotificationType.system,
) -> Notification:
    record = Notification(
        school_id=school_id,
        user_id=user_id,
        title=title,
        message=message,
        notification_type=notification_type,
    )
    db.add(record)
    db.flush()
    return record


def notify_users(
    db: Session,
    *,
    school_id: str | None,
    user_ids: Iterable[str],
    title: str,
    message: str,
    notification_type: NotificationType = NotificationType.system,
    exclude_user_id: str | None = None,
) -> list[Notification]:
    requested_ids = [item for item in dict.fromkeys(user_ids) if item and item != exclude_user_id]
    if not requested_ids:
        return []

    recipients = list(
        db.execute(
            select(User.id).where(
                User.id.in_(requested_ids),
                User.is_active.is_(True),
            )
        ).scalars()
    )
    return [
        create_notification(
            db,
            school_id=school_id,
            user_id=recipient_id,
            title=title,
            message=message,
            notification_type=notification_type,
        )
        for recipient_id in recipients
    ]


class ScheduleNotifier:
    """Writes in-app notifications for timetable and exam changes.

    Callers decide how failures are handled; the services wrap every call in a
    savepoint and only log when it raises.
    """

    def __init__(self, db: Session) -> None:
        self.db = db
        self.classes = ClassSectionStore(db)
        self.subjects = SubjectStore(db)
        self.users = UserStore(db)

    def _exam_summary(self, exam: dict) -> str:
        school_id = exam["school_id"]
        subject = self.subjects.get(exam["subject_id"], school_id)
        klass = self.classes.find_class_with_sections(exam["class_id"], school_id)
        subject_name = subject.name if subject is not None else "Exam"
        class_label = "class"
        if klass is not None:
            class_label = f"{klass.name} {klass.section_name(exam['section_id']) or ''}".strip()
        label = EXAM_TYPE_LABELS.get(exam["type"], exam["type"])
        return (
            f"{label} {exam['year']} {subject_name} exam for {class_label} on "
            f"{exam['exam_date']} ({exam['day']}) {exam['start_time']}-{exam['end_time']}"
        )

    def _exam_recipients(self, exam: dict) -> list[str]:
        students = self.users.students_in(exam["class_id"], exam["section_id"], exam["school_id"])
        return [exam["teacher_id"], *[student.id for student in students]]

    def notify_created(self, exam: ExamSchedule, *, actor_id: str | None = None) -> list[Notification]:
        snapshot = exam_snapshot(exam)
        return notify_users(
            self.db,
            school_id=exam.school_id,
            user_ids=self._exam_recipients(snapshot),
            title="Exam Scheduled",
            message=f"{self._exam_summary(snapshot)} has been scheduled.",
            notification_type=NotificationType.exam,
            exclude_user_id=actor_id,
        )

    def notify_updated(
        self,
        exam: ExamSchedule,
        changes: list[str],
        *,
        actor_id: str | None = None,
        previous_teacher_id: str | None = None,
    ) -> list[Notification]:
        snapshot = exam_snapshot(exam)
        recipients = self._exam_recipients(snapshot)
        if previous_teacher_id and previous_teacher_id != exam.teacher_id:
            recipients.append(previous_teacher_id)
        return notify_users(
            self.db,
            school_id=exam.school_id,
            user_ids=recipients,
            title="Exam Schedule Updated",
            message=f"{self._exam_summary(snapshot)} was updated: {'; '.join(changes)}.",
            notification_type=NotificationType.exam,
            exclude_user_id=actor_id,
        )

    def notify_cancelled(self, snapshot: dict, *, actor_id: str | None = None) -> list[Notification]:
        return notify_users(
            self.db,
            school_id=snapshot["school_id"],
            user_ids=self._exam_recipients(snapshot),
            title="Exam Cancelled",
            message=f"{self._exam_summary(snapshot)} has been cancelled.",
            notification_type=NotificationType.exam,
            exclude_user_id=actor_id,
        )

    def notify_timetable_changed(
        self,
        rows: list[Schedule],
        *,
        action: str,
        actor_id: str | None = None,
    ) -> list[Notification]:
        by_teacher: dict[str, list[Schedule]] = {}
        for row in rows:
            if row.teacher_id:
                by_teacher.setdefault(row.teacher_id, []).append(row)
        results: list[Notification] = []
        for teacher_id, teacher_rows in by_teacher.items():
            slots = ", ".join(f"{row.day.value} {row.start_time}-{row.end_time}" for row in teacher_rows)
            results.extend(
                notify_users(
                    self.db,
                    school_id=teacher_rows[0].school_id,
                    user_ids=[teacher_id],
                    title="Timetable Updated",
                    message=f"Your weekly timetable was {action}: {slots}.",
                    notification_type=NotificationType.timetable,
                    exclude_user_id=actor_id,
                )
            )
        return results


def exam_snapshot(exam: ExamSchedule) -> dict:
    return {
        "id": exam.id,
        "school_id": exam.school_id,
        "class_id": exam.class_id,
        "section_id": exam.section_id,
        "subject_id": exam.subject_id,
        "teacher_id": exam.teacher_id,
        "exam_date": exam.exam_date.isoformat(),
        "day": exam.day.value,
        "start_time": exam.start_time,
        "end_time": exam.end_time,
        "type": exam.type.value,
        "year": exam.year,
        "status": exam.status.value,
    }
