from datetime import date

import pytest
from sqlalchemy import select

from schoolsched.core.exceptions import ConflictError, DuplicateSubjectError, PastExamDateError, ResourceNotFoundError
from schoolsched.models.activity_log import ActivityLog
from schoolsched.models.exam_schedule import ExamSchedule, ExamStatus
from schoolsched.models.notification import Notification
from schoolsched.models.schedule import Weekday
from schoolsched.schemas.exam_schedule import ExamScheduleBatchCreate, ExamScheduleUpdate
from schoolsched.services.exam_schedule import ExamScheduleService
from schoolsched.services.notifications import ScheduleNotifier

EXAM_DAY = "2024-03-04"  # a Monday


def exam_item(school, *, subject=None, section=None, teacher=None, exam_date=EXAM_DAY, start="09:00", end="11:00"):
    return {
        "classId": school.class1_id,
        "sectionId": section or school.class1_a_id,
        "subjectId": subject or school.math_id,
        "teacherId": teacher or school.teacher_id,
        "examDate": exam_date,
        "startTime": start,
        "endTime": end,
    }


def batch(*items, exam_type="midterm", year=2024):
    return ExamScheduleBatchCreate(type=exam_type, year=year, schedules=list(items))


def test_batch_is_partially_successful(db_session, school):
    service = ExamScheduleService(db_session)
    existing = service.create_batch(school.id, batch(exam_item(school))).created[0]

    result = service.create_batch(
        school.id,
        batch(
            exam_item(school, section=school.class1_b_id, exam_date="2024-03-05"),
            exam_item(school, subject=school.science_id, exam_date="2024-03-06"),
            exam_item(school, subject=school.math_id, exam_date="2024-03-07"),
            exam_item(school, section=school.class1_b_id, subject=school.science_id, exam_date="2024-03-08"),
        ),
    )

    assert len(result.created) == 3
    assert len(result.errors) == 1
    error = result.errors[0]
    assert error.index == 2
    assert existing.id in error.message
    assert error.details["existing_id"] == existing.id
    assert error.item["examDate"] == "2024-03-07"
    assert db_session.query(ExamSchedule).count() == 4


def test_same_subject_is_allowed_in_another_exam_cycle(db_session, school):
    service = ExamScheduleService(db_session)
    service.create_batch(school.id, batch(exam_item(school)))

    final = service.create_batch(school.id, batch(exam_item(school, exam_date="2024-06-03"), exam_type="final"))
    next_year = service.create_batch(school.id, batch(exam_item(school, exam_date="2025-03-03"), year=2025))

    assert len(final.created) == 1
    assert len(next_year.created) == 1


def test_teacher_cannot_invigilate_two_overlapping_exams(db_session, school):
    service = ExamScheduleService(db_session)
    service.create_batch(school.id, batch(exam_item(school)))

    result = service.create_batch(
        school.id,
        batch(exam_item(school, subject=school.science_id, section=school.class1_b_id, start="10:00", end="12:00")),
    )

    assert result.created == []
    assert "Alice Teacher" in result.errors[0].message
    assert result.errors[0].details["resource"] == "teacher"
    assert result.failed_completely


def test_class_section_cannot_sit_two_overlapping_exams(db_session, school):
    service = ExamScheduleService(db_session)
    service.create_batch(school.id, batch(exam_item(school)))

    result = service.create_batch(
        school.id,
        batch(exam_item(school, subject=school.science_id, teacher=school.other_teacher_id, start="10:30", end="11:30")),
    )

    assert result.errors[0].details["resource"] == "class_section"


def test_exams_on_other_dates_or_back_to_back_do_not_conflict(db_session, school):
    service = ExamScheduleService(db_session)
    service.create_batch(school.id, batch(exam_item(school)))

    result = service.create_batch(
        school.id,
        batch(
            exam_item(school, subject=school.science_id, start="11:00", end="12:00"),
            exam_item(school, section=school.class1_b_id, exam_date="2024-03-05"),
        ),
    )

    assert len(result.created) == 2


def test_cancelled_exams_free_their_slot(db_session, school):
    service = ExamScheduleService(db_session)
    exam = service.create_batch(school.id, batch(exam_item(school))).created[0]
    service.update(school.id, exam.id, ExamScheduleUpdate(status="cancelled"))

    result = service.create_batch(school.id, batch(exam_item(school, subject=school.science_id)))

    assert len(result.created) == 1


def test_day_is_derived_from_exam_date(db_session, school):
    service = ExamScheduleService(db_session)

    exam = service.create_batch(school.id, batch(exam_item(school, exam_date="2024-03-04T08:00:00Z"))).created[0]

    assert exam.exam_date == date(2024, 3, 4)
    assert exam.day is Weekday.monday
    assert exam.status is ExamStatus.scheduled


def test_update_start_time_into_overlap_is_rejected(db_session, school):
    service = ExamScheduleService(db_session)
    created = service.create_batch(
        school.id,
        batch(exam_item(school), exam_item(school, subject=school.science_id, start="12:00", end="14:00")),
    ).created
    science = created[1]

    with pytest.raises(ConflictError):
        service.update(school.id, science.id, ExamScheduleUpdate(startTime="10:00"))

    db_session.refresh(science)
    assert (science.start_time, science.end_time) == ("12:00", "14:00")


def test_update_excludes_the_exam_itself(db_session, school):
    service = ExamScheduleService(db_session)
    exam = service.create_batch(school.id, batch(exam_item(school))).created[0]

    result = service.update(school.id, exam.id, ExamScheduleUpdate(startTime="09:30", endTime="11:30"))

    assert (result.schedule.start_time, result.schedule.end_time) == ("09:30", "11:30")
    assert result.changes == ["Start time changed from 09:00 to 09:30", "End time changed from 11:00 to 11:30"]


def test_update_moving_date_recomputes_day(db_session, school):
    service = ExamScheduleService(db_session)
    exam = service.create_batch(school.id, batch(exam_item(school))).created[0]

    result = service.update(school.id, exam.id, ExamScheduleUpdate(examDate="2024-03-06"))

    assert result.schedule.day is Weekday.wednesday
    assert result.changes == ["Exam date changed from 2024-03-04 to 2024-03-06"]


def test_update_into_existing_subject_slot_is_a_duplicate(db_session, school):
    service = ExamScheduleService(db_session)
    created = service.create_batch(
        school.id,
        batch(exam_item(school), exam_item(school, subject=school.science_id, exam_date="2024-03-05")),
    ).created

    with pytest.raises(DuplicateSubjectError) as exc_info:
        service.update(school.id, created[1].id, ExamScheduleUpdate(subjectId=school.math_id))

    assert exc_info.value.details["existing_id"] == created[0].id


def test_update_unknown_exam_is_not_found(db_session, school):
    with pytest.raises(ResourceNotFoundError):
        ExamScheduleService(db_session).update(school.id, "missing", ExamScheduleUpdate(startTime="10:00"))


def test_create_notifies_teacher_and_students(db_session, school):
    service = ExamScheduleService(db_session)
    service.create_batch(school.id, batch(exam_item(school)))

    recipients = set(db_session.execute(select(Notification.user_id)).scalars())

    assert recipients == {school.teacher_id, school.student_id}


def test_delete_survives_a_failing_notifier(db_session, school, monkeypatch):
    notifier = ScheduleNotifier(db_session)
    service = ExamScheduleService(db_session, notifier=notifier)
    exam = service.create_batch(school.id, batch(exam_item(school))).created[0]
    exam_id = exam.id

    def explode(*args, **kwargs):
        raise RuntimeError("notification backend unavailable")

    monkeypatch.setattr(notifier, "notify_cancelled", explode)

    snapshot = service.delete(school.id, exam_id)

    assert snapshot["id"] == exam_id
    assert db_session.get(ExamSchedule, exam_id) is None
    actions = list(
        db_session.execute(select(ActivityLog.action).where(ActivityLog.entity_id == exam_id)).scalars()
    )
    assert sorted(actions) == ["exam_schedule.create", "exam_schedule.delete"]


def test_delete_sends_cancellation_notice(db_session, school):
    service = ExamScheduleService(db_session)
    exam = service.create_batch(school.id, batch(exam_item(school))).created[0]

    service.delete(school.id, exam.id)

    titles = list(db_session.execute(select(Notification.title).where(Notification.user_id == school.student_id)).scalars())
    assert sorted(titles) == ["Exam Cancelled", "Exam Scheduled"]


def test_conflict_names_the_earliest_scheduled_exam(db_session, school):
    service = ExamScheduleService(db_session)
    first, second = service.create_batch(
        school.id,
        batch(
            exam_item(school, start="09:00", end="10:00"),
            exam_item(school, section=school.class1_b_id, start="10:00", end="11:00"),
        ),
    ).created

    result = service.create_batch(
        school.id,
        batch(exam_item(school, subject=school.science_id, start="09:30", end="10:30")),
    )

    assert first.insert_seq < second.insert_seq
    assert result.errors[0].details["conflict_id"] == first.id


def test_past_exam_date_is_rejected_per_item(db_session, school):
    service = ExamScheduleService(db_session, today=lambda: date(2024, 3, 5))

    result = service.create_batch(
        school.id,
        batch(
            exam_item(school),
            exam_item(school, subject=school.science_id, exam_date="2024-03-05"),
        ),
    )

    assert [exam.exam_date for exam in result.created] == [date(2024, 3, 5)]
    assert result.errors[0].index == 0
    assert result.errors[0].message == "Exam date cannot be in the past"
    assert result.errors[0].details == {"exam_date": "2024-03-04"}


def test_update_cannot_move_exam_into_the_past(db_session, school):
    service = ExamScheduleService(db_session, today=lambda: date(2024, 3, 4))
    exam = service.create_batch(school.id, batch(exam_item(school))).created[0]

    with pytest.raises(PastExamDateError):
        service.update(school.id, exam.id, ExamScheduleUpdate(examDate="2024-03-01"))

    later = ExamScheduleService(db_session, today=lambda: date(2024, 3, 10))
    result = later.update(school.id, exam.id, ExamScheduleUpdate(status="completed"))
    assert result.schedule.status is ExamStatus.completed


def test_update_conflict_uses_names_when_references_are_unchanged(db_session, school):
    service = ExamScheduleService(db_session)
    created = service.create_batch(
        school.id,
        batch(exam_item(school), exam_item(school, subject=school.science_id, start="12:00", end="14:00")),
    ).created

    with pytest.raises(ConflictError) as exc_info:
        service.update(school.id, created[1].id, ExamScheduleUpdate(startTime="10:00"))

    assert "Alice Teacher" in exc_info.value.message
    assert school.teacher_id not in exc_info.value.message
