import pytest
from sqlalchemy import func, select

from schoolsched.core.exceptions import ConflictError, InvalidRange, ReferentialError, ResourceNotFoundError
from schoolsched.models.activity_log import ActivityLog
from schoolsched.models.notification import Notification
from schoolsched.models.schedule import Schedule
from schoolsched.schemas.schedule import ScheduleRequest, ScheduleUpdate
from schoolsched.services.notifications import ScheduleNotifier
from schoolsched.services.weekly_schedule import WeeklyScheduleService


def subject_request(school, *, sections=None, teacher=None, subject=None, day="Monday", start="09:00", end="10:00"):
    return ScheduleRequest(
        classId=school.class1_id,
        sectionIds=sections or [school.class1_a_id],
        type="subject",
        subjectId=subject or school.math_id,
        teacherId=teacher or school.teacher_id,
        day=day,
        startTime=start,
        endTime=end,
    )


def active_rows(db):
    return db.execute(select(func.count()).select_from(Schedule).where(Schedule.is_active.is_(True))).scalar_one()


def test_batch_fans_out_one_row_per_section(db_session, school):
    service = WeeklyScheduleService(db_session)

    rows = service.create_batch(
        school.id,
        [
            ScheduleRequest(
                classId=school.class1_id,
                sectionIds=[school.class1_a_id, school.class1_b_id],
                type="break",
                day="Monday",
                startTime="12:00",
                endTime="12:30",
            )
        ],
    )

    assert sorted(row.section_id for row in rows) == sorted([school.class1_a_id, school.class1_b_id])
    assert all(row.subject_id is None and row.teacher_id is None for row in rows)
    assert active_rows(db_session) == 2


def test_conflicting_batch_persists_nothing(db_session, school):
    service = WeeklyScheduleService(db_session)
    service.create_batch(school.id, [subject_request(school)])

    with pytest.raises(ConflictError) as exc_info:
        service.create_batch(
            school.id,
            [
                subject_request(school, day="Tuesday"),
                subject_request(school, day="Wednesday"),
                subject_request(school, teacher=school.other_teacher_id, start="10:00", end="11:00"),
                subject_request(school, teacher=school.teacher_id, sections=[school.class1_b_id], start="09:30", end="10:30"),
            ],
        )

    message = exc_info.value.message
    assert "Schedule #4" in message
    assert "Alice Teacher" in message
    assert "Math" in message and "09:00" in message and "10:00" in message
    assert exc_info.value.details["request_index"] == 3
    assert active_rows(db_session) == 1


def test_touching_slot_is_accepted_after_existing_lesson(db_session, school):
    service = WeeklyScheduleService(db_session)
    service.create_batch(school.id, [subject_request(school)])

    rows = service.create_batch(school.id, [subject_request(school, start="10:00", end="11:00")])

    assert len(rows) == 1
    assert active_rows(db_session) == 2


def test_requests_in_the_same_batch_are_checked_against_each_other(db_session, school):
    service = WeeklyScheduleService(db_session)

    with pytest.raises(ConflictError) as exc_info:
        service.create_batch(
            school.id,
            [
                subject_request(school),
                subject_request(school, sections=[school.class1_b_id], subject=school.science_id, start="09:45", end="10:45"),
            ],
        )

    details = exc_info.value.details
    assert {details["request_index"], details["conflicting_request_index"]} == {0, 1}
    assert active_rows(db_session) == 0


def test_fan_out_siblings_share_a_teacher_without_conflict(db_session, school):
    service = WeeklyScheduleService(db_session)

    rows = service.create_batch(
        school.id,
        [subject_request(school, sections=[school.class1_a_id, school.class1_b_id])],
    )

    assert len(rows) == 2


def test_overnight_slot_blocks_late_evening(db_session, school):
    service = WeeklyScheduleService(db_session)
    service.create_batch(school.id, [subject_request(school, start="22:00", end="02:00")])

    with pytest.raises(ConflictError):
        service.create_batch(school.id, [subject_request(school, sections=[school.class1_b_id], start="23:00", end="23:30")])


def test_unknown_class_and_foreign_section_are_rejected(db_session, school):
    service = WeeklyScheduleService(db_session)
    request = subject_request(school)

    with pytest.raises(ReferentialError) as missing:
        service.create_batch(school.id, [request.model_copy(update={"class_id": "nope"})])
    assert missing.value.status_code == 404

    with pytest.raises(ReferentialError) as foreign:
        service.create_batch(school.id, [request.model_copy(update={"section_ids": [school.class2_a_id]})])
    assert foreign.value.status_code == 400


def test_subject_from_another_class_is_rejected(db_session, school):
    service = WeeklyScheduleService(db_session)

    with pytest.raises(ReferentialError) as exc_info:
        service.create_batch(school.id, [subject_request(school, subject=school.english_id)])

    assert exc_info.value.status_code == 400


def test_non_teacher_cannot_be_assigned(db_session, school):
    service = WeeklyScheduleService(db_session)

    with pytest.raises(ReferentialError) as exc_info:
        service.create_batch(school.id, [subject_request(school, teacher=school.student_id)])

    assert exc_info.value.status_code == 404


def test_other_school_cannot_see_the_class(db_session, school, other_school):
    service = WeeklyScheduleService(db_session)

    with pytest.raises(ReferentialError):
        service.create_batch(other_school.id, [subject_request(school)])


def test_zero_length_slot_is_rejected(db_session, school):
    service = WeeklyScheduleService(db_session)

    with pytest.raises(InvalidRange):
        service.create_batch(school.id, [subject_request(school, start="09:00", end="09:00")])


def test_update_revalidates_against_other_rows(db_session, school):
    service = WeeklyScheduleService(db_session)
    first = service.create_batch(school.id, [subject_request(school)])[0]
    second = service.create_batch(school.id, [subject_request(school, start="11:00", end="12:00")])[0]

    with pytest.raises(ConflictError):
        service.update(school.id, second.id, ScheduleUpdate(startTime="09:30"))

    db_session.refresh(second)
    assert second.start_time == "11:00"

    moved = service.update(school.id, first.id, ScheduleUpdate(startTime="08:30", endTime="09:30"))
    assert (moved.start_time, moved.end_time) == ("08:30", "09:30")


def test_update_to_break_clears_subject_and_teacher(db_session, school):
    service = WeeklyScheduleService(db_session)
    row = service.create_batch(school.id, [subject_request(school)])[0]

    updated = service.update(school.id, row.id, ScheduleUpdate(type="break"))

    assert updated.subject_id is None
    assert updated.teacher_id is None


def test_soft_delete_is_idempotent(db_session, school):
    service = WeeklyScheduleService(db_session)
    row = service.create_batch(school.id, [subject_request(school)])[0]

    first = service.soft_delete(school.id, row.id)
    second = service.soft_delete(school.id, row.id)

    assert first.already_deleted is False
    assert second.already_deleted is True
    assert active_rows(db_session) == 0
    assert db_session.get(Schedule, row.id) is not None

    # The freed slot can be booked again.
    assert service.create_batch(school.id, [subject_request(school)])


def test_deleted_rows_cannot_be_updated_and_unknown_ids_fail(db_session, school):
    service = WeeklyScheduleService(db_session)
    row = service.create_batch(school.id, [subject_request(school)])[0]
    service.soft_delete(school.id, row.id)

    with pytest.raises(ResourceNotFoundError):
        service.update(school.id, row.id, ScheduleUpdate(startTime="08:00"))
    with pytest.raises(ResourceNotFoundError):
        service.soft_delete(school.id, "missing")


def test_changes_are_audited_and_teacher_is_notified(db_session, school):
    service = WeeklyScheduleService(db_session)
    row = service.create_batch(school.id, [subject_request(school)])[0]

    actions = list(db_session.execute(select(ActivityLog.action).where(ActivityLog.entity_id == row.id)).scalars())
    assert actions == ["schedule.create"]
    notified = list(db_session.execute(select(Notification.user_id)).scalars())
    assert notified == [school.teacher_id]


def test_failing_notifier_does_not_block_creation(db_session, school, monkeypatch):
    notifier = ScheduleNotifier(db_session)

    def explode(*args, **kwargs):
        raise RuntimeError("mail server down")

    monkeypatch.setattr(notifier, "notify_timetable_changed", explode)
    service = WeeklyScheduleService(db_session, notifier=notifier)

    rows = service.create_batch(school.id, [subject_request(school)])

    assert len(rows) == 1
    assert active_rows(db_session) == 1


def test_conflict_names_the_earliest_inserted_row(db_session, school):
    service = WeeklyScheduleService(db_session)
    first, second = service.create_batch(
        school.id,
        [
            subject_request(school),
            subject_request(school, sections=[school.class1_b_id], start="10:00", end="11:00"),
        ],
    )
    assert first.insert_seq < second.insert_seq

    with pytest.raises(ConflictError) as exc_info:
        service.create_batch(school.id, [subject_request(school, subject=school.science_id, start="09:30", end="10:30")])

    assert exc_info.value.details["conflict_id"] == first.id
