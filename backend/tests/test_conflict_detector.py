from datetime import date

from schoolsched.services.allocations import Allocation, ResourceKind, class_section_key, teacher_key
from schoolsched.services.conflict_detector import find_conflict, shared_resources


def weekly(start, end, *, id=None, teacher="t1", section="s1", active=True, day="Monday", kind="subject"):
    return Allocation(
        id=id,
        school_id="school-1",
        class_id="c1",
        section_id=section,
        kind=kind,
        teacher_id=teacher,
        day=day,
        start_time=start,
        end_time=end,
        active=active,
    )


def exam(start, end, *, id=None, teacher="t1", section="s1", on=date(2024, 3, 4)):
    return Allocation(
        id=id,
        school_id="school-1",
        class_id="c1",
        section_id=section,
        kind="midterm",
        teacher_id=teacher,
        day=on.strftime("%A"),
        exam_date=on,
        start_time=start,
        end_time=end,
    )


def test_teacher_overlap_is_reported():
    existing = weekly("09:00", "10:00", id="row-1", section="s2")
    candidate = weekly("09:30", "10:30")

    assert find_conflict(candidate, [existing]) is existing


def test_class_section_overlap_is_reported_for_different_teachers():
    existing = weekly("09:00", "10:00", id="row-1", teacher="t2")

    assert find_conflict(weekly("09:30", "10:30"), [existing]) is existing


def test_touching_allocations_are_not_conflicts():
    existing = weekly("09:00", "10:00", id="row-1")

    assert find_conflict(weekly("10:00", "11:00"), [existing]) is None


def test_unrelated_resources_are_ignored():
    existing = weekly("09:00", "10:00", id="row-1", teacher="t2", section="s2")

    assert find_conflict(weekly("09:00", "10:00"), [existing]) is None


def test_other_days_are_ignored():
    existing = weekly("09:00", "10:00", id="row-1", day="Tuesday")

    assert find_conflict(weekly("09:00", "10:00"), [existing]) is None


def test_inactive_and_self_rows_are_skipped():
    inactive = weekly("09:00", "10:00", id="row-1", active=False)
    itself = weekly("09:00", "10:00", id="row-2")
    candidate = weekly("09:30", "10:30", id="row-2")

    assert find_conflict(candidate, [inactive, itself]) is None


def test_weekly_and_exam_allocations_never_collide():
    assert find_conflict(exam("09:00", "10:00"), [weekly("09:00", "10:00", id="row-1")]) is None


def test_exam_conflicts_only_on_the_same_date():
    existing = exam("09:00", "11:00", id="exam-1")

    assert find_conflict(exam("10:00", "12:00"), [existing]) is existing
    assert find_conflict(exam("10:00", "12:00", on=date(2024, 3, 5)), [existing]) is None


def test_first_conflict_in_pool_order_wins():
    first = weekly("08:30", "09:30", id="row-1")
    second = weekly("09:15", "10:15", id="row-2")

    assert find_conflict(weekly("09:00", "10:00"), [first, second]) is first
    assert find_conflict(weekly("09:00", "10:00"), [second, first]) is second


def test_break_rows_without_teacher_only_block_their_section():
    lunch = weekly("12:00", "12:30", id="row-1", teacher=None, kind="break")

    assert find_conflict(weekly("12:00", "13:00"), [lunch]) is lunch
    assert find_conflict(weekly("12:00", "13:00", section="s2"), [lunch]) is None


def test_shared_resources_lists_common_calendars():
    a = weekly("09:00", "10:00")
    b = weekly("09:00", "10:00", section="s2")

    assert shared_resources(a, b) == [teacher_key("school-1", "t1", "Monday")]
    assert class_section_key("school-1", "c1", "s1", "Monday").kind is ResourceKind.class_section
