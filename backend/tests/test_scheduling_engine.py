from collections import Counter
from datetime import date

import pytest
from sqlalchemy import select

from conftest import OTHER_TEACHER_ID, TEACHER_ID, utc
from lessonflow.core.config import Settings
from lessonflow.core.exceptions import (
    ConflictDecisionRequired,
    LessonCommitError,
    SchedulingInProgressError,
    SchedulingValidationError,
    StoreError,
)
from lessonflow.db.store import TableStore
from lessonflow.models import CalendarEvent, Lesson
from lessonflow.schemas.scheduling import ScheduleDecision
from lessonflow.services.scheduling import LessonScheduler
from lessonflow.services.single_flight import scheduling_in_progress, scheduling_slot
from lessonflow.services.timeutils import as_utc

JAN_START = date(2024, 1, 1)
JAN_END = date(2024, 1, 31)


class FailingCalendarStore(TableStore):
    def insert_batch(self, table, rows):
        if table == "calendar_events":
            raise StoreError("Failed to insert calendar_events")
        return super().insert_batch(table, rows)

    def delete_where(self, table, filters):
        if table == "calendar_events":
            raise StoreError("Failed to delete calendar_events")
        return super().delete_where(table, filters)


class FailingLessonInsertStore(TableStore):
    def __init__(self, db, fail_after):
        super().__init__(db)
        self._remaining = fail_after

    def insert_batch(self, table, rows):
        if table == "lessons":
            if self._remaining <= 0:
                raise StoreError("Failed to insert lessons")
            self._remaining -= 1
        return super().insert_batch(table, rows)


class FailingLessonDeleteStore(TableStore):
    def delete_where(self, table, filters):
        if table == "lessons":
            raise StoreError("Failed to delete lessons")
        return super().delete_where(table, filters)


def settings(**overrides):
    values = {"school_timezone": "UTC", "lesson_insert_batch_size": 50, "max_schedule_range_days": 366}
    values.update(overrides)
    return Settings(**values)


def stored_lessons(db_session):
    db_session.expire_all()
    return list(db_session.execute(select(Lesson).order_by(Lesson.scheduled_time)).scalars().unique())


def stored_events(db_session):
    db_session.expire_all()
    return list(db_session.execute(select(CalendarEvent)).scalars())


@pytest.fixture()
def ava(make_student):
    return make_student("Ava Stone", "Tuesday", "15:00", 30)


def test_clean_run_creates_lessons_and_calendar_events(store, teacher_context, ava, db_session):
    result = LessonScheduler(store, teacher_context, settings=settings()).run(JAN_START, JAN_END)

    assert result.created == 5
    assert result.skipped == 0
    assert result.total == 5
    assert result.warnings == []
    assert result.message == "Successfully scheduled 5 new lesson(s)."
    assert [item.lesson_date for item in result.added_lessons] == [
        date(2024, 1, 2),
        date(2024, 1, 9),
        date(2024, 1, 16),
        date(2024, 1, 23),
        date(2024, 1, 30),
    ]

    lessons = stored_lessons(db_session)
    assert [as_utc(lesson.scheduled_time) for lesson in lessons][1] == utc(2024, 1, 9, 15, 0)
    assert all(lesson.duration_min == 30 for lesson in lessons)

    events = stored_events(db_session)
    assert sorted(event.linked_id for event in events) == sorted(lesson.id for lesson in lessons)
    assert {event.title for event in events} == {"Lesson with Ava Stone"}
    assert {event.location for event in events} == {"Online"}
    assert all(as_utc(event.end_time) == as_utc(event.start_time).replace(minute=30) for event in events)


def test_second_run_is_idempotent(store, teacher_context, ava, db_session):
    scheduler = LessonScheduler(store, teacher_context, settings=settings())
    scheduler.run(JAN_START, JAN_END)

    again = scheduler.run(JAN_START, JAN_END)

    assert again.created == 0
    assert again.skipped == 5
    assert {item.reason for item in again.skipped_lessons} == {"duplicate"}
    assert again.message == "All lessons already exist for the selected date range."
    assert len(stored_lessons(db_session)) == 5
    assert len(stored_events(db_session)) == 5


def test_slot_inside_a_dst_gap_is_not_scheduled_twice(store, teacher_context, make_student, db_session):
    make_student("Ava Stone", "Sunday", "02:30", 30)
    scheduler = LessonScheduler(store, teacher_context, settings=settings(school_timezone="America/New_York"))

    first = scheduler.run(date(2024, 3, 4), date(2024, 3, 17))
    again = scheduler.run(date(2024, 3, 4), date(2024, 3, 17))

    assert first.created == 2
    assert again.created == 0
    assert again.skipped == 2
    assert {item.reason for item in again.skipped_lessons} == {"duplicate"}
    assert [as_utc(lesson.scheduled_time) for lesson in stored_lessons(db_session)] == [
        utc(2024, 3, 10, 7, 30),
        utc(2024, 3, 17, 6, 30),
    ]


def test_conflict_without_decision_halts_before_writing(store, teacher_context, ava, make_lesson, db_session):
    make_lesson(ava, utc(2024, 1, 9, 16, 0))

    with pytest.raises(ConflictDecisionRequired) as exc_info:
        LessonScheduler(store, teacher_context, settings=settings()).run(JAN_START, JAN_END)

    details = exc_info.value.details
    assert exc_info.value.status_code == 409
    assert details["conflict_count"] == 1
    assert details["conflicts"][0]["student_name"] == "Ava Stone"
    assert details["conflicts"][0]["lessons"][0]["formatted_time"] == "4:00 PM"
    assert len(stored_lessons(db_session)) == 1
    assert stored_events(db_session) == []


def test_keep_inserts_clean_occurrences_and_leaves_the_conflict(store, teacher_context, ava, make_lesson, db_session):
    kept = make_lesson(ava, utc(2024, 1, 9, 16, 0))

    result = LessonScheduler(store, teacher_context, settings=settings()).run(
        JAN_START, JAN_END, ScheduleDecision.keep
    )

    assert result.created == 4
    assert result.replaced == 0
    assert result.withheld == 1
    assert result.total == 5
    assert [(item.lesson_date, item.reason) for item in result.skipped_lessons] == [
        (date(2024, 1, 9), "kept_existing")
    ]
    lessons = stored_lessons(db_session)
    assert len(lessons) == 5
    assert kept.id in {lesson.id for lesson in lessons}
    jan_9 = [lesson for lesson in lessons if as_utc(lesson.scheduled_time).date() == date(2024, 1, 9)]
    assert [as_utc(lesson.scheduled_time) for lesson in jan_9] == [utc(2024, 1, 9, 16, 0)]


def test_replace_deletes_conflicts_and_their_events(
    store, teacher_context, ava, make_lesson, make_event, db_session
):
    replaced = make_lesson(ava, utc(2024, 1, 9, 16, 0))
    replaced_id = replaced.id
    make_event(replaced)

    result = LessonScheduler(store, teacher_context, settings=settings()).run(
        JAN_START, JAN_END, ScheduleDecision.replace
    )

    assert result.created == 5
    assert result.replaced == 1
    assert [item.lesson_id for item in result.deleted_lessons] == [replaced_id]

    lessons = stored_lessons(db_session)
    lesson_ids = {lesson.id for lesson in lessons}
    assert len(lessons) == 5
    assert replaced_id not in lesson_ids
    assert utc(2024, 1, 9, 15, 0) in {as_utc(lesson.scheduled_time) for lesson in lessons}

    events = stored_events(db_session)
    assert len(events) == 5
    assert {event.linked_id for event in events} == lesson_ids


def test_no_student_is_double_booked_after_commit(store, teacher_context, make_student, make_lesson, db_session):
    ava = make_student("Ava Stone", "Tuesday", "15:00", 30)
    ben = make_student("Ben Hart", "Tuesday", "16:00", 45)
    make_lesson(ava, utc(2024, 1, 16, 9, 0))
    make_lesson(ben, utc(2024, 1, 23, 16, 0), duration=45)

    LessonScheduler(store, teacher_context, settings=settings()).run(JAN_START, JAN_END, ScheduleDecision.replace)

    lessons = stored_lessons(db_session)
    per_day = Counter((lesson.student_id, as_utc(lesson.scheduled_time).date()) for lesson in lessons)
    assert max(per_day.values()) == 1
    assert len(lessons) == 10


def test_calendar_failures_become_warnings(db_session, teacher_context, ava, make_lesson):
    make_lesson(ava, utc(2024, 1, 9, 16, 0))
    store = FailingCalendarStore(db_session)

    result = LessonScheduler(store, teacher_context, settings=settings()).run(
        JAN_START, JAN_END, ScheduleDecision.replace
    )

    assert result.created == 5
    assert result.replaced == 1
    assert result.warnings
    assert any("calendar events" in warning for warning in result.warnings)
    assert stored_events(db_session) == []


def test_failed_lesson_batch_surfaces_partial_result(db_session, teacher_context, ava):
    store = FailingLessonInsertStore(db_session, fail_after=1)

    with pytest.raises(LessonCommitError) as exc_info:
        LessonScheduler(store, teacher_context, settings=settings(lesson_insert_batch_size=2)).run(
            JAN_START, JAN_END
        )

    partial = exc_info.value.details["partial_result"]
    assert exc_info.value.status_code == 502
    assert partial["created"] == 2
    assert len(partial["added_lessons"]) == 2
    assert partial["message"] == "Created 2 of 5 lesson(s) before a batch failed."
    assert len(stored_lessons(db_session)) == 2
    assert len(stored_events(db_session)) == 2


def test_failed_conflict_delete_aborts_before_inserting(db_session, teacher_context, ava, make_lesson):
    make_lesson(ava, utc(2024, 1, 9, 16, 0))
    store = FailingLessonDeleteStore(db_session)

    with pytest.raises(LessonCommitError) as exc_info:
        LessonScheduler(store, teacher_context, settings=settings()).run(
            JAN_START, JAN_END, ScheduleDecision.replace
        )

    assert exc_info.value.details["partial_result"]["created"] == 0
    assert len(stored_lessons(db_session)) == 1


def test_batches_respect_the_configured_size(store, teacher_context, make_student, db_session):
    for index in range(3):
        make_student(f"Student {index}", "Monday", f"1{index}:00", 30)

    result = LessonScheduler(store, teacher_context, settings=settings(lesson_insert_batch_size=4)).run(
        JAN_START, JAN_END
    )

    assert result.created == 15
    assert len(stored_events(db_session)) == 15


def test_live_clashes_block_generation(store, teacher_context, make_student):
    make_student("Ava Stone", "Tuesday", "15:00", 30)
    make_student("Ben Hart", "Tuesday", "15:15", 30)

    with pytest.raises(SchedulingValidationError) as exc_info:
        LessonScheduler(store, teacher_context, settings=settings()).run(JAN_START, JAN_END)

    assert len(exc_info.value.details["clashes"]) == 1


def test_no_schedulable_students_is_rejected(store, teacher_context, make_student):
    make_student("Ava Stone", "Tuesday", None, 30)
    make_student("Other Teacher Student", "Tuesday", "15:00", 30, teacher_id=OTHER_TEACHER_ID)

    with pytest.raises(SchedulingValidationError):
        LessonScheduler(store, teacher_context, settings=settings()).run(JAN_START, JAN_END)


def test_range_validation(store, teacher_context, ava):
    scheduler = LessonScheduler(store, teacher_context, settings=settings(max_schedule_range_days=30))

    with pytest.raises(SchedulingValidationError):
        scheduler.run(JAN_END, JAN_START)
    with pytest.raises(SchedulingValidationError):
        scheduler.run(JAN_START, JAN_END)


def test_range_without_any_slot_day_is_rejected(store, teacher_context, ava):
    # 2024-01-03..05 is Wednesday to Friday.
    with pytest.raises(SchedulingValidationError):
        LessonScheduler(store, teacher_context, settings=settings()).run(date(2024, 1, 3), date(2024, 1, 5))


def test_second_concurrent_run_is_refused(store, teacher_context, ava, db_session):
    with scheduling_slot(TEACHER_ID):
        assert scheduling_in_progress(TEACHER_ID)
        with pytest.raises(SchedulingInProgressError):
            LessonScheduler(store, teacher_context, settings=settings()).run(JAN_START, JAN_END)

    assert not scheduling_in_progress(TEACHER_ID)
    assert stored_lessons(db_session) == []


def test_guard_is_released_after_a_failed_run(store, teacher_context, ava, make_lesson):
    make_lesson(ava, utc(2024, 1, 9, 16, 0))

    with pytest.raises(ConflictDecisionRequired):
        LessonScheduler(store, teacher_context, settings=settings()).run(JAN_START, JAN_END)

    assert not scheduling_in_progress(TEACHER_ID)


def test_preview_reports_plan_without_writing(store, teacher_context, ava, make_lesson, db_session):
    make_lesson(ava, utc(2024, 1, 9, 16, 0))
    make_lesson(ava, utc(2024, 1, 16, 15, 0))

    preview = LessonScheduler(store, teacher_context, settings=settings()).preview(JAN_START, JAN_END)

    assert preview.week_count == 5
    assert len(preview.planned) == 5
    assert preview.clean_count == 3
    assert preview.duplicate_count == 1
    assert preview.conflicting_count == 1
    assert [student.planned for student in preview.students] == [5]
    assert preview.conflicts[0].lessons[0].formatted_date == "Jan 9, 2024"
    assert len(stored_lessons(db_session)) == 2
