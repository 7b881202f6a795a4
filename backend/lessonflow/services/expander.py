from __future__ import annotations

from collections.abc import Iterable
from datetime import date, timedelta
from zoneinfo import ZoneInfo

from lessonflow.models.student import Student
from lessonflow.schemas.scheduling import PlannedOccurrence
from lessonflow.services.timeutils import (
    DAY_OFFSETS,
    format_for_display,
    iter_week_starts,
    local_date_and_time,
    local_datetime,
    occurrence_end,
)


def schedulable_students(students: Iterable[Student]) -> list[Student]:
    return [student for student in students if student.is_schedulable and student.lesson_day in DAY_OFFSETS]


def expand_schedule(
    students: Iterable[Student],
    start_date: date,
    end_date: date,
    *,
    teacher_id: str,
    school_id: str,
    tz: ZoneInfo,
) -> list[PlannedOccurrence]:
    """One occurrence per schedulable student per Monday-start week, clipped to the inclusive range."""
    if end_date < start_date:
        return []

    weeks = list(iter_week_starts(start_date, end_date))
    occurrences: list[PlannedOccurrence] = []
    for student in schedulable_students(students):
        offset = DAY_OFFSETS[student.lesson_day]
        for week in weeks:
            lesson_date = week + timedelta(days=offset)
            if lesson_date < start_date or lesson_date > end_date:
                continue
            scheduled_time = local_datetime(lesson_date, student.lesson_time, tz)
            # Inside a DST gap the stored wall clock is later than the slot.
            _, time_of_day = local_date_and_time(scheduled_time, tz)
            occurrences.append(
                PlannedOccurrence(
                    student_id=student.id,
                    student_name=student.name,
                    teacher_id=teacher_id,
                    school_id=school_id,
                    scheduled_time=scheduled_time,
                    end_time=occurrence_end(scheduled_time, student.lesson_duration),
                    duration_min=student.lesson_duration,
                    lesson_date=lesson_date,
                    day_of_week=student.lesson_day,
                    time_of_day=time_of_day,
                    time_display=format_for_display(time_of_day),
                )
            )

    occurrences.sort(key=lambda item: (item.scheduled_time, item.student_name, item.student_id))
    return occurrences


def count_weeks(start_date: date, end_date: date) -> int:
    return len(list(iter_week_starts(start_date, end_date))) if end_date >= start_date else 0
