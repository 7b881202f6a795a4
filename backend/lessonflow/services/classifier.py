from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable
from dataclasses import dataclass, field
from zoneinfo import ZoneInfo

from lessonflow.models.lesson import Lesson, LessonStatus
from lessonflow.schemas.scheduling import ConflictRecord, PlannedOccurrence, StudentConflictGroup
from lessonflow.services.timeutils import as_utc, format_for_display, format_short_date, local_date_and_time


@dataclass
class DuplicateMatch:
    planned: PlannedOccurrence
    existing: Lesson


@dataclass
class Classification:
    clean: list[PlannedOccurrence] = field(default_factory=list)
    duplicates: list[DuplicateMatch] = field(default_factory=list)
    conflicting: list[PlannedOccurrence] = field(default_factory=list)
    conflicts: list[ConflictRecord] = field(default_factory=list)

    @property
    def has_conflicts(self) -> bool:
        return bool(self.conflicts)

    @property
    def conflict_ids(self) -> list[str]:
        return [record.lesson_id for record in self.conflicts]

    def grouped_conflicts(self) -> list[StudentConflictGroup]:
        groups: dict[str, StudentConflictGroup] = {}
        for record in self.conflicts:
            group = groups.get(record.student_id)
            if group is None:
                group = StudentConflictGroup(student_id=record.student_id, student_name=record.student_name)
                groups[record.student_id] = group
            group.lessons.append(record)
        for group in groups.values():
            group.lessons.sort(key=lambda item: item.scheduled_time)
        return sorted(groups.values(), key=lambda item: (item.student_name, item.student_id))


def conflict_record(lesson: Lesson, tz: ZoneInfo) -> ConflictRecord:
    lesson_date, time_of_day = local_date_and_time(lesson.scheduled_time, tz)
    return ConflictRecord(
        lesson_id=lesson.id,
        student_id=lesson.student_id,
        student_name=lesson.student_name,
        scheduled_time=as_utc(lesson.scheduled_time),
        duration_min=lesson.duration_min,
        status=LessonStatus(lesson.status).value,
        lesson_date=lesson_date,
        time_of_day=time_of_day,
        formatted_date=format_short_date(lesson_date),
        formatted_time=format_for_display(time_of_day),
    )


def classify_occurrences(
    planned: Iterable[PlannedOccurrence],
    existing: Iterable[Lesson],
    tz: ZoneInfo,
) -> Classification:
    """Split planned occurrences into clean, duplicate and conflicting against persisted lessons.

    Existing lessons are bucketed by ``(student_id, local date)``. An existing
    lesson at the planned time-of-day makes the occurrence a duplicate; any
    lesson at another time that day is recorded as a conflict, even when an
    exact match exists alongside it.
    """
    by_student_day: dict[tuple[str, object], list[tuple[str, Lesson]]] = defaultdict(list)
    for lesson in existing:
        lesson_date, time_of_day = local_date_and_time(lesson.scheduled_time, tz)
        by_student_day[(lesson.student_id, lesson_date)].append((time_of_day, lesson))

    result = Classification()
    seen_conflicts: set[str] = set()
    for occurrence in planned:
        same_day = by_student_day.get((occurrence.student_id, occurrence.lesson_date), [])
        if not same_day:
            result.clean.append(occurrence)
            continue

        exact = next((lesson for time_of_day, lesson in same_day if time_of_day == occurrence.time_of_day), None)
        others = [lesson for time_of_day, lesson in same_day if time_of_day != occurrence.time_of_day]
        for lesson in others:
            if lesson.id not in seen_conflicts:
                seen_conflicts.add(lesson.id)
                result.conflicts.append(conflict_record(lesson, tz))

        if exact is not None:
            result.duplicates.append(DuplicateMatch(planned=occurrence, existing=exact))
        else:
            result.conflicting.append(occurrence)

    return result
