from __future__ import annotations

from collections import Counter
from datetime import date
import logging
from typing import Any

from lessonflow.core.config import Settings, get_settings
from lessonflow.core.exceptions import (
    LessonCommitError,
    ResourceNotFoundError,
    SchedulingValidationError,
    StoreError,
)
from lessonflow.core.security import TeacherContext
from lessonflow.db.store import TableStore
from lessonflow.models.lesson import Lesson, LessonStatus
from lessonflow.schemas.lesson import (
    DeleteLessonsResult,
    LessonListOut,
    LessonOut,
    LessonQuery,
    RescheduleResult,
)
from lessonflow.services.calendar_sync import CalendarMirror
from lessonflow.services.timeutils import (
    as_utc,
    day_name,
    format_for_display,
    local_date_and_time,
    local_datetime,
    local_day_bounds,
    resolve_timezone,
)

logger = logging.getLogger(__name__)


def lesson_to_out(lesson: Lesson, tz) -> LessonOut:
    lesson_date, time_of_day = local_date_and_time(lesson.scheduled_time, tz)
    return LessonOut(
        id=lesson.id,
        student_id=lesson.student_id,
        student_name=lesson.student_name,
        teacher_id=lesson.teacher_id,
        school_id=lesson.school_id,
        scheduled_time=as_utc(lesson.scheduled_time),
        duration_min=lesson.duration_min,
        status=LessonStatus(lesson.status),
        lesson_date=lesson_date,
        day_of_week=day_name(lesson_date),
        time_display=format_for_display(time_of_day),
    )


def _last_name_key(lesson: Lesson) -> tuple[str, str]:
    name = lesson.student_name.strip().lower()
    parts = name.split()
    return (parts[-1] if parts else "", name)


class LessonService:
    """Everyday operations on stored lessons, each keeping the calendar mirror in step."""

    def __init__(self, store: TableStore, context: TeacherContext, *, settings: Settings | None = None) -> None:
        settings = settings or get_settings()
        self._store = store
        self._context = context
        self._tz = resolve_timezone(settings.school_timezone)
        self._calendar = CalendarMirror(
            store, teacher_id=context.teacher_id, location=settings.calendar_event_location
        )

    def _owned_lessons(self, lesson_ids: list[str]) -> list[Lesson]:
        unique_ids = list(dict.fromkeys(lesson_ids))
        lessons = self._store.list_where(
            "lessons",
            {"id": ["in", unique_ids], "teacher_id": self._context.teacher_id},
            order_by="scheduled_time asc",
        )
        found = {lesson.id for lesson in lessons}
        missing = [lesson_id for lesson_id in unique_ids if lesson_id not in found]
        if missing:
            raise ResourceNotFoundError("Lesson", ", ".join(missing))
        return lessons

    def list_lessons(self, query: LessonQuery) -> LessonListOut:
        filters: dict[str, Any] = {"teacher_id": self._context.teacher_id}
        if query.status is not None:
            filters["status"] = query.status

        bounds = []
        if query.start_date is not None:
            bounds.append([">=", local_day_bounds(query.start_date, query.start_date, self._tz)[0]])
        if query.end_date is not None:
            bounds.append(["<", local_day_bounds(query.end_date, query.end_date, self._tz)[1]])
        if bounds:
            filters["scheduled_time"] = bounds

        if query.search and query.search.strip():
            students = self._store.list_where(
                "students",
                {"teacher_id": self._context.teacher_id, "name": ["like", f"%{query.search.strip()}%"]},
            )
            if not students:
                return LessonListOut(total=0, items=[])
            filters["student_id"] = ["in", [student.id for student in students]]

        reverse = query.direction == "desc"
        if query.sort_by == "student_name":
            lessons = self._store.list_where("lessons", filters, order_by="scheduled_time asc")
            lessons.sort(key=_last_name_key, reverse=reverse)
        else:
            lessons = self._store.list_where(
                "lessons",
                filters,
                order_by=[f"{query.sort_by} {query.direction}", "scheduled_time asc"],
            )

        page = lessons[query.offset:query.offset + query.limit]
        return LessonListOut(total=len(lessons), items=[lesson_to_out(lesson, self._tz) for lesson in page])

    def update_status(self, lesson_id: str, status: LessonStatus) -> LessonOut:
        updated = self._store.update_where(
            "lessons",
            {"id": lesson_id, "teacher_id": self._context.teacher_id},
            {"status": status},
        )
        if not updated:
            raise ResourceNotFoundError("Lesson", lesson_id)
        logger.info(
            "LESSON STATUS UPDATE | teacher_id=%s | lesson_id=%s | status=%s",
            self._context.teacher_id,
            lesson_id,
            status.value,
        )
        return lesson_to_out(updated[0], self._tz)

    def _check_reschedule_targets(self, lessons: list[Lesson], targets: dict[str, Any]) -> None:
        landing = Counter((lesson.student_id, targets[lesson.id]) for lesson in lessons)
        collisions = [key for key, count in landing.items() if count > 1]

        moving = {lesson.id for lesson in lessons}
        student_ids = sorted({lesson.student_id for lesson in lessons})
        stored = self._store.list_where(
            "lessons",
            {
                "teacher_id": self._context.teacher_id,
                "student_id": ["in", student_ids],
                "scheduled_time": ["in", sorted(set(targets.values()))],
            },
        )
        for other in stored:
            if other.id in moving:
                continue
            key = (other.student_id, as_utc(other.scheduled_time))
            if key in landing:
                collisions.append(key)

        if collisions:
            raise SchedulingValidationError(
                "Rescheduling would place two lessons for the same student at the same time",
                details={
                    "collisions": [
                        {"student_id": student_id, "scheduled_time": when.isoformat()}
                        for student_id, when in sorted(set(collisions))
                    ]
                },
            )

    def reschedule_lessons(self, lesson_ids: list[str], new_date: date) -> RescheduleResult:
        lessons = self._owned_lessons(lesson_ids)
        targets = {
            lesson.id: local_datetime(new_date, local_date_and_time(lesson.scheduled_time, self._tz)[1], self._tz)
            for lesson in lessons
        }
        self._check_reschedule_targets(lessons, targets)

        logger.info(
            "LESSON RESCHEDULE START | teacher_id=%s | lessons=%s | new_date=%s",
            self._context.teacher_id,
            len(lessons),
            new_date,
        )
        warnings = self._calendar.remove_for_lessons([lesson.id for lesson in lessons])
        moved: list[Lesson] = []
        for lesson in lessons:
            try:
                moved.extend(
                    self._store.update_where(
                        "lessons",
                        {"id": lesson.id, "teacher_id": self._context.teacher_id},
                        {"scheduled_time": targets[lesson.id]},
                    )
                )
            except StoreError as exc:
                _, rebuild_warnings = self._calendar.rebuild_for_lessons(moved)
                raise LessonCommitError(
                    f"Failed to reschedule lessons: {exc.message}",
                    partial_result={
                        "new_date": new_date.isoformat(),
                        "rescheduled": len(moved),
                        "requested": len(lessons),
                        "lesson_ids": [item.id for item in moved],
                        "warnings": warnings + rebuild_warnings,
                    },
                ) from exc

        _, rebuild_warnings = self._calendar.rebuild_for_lessons(moved)
        warnings.extend(rebuild_warnings)
        logger.info(
            "LESSON RESCHEDULE COMPLETE | teacher_id=%s | lessons=%s | warnings=%s",
            self._context.teacher_id,
            len(moved),
            len(warnings),
        )
        return RescheduleResult(
            new_date=new_date,
            rescheduled=[lesson_to_out(lesson, self._tz) for lesson in moved],
            warnings=warnings,
        )

    def delete_lessons(self, lesson_ids: list[str]) -> DeleteLessonsResult:
        lessons = self._owned_lessons(lesson_ids)
        ids = [lesson.id for lesson in lessons]
        warnings = self._calendar.remove_for_lessons(ids)
        try:
            deleted = self._store.delete_where("lessons", {"id": ["in", ids], "teacher_id": self._context.teacher_id})
        except StoreError as exc:
            raise LessonCommitError(
                f"Failed to delete lessons: {exc.message}",
                partial_result={"deleted": 0, "lesson_ids": [], "warnings": warnings},
            ) from exc
        logger.info(
            "LESSON BULK DELETE | teacher_id=%s | requested=%s | deleted=%s",
            self._context.teacher_id,
            len(ids),
            deleted,
        )
        return DeleteLessonsResult(deleted=deleted, lesson_ids=ids, warnings=warnings)
