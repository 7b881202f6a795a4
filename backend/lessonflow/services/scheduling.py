"""Generate Lessons: expand weekly slots, resolve clashes with persisted lessons, commit.

The pipeline runs in a fixed order inside one request:

1. validate the request and load the teacher's schedulable students;
2. expand their weekly slots over the date range and classify the result
   against lessons already stored in that range;
3. stop with :class:`ConflictDecisionRequired` when same-day lessons at other
   times exist and the caller has not chosen keep or replace;
4. on replace, drop the conflicting lessons (calendar mirror first);
5. re-read the stored lessons and classify again, then insert what remains in
   bounded batches, rebuilding calendar events after each batch.

Calendar mirror failures only add warnings. A failed conflicting-lesson
delete or lesson batch insert aborts with :class:`LessonCommitError`, whose
details carry everything completed up to that point.
"""

from __future__ import annotations

from datetime import date
import logging
from time import perf_counter

from lessonflow.core.config import Settings, get_settings
from lessonflow.core.exceptions import (
    ConflictDecisionRequired,
    LessonCommitError,
    SchedulingValidationError,
    StoreError,
)
from lessonflow.core.security import TeacherContext
from lessonflow.db.store import TableStore
from lessonflow.models.lesson import Lesson, LessonStatus
from lessonflow.models.student import CURRENT_STUDENT_STATUS, Student
from lessonflow.schemas.scheduling import (
    ConflictRecord,
    LessonSummary,
    PlannedOccurrence,
    ScheduleDecision,
    SchedulePreview,
    ScheduleResult,
    StudentPlanCount,
)
from lessonflow.services.calendar_sync import CalendarMirror
from lessonflow.services.classifier import Classification, classify_occurrences
from lessonflow.services.expander import count_weeks, expand_schedule, schedulable_students
from lessonflow.services.single_flight import scheduling_slot
from lessonflow.services.timetable import detect_clashes
from lessonflow.services.timeutils import (
    as_utc,
    day_name,
    format_for_display,
    local_date_and_time,
    local_day_bounds,
    resolve_timezone,
)

logger = logging.getLogger(__name__)


def _summary_from_lesson(lesson: Lesson, tz, reason: str | None = None) -> LessonSummary:
    lesson_date, time_of_day = local_date_and_time(lesson.scheduled_time, tz)
    return LessonSummary(
        lesson_id=lesson.id,
        student_id=lesson.student_id,
        student_name=lesson.student_name,
        scheduled_time=as_utc(lesson.scheduled_time),
        lesson_date=lesson_date,
        day_of_week=day_name(lesson_date),
        time_display=format_for_display(time_of_day),
        reason=reason,
    )


def _summary_from_occurrence(
    occurrence: PlannedOccurrence, *, lesson_id: str | None = None, reason: str | None = None
) -> LessonSummary:
    return LessonSummary(
        lesson_id=lesson_id,
        student_id=occurrence.student_id,
        student_name=occurrence.student_name,
        scheduled_time=occurrence.scheduled_time,
        lesson_date=occurrence.lesson_date,
        day_of_week=occurrence.day_of_week,
        time_display=occurrence.time_display,
        reason=reason,
    )


def _summary_from_conflict(record: ConflictRecord) -> LessonSummary:
    return LessonSummary(
        lesson_id=record.lesson_id,
        student_id=record.student_id,
        student_name=record.student_name,
        scheduled_time=record.scheduled_time,
        lesson_date=record.lesson_date,
        day_of_week=day_name(record.lesson_date),
        time_display=record.formatted_time,
    )


def _finish(result: ScheduleResult) -> ScheduleResult:
    result.total = result.created + result.skipped + result.withheld
    for items in (result.added_lessons, result.deleted_lessons, result.skipped_lessons):
        items.sort(key=lambda item: (item.scheduled_time, item.student_name))
    if not result.message:
        if result.created:
            result.message = f"Successfully scheduled {result.created} new lesson(s)."
        else:
            result.message = "All lessons already exist for the selected date range."
    return result


class LessonScheduler:
    def __init__(self, store: TableStore, context: TeacherContext, *, settings: Settings | None = None) -> None:
        self._settings = settings or get_settings()
        self._store = store
        self._context = context
        self._tz = resolve_timezone(self._settings.school_timezone)
        self._calendar = CalendarMirror(
            store, teacher_id=context.teacher_id, location=self._settings.calendar_event_location
        )
        self._batch_size = self._settings.lesson_insert_batch_size

    def _validate_request(self, start_date: date, end_date: date) -> None:
        if not self._context.teacher_id or not self._context.school_id:
            raise SchedulingValidationError("Missing teacher or school context")
        if end_date < start_date:
            raise SchedulingValidationError("End date must be on or after start date")
        span_days = (end_date - start_date).days + 1
        if span_days > self._settings.max_schedule_range_days:
            raise SchedulingValidationError(
                f"Date range spans {span_days} days; the maximum is {self._settings.max_schedule_range_days}"
            )

    def _load_schedulable_students(self) -> list[Student]:
        students = self._store.list_where(
            "students",
            {"teacher_id": self._context.teacher_id, "status": CURRENT_STUDENT_STATUS},
            order_by="name asc",
        )
        ready = schedulable_students(students)
        if not ready:
            raise SchedulingValidationError(
                "No students have complete schedule information (day, time, and duration)"
            )
        clashes = detect_clashes(ready)
        if clashes:
            raise SchedulingValidationError(
                f"{len(clashes)} lesson time clash(es) must be resolved before generating lessons",
                details={"clashes": [[first.id, second.id] for first, second in clashes]},
            )
        return ready

    def _fetch_existing(self, student_ids: list[str], start_date: date, end_date: date) -> list[Lesson]:
        lower, upper = local_day_bounds(start_date, end_date, self._tz)
        return self._store.list_where(
            "lessons",
            {
                "teacher_id": self._context.teacher_id,
                "student_id": ["in", student_ids],
                "scheduled_time": [[">=", lower], ["<", upper]],
            },
            order_by="scheduled_time asc",
        )

    def _plan(self, start_date: date, end_date: date) -> tuple[list[Student], list[PlannedOccurrence], Classification]:
        students = self._load_schedulable_students()
        planned = expand_schedule(
            students,
            start_date,
            end_date,
            teacher_id=self._context.teacher_id,
            school_id=self._context.school_id,
            tz=self._tz,
        )
        existing = self._fetch_existing([student.id for student in students], start_date, end_date)
        return students, planned, classify_occurrences(planned, existing, self._tz)

    def preview(self, start_date: date, end_date: date) -> SchedulePreview:
        self._validate_request(start_date, end_date)
        students, planned, classification = self._plan(start_date, end_date)
        per_student: dict[str, int] = {}
        for occurrence in planned:
            per_student[occurrence.student_id] = per_student.get(occurrence.student_id, 0) + 1
        return SchedulePreview(
            start_date=start_date,
            end_date=end_date,
            week_count=count_weeks(start_date, end_date),
            students=[
                StudentPlanCount(
                    student_id=student.id,
                    student_name=student.name,
                    lesson_day=student.lesson_day,
                    lesson_time=student.lesson_time,
                    lesson_duration=student.lesson_duration,
                    planned=per_student.get(student.id, 0),
                )
                for student in students
            ],
            planned=planned,
            clean_count=len(classification.clean),
            duplicate_count=len(classification.duplicates),
            conflicting_count=len(classification.conflicting),
            conflicts=classification.grouped_conflicts(),
        )

    def run(self, start_date: date, end_date: date, decision: ScheduleDecision | None = None) -> ScheduleResult:
        self._validate_request(start_date, end_date)
        with scheduling_slot(self._context.teacher_id):
            started = perf_counter()
            logger.info(
                "LESSON SCHEDULE START | teacher_id=%s | start=%s | end=%s | decision=%s",
                self._context.teacher_id,
                start_date,
                end_date,
                decision.value if decision else None,
            )
            result = self._run(start_date, end_date, decision)
            logger.info(
                "LESSON SCHEDULE COMPLETE | teacher_id=%s | created=%s | skipped=%s | replaced=%s | withheld=%s | warnings=%s | wall_ms=%s",
                self._context.teacher_id,
                result.created,
                result.skipped,
                result.replaced,
                result.withheld,
                len(result.warnings),
                int((perf_counter() - started) * 1000),
            )
            return result

    def _run(self, start_date: date, end_date: date, decision: ScheduleDecision | None) -> ScheduleResult:
        students, planned, classification = self._plan(start_date, end_date)
        if not planned:
            raise SchedulingValidationError("No lessons to schedule. Check student schedules and date range.")

        if classification.has_conflicts and decision is None:
            groups = classification.grouped_conflicts()
            raise ConflictDecisionRequired(
                f"{len(classification.conflicts)} lesson(s) already exist on the same day at a different time "
                f"for {len(groups)} student(s). Choose keep or replace.",
                details={
                    "conflict_count": len(classification.conflicts),
                    "conflicts": [group.model_dump(mode="json") for group in groups],
                },
            )

        result = ScheduleResult(decision=decision)
        if decision == ScheduleDecision.replace and classification.has_conflicts:
            self._replace_conflicts(classification, result)

        # Re-read: the duplicate filter must see what is stored now, not the first read.
        try:
            existing = self._fetch_existing([student.id for student in students], start_date, end_date)
        except StoreError as exc:
            raise LessonCommitError(
                f"Failed to check existing lessons: {exc.message}",
                partial_result=_finish(result).model_dump(mode="json"),
            ) from exc
        fresh = classify_occurrences(planned, existing, self._tz)

        to_insert = list(fresh.clean)
        if decision == ScheduleDecision.replace:
            to_insert.extend(fresh.conflicting)
            if fresh.has_conflicts:
                logger.warning(
                    "LESSON SCHEDULE NEW CONFLICTS AFTER REPLACE | teacher_id=%s | lessons=%s",
                    self._context.teacher_id,
                    len(fresh.conflicts),
                )
        else:
            for occurrence in fresh.conflicting:
                result.skipped_lessons.append(_summary_from_occurrence(occurrence, reason="kept_existing"))
            result.withheld = len(fresh.conflicting)

        for match in fresh.duplicates:
            result.skipped_lessons.append(
                _summary_from_occurrence(match.planned, lesson_id=match.existing.id, reason="duplicate")
            )
        result.skipped = len(fresh.duplicates)

        to_insert.sort(key=lambda item: (item.scheduled_time, item.student_name))
        self._insert_batches(to_insert, result)
        return _finish(result)

    def _replace_conflicts(self, classification: Classification, result: ScheduleResult) -> None:
        lesson_ids = classification.conflict_ids
        result.warnings.extend(self._calendar.remove_for_lessons(lesson_ids))
        try:
            deleted = self._store.delete_where(
                "lessons",
                {"id": ["in", lesson_ids], "teacher_id": self._context.teacher_id},
            )
        except StoreError as exc:
            raise LessonCommitError(
                f"Failed to delete conflicting lessons: {exc.message}",
                partial_result=_finish(result).model_dump(mode="json"),
            ) from exc
        if deleted != len(lesson_ids):
            logger.warning(
                "LESSON SCHEDULE REPLACE COUNT MISMATCH | teacher_id=%s | expected=%s | deleted=%s",
                self._context.teacher_id,
                len(lesson_ids),
                deleted,
            )
        result.deleted_lessons = [_summary_from_conflict(record) for record in classification.conflicts]
        result.replaced = len(lesson_ids)

    def _insert_batches(self, occurrences: list[PlannedOccurrence], result: ScheduleResult) -> None:
        for index in range(0, len(occurrences), self._batch_size):
            batch = occurrences[index:index + self._batch_size]
            rows = [
                {
                    "student_id": occurrence.student_id,
                    "teacher_id": occurrence.teacher_id,
                    "school_id": occurrence.school_id,
                    "scheduled_time": occurrence.scheduled_time,
                    "duration_min": occurrence.duration_min,
                    "status": LessonStatus.scheduled,
                }
                for occurrence in batch
            ]
            try:
                created = self._store.insert_batch("lessons", rows)
            except StoreError as exc:
                result.message = (
                    f"Created {result.created} of {len(occurrences)} lesson(s) before a batch failed."
                )
                raise LessonCommitError(
                    f"Failed to create lessons: {exc.message}",
                    partial_result=_finish(result).model_dump(mode="json"),
                ) from exc

            logger.debug("Inserted lesson batch %d with %d lesson(s)", index // self._batch_size + 1, len(created))
            result.created += len(created)
            result.added_lessons.extend(_summary_from_lesson(lesson, self._tz) for lesson in created)
            _, warnings = self._calendar.rebuild_for_lessons(created)
            result.warnings.extend(warnings)
