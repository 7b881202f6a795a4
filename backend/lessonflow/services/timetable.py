from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable
import logging
from typing import Any

from lessonflow.core.exceptions import ResourceNotFoundError, SlotValidationError
from lessonflow.core.security import TeacherContext
from lessonflow.db.store import TableStore
from lessonflow.models.student import CURRENT_STUDENT_STATUS, SLOT_FIELDS, Student
from lessonflow.schemas.student import (
    ClashPair,
    DayColumn,
    SlotField,
    StudentClashOut,
    StudentSlotOut,
    TimetableStudentOut,
    WeeklyTimetableOut,
)
from lessonflow.services.timeutils import (
    DAY_ORDER,
    TIME_PATTERN,
    crosses_midnight,
    format_for_display,
    overlaps,
    time_to_minutes,
)

logger = logging.getLogger(__name__)

MIN_LESSON_DURATION = 5
MAX_LESSON_DURATION = 240


def _slot_window(student: Student) -> tuple[int, int]:
    start = time_to_minutes(student.lesson_time)
    return start, start + student.lesson_duration


def detect_clashes(students: Iterable[Student]) -> list[tuple[Student, Student]]:
    """Pairs of schedulable students whose weekly slots overlap on the same day."""
    by_day: dict[str, list[Student]] = defaultdict(list)
    for student in students:
        if student.is_schedulable:
            by_day[student.lesson_day].append(student)

    pairs: list[tuple[Student, Student]] = []
    for day in DAY_ORDER:
        day_students = by_day.get(day, [])
        for i, first in enumerate(day_students):
            first_start, first_end = _slot_window(first)
            for second in day_students[i + 1:]:
                second_start, second_end = _slot_window(second)
                if overlaps(first_start, first_end, second_start, second_end):
                    pairs.append((first, second))
    return pairs


def clash_partners(pairs: Iterable[tuple[Student, Student]]) -> dict[str, list[str]]:
    partners: dict[str, list[str]] = defaultdict(list)
    for first, second in pairs:
        partners[first.id].append(second.id)
        partners[second.id].append(first.id)
    return partners


def _to_clash_pair(first: Student, second: Student) -> ClashPair:
    return ClashPair(
        day=first.lesson_day,
        student_ids=(first.id, second.id),
        student_names=(first.name, second.name),
    )


def _normalize_slot_value(field: SlotField, value: Any) -> Any:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None

    if field == SlotField.lesson_day:
        day = str(value).strip()
        if day not in DAY_ORDER:
            raise SlotValidationError(f"Invalid lesson day {value!r}")
        return day

    if field == SlotField.lesson_time:
        time_value = str(value).strip()
        if not TIME_PATTERN.match(time_value):
            raise SlotValidationError("Lesson time must be in HH:MM 24-hour format")
        return time_value

    if field == SlotField.lesson_duration:
        if isinstance(value, bool):
            raise SlotValidationError("Lesson duration must be a number of minutes")
        try:
            minutes = int(value)
        except (TypeError, ValueError):
            raise SlotValidationError("Lesson duration must be a number of minutes") from None
        if minutes < MIN_LESSON_DURATION or minutes > MAX_LESSON_DURATION:
            raise SlotValidationError(
                f"Lesson duration must be between {MIN_LESSON_DURATION} and {MAX_LESSON_DURATION} minutes"
            )
        return minutes

    return str(value).strip()


class TimetableService:
    def __init__(self, store: TableStore, context: TeacherContext) -> None:
        self._store = store
        self._context = context

    def list_students(self) -> list[Student]:
        return self._store.list_where(
            "students",
            {"teacher_id": self._context.teacher_id, "status": CURRENT_STUDENT_STATUS},
            order_by="name asc",
        )

    def get_student(self, student_id: str) -> Student:
        rows = self._store.list_where("students", {"id": student_id, "teacher_id": self._context.teacher_id})
        if not rows:
            raise ResourceNotFoundError("Student", student_id)
        return rows[0]

    def _write_slot(self, student_id: str, patch: dict[str, Any]) -> Student:
        updated = self._store.update_where(
            "students",
            {"id": student_id, "teacher_id": self._context.teacher_id},
            patch,
        )
        if not updated:
            raise ResourceNotFoundError("Student", student_id)
        # Re-read so the derived lesson_time_end comes from the stored row.
        return self.get_student(student_id)

    def update_slot(self, student_id: str, field: SlotField, value: Any) -> Student:
        current = self.get_student(student_id)
        normalized = _normalize_slot_value(field, value)
        patch: dict[str, Any] = {field.value: normalized}

        if field == SlotField.lesson_type_id and normalized is not None:
            lesson_types = self._store.list_where(
                "lesson_types", {"id": normalized, "school_id": self._context.school_id}
            )
            if not lesson_types:
                raise SlotValidationError(f"Unknown lesson type {normalized!r}")
            patch["lesson_duration"] = lesson_types[0].duration_min

        lesson_time = patch.get("lesson_time", current.lesson_time)
        lesson_duration = patch.get("lesson_duration", current.lesson_duration)
        if lesson_time and lesson_duration and crosses_midnight(lesson_time, lesson_duration):
            raise SlotValidationError("Lessons that run past midnight are not supported")

        logger.info(
            "STUDENT SLOT UPDATE | teacher_id=%s | student_id=%s | field=%s",
            self._context.teacher_id,
            student_id,
            field.value,
        )
        return self._write_slot(student_id, patch)

    def clear_slot(self, student_id: str) -> Student:
        self.get_student(student_id)
        logger.info("STUDENT SLOT CLEAR | teacher_id=%s | student_id=%s", self._context.teacher_id, student_id)
        return self._write_slot(student_id, {name: None for name in SLOT_FIELDS})

    def move_student(self, student_id: str, day: str) -> Student:
        student = self.get_student(student_id)
        if student.lesson_day == day:
            return student
        return self.update_slot(student_id, SlotField.lesson_day, day)

    def clash_pairs(self, students: list[Student] | None = None) -> list[ClashPair]:
        roster = self.list_students() if students is None else students
        return [_to_clash_pair(first, second) for first, second in detect_clashes(roster)]

    def clashes_for_student(self, student_id: str) -> StudentClashOut:
        student = self.get_student(student_id)
        if not student.is_schedulable:
            return StudentClashOut(student_id=student.id, lesson_day=student.lesson_day)

        others = self._store.list_where(
            "students",
            {
                "school_id": self._context.school_id,
                "status": CURRENT_STUDENT_STATUS,
                "lesson_day": student.lesson_day,
                "id": ["!=", student.id],
            },
            order_by="name asc",
        )
        start, end = _slot_window(student)
        clashing = []
        for other in others:
            if not other.is_schedulable:
                continue
            other_start, other_end = _slot_window(other)
            if overlaps(start, end, other_start, other_end):
                clashing.append(StudentSlotOut.model_validate(other))
        return StudentClashOut(student_id=student.id, lesson_day=student.lesson_day, clashing_students=clashing)

    def weekly_view(self) -> WeeklyTimetableOut:
        students = self.list_students()
        pairs = detect_clashes(students)
        partners = clash_partners(pairs)

        def card(student: Student) -> TimetableStudentOut:
            return TimetableStudentOut(
                **StudentSlotOut.model_validate(student).model_dump(),
                time_display=format_for_display(student.lesson_time),
                is_incomplete=not student.lesson_time or not student.lesson_duration,
                has_clash=student.id in partners,
                clash_partners=partners.get(student.id, []),
            )

        placed = [student for student in students if student.lesson_day and student.lesson_time]
        days = []
        for day in DAY_ORDER:
            day_students = sorted(
                (student for student in placed if student.lesson_day == day),
                key=lambda item: item.lesson_time,
            )
            days.append(DayColumn(day=day, students=[card(student) for student in day_students]))

        unscheduled = [card(student) for student in students if not student.lesson_day or not student.lesson_time]
        return WeeklyTimetableOut(
            days=days,
            unscheduled=unscheduled,
            clashes=[_to_clash_pair(first, second) for first, second in pairs],
            can_generate=not pairs and any(student.is_schedulable for student in students),
        )
