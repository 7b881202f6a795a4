from __future__ import annotations

from collections.abc import Sequence
import logging

from lessonflow.core.exceptions import StoreError
from lessonflow.db.store import TableStore
from lessonflow.models.calendar_event import LESSONS_LINKED_TABLE, CalendarEvent
from lessonflow.models.lesson import Lesson
from lessonflow.services.timeutils import as_utc, occurrence_end

logger = logging.getLogger(__name__)


def lesson_event_title(student_name: str) -> str:
    return f"Lesson with {student_name}"


class CalendarMirror:
    """Keeps ``calendar_events`` in step with ``lessons``.

    Every method is best-effort: store failures are logged and returned as
    warnings so the lesson mutation around them always completes.
    """

    def __init__(self, store: TableStore, *, teacher_id: str, location: str = "Online") -> None:
        self._store = store
        self._teacher_id = teacher_id
        self._location = location

    def remove_for_lessons(self, lesson_ids: Sequence[str]) -> list[str]:
        if not lesson_ids:
            return []
        try:
            removed = self._store.delete_where(
                "calendar_events",
                {
                    "teacher_id": self._teacher_id,
                    "linked_table": LESSONS_LINKED_TABLE,
                    "linked_id": ["in", list(lesson_ids)],
                },
            )
        except StoreError:
            logger.warning("CALENDAR EVENT DELETE FAILED | lessons=%s", len(lesson_ids), exc_info=True)
            return [f"Could not remove calendar events for {len(lesson_ids)} lesson(s)"]
        logger.debug("Removed %d calendar event(s) for %d lesson(s)", removed, len(lesson_ids))
        return []

    def rebuild_for_lessons(self, lessons: Sequence[Lesson]) -> tuple[list[CalendarEvent], list[str]]:
        """Drop any event already linked to these lessons, then insert a fresh one per lesson."""
        if not lessons:
            return [], []
        warnings = self.remove_for_lessons([lesson.id for lesson in lessons])
        rows = [
            {
                "title": lesson_event_title(lesson.student_name),
                "event_type": "lesson",
                "start_time": as_utc(lesson.scheduled_time),
                "end_time": occurrence_end(lesson.scheduled_time, lesson.duration_min),
                "teacher_id": lesson.teacher_id,
                "school_id": lesson.school_id,
                "linked_id": lesson.id,
                "linked_table": LESSONS_LINKED_TABLE,
                "location": self._location,
                "notes": "",
            }
            for lesson in lessons
        ]
        try:
            events = self._store.insert_batch("calendar_events", rows)
        except StoreError:
            logger.warning("CALENDAR EVENT CREATE FAILED | lessons=%s", len(lessons), exc_info=True)
            warnings.append(f"Could not create calendar events for {len(lessons)} lesson(s)")
            return [], warnings
        return events, warnings
