from lessonflow.models.calendar_event import CalendarEvent  # noqa: F401
from lessonflow.models.lesson import Lesson, LessonStatus  # noqa: F401
from lessonflow.models.lesson_type import LessonType  # noqa: F401
from lessonflow.models.student import Student  # noqa: F401
