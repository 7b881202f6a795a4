import uuid
from datetime import datetime

from sqlalchemy import DateTime, Integer, String, event
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from lessonflow.db.base import Base
from lessonflow.services.timeutils import add_duration

CURRENT_STUDENT_STATUS = "Current"
SLOT_FIELDS = ("lesson_day", "lesson_time", "lesson_time_end", "lesson_duration")


class Student(Base):
    __tablename__ = "students"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    teacher_id: Mapped[str] = mapped_column(String(36), index=True, nullable=False)
    school_id: Mapped[str] = mapped_column(String(36), index=True, nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    instrument: Mapped[str | None] = mapped_column(String(100), nullable=True)
    status: Mapped[str] = mapped_column(String(30), nullable=False, default=CURRENT_STUDENT_STATUS)
    lesson_day: Mapped[str | None] = mapped_column(String(10), nullable=True)
    lesson_time: Mapped[str | None] = mapped_column(String(5), nullable=True)
    lesson_time_end: Mapped[str | None] = mapped_column(String(5), nullable=True)
    lesson_duration: Mapped[int | None] = mapped_column(Integer, nullable=True)
    lesson_type_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), onupdate=func.now())

    @property
    def is_schedulable(self) -> bool:
        return bool(self.lesson_day and self.lesson_time and self.lesson_duration)


@event.listens_for(Student, "before_insert")
@event.listens_for(Student, "before_update")
def _derive_lesson_time_end(mapper, connection, target: Student) -> None:
    # Stands in for the database trigger that owns lesson_time_end.
    if target.lesson_time and target.lesson_duration:
        target.lesson_time_end = add_duration(target.lesson_time, target.lesson_duration)
    else:
        target.lesson_time_end = None
