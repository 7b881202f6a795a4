from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field, field_validator

from lessonflow.services.timeutils import DAY_ORDER


class SlotField(str, Enum):
    lesson_day = "lesson_day"
    lesson_time = "lesson_time"
    lesson_duration = "lesson_duration"
    lesson_type_id = "lesson_type_id"


class StudentSlotOut(BaseModel):
    id: str
    name: str
    instrument: str | None = None
    status: str
    lesson_day: str | None = None
    lesson_time: str | None = None
    lesson_time_end: str | None = None
    lesson_duration: int | None = None
    lesson_type_id: str | None = None

    model_config = {"from_attributes": True}


class TimetableStudentOut(StudentSlotOut):
    time_display: str
    is_incomplete: bool
    has_clash: bool
    clash_partners: list[str] = Field(default_factory=list)


class SlotUpdate(BaseModel):
    field: SlotField
    value: str | int | None = None


class MoveStudentRequest(BaseModel):
    day: str

    @field_validator("day")
    @classmethod
    def validate_day(cls, value: str) -> str:
        day = value.strip()
        if day not in DAY_ORDER:
            raise ValueError("Invalid day value")
        return day


class ClashPair(BaseModel):
    day: str
    student_ids: tuple[str, str]
    student_names: tuple[str, str]


class StudentClashOut(BaseModel):
    student_id: str
    lesson_day: str | None = None
    clashing_students: list[StudentSlotOut] = Field(default_factory=list)


class DayColumn(BaseModel):
    day: str
    students: list[TimetableStudentOut] = Field(default_factory=list)


class WeeklyTimetableOut(BaseModel):
    days: list[DayColumn] = Field(default_factory=list)
    unscheduled: list[TimetableStudentOut] = Field(default_factory=list)
    clashes: list[ClashPair] = Field(default_factory=list)
    can_generate: bool
