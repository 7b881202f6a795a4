from __future__ import annotations

from datetime import date, datetime
from enum import Enum
from typing import Literal

from pydantic import BaseModel, Field, model_validator


class ScheduleDecision(str, Enum):
    keep = "keep"
    replace = "replace"


class ScheduleRequest(BaseModel):
    start_date: date
    end_date: date
    decision: ScheduleDecision | None = None

    @model_validator(mode="after")
    def validate_range(self) -> "ScheduleRequest":
        if self.end_date < self.start_date:
            raise ValueError("end_date must be on or after start_date")
        return self


class PlannedOccurrence(BaseModel):
    student_id: str
    student_name: str
    teacher_id: str
    school_id: str
    scheduled_time: datetime
    end_time: datetime
    duration_min: int
    lesson_date: date
    day_of_week: str
    time_of_day: str
    time_display: str


class ConflictRecord(BaseModel):
    lesson_id: str
    student_id: str
    student_name: str
    scheduled_time: datetime
    duration_min: int
    status: str
    lesson_date: date
    time_of_day: str
    formatted_date: str
    formatted_time: str


class StudentConflictGroup(BaseModel):
    student_id: str
    student_name: str
    lessons: list[ConflictRecord] = Field(default_factory=list)


class LessonSummary(BaseModel):
    lesson_id: str | None = None
    student_id: str
    student_name: str
    scheduled_time: datetime
    lesson_date: date
    day_of_week: str
    time_display: str
    reason: Literal["duplicate", "kept_existing"] | None = None


class StudentPlanCount(BaseModel):
    student_id: str
    student_name: str
    lesson_day: str
    lesson_time: str
    lesson_duration: int
    planned: int


class SchedulePreview(BaseModel):
    start_date: date
    end_date: date
    week_count: int
    students: list[StudentPlanCount] = Field(default_factory=list)
    planned: list[PlannedOccurrence] = Field(default_factory=list)
    clean_count: int = 0
    duplicate_count: int = 0
    conflicting_count: int = 0
    conflicts: list[StudentConflictGroup] = Field(default_factory=list)


class ScheduleResult(BaseModel):
    decision: ScheduleDecision | None = None
    created: int = 0
    skipped: int = 0
    replaced: int = 0
    withheld: int = 0
    total: int = 0
    added_lessons: list[LessonSummary] = Field(default_factory=list)
    deleted_lessons: list[LessonSummary] = Field(default_factory=list)
    skipped_lessons: list[LessonSummary] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    message: str = ""
