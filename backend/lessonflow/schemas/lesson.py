from __future__ import annotations

from datetime import date, datetime
from typing import Literal

from pydantic import BaseModel, Field

from lessonflow.models.lesson import LessonStatus


class LessonOut(BaseModel):
    id: str
    student_id: str
    student_name: str
    teacher_id: str
    school_id: str
    scheduled_time: datetime
    duration_min: int
    status: LessonStatus
    lesson_date: date
    day_of_week: str
    time_display: str


class LessonListOut(BaseModel):
    total: int
    items: list[LessonOut] = Field(default_factory=list)


class LessonStatusUpdate(BaseModel):
    status: LessonStatus


class LessonQuery(BaseModel):
    start_date: date | None = None
    end_date: date | None = None
    status: LessonStatus | None = None
    search: str | None = Field(default=None, max_length=200)
    sort_by: Literal["scheduled_time", "student_name", "status", "duration_min"] = "scheduled_time"
    direction: Literal["asc", "desc"] = "asc"
    limit: int = Field(default=30, ge=1, le=500)
    offset: int = Field(default=0, ge=0)


class RescheduleRequest(BaseModel):
    lesson_ids: list[str] = Field(min_length=1, max_length=500)
    new_date: date


class RescheduleResult(BaseModel):
    new_date: date
    rescheduled: list[LessonOut] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


class DeleteLessonsRequest(BaseModel):
    lesson_ids: list[str] = Field(min_length=1, max_length=500)


class DeleteLessonsResult(BaseModel):
    deleted: int
    lesson_ids: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
