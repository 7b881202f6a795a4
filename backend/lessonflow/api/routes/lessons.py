from datetime import date

from fastapi import APIRouter, Depends, Query

from lessonflow.api.deps import get_store, get_teacher_context, require_admin
from lessonflow.core.security import TeacherContext
from lessonflow.db.store import TableStore
from lessonflow.models.lesson import LessonStatus
from lessonflow.schemas.lesson import (
    DeleteLessonsRequest,
    DeleteLessonsResult,
    LessonListOut,
    LessonOut,
    LessonQuery,
    LessonStatusUpdate,
    RescheduleRequest,
    RescheduleResult,
)
from lessonflow.schemas.scheduling import ScheduleRequest, SchedulePreview, ScheduleResult
from lessonflow.services.lesson_ops import LessonService
from lessonflow.services.scheduling import LessonScheduler

router = APIRouter()


@router.post("/schedule/preview", response_model=SchedulePreview)
def preview_schedule(
    payload: ScheduleRequest,
    context: TeacherContext = Depends(require_admin),
    store: TableStore = Depends(get_store),
) -> SchedulePreview:
    return LessonScheduler(store, context).preview(payload.start_date, payload.end_date)


@router.post("/schedule", response_model=ScheduleResult)
def schedule_lessons(
    payload: ScheduleRequest,
    context: TeacherContext = Depends(require_admin),
    store: TableStore = Depends(get_store),
) -> ScheduleResult:
    return LessonScheduler(store, context).run(payload.start_date, payload.end_date, payload.decision)


@router.get("", response_model=LessonListOut)
def list_lessons(
    start_date: date | None = Query(default=None),
    end_date: date | None = Query(default=None),
    status: LessonStatus | None = Query(default=None),
    search: str | None = Query(default=None, max_length=200),
    sort_by: str = Query(default="scheduled_time", pattern="^(scheduled_time|student_name|status|duration_min)$"),
    direction: str = Query(default="asc", pattern="^(asc|desc)$"),
    limit: int = Query(default=30, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    context: TeacherContext = Depends(get_teacher_context),
    store: TableStore = Depends(get_store),
) -> LessonListOut:
    query = LessonQuery(
        start_date=start_date,
        end_date=end_date,
        status=status,
        search=search,
        sort_by=sort_by,
        direction=direction,
        limit=limit,
        offset=offset,
    )
    return LessonService(store, context).list_lessons(query)


@router.put("/{lesson_id}/status", response_model=LessonOut)
def update_lesson_status(
    lesson_id: str,
    payload: LessonStatusUpdate,
    context: TeacherContext = Depends(get_teacher_context),
    store: TableStore = Depends(get_store),
) -> LessonOut:
    return LessonService(store, context).update_status(lesson_id, payload.status)


@router.post("/reschedule", response_model=RescheduleResult)
def reschedule_lessons(
    payload: RescheduleRequest,
    context: TeacherContext = Depends(get_teacher_context),
    store: TableStore = Depends(get_store),
) -> RescheduleResult:
    return LessonService(store, context).reschedule_lessons(payload.lesson_ids, payload.new_date)


@router.post("/bulk-delete", response_model=DeleteLessonsResult)
def delete_lessons(
    payload: DeleteLessonsRequest,
    context: TeacherContext = Depends(get_teacher_context),
    store: TableStore = Depends(get_store),
) -> DeleteLessonsResult:
    return LessonService(store, context).delete_lessons(payload.lesson_ids)
