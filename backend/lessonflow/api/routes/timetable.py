from fastapi import APIRouter, Depends

from lessonflow.api.deps import get_store, get_teacher_context, require_admin
from lessonflow.core.security import TeacherContext
from lessonflow.db.store import TableStore
from lessonflow.schemas.student import (
    ClashPair,
    MoveStudentRequest,
    SlotUpdate,
    StudentClashOut,
    StudentSlotOut,
    WeeklyTimetableOut,
)
from lessonflow.services.timetable import TimetableService

router = APIRouter()


@router.get("", response_model=WeeklyTimetableOut)
def weekly_timetable(
    context: TeacherContext = Depends(get_teacher_context),
    store: TableStore = Depends(get_store),
) -> WeeklyTimetableOut:
    return TimetableService(store, context).weekly_view()


@router.get("/clashes", response_model=list[ClashPair])
def list_clashes(
    context: TeacherContext = Depends(get_teacher_context),
    store: TableStore = Depends(get_store),
) -> list[ClashPair]:
    return TimetableService(store, context).clash_pairs()


@router.get("/students/{student_id}/clashes", response_model=StudentClashOut)
def student_clashes(
    student_id: str,
    context: TeacherContext = Depends(get_teacher_context),
    store: TableStore = Depends(get_store),
) -> StudentClashOut:
    return TimetableService(store, context).clashes_for_student(student_id)


@router.patch("/students/{student_id}/slot", response_model=StudentSlotOut)
def update_student_slot(
    student_id: str,
    payload: SlotUpdate,
    context: TeacherContext = Depends(require_admin),
    store: TableStore = Depends(get_store),
) -> StudentSlotOut:
    return TimetableService(store, context).update_slot(student_id, payload.field, payload.value)


@router.delete("/students/{student_id}/slot", response_model=StudentSlotOut)
def clear_student_slot(
    student_id: str,
    context: TeacherContext = Depends(require_admin),
    store: TableStore = Depends(get_store),
) -> StudentSlotOut:
    return TimetableService(store, context).clear_slot(student_id)


@router.post("/students/{student_id}/move", response_model=StudentSlotOut)
def move_student(
    student_id: str,
    payload: MoveStudentRequest,
    context: TeacherContext = Depends(require_admin),
    store: TableStore = Depends(get_store),
) -> StudentSlotOut:
    return TimetableService(store, context).move_student(student_id, payload.day)
