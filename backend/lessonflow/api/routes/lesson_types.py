from fastapi import APIRouter, Depends

from lessonflow.api.deps import get_store, get_teacher_context
from lessonflow.core.security import TeacherContext
from lessonflow.db.store import TableStore
from lessonflow.schemas.lesson_type import LessonTypeOut

router = APIRouter()


@router.get("", response_model=list[LessonTypeOut])
def list_lesson_types(
    context: TeacherContext = Depends(get_teacher_context),
    store: TableStore = Depends(get_store),
) -> list[LessonTypeOut]:
    return store.list_where("lesson_types", {"school_id": context.school_id}, order_by=["name asc", "duration_min asc"])
