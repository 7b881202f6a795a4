from __future__ import annotations

import logging

from sqlalchemy import inspect
from sqlalchemy.engine import Engine

import lessonflow.models  # noqa: F401
from lessonflow.db.base import Base
from lessonflow.db.session import engine

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS: dict[str, set[str]] = {
    "students": {
        "id",
        "teacher_id",
        "school_id",
        "name",
        "status",
        "lesson_day",
        "lesson_time",
        "lesson_time_end",
        "lesson_duration",
        "lesson_type_id",
    },
    "lessons": {"id", "student_id", "teacher_id", "school_id", "scheduled_time", "duration_min", "status"},
    "calendar_events": {"id", "title", "start_time", "end_time", "teacher_id", "school_id", "linked_id", "linked_table"},
    "lesson_types": {"id", "school_id", "name", "duration_min"},
}


def _assert_required_columns(bind: Engine) -> None:
    with bind.begin() as connection:
        inspector = inspect(connection)
        table_names = set(inspector.get_table_names())
        missing_tables = [name for name in REQUIRED_COLUMNS if name not in table_names]
        if missing_tables:
            raise RuntimeError(f"Missing required tables: {', '.join(sorted(missing_tables))}")

        missing_columns: list[str] = []
        for table_name, required in REQUIRED_COLUMNS.items():
            existing = {item["name"] for item in inspector.get_columns(table_name)}
            for column_name in sorted(required - existing):
                missing_columns.append(f"{table_name}.{column_name}")
        if missing_columns:
            raise RuntimeError(f"Missing required columns: {', '.join(missing_columns)}")


def ensure_runtime_schema_compatibility(bind: Engine | None = None) -> None:
    bind = bind or engine
    try:
        Base.metadata.create_all(bind=bind)
        _assert_required_columns(bind)
    except Exception as exc:  # pragma: no cover - runtime environment dependent
        logger.exception("Runtime schema compatibility bootstrap failed")
        raise RuntimeError("Runtime schema compatibility bootstrap failed") from exc
