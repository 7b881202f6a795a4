"""Row-level access to the shared tables through four operation shapes.

Every service in the scheduling core talks to persistence only through
:class:`TableStore`. Filters follow the list style used elsewhere in our
stack: ``{"status": "scheduled"}`` for equality and
``{"id": ["in", ids], "scheduled_time": [">=", start]}`` for operators. Several
conditions on one column stack as a list of pairs:
``{"scheduled_time": [[">=", start], ["<", end]]}``.
Each write is committed on its own so that a caller can tell exactly which
steps landed before a failure.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
import logging
from typing import Any

from sqlalchemy import delete, inspect, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from lessonflow.core.exceptions import StoreError, StoreFieldError
from lessonflow.db.base import Base
from lessonflow.models.calendar_event import CalendarEvent
from lessonflow.models.lesson import Lesson
from lessonflow.models.lesson_type import LessonType
from lessonflow.models.student import Student

logger = logging.getLogger(__name__)

TABLES: dict[str, type[Base]] = {
    "students": Student,
    "lessons": Lesson,
    "calendar_events": CalendarEvent,
    "lesson_types": LessonType,
}
READ_ONLY_TABLES = {"lesson_types"}
# Columns the database fills in; callers may filter on them but never write them.
SERVER_MANAGED_COLUMNS = {"id", "created_at", "updated_at"}

_OPERATORS = {
    "=": lambda column, value: column == value,
    "!=": lambda column, value: column != value,
    ">": lambda column, value: column > value,
    ">=": lambda column, value: column >= value,
    "<": lambda column, value: column < value,
    "<=": lambda column, value: column <= value,
    "in": lambda column, value: column.in_(list(value)),
    "not in": lambda column, value: column.not_in(list(value)),
    "like": lambda column, value: column.ilike(value),
}


def _column_names(model: type[Base]) -> set[str]:
    return {column.key for column in inspect(model).column_attrs}


class TableStore:
    def __init__(self, db: Session) -> None:
        self._db = db

    def _model(self, table: str) -> type[Base]:
        model = TABLES.get(table)
        if model is None:
            raise StoreFieldError(f"Unknown table {table!r}")
        return model

    def _writable_model(self, table: str) -> type[Base]:
        if table in READ_ONLY_TABLES:
            raise StoreFieldError(f"Table {table!r} is read-only")
        return self._model(table)

    def _clauses(self, model: type[Base], filters: Mapping[str, Any] | None) -> list:
        columns = _column_names(model)
        clauses = []
        for name, condition in (filters or {}).items():
            if name not in columns:
                raise StoreFieldError(f"Unknown column {model.__tablename__}.{name} in filter")
            column = getattr(model, name)
            if isinstance(condition, (list, tuple)):
                # A list of [operator, value] pairs applies every one of them.
                pairs = condition if condition and isinstance(condition[0], (list, tuple)) else [condition]
                for pair in pairs:
                    if len(pair) != 2 or pair[0] not in _OPERATORS:
                        raise StoreFieldError(f"Invalid filter for {name}: {pair!r}")
                    operator, value = pair
                    clauses.append(_OPERATORS[operator](column, value))
            elif condition is None:
                clauses.append(column.is_(None))
            else:
                clauses.append(column == condition)
        return clauses

    def _ordering(self, model: type[Base], order_by: str | Sequence[str] | None) -> list:
        if not order_by:
            return []
        items = [order_by] if isinstance(order_by, str) else list(order_by)
        columns = _column_names(model)
        ordering = []
        for item in items:
            parts = item.split()
            name = parts[0]
            direction = parts[1].lower() if len(parts) > 1 else "asc"
            if name not in columns or direction not in {"asc", "desc"}:
                raise StoreFieldError(f"Invalid ordering {item!r}")
            column = getattr(model, name)
            ordering.append(column.desc() if direction == "desc" else column.asc())
        return ordering

    def _check_fields(self, model: type[Base], fields: Iterable[str]) -> None:
        allowed = _column_names(model) - SERVER_MANAGED_COLUMNS
        unknown = sorted(set(fields) - allowed)
        if unknown:
            raise StoreFieldError(f"Unknown or read-only fields for {model.__tablename__}: {', '.join(unknown)}")

    def _fail(self, action: str, table: str, exc: SQLAlchemyError) -> StoreError:
        self._db.rollback()
        logger.exception("STORE %s FAILED | table=%s", action, table)
        return StoreError(f"Failed to {action.lower()} {table}", details={"table": table, "error": str(exc)})

    def list_where(
        self,
        table: str,
        filters: Mapping[str, Any] | None = None,
        order_by: str | Sequence[str] | None = None,
    ) -> list:
        model = self._model(table)
        statement = select(model).where(*self._clauses(model, filters)).order_by(*self._ordering(model, order_by))
        try:
            return list(self._db.execute(statement).scalars().all())
        except SQLAlchemyError as exc:
            raise self._fail("READ", table, exc) from exc

    def insert_batch(self, table: str, rows: Sequence[Mapping[str, Any]]) -> list:
        model = self._writable_model(table)
        if not rows:
            return []
        for row in rows:
            self._check_fields(model, row.keys())
        records = [model(**dict(row)) for row in rows]
        try:
            self._db.add_all(records)
            self._db.commit()
            for record in records:
                self._db.refresh(record)
        except SQLAlchemyError as exc:
            raise self._fail("INSERT", table, exc) from exc
        return records

    def update_where(self, table: str, filters: Mapping[str, Any], patch: Mapping[str, Any]) -> list:
        model = self._writable_model(table)
        if not filters:
            raise StoreFieldError(f"Refusing unfiltered update on {table!r}")
        self._check_fields(model, patch.keys())
        statement = select(model).where(*self._clauses(model, filters))
        try:
            records = list(self._db.execute(statement).scalars().all())
            for record in records:
                for key, value in patch.items():
                    setattr(record, key, value)
            self._db.commit()
            for record in records:
                self._db.refresh(record)
        except SQLAlchemyError as exc:
            raise self._fail("UPDATE", table, exc) from exc
        return records

    def delete_where(self, table: str, filters: Mapping[str, Any]) -> int:
        model = self._writable_model(table)
        if not filters:
            raise StoreFieldError(f"Refusing unfiltered delete on {table!r}")
        statement = delete(model).where(*self._clauses(model, filters))
        try:
            result = self._db.execute(statement)
            self._db.commit()
        except SQLAlchemyError as exc:
            raise self._fail("DELETE", table, exc) from exc
        return result.rowcount or 0
