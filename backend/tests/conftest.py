import os

# Settings are cached on first import; point them at SQLite before lessonflow loads.
os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite://")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret")
os.environ.setdefault("SCHOOL_TIMEZONE", "UTC")

from datetime import datetime, timezone  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from lessonflow.api.deps import get_db  # noqa: E402
from lessonflow.api.routes import health as health_routes  # noqa: E402
from lessonflow.core.security import TeacherContext, TeacherRole, create_access_token  # noqa: E402
from lessonflow.db.base import Base  # noqa: E402
from lessonflow.db.store import TableStore  # noqa: E402
from lessonflow.main import app  # noqa: E402
from lessonflow.models import CalendarEvent, Lesson, LessonStatus, LessonType, Student  # noqa: E402
from lessonflow.services.single_flight import clear_scheduling_guard  # noqa: E402

TEACHER_ID = "teacher-1"
OTHER_TEACHER_ID = "teacher-2"
SCHOOL_ID = "school-1"


@pytest.fixture()
def engine():
    test_engine = create_engine(
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=test_engine)
    yield test_engine
    test_engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture()
def db_session(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def store(db_session):
    return TableStore(db_session)


@pytest.fixture()
def teacher_context():
    return TeacherContext(teacher_id=TEACHER_ID, school_id=SCHOOL_ID, role=TeacherRole.admin)


@pytest.fixture(autouse=True)
def reset_scheduling_guard():
    clear_scheduling_guard()
    yield
    clear_scheduling_guard()


@pytest.fixture()
def client(engine, session_factory, monkeypatch):
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    monkeypatch.setattr(health_routes, "engine", engine)

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


def auth_headers(teacher_id=TEACHER_ID, school_id=SCHOOL_ID, role=TeacherRole.admin):
    token = create_access_token(teacher_id, school_id=school_id, role=role)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def admin_headers():
    return auth_headers()


@pytest.fixture()
def teacher_headers():
    return auth_headers(role=TeacherRole.teacher)


@pytest.fixture()
def make_student(db_session):
    def _make_student(name, day=None, time=None, duration=None, **overrides):
        student = Student(
            teacher_id=overrides.pop("teacher_id", TEACHER_ID),
            school_id=overrides.pop("school_id", SCHOOL_ID),
            name=name,
            lesson_day=day,
            lesson_time=time,
            lesson_duration=duration,
            **overrides,
        )
        db_session.add(student)
        db_session.commit()
        db_session.refresh(student)
        return student

    return _make_student


@pytest.fixture()
def make_lesson(db_session):
    def _make_lesson(student, scheduled_time, duration=30, status=LessonStatus.scheduled):
        lesson = Lesson(
            student_id=student.id,
            teacher_id=student.teacher_id,
            school_id=student.school_id,
            scheduled_time=scheduled_time,
            duration_min=duration,
            status=status,
        )
        db_session.add(lesson)
        db_session.commit()
        db_session.refresh(lesson)
        return lesson

    return _make_lesson


@pytest.fixture()
def make_lesson_type(db_session):
    def _make_lesson_type(name, duration_min, school_id=SCHOOL_ID):
        lesson_type = LessonType(school_id=school_id, name=name, duration_min=duration_min)
        db_session.add(lesson_type)
        db_session.commit()
        db_session.refresh(lesson_type)
        return lesson_type

    return _make_lesson_type


@pytest.fixture()
def make_event(db_session):
    def _make_event(lesson, teacher_id=None):
        event = CalendarEvent(
            title=f"Lesson with {lesson.student_name}",
            start_time=lesson.scheduled_time,
            end_time=lesson.scheduled_time,
            teacher_id=teacher_id or lesson.teacher_id,
            school_id=lesson.school_id,
            linked_id=lesson.id,
            linked_table="lessons",
            location="Online",
            notes="",
        )
        db_session.add(event)
        db_session.commit()
        db_session.refresh(event)
        return event

    return _make_event


def utc(year, month, day, hour=0, minute=0):
    return datetime(year, month, day, hour, minute, tzinfo=timezone.utc)
