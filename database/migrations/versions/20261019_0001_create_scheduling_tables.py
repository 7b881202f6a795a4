"""create students, lessons, calendar events and lesson types

Revision ID: 20261019_0001
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

revision = "20261019_0001"
down_revision = None
branch_labels = None
depends_on = None


lesson_status = sa.Enum("scheduled", "completed", "cancelled", "missed", name="lesson_status")


def upgrade() -> None:
    op.create_table(
        "lesson_types",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("school_id", sa.String(length=36), nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("duration_min", sa.Integer(), nullable=False, server_default="30"),
        sa.Column("price_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_lesson_types_school_id", "lesson_types", ["school_id"], unique=False)

    op.create_table(
        "students",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("teacher_id", sa.String(length=36), nullable=False),
        sa.Column("school_id", sa.String(length=36), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("instrument", sa.String(length=100), nullable=True),
        sa.Column("status", sa.String(length=30), nullable=False, server_default="Current"),
        sa.Column("lesson_day", sa.String(length=10), nullable=True),
        sa.Column("lesson_time", sa.String(length=5), nullable=True),
        sa.Column("lesson_time_end", sa.String(length=5), nullable=True),
        sa.Column("lesson_duration", sa.Integer(), nullable=True),
        sa.Column("lesson_type_id", sa.String(length=36), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_students_teacher_id", "students", ["teacher_id"], unique=False)
    op.create_index("ix_students_school_id", "students", ["school_id"], unique=False)

    op.create_table(
        "lessons",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column(
            "student_id",
            sa.String(length=36),
            sa.ForeignKey("students.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("teacher_id", sa.String(length=36), nullable=False),
        sa.Column("school_id", sa.String(length=36), nullable=False),
        sa.Column("scheduled_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("duration_min", sa.Integer(), nullable=False),
        sa.Column("status", lesson_status, nullable=False, server_default="scheduled"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_lessons_student_id", "lessons", ["student_id"], unique=False)
    op.create_index("ix_lessons_teacher_id", "lessons", ["teacher_id"], unique=False)
    op.create_index("ix_lessons_scheduled_time", "lessons", ["scheduled_time"], unique=False)

    op.create_table(
        "calendar_events",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("event_type", sa.String(length=50), nullable=False, server_default="lesson"),
        sa.Column("start_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("teacher_id", sa.String(length=36), nullable=False),
        sa.Column("school_id", sa.String(length=36), nullable=False),
        sa.Column("linked_id", sa.String(length=36), nullable=True),
        sa.Column("linked_table", sa.String(length=50), nullable=True),
        sa.Column("location", sa.String(length=200), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_calendar_events_teacher_id", "calendar_events", ["teacher_id"], unique=False)
    op.create_index("ix_calendar_events_linked_id", "calendar_events", ["linked_id"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_calendar_events_linked_id", table_name="calendar_events")
    op.drop_index("ix_calendar_events_teacher_id", table_name="calendar_events")
    op.drop_table("calendar_events")
    op.drop_index("ix_lessons_scheduled_time", table_name="lessons")
    op.drop_index("ix_lessons_teacher_id", table_name="lessons")
    op.drop_index("ix_lessons_student_id", table_name="lessons")
    op.drop_table("lessons")
    lesson_status.drop(op.get_bind(), checkfirst=True)
    op.drop_index("ix_students_school_id", table_name="students")
    op.drop_index("ix_students_teacher_id", table_name="students")
    op.drop_table("students")
    op.drop_index("ix_lesson_types_school_id", table_name="lesson_types")
    op.drop_table("lesson_types")
