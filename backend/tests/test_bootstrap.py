import pytest
from sqlalchemy import create_engine, inspect, text
from sqlalchemy.pool import StaticPool

from lessonflow.db.bootstrap import REQUIRED_COLUMNS, ensure_runtime_schema_compatibility


@pytest.fixture()
def empty_engine():
    test_engine = create_engine(
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    yield test_engine
    test_engine.dispose()


def test_bootstrap_creates_every_required_table(empty_engine):
    ensure_runtime_schema_compatibility(empty_engine)

    inspector = inspect(empty_engine)
    assert set(REQUIRED_COLUMNS) <= set(inspector.get_table_names())
    for table_name, required in REQUIRED_COLUMNS.items():
        assert required <= {column["name"] for column in inspector.get_columns(table_name)}


def test_bootstrap_refuses_a_table_missing_required_columns(empty_engine):
    with empty_engine.begin() as connection:
        connection.execute(text("CREATE TABLE lesson_types (id VARCHAR(36) PRIMARY KEY, name VARCHAR(120))"))

    with pytest.raises(RuntimeError, match="Runtime schema compatibility bootstrap failed") as excinfo:
        ensure_runtime_schema_compatibility(empty_engine)

    assert "lesson_types.duration_min" in str(excinfo.value.__cause__)
