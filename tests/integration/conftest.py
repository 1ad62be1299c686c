import os
from collections.abc import Generator
from typing import Any

import psycopg
import pytest

from labreport.config.settings import Settings
from labreport.database.connection import close_pool, ensure_schema, get_connection, init_pool


def _test_settings() -> Settings:
    os.environ.setdefault("DB_DATABASE", "labreport_test")
    return Settings()


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    return _test_settings()


@pytest.fixture(scope="session")
def integration_pool(test_settings: Settings) -> Generator[None, None, None]:
    try:
        init_pool(test_settings)
        ensure_schema()
    except Exception as e:
        close_pool()
        pytest.skip(f"PostgreSQL test DB not available: {e}. Set DB_* env to run integration tests")
    try:
        yield
    finally:
        close_pool()


@pytest.fixture
def db_conn(integration_pool: None) -> Generator[psycopg.Connection[Any], None, None]:
    with get_connection() as conn:
        yield conn


@pytest.fixture
def upload_task_cleanup(integration_pool: None) -> Generator[list[str], None, None]:
    task_ids: list[str] = []
    yield task_ids
    if not task_ids:
        return
    with get_connection() as conn:
        with conn.cursor() as cur:
            for task_id in task_ids:
                cur.execute("DELETE FROM background_upload_tasks WHERE id = %s::uuid", (task_id,))
        conn.commit()


@pytest.fixture
def clean_preferences(integration_pool: None) -> Generator[None, None, None]:
    with get_connection() as conn:
        conn.execute("DELETE FROM user_preferences")
        conn.commit()
    yield
    with get_connection() as conn:
        conn.execute("DELETE FROM user_preferences")
        conn.commit()
