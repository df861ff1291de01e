import os
from collections.abc import Generator
from typing import Any

import psycopg
import pytest

from trust_safety.config.settings import Settings
from trust_safety.database.connection import close_pool, get_connection, init_pool
from trust_safety.database.schema import apply_schema

_TABLES = (
    "analysis_results",
    "submissions",
    "moderation_items",
    "notification_tasks",
    "trust_scores",
    "transactions",
    "user_verifications",
    "accounts",
)


def _test_settings() -> Settings:
    os.environ.setdefault("DB_DATABASE", "trust_safety_test")
    return Settings()


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    return _test_settings()


@pytest.fixture(scope="session")
def integration_pool(test_settings: Settings) -> Generator[None, None, None]:
    try:
        init_pool(test_settings)
        apply_schema()
    except Exception as e:
        close_pool()
        pytest.skip(f"PostgreSQL test DB not available: {e}. Set DB_* env to point at it")
    try:
        yield
    finally:
        close_pool()


@pytest.fixture
def clean_db(integration_pool: None) -> Generator[None, None, None]:
    _truncate()
    yield
    _truncate()


@pytest.fixture
def db_conn(clean_db: None) -> Generator[psycopg.Connection[Any], None, None]:
    with get_connection() as conn:
        yield conn


def _truncate() -> None:
    with get_connection() as conn:
        conn.execute(f"TRUNCATE {', '.join(_TABLES)} RESTART IDENTITY")
        conn.commit()
