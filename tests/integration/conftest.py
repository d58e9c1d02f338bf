import os
from collections.abc import Generator

import psycopg
import pytest

from seqsubmit.config.settings import Settings
from seqsubmit.database.connection import build_conninfo

TEST_TABLE = "upload_it"


def _test_settings() -> Settings:
    os.environ.setdefault("DB_DATABASE", "muse_test")
    return Settings()


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    return _test_settings()


@pytest.fixture(scope="session")
def conninfo(test_settings: Settings) -> str:
    info = build_conninfo(test_settings)
    try:
        with psycopg.connect(info, connect_timeout=3):
            pass
    except psycopg.Error as e:
        pytest.skip(
            f"PostgreSQL test DB not available: {e}. Set DB_* env to point at a test database"
        )
    return info


@pytest.fixture
def upload_table(conninfo: str) -> Generator[str, None, None]:
    """A scratch upload table with the same columns the service reads."""
    with psycopg.connect(conninfo, autocommit=True) as conn:
        conn.execute(f"DROP TABLE IF EXISTS {TEST_TABLE}")
        conn.execute(
            f"""
            CREATE TABLE {TEST_TABLE} (
                upload_id uuid PRIMARY KEY,
                study_id text NOT NULL,
                submitter_sample_id text,
                submission_id uuid NOT NULL,
                user_id uuid NOT NULL,
                created_at timestamptz NOT NULL DEFAULT NOW(),
                status text NOT NULL,
                analysis_id text,
                object_id text,
                error text
            )
            """
        )
    try:
        yield TEST_TABLE
    finally:
        with psycopg.connect(conninfo, autocommit=True) as conn:
            conn.execute(f"DROP TABLE IF EXISTS {TEST_TABLE}")
