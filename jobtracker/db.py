"""DuckDB setup for job records and the AI response cache."""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path

import duckdb

logger = logging.getLogger(__name__)


def connect(path: Path | str) -> duckdb.DuckDBPyConnection:
    """Open (or create) the database at ``path`` and make sure the tables exist.

    ``":memory:"`` gives a throwaway in-process database.
    """
    if isinstance(path, Path):
        path.parent.mkdir(parents=True, exist_ok=True)
    con = duckdb.connect(str(path))
    _initialize_tables(con)
    logger.info("DuckDB connected at %s", path)
    return con


def _initialize_tables(con: duckdb.DuckDBPyConnection) -> None:
    con.execute("""
        CREATE TABLE IF NOT EXISTS jobs (
            id VARCHAR PRIMARY KEY,
            job_title VARCHAR NOT NULL,
            company_name VARCHAR NOT NULL,
            application_link VARCHAR NOT NULL,
            company_link VARCHAR,
            requirements VARCHAR DEFAULT '',
            job_description VARCHAR DEFAULT '',
            status VARCHAR NOT NULL DEFAULT 'Pending',
            notes VARCHAR DEFAULT '',
            applied_date DATE NOT NULL,
            created_at TIMESTAMP NOT NULL,
            updated_at TIMESTAMP NOT NULL
        )
    """)
    con.execute("""
        CREATE TABLE IF NOT EXISTS ai_response_cache (
            cache_key VARCHAR PRIMARY KEY,
            cache_type VARCHAR NOT NULL,
            input_hash VARCHAR,
            job_id VARCHAR,
            knowledge_item VARCHAR,
            proficiency_level VARCHAR,
            response_content VARCHAR NOT NULL,
            ai_model VARCHAR NOT NULL,
            tokens_used INTEGER,
            response_time_ms INTEGER,
            created_at TIMESTAMP NOT NULL,
            updated_at TIMESTAMP NOT NULL,
            expires_at TIMESTAMP NOT NULL
        )
    """)


# Timestamps are stored as naive UTC.
def to_db_time(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def from_db_time(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
