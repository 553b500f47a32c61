from __future__ import annotations

import logging
from typing import Any

from .db import execute
from .logging_utils import get_logger, log_json

logger = get_logger(__name__)

DDL = [
    """
    CREATE TABLE IF NOT EXISTS baby_names (
      id BIGSERIAL PRIMARY KEY,
      name VARCHAR(255) NOT NULL,
      sex CHAR(1) NOT NULL CHECK (sex IN ('M', 'F')),
      created_at_utc TIMESTAMPTZ NOT NULL DEFAULT now(),
      updated_at_utc TIMESTAMPTZ NOT NULL DEFAULT now()
    )
    """,
    "CREATE UNIQUE INDEX IF NOT EXISTS idx_baby_names_name_sex ON baby_names (name, sex)",
    """
    CREATE TABLE IF NOT EXISTS pipeline_runs (
      run_id UUID PRIMARY KEY,
      stage TEXT NOT NULL,
      started_at_utc TIMESTAMPTZ NOT NULL,
      ended_at_utc TIMESTAMPTZ,
      status TEXT NOT NULL,
      stats_json JSONB NOT NULL DEFAULT '{}'::jsonb,
      error_text TEXT
    )
    """,
]

DROP = [
    "DROP TABLE IF EXISTS pipeline_runs",
    "DROP TABLE IF EXISTS baby_names",
]


def ensure_schema(conn: Any) -> None:
    for stmt in DDL:
        execute(conn, stmt)
    conn.commit()
    log_json(logger, logging.INFO, "schema_ready", tables=["baby_names", "pipeline_runs"])


def drop_schema(conn: Any) -> None:
    for stmt in DROP:
        execute(conn, stmt)
    conn.commit()
    log_json(logger, logging.INFO, "schema_dropped")
