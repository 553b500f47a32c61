from __future__ import annotations

import json
from typing import Any, Optional

from .db import execute, fetchall

SQL_START = """
INSERT INTO pipeline_runs (run_id, stage, started_at_utc, status, stats_json)
VALUES (%s, %s, now(), 'RUNNING', '{}'::jsonb)
"""

SQL_FINISH = """
UPDATE pipeline_runs
SET ended_at_utc = now(),
    status = %s,
    stats_json = %s::jsonb,
    error_text = %s
WHERE run_id = %s
"""

SQL_RECENT = """
SELECT run_id, stage, started_at_utc, ended_at_utc, status, stats_json, error_text
FROM pipeline_runs
WHERE (%s::text IS NULL OR stage = %s::text)
ORDER BY started_at_utc DESC
LIMIT %s
"""


def start_run(conn: Any, run_id: str, stage: str) -> None:
    execute(conn, SQL_START, (run_id, stage))
    conn.commit()


def finish_run(conn: Any, run_id: str, status: str, stats: dict, error_text: str | None) -> None:
    execute(conn, SQL_FINISH, (status, json.dumps(stats, ensure_ascii=False, default=str), error_text, run_id))
    conn.commit()


def recent_runs(conn: Any, stage: Optional[str] = None, limit: int = 10) -> list[tuple]:
    return fetchall(conn, SQL_RECENT, (stage, stage, limit))
