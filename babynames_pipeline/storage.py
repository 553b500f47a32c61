from __future__ import annotations

from typing import Any, List, Sequence

import psycopg

from .db import fetchall
from .exceptions import SinkWriteError, StoreReadError
from .models import Record, Sex

SQL_INSERT_PREFIX = "INSERT INTO baby_names (name, sex) VALUES "

SQL_INSERT_SUFFIX = """
ON CONFLICT (name, sex) DO NOTHING
RETURNING id
"""

SQL_PAGE = """
SELECT name, sex
FROM baby_names
ORDER BY id ASC
LIMIT %s OFFSET %s
"""


# libpq caps one statement at 65535 bind parameters; each record uses two.
MAX_ROWS_PER_STATEMENT = 65535 // 2


def build_bulk_insert(records: Sequence[Record]) -> tuple[str, tuple]:
    placeholders = ", ".join("(%s, %s)" for _ in records)
    params: list[str] = []
    for rec in records:
        params.extend(rec.to_row())
    return SQL_INSERT_PREFIX + placeholders + SQL_INSERT_SUFFIX, tuple(params)


class PostgresRecordStore:
    """baby_names table as both the bulk write sink and the paged read source.

    Each bulk insert runs in its own transaction so a flushed batch is durable
    before the next row is read.
    """

    def __init__(self, conn: Any) -> None:
        self.conn = conn

    def bulk_insert(self, records: Sequence[Record]) -> int:
        if not records:
            raise ValueError("bulk_insert requires a non-empty batch")

        inserted = 0
        try:
            with self.conn.cursor() as cur:
                for start in range(0, len(records), MAX_ROWS_PER_STATEMENT):
                    sql, params = build_bulk_insert(records[start : start + MAX_ROWS_PER_STATEMENT])
                    cur.execute(sql, params)
                    inserted += len(cur.fetchall())
            self.conn.commit()
        except psycopg.Error as e:
            self._rollback_quietly()
            raise SinkWriteError(f"bulk insert of {len(records)} records failed: {e}") from e
        return inserted

    def _rollback_quietly(self) -> None:
        # A dead connection raises on rollback too; the insert error is what matters.
        try:
            self.conn.rollback()
        except psycopg.Error:
            pass

    def query(self, limit: int, offset: int) -> List[Record]:
        try:
            rows = fetchall(self.conn, SQL_PAGE, (limit, offset))
        except psycopg.Error as e:
            self._rollback_quietly()
            raise StoreReadError(f"page read at offset {offset} (limit {limit}) failed: {e}") from e
        return [Record(name=name, sex=Sex(sex)) for name, sex in rows]
