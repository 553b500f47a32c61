from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Iterator

import psycopg

APPLICATION_NAME = "babynames_pipeline"


@contextmanager
def connect(dsn: str, *, connect_timeout: int = 10) -> Iterator[psycopg.Connection]:
    """Open one connection for the whole run.

    Stages commit per batch themselves; anything left open on a clean exit is
    committed, and an exception rolls it back.
    """
    conn = psycopg.connect(dsn, connect_timeout=connect_timeout, application_name=APPLICATION_NAME)
    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def execute(conn: Any, sql: str, params: tuple = ()) -> None:
    with conn.cursor() as cur:
        cur.execute(sql, params)


def fetchall(conn: Any, sql: str, params: tuple = ()) -> list[tuple]:
    with conn.cursor() as cur:
        cur.execute(sql, params)
        return cur.fetchall()
