from __future__ import annotations

import logging
from typing import Iterator, List

from .base import RecordSource
from .logging_utils import get_logger, log_json
from .models import Record, SourceCursor

logger = get_logger(__name__)


class PaginatedReader:
    """Re-reads committed records page by page in ascending id order.

    The requested page size shrinks to whatever is left of the cap; the offset
    always advances by the full page size. Assumes no concurrent writer.
    """

    def __init__(self, source: RecordSource, cursor: SourceCursor) -> None:
        self.source = source
        self.cursor = cursor
        self.pages_read = 0
        self.exhausted = False

    def next_page(self) -> List[Record]:
        limit = self.cursor.next_limit()
        if limit <= 0 or self.exhausted:
            return []

        log_json(logger, logging.INFO, "page_fetch", offset=self.cursor.offset, limit=limit)
        rows = self.source.query(limit, self.cursor.offset)
        self.pages_read += 1
        self.cursor.offset += self.cursor.page_size

        if not rows:
            self.exhausted = True
            return []

        # Guard against a source that ignores the limit.
        rows = rows[:limit]
        self.cursor.total_delivered += len(rows)
        log_json(
            logger,
            logging.INFO,
            "page_fetched",
            rows=len(rows),
            next_offset=self.cursor.offset,
            delivered=self.cursor.total_delivered,
            cap=self.cursor.cap,
        )
        return rows

    def __iter__(self) -> Iterator[List[Record]]:
        while True:
            page = self.next_page()
            if not page:
                return
            yield page
