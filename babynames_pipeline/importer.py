"""Ingestion stage: raw rows -> validated Records -> duplicate-tolerant bulk insert."""

from __future__ import annotations

import logging
import threading
from typing import Callable, Iterable, Iterator, List, Mapping, Optional, TypeVar
from uuid import uuid4

from .accumulator import BatchAccumulator
from .base import RecordSink
from .dead_letter import DeadLetterWriter
from .exceptions import RowValidationError, SinkWriteError, SourceReadError
from .logging_utils import get_logger, log_json
from .models import BatchOutcome, IngestOutcome, Record, Sex

logger = get_logger(__name__)

T = TypeVar("T")


def parse_row(row: Mapping[str, Optional[str]], row_number: int, *, name_column: str = "Name", sex_column: str = "Sex") -> Record:
    name = (row.get(name_column) or "").strip()
    sex = (row.get(sex_column) or "").strip()
    if not name or not sex:
        missing = [c for c, v in ((name_column, name), (sex_column, sex)) if not v]
        raise RowValidationError(row_number, f"missing {' and '.join(missing)}")
    return Record(name=name, sex=Sex.normalize(sex))


class CsvImporter:
    """Streams rows into the store one bounded batch at a time.

    Rows are pulled from the source only while the accumulator has room. When
    it fills, the batch is flushed synchronously and the next row is requested
    only after the flush result is known, so at most one batch is held in
    memory and batches reach the store in input order.
    """

    def __init__(
        self,
        sink: RecordSink,
        *,
        batch_size: int = 1000,
        name_column: str = "Name",
        sex_column: str = "Sex",
        dead_letter: DeadLetterWriter | None = None,
        abort_on_sink_error: bool = False,
        cancel: threading.Event | None = None,
        run_id: str | None = None,
    ) -> None:
        self.sink = sink
        self.batch_size = batch_size
        self.name_column = name_column
        self.sex_column = sex_column
        self.dead_letter = dead_letter
        self.abort_on_sink_error = abort_on_sink_error
        self.cancel = cancel
        self.run_id = run_id or str(uuid4())

    def run(self, rows: Iterable[Mapping[str, Optional[str]]]) -> IngestOutcome:
        log_json(logger, logging.INFO, "import_started", run_id=self.run_id, batch_size=self.batch_size)

        def parse(row: Mapping[str, Optional[str]], n: int) -> Record:
            return parse_row(row, n, name_column=self.name_column, sex_column=self.sex_column)

        return self._consume(iter(rows), parse)

    def replay(self, records: Iterable[Record]) -> IngestOutcome:
        """Re-insert already validated records, e.g. from a dead-letter file."""
        log_json(logger, logging.INFO, "replay_started", run_id=self.run_id, batch_size=self.batch_size)
        return self._consume(iter(records), lambda rec, n: rec)

    def _consume(self, items: Iterator[T], parse: Callable[[T, int], Record]) -> IngestOutcome:
        outcome = IngestOutcome()
        acc: BatchAccumulator[Record] = BatchAccumulator(self.batch_size)
        batch_index = 0

        while True:
            if self.cancel is not None and self.cancel.is_set():
                outcome.cancelled = True
                log_json(logger, logging.WARNING, "import_cancelled", run_id=self.run_id, rows_read=outcome.rows_read)
                break

            try:
                item = next(items)
            except StopIteration:
                break
            except SourceReadError as e:
                self._log_source_failure(outcome, len(acc), e)
                raise
            except OSError as e:
                self._log_source_failure(outcome, len(acc), e)
                raise SourceReadError(str(e)) from e

            outcome.rows_read += 1
            try:
                record = parse(item, outcome.rows_read)
            except RowValidationError as e:
                outcome.rows_skipped += 1
                log_json(logger, logging.INFO, "row_skipped", row=e.row_number, reason=e.reason)
                continue

            if acc.push(record):
                batch_index += 1
                self._flush(acc.drain(), batch_index, outcome)

        if len(acc):
            batch_index += 1
            self._flush(acc.drain(), batch_index, outcome)

        log_json(logger, logging.INFO, "import_complete", run_id=self.run_id, batches=batch_index, **outcome.stats())
        return outcome

    def _flush(self, records: List[Record], batch_index: int, outcome: IngestOutcome) -> None:
        try:
            inserted = self.sink.bulk_insert(records)
            result = BatchOutcome(batch_index=batch_index, size=len(records), inserted=inserted)
        except SinkWriteError as e:
            e.batch_index = batch_index
            result = BatchOutcome(batch_index=batch_index, size=len(records), error=str(e))

        outcome.record(result)

        if result.ok:
            log_json(
                logger,
                logging.INFO,
                "batch_flushed",
                batch_index=batch_index,
                size=result.size,
                inserted=result.inserted,
                total_inserted=outcome.records_inserted,
                rows_read=outcome.rows_read,
            )
            return

        log_json(
            logger,
            logging.ERROR,
            "batch_failed",
            run_id=self.run_id,
            batch_index=batch_index,
            size=result.size,
            rows_read=outcome.rows_read,
            error=result.error,
        )
        if self.dead_letter is not None:
            self.dead_letter.write(run_id=self.run_id, batch_index=batch_index, records=records, reason=result.error or "")
        if self.abort_on_sink_error:
            raise SinkWriteError(f"batch {batch_index} failed: {result.error}", batch_index=batch_index)

    def _log_source_failure(self, outcome: IngestOutcome, pending: int, error: BaseException) -> None:
        log_json(
            logger,
            logging.ERROR,
            "source_read_failed",
            run_id=self.run_id,
            rows_read=outcome.rows_read,
            pending_lost=pending,
            error=str(error),
        )
