from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator, Sequence

from .exceptions import SourceReadError
from .logging_utils import get_logger, log_json
from .models import Record, Sex

logger = get_logger(__name__)


class DeadLetterWriter:
    """Append failed batches to a JSONL file, one line per batch."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self.batches_written = 0

    def write(self, *, run_id: str, batch_index: int, records: Sequence[Record], reason: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        entry = {
            "run_id": run_id,
            "batch_index": batch_index,
            "failed_at_utc": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "reason": reason,
            "records": [{"name": r.name, "sex": r.sex.value} for r in records],
        }
        with self.path.open("a", encoding="utf-8") as f:
            f.write(json.dumps(entry, ensure_ascii=False) + "\n")
        self.batches_written += 1
        log_json(
            logger,
            logging.WARNING,
            "batch_dead_lettered",
            path=str(self.path),
            run_id=run_id,
            batch_index=batch_index,
            size=len(records),
        )


def iter_dead_letter_records(path: str | Path) -> Iterator[Record]:
    p = Path(path)
    try:
        with p.open("r", encoding="utf-8") as f:
            for line_no, line in enumerate(f, start=1):
                s = line.strip()
                if not s:
                    continue
                try:
                    entry = json.loads(s)
                    for r in entry.get("records") or []:
                        yield Record(name=r["name"], sex=Sex(r["sex"]))
                except (ValueError, KeyError, TypeError) as e:
                    raise SourceReadError(f"{p}:{line_no}: malformed dead-letter entry: {e}") from e
    except OSError as e:
        raise SourceReadError(f"Cannot read dead-letter file {p}: {e}") from e
