from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List


class Sex(str, Enum):
    M = "M"
    F = "F"

    @classmethod
    def normalize(cls, raw: str) -> "Sex":
        # Anything that is not exactly "M" after trimming maps to F, including "m".
        return cls.M if raw.strip() == "M" else cls.F


@dataclass(frozen=True)
class Record:
    name: str
    sex: Sex

    def to_row(self) -> tuple[str, str]:
        return (self.name, self.sex.value)


@dataclass(frozen=True)
class ContactInput:
    """One entry of a CRM batch upsert, keyed by a derived email."""

    id_property: str
    id: str
    properties: Dict[str, str]

    def to_payload(self) -> Dict[str, Any]:
        return {"idProperty": self.id_property, "id": self.id, "properties": dict(self.properties)}


@dataclass
class SourceCursor:
    page_size: int
    cap: int
    offset: int = 0
    total_delivered: int = 0

    def __post_init__(self) -> None:
        if self.page_size <= 0:
            raise ValueError("page_size must be > 0")
        if self.cap <= 0:
            raise ValueError("cap must be > 0")

    @property
    def remaining(self) -> int:
        return max(self.cap - self.total_delivered, 0)

    def next_limit(self) -> int:
        return min(self.page_size, self.remaining)


@dataclass
class BatchOutcome:
    batch_index: int
    size: int
    inserted: int = 0
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def duplicates(self) -> int:
        return self.size - self.inserted if self.ok else 0


@dataclass
class IngestOutcome:
    rows_read: int = 0
    rows_skipped: int = 0
    records_inserted: int = 0
    records_duplicate: int = 0
    records_lost: int = 0
    failed_batches: List[BatchOutcome] = field(default_factory=list)
    cancelled: bool = False

    def record(self, outcome: BatchOutcome) -> None:
        if outcome.ok:
            self.records_inserted += outcome.inserted
            self.records_duplicate += outcome.duplicates
        else:
            self.records_lost += outcome.size
            self.failed_batches.append(outcome)

    @property
    def total_inserted(self) -> int:
        return self.records_inserted

    @property
    def skipped_count(self) -> int:
        return self.rows_skipped

    def stats(self) -> Dict[str, Any]:
        return {
            "rows_read": self.rows_read,
            "rows_skipped": self.rows_skipped,
            "records_inserted": self.records_inserted,
            "records_duplicate": self.records_duplicate,
            "records_lost": self.records_lost,
            "failed_batches": [b.batch_index for b in self.failed_batches],
            "cancelled": self.cancelled,
        }


@dataclass
class SyncOutcome:
    total_synced: int = 0
    skipped_count: int = 0
    batches_sent: int = 0
    pages_read: int = 0
    cancelled: bool = False

    def stats(self) -> Dict[str, Any]:
        return {
            "total_synced": self.total_synced,
            "skipped_count": self.skipped_count,
            "batches_sent": self.batches_sent,
            "pages_read": self.pages_read,
            "cancelled": self.cancelled,
        }
