from __future__ import annotations

from typing import Any, Dict, List, Protocol, Sequence

from .models import ContactInput, Record


class RecordSink(Protocol):
    def bulk_insert(self, records: Sequence[Record]) -> int:
        """Insert ``records`` skipping natural-key collisions; return rows persisted."""
        ...


class RecordSource(Protocol):
    def query(self, limit: int, offset: int) -> List[Record]:
        """Return up to ``limit`` records ordered by ascending surrogate id."""
        ...


class UpsertClient(Protocol):
    def batch_upsert(self, inputs: Sequence[ContactInput]) -> Dict[str, Any]: ...
