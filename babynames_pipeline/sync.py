"""Egress stage: stored Records -> HubSpot contact batch upserts."""

from __future__ import annotations

import logging
import re
import threading
from typing import List
from uuid import uuid4

from .accumulator import BatchAccumulator
from .base import UpsertClient
from .config import HUBSPOT_BATCH_LIMIT
from .exceptions import AuthError, CrmError, RateLimitError, RetryExhausted, ValidationRejection
from .logging_utils import get_logger, log_json
from .models import ContactInput, Record, Sex, SyncOutcome
from .rate_limit import TokenBucket
from .reader import PaginatedReader
from .retry import RetryPolicy

logger = get_logger(__name__)

PROGRESS_EVERY = 10_000

_WS = re.compile(r"\s+")


def contact_email(record: Record, domain: str = "babynamesdemo.com") -> str:
    local = _WS.sub(".", record.name.lower())
    return f"{local}.{record.sex.value.lower()}@{domain}"


def to_contact(record: Record, domain: str = "babynamesdemo.com") -> ContactInput:
    if not record.name.strip():
        raise ValueError("record has an empty name")
    email = contact_email(record, domain)
    return ContactInput(
        id_property="email",
        id=email,
        properties={
            "email": email,
            "firstname": record.name,
            "lastname": "Male" if record.sex is Sex.M else "Female",
            "hs_lead_status": "NEW",
            "lifecyclestage": "subscriber",
        },
    )


class ContactSyncer:
    """Regroups paged records into provider-sized batches and upserts them.

    Sends are strictly sequential. A throttled batch is retried as-is under
    ``retry``; auth failures, content rejections and transport errors end the
    run. Batches already delivered stay delivered.
    """

    def __init__(
        self,
        reader: PaginatedReader,
        client: UpsertClient,
        *,
        batch_size: int = HUBSPOT_BATCH_LIMIT,
        email_domain: str = "babynamesdemo.com",
        retry: RetryPolicy | None = None,
        bucket: TokenBucket | None = None,
        cancel: threading.Event | None = None,
        run_id: str | None = None,
    ) -> None:
        if not 0 < batch_size <= HUBSPOT_BATCH_LIMIT:
            raise ValueError(f"batch_size must be in 1..{HUBSPOT_BATCH_LIMIT}")
        self.reader = reader
        self.client = client
        self.batch_size = batch_size
        self.email_domain = email_domain
        self.retry = retry or RetryPolicy()
        self.bucket = bucket
        self.cancel = cancel
        self.run_id = run_id or str(uuid4())
        self._batch_index = 0

    def _cancelled(self) -> bool:
        return self.cancel is not None and self.cancel.is_set()

    def run(self) -> SyncOutcome:
        outcome = SyncOutcome()
        acc: BatchAccumulator[ContactInput] = BatchAccumulator(self.batch_size)
        log_json(logger, logging.INFO, "sync_started", run_id=self.run_id, cap=self.reader.cursor.cap, page_size=self.reader.cursor.page_size)

        for page in self.reader:
            for record in page:
                try:
                    contact = to_contact(record, self.email_domain)
                except ValueError as e:
                    outcome.skipped_count += 1
                    log_json(logger, logging.INFO, "record_skipped", name=record.name, reason=str(e))
                    continue

                if acc.push(contact):
                    if not self._send(acc.drain(), outcome) or self._cancelled():
                        break

            if self._cancelled():
                break

        if len(acc) and not self._cancelled():
            self._send(acc.drain(), outcome)

        if self._cancelled():
            outcome.cancelled = True
            log_json(logger, logging.WARNING, "sync_cancelled", run_id=self.run_id, total_synced=outcome.total_synced, pending=len(acc))

        outcome.pages_read = self.reader.pages_read
        log_json(logger, logging.INFO, "sync_complete", run_id=self.run_id, **outcome.stats())
        return outcome

    def _abandoned(self, batch: List[ContactInput], attempt: int) -> bool:
        if not self._cancelled():
            return False
        log_json(logger, logging.WARNING, "batch_abandoned", batch_index=self._batch_index, attempts=attempt, size=len(batch))
        return True

    def _send(self, batch: List[ContactInput], outcome: SyncOutcome) -> bool:
        """Deliver one batch. Returns False when cancellation cut a throttle wait short."""
        self._batch_index += 1
        attempt = 0
        while True:
            attempt += 1
            if self.bucket is not None:
                self.bucket.acquire()
            try:
                self.client.batch_upsert(batch)
                break
            except RateLimitError as e:
                if not self.retry.should_retry(attempt):
                    log_json(logger, logging.ERROR, "retry_exhausted", batch_index=self._batch_index, attempts=attempt, size=len(batch))
                    raise RetryExhausted(attempt, e) from e
                if self._abandoned(batch, attempt):
                    return False
                delay = self.retry.wait(attempt, e.retry_after)
                log_json(
                    logger,
                    logging.WARNING,
                    "throttled",
                    batch_index=self._batch_index,
                    attempt=attempt,
                    retry_after=e.retry_after,
                    waited_sec=round(delay, 3),
                )
                if self._abandoned(batch, attempt):
                    return False
            except AuthError as e:
                log_json(logger, logging.ERROR, "sync_auth_failed", batch_index=self._batch_index, error=str(e))
                raise
            except ValidationRejection as e:
                payload = e.payload if e.payload is not None else [c.to_payload() for c in batch]
                log_json(
                    logger,
                    logging.ERROR,
                    "validation_rejected",
                    batch_index=self._batch_index,
                    size=len(batch),
                    detail=e.detail,
                    payload=payload,
                )
                raise
            except CrmError as e:
                log_json(logger, logging.ERROR, "sync_transport_failed", batch_index=self._batch_index, error=str(e), kind=type(e).__name__)
                raise

        before = outcome.total_synced
        outcome.total_synced += len(batch)
        outcome.batches_sent += 1
        log_json(logger, logging.INFO, "batch_sent", batch_index=self._batch_index, size=len(batch), attempts=attempt)
        if outcome.total_synced // PROGRESS_EVERY > before // PROGRESS_EVERY:
            log_json(logger, logging.INFO, "sync_progress", total_synced=outcome.total_synced)
        return True
