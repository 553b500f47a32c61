from __future__ import annotations

from typing import Any, Optional


class PipelineError(RuntimeError):
    """Root of every error raised by the transfer pipeline."""


class ConfigError(PipelineError):
    """Missing or malformed configuration value."""


class RowValidationError(PipelineError):
    """A raw row lacks a required field. Recovered locally: the row is skipped."""

    def __init__(self, row_number: int, reason: str) -> None:
        super().__init__(f"row {row_number}: {reason}")
        self.row_number = row_number
        self.reason = reason


class SourceReadError(PipelineError):
    """The row source failed (I/O, malformed CSV). Fatal for ingestion."""


class SinkWriteError(PipelineError):
    """The store rejected a batch for a reason other than duplicate keys."""

    def __init__(self, message: str, batch_index: int | None = None) -> None:
        super().__init__(message)
        self.batch_index = batch_index


class StoreReadError(PipelineError):
    """Reading committed records back from the store failed. Fatal for egress."""


class CrmError(PipelineError):
    """Remote CRM call failed."""


class AuthError(CrmError):
    """The CRM rejected our credentials. Fatal for the egress run."""


class RateLimitError(CrmError):
    def __init__(self, message: str, retry_after: Optional[float] = None) -> None:
        super().__init__(message)
        self.retry_after = retry_after


class ValidationRejection(CrmError):
    """The CRM rejected the batch content (HTTP 400)."""

    def __init__(self, message: str, detail: Any = None, payload: Any = None) -> None:
        super().__init__(message)
        self.detail = detail
        self.payload = payload


class TransportError(CrmError):
    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class RetryExhausted(CrmError):
    def __init__(self, attempts: int, last_error: BaseException) -> None:
        super().__init__(f"gave up after {attempts} throttled attempts: {last_error}")
        self.attempts = attempts
        self.last_error = last_error
