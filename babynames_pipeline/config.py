from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional

from .exceptions import ConfigError

# HubSpot batch endpoints accept at most 100 inputs per call.
HUBSPOT_BATCH_LIMIT = 100


@dataclass(frozen=True)
class Settings:
    database_url: str
    log_level: str = "INFO"

    download_dir: str = "./downloads"
    name_column: str = "Name"
    sex_column: str = "Sex"
    import_batch_size: int = 1000

    sync_page_size: int = 5000
    sync_limit: int = 900

    hubspot_access_token: str | None = None
    hubspot_base_url: str = "https://api.hubapi.com"
    hubspot_batch_size: int = HUBSPOT_BATCH_LIMIT
    hubspot_rate_per_sec: float = 10.0
    contact_email_domain: str = "babynamesdemo.com"

    # Throttle handling (429)
    retry_max_attempts: int = 6
    retry_base_delay_sec: float = 1.0
    retry_max_delay_sec: float = 60.0

    dead_letter_path: str = "./out/dead_letter.jsonl"
    abort_on_sink_error: bool = False

    def require_hubspot_token(self) -> str:
        if not self.hubspot_access_token:
            raise ConfigError("HubSpot access token not configured (HUBSPOT_ACCESS_TOKEN).")
        return self.hubspot_access_token


def _get(environ: Mapping[str, str], name: str, default: str | None = None) -> str | None:
    v = environ.get(name)
    if v is None or not v.strip():
        return default
    return v.strip()


def _get_int(environ: Mapping[str, str], name: str, default: int, *, minimum: int = 1) -> int:
    v = _get(environ, name)
    if v is None:
        return default
    try:
        n = int(v)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {v!r}") from None
    if n < minimum:
        raise ConfigError(f"{name} must be >= {minimum}, got {n}")
    return n


def _get_float(environ: Mapping[str, str], name: str, default: float) -> float:
    v = _get(environ, name)
    if v is None:
        return default
    try:
        f = float(v)
    except ValueError:
        raise ConfigError(f"{name} must be a number, got {v!r}") from None
    if f < 0:
        raise ConfigError(f"{name} must be >= 0, got {f}")
    return f


def _get_bool(environ: Mapping[str, str], name: str, default: bool) -> bool:
    v = _get(environ, name)
    if v is None:
        return default
    return v.lower() in ("1", "true", "yes", "on")


def load_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    env = os.environ if environ is None else environ

    db = _get(env, "DATABASE_URL") or _get(env, "POSTGRES_DSN") or ""
    if not db:
        raise ConfigError("Missing DATABASE_URL (or POSTGRES_DSN).")

    batch = _get_int(env, "HUBSPOT_BATCH_SIZE", HUBSPOT_BATCH_LIMIT)

    return Settings(
        database_url=db,
        log_level=(_get(env, "LOG_LEVEL", "INFO") or "INFO").upper(),
        download_dir=_get(env, "DOWNLOAD_DIR", "./downloads") or "./downloads",
        name_column=_get(env, "CSV_NAME_COLUMN", "Name") or "Name",
        sex_column=_get(env, "CSV_SEX_COLUMN", "Sex") or "Sex",
        import_batch_size=_get_int(env, "BATCH_SIZE", 1000),
        sync_page_size=_get_int(env, "SYNC_PAGE_SIZE", 5000),
        sync_limit=_get_int(env, "HUBSPOT_SYNC_LIMIT", 900),
        hubspot_access_token=_get(env, "HUBSPOT_ACCESS_TOKEN"),
        hubspot_base_url=_get(env, "HUBSPOT_API_BASE_URL", "https://api.hubapi.com") or "https://api.hubapi.com",
        hubspot_batch_size=min(batch, HUBSPOT_BATCH_LIMIT),
        hubspot_rate_per_sec=_get_float(env, "HUBSPOT_RATE_PER_SEC", 10.0),
        contact_email_domain=_get(env, "CONTACT_EMAIL_DOMAIN", "babynamesdemo.com") or "babynamesdemo.com",
        retry_max_attempts=_get_int(env, "RETRY_MAX_ATTEMPTS", 6),
        retry_base_delay_sec=_get_float(env, "RETRY_BASE_DELAY_SEC", 1.0),
        retry_max_delay_sec=_get_float(env, "RETRY_MAX_DELAY_SEC", 60.0),
        dead_letter_path=_get(env, "DEAD_LETTER_PATH", "./out/dead_letter.jsonl") or "./out/dead_letter.jsonl",
        abort_on_sink_error=_get_bool(env, "ABORT_ON_SINK_ERROR", False),
    )
