"""HubSpot contacts batch-upsert client.

One call, one classified result: success returns the parsed body, every
failure is raised as a typed ``CrmError``. Retrying is the caller's job.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional, Sequence

import requests

from .exceptions import AuthError, RateLimitError, TransportError, ValidationRejection
from .models import ContactInput

UPSERT_PATH = "/crm/v3/objects/contacts/batch/upsert"


@dataclass
class HubSpotConfig:
    access_token: str
    base_url: str = "https://api.hubapi.com"
    connect_timeout: float = 10.0
    read_timeout: float = 30.0
    max_batch_size: int = 100


def _retry_after(resp: requests.Response) -> Optional[float]:
    ra = resp.headers.get("Retry-After")
    if not ra:
        return None
    try:
        return max(float(ra), 0.0)
    except ValueError:
        return None


def _error_message(resp: requests.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return resp.text[:500]
    if isinstance(body, dict):
        return str(body.get("message") or body)
    return str(body)


class HubSpotClient:
    def __init__(self, cfg: HubSpotConfig, session: Optional[requests.Session] = None):
        self.cfg = cfg
        self.session = session or requests.Session()
        self.session.headers.update(
            {
                "Authorization": f"Bearer {cfg.access_token}",
                "Content-Type": "application/json",
            }
        )

    @property
    def upsert_url(self) -> str:
        return self.cfg.base_url.rstrip("/") + UPSERT_PATH

    def batch_upsert(self, inputs: Sequence[ContactInput]) -> Dict[str, Any]:
        if len(inputs) > self.cfg.max_batch_size:
            raise ValueError(f"batch of {len(inputs)} exceeds HubSpot limit {self.cfg.max_batch_size}")

        body = {"inputs": [c.to_payload() for c in inputs]}
        try:
            resp = self.session.post(
                self.upsert_url,
                json=body,
                timeout=(self.cfg.connect_timeout, self.cfg.read_timeout),
            )
        except requests.RequestException as e:
            raise TransportError(f"HubSpot request failed: {e}") from e

        status = resp.status_code
        if 200 <= status < 300:
            try:
                return resp.json()
            except ValueError:
                return {"status": status}

        if status == 401:
            raise AuthError("Invalid HubSpot API key")
        if status == 429:
            raise RateLimitError("Rate limited by HubSpot", retry_after=_retry_after(resp))
        if status == 400:
            try:
                detail = resp.json()
            except ValueError:
                detail = resp.text[:2000]
            raise ValidationRejection(
                f"HubSpot rejected batch (400): {_error_message(resp)}",
                detail=detail,
                payload=body["inputs"],
            )
        raise TransportError(f"HubSpot API error {status}: {_error_message(resp)}", status=status)
