from __future__ import annotations

import random
import time
from dataclasses import dataclass, field
from typing import Callable, Optional


@dataclass
class RetryPolicy:
    """Bounded exponential backoff with jitter for throttled calls."""

    max_attempts: int = 6
    backoff_base_sec: float = 1.0
    backoff_max_sec: float = 60.0
    jitter_ratio: float = 0.25
    sleep: Callable[[float], None] = time.sleep
    rand: Callable[[float, float], float] = field(default=random.uniform)

    def delay(self, attempt: int, retry_after: Optional[float] = None) -> float:
        base = self.backoff_base_sec * (2 ** (attempt - 1))
        wait = min(base, self.backoff_max_sec)
        if retry_after is not None:
            wait = max(wait, retry_after)
        return wait + self.rand(0, self.jitter_ratio * wait)

    def should_retry(self, attempt: int) -> bool:
        return attempt < self.max_attempts

    def wait(self, attempt: int, retry_after: Optional[float] = None) -> float:
        d = self.delay(attempt, retry_after)
        self.sleep(d)
        return d
