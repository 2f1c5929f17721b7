from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, TypeVar

import httpx

from memory_rag.core.errors import EmbeddingAPIError


logger = logging.getLogger(__name__)

T = TypeVar("T")


def is_retryable(exc: BaseException) -> bool:
    if isinstance(exc, EmbeddingAPIError):
        return exc.retryable
    return isinstance(exc, httpx.TransportError)


@dataclass
class RetryPolicy:
    """
    Exponential backoff for calls to the embedding API.

    Rate limits (429), server errors (5xx) and transport failures are retried;
    anything else is raised on the first attempt.
    """
    max_attempts: int = 3
    initial_backoff: float = 0.5
    max_backoff: float = 8.0
    multiplier: float = 2.0
    sleep: Callable[[float], None] = field(default=time.sleep, repr=False)

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

    def delays(self) -> list[float]:
        out = []
        backoff = self.initial_backoff
        for _ in range(self.max_attempts - 1):
            out.append(min(backoff, self.max_backoff))
            backoff *= self.multiplier
        return out

    def call(self, fn: Callable[[], T]) -> T:
        delays = self.delays()
        attempt = 0
        while True:
            attempt += 1
            try:
                return fn()
            except (EmbeddingAPIError, httpx.TransportError) as exc:
                if not is_retryable(exc) or attempt >= self.max_attempts:
                    raise
                wait = delays[attempt - 1]
                logger.warning(
                    "embedding request failed (attempt %d/%d): %s; retrying in %.2fs",
                    attempt,
                    self.max_attempts,
                    exc,
                    wait,
                )
                self.sleep(wait)
