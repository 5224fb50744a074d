"""Retry/backoff policy for Shortcut API requests.

The policy is a pure function of (attempt, status, Retry-After) so it can be
tested without a network or a clock. `ShortcutClient` plugs it into a
tenacity `Retrying` loop with an injectable sleep.
"""

from __future__ import annotations

from dataclasses import dataclass

import requests

RETRYABLE_STATUSES: frozenset[int] = frozenset({429, 500, 503, 504})
MAX_RETRIES = 5
BASE_DELAY_SECONDS = 1.0
MAX_DELAY_SECONDS = 30.0

# Transport-level failures that are retried under the same schedule.
RETRYABLE_EXCEPTIONS: tuple[type[BaseException], ...] = (
    requests.ConnectionError,
    requests.Timeout,
    # Raised when the connection drops while the response body is being read.
    requests.exceptions.ChunkedEncodingError,
)


class TransientResponse(Exception):
    """Raised inside the retry loop for a retryable HTTP status."""

    def __init__(self, response: requests.Response) -> None:
        self.response = response
        self.status = response.status_code
        self.retry_after = parse_retry_after(response.headers.get("Retry-After"))
        super().__init__(f"HTTP {self.status}")


def parse_retry_after(value: str | None) -> float | None:
    """Parse a delta-seconds `Retry-After` header; HTTP-date values are ignored."""

    if value is None:
        return None
    text = value.strip()
    if not text.isdigit():
        return None
    return float(text)


def is_retryable_status(status: int) -> bool:
    return status in RETRYABLE_STATUSES


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    max_retries: int = MAX_RETRIES
    base_delay: float = BASE_DELAY_SECONDS
    max_delay: float = MAX_DELAY_SECONDS

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    def backoff_delay(
        self,
        attempt: int,
        *,
        status: int | None = None,
        retry_after: float | None = None,
    ) -> float:
        """Seconds to wait before retry number `attempt + 1`.

        `attempt` is 0 for the first retry. `Retry-After` is honored only on a
        429; everything else doubles from `base_delay`. All delays are capped at
        `max_delay`.
        """

        if attempt < 0:
            raise ValueError("attempt must be >= 0")
        if status == 429 and retry_after is not None:
            delay = retry_after
        else:
            delay = self.base_delay * (2**attempt)
        return min(delay, self.max_delay)


DEFAULT_RETRY_POLICY = RetryPolicy()
