"""Retry with exponential backoff, shared by the completion and host transports.

Both the category reviewer and the annotation reconciler go through
``call_with_retry`` so a rate-limited completion and a rate-limited thread
update back off the same way. The backoff wait uses the run's cancellation
event, so an interrupt or run timeout wakes sleeping retries immediately.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, TypeVar

from biceplens_core.errors import HostApiError, ReviewCancelled, TransportError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0

    def delay_for(self, retry_number: int) -> float:
        """Backoff before retry ``retry_number`` (0-based): base, 2*base, 4*base ... capped."""
        return min(self.base_delay * (2**retry_number), self.max_delay)

    @classmethod
    def from_review_config(cls, review_config) -> RetryPolicy:
        return cls(
            max_retries=review_config.max_retries,
            base_delay=review_config.retry_base_delay,
            max_delay=review_config.retry_max_delay,
        )


def call_with_retry(
    fn: Callable[[], T],
    policy: RetryPolicy,
    description: str,
    cancel_event: threading.Event | None = None,
) -> T:
    """Call ``fn`` until it succeeds, a non-retryable error occurs, or retries run out.

    Only TransportError and HostApiError with a retryable kind are retried;
    anything else propagates on the first attempt. The last error is re-raised
    once ``policy.max_retries`` retries have been spent.
    """
    attempts = policy.max_retries + 1
    for attempt in range(attempts):
        if cancel_event is not None and cancel_event.is_set():
            raise ReviewCancelled(f"{description}: cancelled before attempt {attempt + 1}")
        try:
            return fn()
        except (TransportError, HostApiError) as e:
            if not e.retryable:
                logger.debug("%s failed with non-retryable error: %s", description, e)
                raise
            if attempt == attempts - 1:
                logger.error("%s failed after %d attempts: %s", description, attempts, e)
                raise
            delay = policy.delay_for(attempt)
            logger.warning(
                "%s error (attempt %d/%d): %s. Retrying in %.1fs...",
                description,
                attempt + 1,
                attempts,
                e,
                delay,
            )
            if cancel_event is not None:
                if cancel_event.wait(delay):
                    raise ReviewCancelled(f"{description}: cancelled during backoff")
            else:
                time.sleep(delay)
    raise AssertionError("unreachable")  # pragma: no cover
