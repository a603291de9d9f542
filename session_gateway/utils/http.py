"""HTTP utilities providing deadline and retry/backoff semantics."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

import httpx

logger = logging.getLogger(__name__)


class RetryConfig:
    def __init__(
        self,
        *,
        attempts: int = 3,
        backoff_seconds: float = 0.5,
        deadline_seconds: float | None = 10.0,
    ) -> None:
        self.attempts = max(1, attempts)
        self.backoff_seconds = backoff_seconds
        self.deadline_seconds = deadline_seconds


async def request_with_retry(
    func: Callable[..., Awaitable[httpx.Response]],
    *args,
    retry_config: RetryConfig | None = None,
    **kwargs,
) -> httpx.Response:
    """Issue a request, retrying transport failures with linear backoff.

    Each attempt runs under ``deadline_seconds``. Responses are returned
    whatever their status code; only failures to obtain a response at all
    (connection errors, timeouts) are retried. Cancellation of the calling
    task propagates immediately.
    """
    config = retry_config or RetryConfig()
    attempt = 0
    last_exception: Exception | None = None

    while attempt < config.attempts:
        try:
            return await asyncio.wait_for(
                func(*args, **kwargs), timeout=config.deadline_seconds
            )
        except (httpx.TransportError, asyncio.TimeoutError) as exc:
            last_exception = exc
            attempt += 1
            if attempt >= config.attempts:
                break
            logger.warning(
                "Transient HTTP failure (attempt %s/%s): %s",
                attempt,
                config.attempts,
                exc.__class__.__name__,
            )
            await asyncio.sleep(config.backoff_seconds * attempt)

    if last_exception is not None:
        raise last_exception
    raise RuntimeError("Request failed without raising an exception")


__all__ = ["RetryConfig", "request_with_retry"]
