"""
Resilient request gateway shared by every data-source client.

- ``request_with_retry`` / ``fetch_with_retry``: one request with a hard
  timeout, retried on 5xx / network errors / timeouts with exponential
  backoff plus random jitter.  4xx responses are returned immediately since
  a client error is not transient.  Exhausting the attempts raises
  ``GatewayError``, which fetchers catch and turn into empty results.
- ``batched_fetch``: the single concurrency and rate-limit control point.
  Items are processed in fixed-size groups, a failing item never stops its
  group, and a fixed delay separates consecutive groups.
"""

from __future__ import annotations

import asyncio
import logging
import random
from typing import Any, Awaitable, Callable, Optional, Sequence, TypeVar

import httpx

from config import (
    BACKOFF_BASE_SECONDS,
    BACKOFF_JITTER_SECONDS,
    BACKOFF_MULTIPLIER,
    BATCH_DELAY_SECONDS,
    BATCH_SIZE,
    FETCH_MAX_ATTEMPTS,
    FETCH_TIMEOUT_SECONDS,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


class GatewayError(Exception):
    """All attempts for a request failed."""

    def __init__(self, url: str, attempts: int, last_error: object) -> None:
        super().__init__(f"{url}: gave up after {attempts} attempt(s): {last_error}")
        self.url = url
        self.attempts = attempts
        self.last_error = last_error


def backoff_delay(
    attempt: int,
    *,
    base: float = BACKOFF_BASE_SECONDS,
    multiplier: float = BACKOFF_MULTIPLIER,
    jitter: float = BACKOFF_JITTER_SECONDS,
) -> float:
    """Seconds to wait after failed attempt number *attempt* (0-based)."""
    return base * (multiplier ** attempt) + random.uniform(0, jitter)


async def request_with_retry(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    *,
    params: Optional[dict[str, Any]] = None,
    json_payload: Any = None,
    max_attempts: int = FETCH_MAX_ATTEMPTS,
    timeout: float = FETCH_TIMEOUT_SECONDS,
    label: str = "HTTP",
) -> httpx.Response:
    """Send one request, retrying transient failures.

    Returns the response for any status below 500.
    Raises ``GatewayError`` once *max_attempts* transient failures occurred.
    """
    last_error: object = None
    for attempt in range(max_attempts):
        try:
            resp = await asyncio.wait_for(
                client.request(method, url, params=params, json=json_payload),
                timeout=timeout,
            )
            if resp.status_code < 500:
                if resp.status_code >= 400:
                    logger.debug("%s HTTP %s for %s – not retried", label, resp.status_code, url)
                return resp
            last_error = f"HTTP {resp.status_code}"
        except asyncio.TimeoutError:
            last_error = f"timed out after {timeout:.1f}s"
        except httpx.RequestError as exc:
            last_error = exc

        logger.debug("%s attempt %d/%d failed for %s: %s", label, attempt + 1, max_attempts, url, last_error)
        if attempt < max_attempts - 1:
            await asyncio.sleep(backoff_delay(attempt))

    logger.warning("%s giving up on %s after %d attempt(s): %s", label, url, max_attempts, last_error)
    raise GatewayError(url, max_attempts, last_error)


async def fetch_with_retry(
    client: httpx.AsyncClient,
    url: str,
    *,
    params: Optional[dict[str, Any]] = None,
    max_attempts: int = FETCH_MAX_ATTEMPTS,
    label: str = "HTTP",
) -> httpx.Response:
    """GET *url* through ``request_with_retry``."""
    return await request_with_retry(
        client, "GET", url, params=params, max_attempts=max_attempts, label=label
    )


async def post_json_with_retry(
    client: httpx.AsyncClient,
    url: str,
    *,
    json_payload: Any,
    max_attempts: int = FETCH_MAX_ATTEMPTS,
    label: str = "RPC",
) -> Any:
    """POST a JSON body and return the decoded JSON response.

    Raises ``GatewayError`` on exhausted retries and ``httpx.HTTPStatusError``
    on a 4xx answer.
    """
    resp = await request_with_retry(
        client, "POST", url, json_payload=json_payload, max_attempts=max_attempts, label=label
    )
    resp.raise_for_status()
    return resp.json()


async def batched_fetch(
    items: Sequence[T],
    fn: Callable[[T], Awaitable[R]],
    *,
    batch_size: int = BATCH_SIZE,
    delay: float = BATCH_DELAY_SECONDS,
) -> list[R | BaseException]:
    """Run *fn* over *items* in groups of *batch_size*.

    Returns one entry per item, in order: the result, or the exception the
    call raised.  Cancellation of the caller still propagates.
    """
    results: list[R | BaseException] = []
    for start in range(0, len(items), batch_size):
        group = items[start:start + batch_size]
        settled = await asyncio.gather(*(fn(item) for item in group), return_exceptions=True)
        for item, outcome in zip(group, settled):
            if isinstance(outcome, asyncio.CancelledError):
                raise outcome
            if isinstance(outcome, BaseException):
                logger.debug("batched_fetch item %r failed: %s", item, outcome)
        results.extend(settled)
        if start + batch_size < len(items):
            await asyncio.sleep(delay)
    return results
