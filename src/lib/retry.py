"""
Fixed-attempt retry helpers for outbound HTTP calls.
Delay doubles after each failed attempt: 0.5s, 1s, 2s...
"""

import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

import httpx

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_ATTEMPTS = 3
DEFAULT_BACKOFF_SECONDS = 0.5


async def retry(
    fn: Callable[[], Awaitable[T]],
    attempts: int = DEFAULT_ATTEMPTS,
    backoff: float = DEFAULT_BACKOFF_SECONDS,
    retry_on: tuple = (Exception,),
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Await fn() up to `attempts` times, re-raising the last error."""
    attempt = 0
    while True:
        try:
            return await fn()
        except retry_on as e:
            attempt += 1
            if attempt >= attempts:
                raise
            delay = backoff * 2 ** (attempt - 1)
            logger.warning(f"Attempt {attempt}/{attempts} failed ({e!r}); retrying in {delay}s")
            await sleep(delay)


async def request_with_retry(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    attempts: int = DEFAULT_ATTEMPTS,
    backoff: float = DEFAULT_BACKOFF_SECONDS,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    **kwargs,
) -> httpx.Response:
    """
    Send a request, retrying network errors and 5xx responses.

    The last response is returned even if it is still a 5xx; the caller
    decides how to map it. Network errors on the last attempt propagate.
    """
    for attempt in range(1, attempts + 1):
        try:
            response = await client.request(method, url, **kwargs)
        except httpx.TransportError as e:
            if attempt >= attempts:
                raise
            logger.warning(f"{method} {url.split('?')[0]} failed ({type(e).__name__}), attempt {attempt}/{attempts}")
        else:
            if response.status_code < 500 or attempt >= attempts:
                return response
            logger.warning(f"{method} {url.split('?')[0]} returned {response.status_code}, attempt {attempt}/{attempts}")

        await sleep(backoff * 2 ** (attempt - 1))

    raise RuntimeError("unreachable")
