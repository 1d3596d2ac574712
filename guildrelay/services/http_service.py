"""HTTP helpers with retry/backoff for provider APIs."""

from __future__ import annotations

import asyncio
import logging
import random
from typing import Any, Awaitable, Callable

import httpx

from guildrelay.core.config import settings
from guildrelay.core.errors import (
    ProviderAuthError,
    ProviderError,
    ProviderGoneError,
    ProviderNotFoundError,
    TransientProviderError,
)

logger = logging.getLogger(__name__)

DEFAULT_RETRY_STATUSES = {429, 500, 502, 503, 504}


async def request_with_retries(
    request_fn: Callable[[], Awaitable[httpx.Response]],
    *,
    max_attempts: int = 3,
    base_delay: float = 0.5,
    max_delay: float = 4.0,
    retry_statuses: set[int] | None = None,
) -> httpx.Response:
    """Execute an HTTP request with exponential backoff retries."""
    statuses = retry_statuses or DEFAULT_RETRY_STATUSES

    for attempt in range(max_attempts):
        try:
            response = await request_fn()
        except httpx.RequestError as exc:
            if attempt >= max_attempts - 1:
                raise
            delay = _backoff(attempt, base_delay, max_delay)
            logger.warning("HTTP request failed, retrying", exc_info=exc)
            if delay:
                await asyncio.sleep(delay)
            continue

        if response.status_code in statuses and attempt < max_attempts - 1:
            delay = _backoff(attempt, base_delay, max_delay)
            logger.warning("HTTP request returned %s, retrying", response.status_code)
            if delay:
                await asyncio.sleep(delay)
            continue

        return response

    return response


def _backoff(attempt: int, base_delay: float, max_delay: float) -> float:
    delay = min(max_delay, base_delay * (2**attempt))
    if delay:
        delay = delay + random.uniform(0, delay / 2)
    return delay


def raise_for_provider_status(provider: str, response: httpx.Response, *, method: str, url: str) -> None:
    """Map an error response onto the relay's provider error taxonomy."""
    status = response.status_code
    if status < 400:
        return
    # Path only: query strings can carry API keys
    message = f"{method} {httpx.URL(url).path} returned {status}"
    if status in (401, 403):
        raise ProviderAuthError(provider, message, status_code=status)
    if status == 404:
        raise ProviderNotFoundError(provider, message, status_code=status)
    if status == 410:
        raise ProviderGoneError(provider, message, status_code=status)
    if status == 429 or status >= 500:
        raise TransientProviderError(provider, message, status_code=status)
    raise ProviderError(provider, message, status_code=status)


async def provider_request(
    provider: str,
    method: str,
    url: str,
    *,
    max_attempts: int | None = None,
    base_delay: float = 0.5,
    **kwargs: Any,
) -> httpx.Response:
    """
    Call a provider API and return the successful response.

    Network errors, 429 and 5xx are retried; whatever is left after the last
    attempt is raised as a ProviderError subclass.
    """
    attempts = max_attempts or settings.PROVIDER_MAX_ATTEMPTS

    async with httpx.AsyncClient(timeout=settings.PROVIDER_HTTP_TIMEOUT) as client:
        try:
            response = await request_with_retries(
                lambda: client.request(method, url, **kwargs),
                max_attempts=attempts,
                base_delay=base_delay,
            )
        except httpx.RequestError as exc:
            raise TransientProviderError(provider, f"{method} request failed: {exc}") from exc

    raise_for_provider_status(provider, response, method=method, url=url)
    return response
