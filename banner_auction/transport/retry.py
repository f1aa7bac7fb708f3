"""Bounded retries for idempotent collaborator reads."""

from __future__ import annotations

import logging
from typing import Awaitable, Callable, TypeVar

from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_fixed,
)

from ..config import RetryConfig
from ..github.client import GitHubAPIError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _is_transient(exc: BaseException) -> bool:
    # A 404 is an answer, not a transient failure.
    return isinstance(exc, GitHubAPIError) and not exc.is_not_found


async def with_retry(fetch: Callable[[], Awaitable[T]], policy: RetryConfig) -> T:
    """Run ``fetch`` up to ``policy.attempts`` times with a fixed delay between tries."""
    async for attempt in AsyncRetrying(
        stop=stop_after_attempt(policy.attempts),
        wait=wait_fixed(policy.delay_seconds),
        retry=retry_if_exception(_is_transient),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    ):
        with attempt:
            return await fetch()
    raise RuntimeError("retry loop exited without a result")  # pragma: no cover
