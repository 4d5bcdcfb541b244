"""
Retry policy applied around every outbound HTTP request.

Whether a request is retried depends only on whether the transport failed and
on the response status code. Backoff is exponential and capped; both the
bound and the backoff come from the RetryPolicy instance so tests can run with
zero delay.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Awaitable, Callable

import httpx
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    retry_if_result,
    stop_after_attempt,
    wait_exponential,
)

from finfetch.logging import get_logger

logger = get_logger(__name__)

RETRYABLE_STATUS_CODES = frozenset({408, 429})

DEFAULT_MAX_RETRIES = 3
DEFAULT_INITIAL_BACKOFF = 1.0
DEFAULT_MAX_BACKOFF = 10.0


def should_retry(status_code: int | None, transport_error: bool = False) -> bool:
    """Decide whether a request outcome warrants another attempt.

    Args:
        status_code: Response status, or None when no response arrived.
        transport_error: True if the request failed below HTTP.

    Returns:
        True for transport errors, 5xx, 429 and 408. False otherwise.
    """
    if transport_error:
        return True
    if status_code is None:
        return False
    return status_code >= 500 or status_code in RETRYABLE_STATUS_CODES


def _response_is_retryable(response: httpx.Response) -> bool:
    return should_retry(response.status_code)


def _log_retry(retry_state: RetryCallState) -> None:
    """Log each retry with the attempt number and what caused it."""
    outcome = retry_state.outcome
    url = retry_state.kwargs.get("url")
    if outcome is not None and outcome.failed:
        logger.warning(
            "Retrying request after transport error",
            url=url,
            attempt=retry_state.attempt_number,
            error=repr(outcome.exception()),
        )
    elif outcome is not None:
        logger.warning(
            "Retrying request after status code",
            url=url,
            attempt=retry_state.attempt_number,
            status_code=outcome.result().status_code,
        )


def _last_attempt(retry_state: RetryCallState) -> httpx.Response:
    """Hand back the final response, or re-raise the final transport error."""
    assert retry_state.outcome is not None
    return retry_state.outcome.result()


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded exponential-backoff retry.

    Attributes:
        max_retries: Retries after the first attempt (total attempts is one more).
        initial_backoff: Delay before the first retry, in seconds.
        max_backoff: Upper bound on any single delay, in seconds.
    """

    max_retries: int = DEFAULT_MAX_RETRIES
    initial_backoff: float = DEFAULT_INITIAL_BACKOFF
    max_backoff: float = DEFAULT_MAX_BACKOFF

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if self.initial_backoff < 0 or self.max_backoff < 0:
            raise ValueError("backoff values must be >= 0")

    @classmethod
    def immediate(cls, max_retries: int = DEFAULT_MAX_RETRIES) -> RetryPolicy:
        """Policy with the default bound and no delay between attempts."""
        return cls(max_retries=max_retries, initial_backoff=0.0, max_backoff=0.0)

    def _retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            retry=(
                retry_if_exception_type(httpx.TransportError)
                | retry_if_result(_response_is_retryable)
            ),
            stop=stop_after_attempt(self.max_retries + 1),
            wait=wait_exponential(
                multiplier=self.initial_backoff,
                min=self.initial_backoff,
                max=self.max_backoff,
            ),
            before_sleep=_log_retry,
            retry_error_callback=_last_attempt,
            reraise=True,
        )

    async def execute(
        self,
        send: Callable[..., Awaitable[httpx.Response]],
        *,
        url: str,
        **kwargs: object,
    ) -> httpx.Response:
        """Call ``send(url=url, **kwargs)`` until it succeeds or attempts run out.

        Returns:
            The first non-retryable response, or the last response once the
            bound is reached.

        Raises:
            httpx.TransportError: If the last attempt failed below HTTP.
        """
        return await self._retrying()(send, url=url, **kwargs)
