"""
Custom exception hierarchy for the finance fetcher.

All exceptions inherit from FinFetchError, which provides optional context
for structured error handling and logging.

FetchError is the tagged failure carried by every unsuccessful Outcome. Its
kind is decided by classify_status() for HTTP responses and by
classify_exception() for transport-level failures.
"""

from __future__ import annotations

import asyncio
from enum import Enum
from typing import Any

import httpx


class FinFetchError(Exception):
    """Base exception for all finance fetcher errors.

    Attributes:
        message: Human-readable error message.
        context: Optional structured context for logging/debugging.
    """

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def __str__(self) -> str:
        if self.context:
            ctx_str = ", ".join(f"{k}={v!r}" for k, v in self.context.items())
            return f"{self.message} ({ctx_str})"
        return self.message

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, context={self.context!r})"


class ConfigurationError(FinFetchError):
    """Raised when configuration is invalid or missing.

    Examples:
        - Missing API key for a source that has items configured
        - No wallets, symbols or properties configured
        - An orchestration run started with zero fetch units
    """

    pass


class ErrorKind(str, Enum):
    """Category of a failed fetch."""

    NETWORK = "network"
    RATE_LIMIT = "rate_limit"
    SERVER = "server"
    CLIENT = "client"
    VALIDATION = "validation"
    TIMEOUT = "timeout"
    UNKNOWN = "unknown"


class FetchError(FinFetchError):
    """Raised (and reported in an Outcome) when fetching a value fails.

    Context should include:
        - source: The data source (e.g., "etherscan", "rentcast")
        - key: The fetch unit key, once known

    Attributes:
        kind: The failure category.
        retryable: Whether the retry policy may attempt the call again.
        status_code: HTTP status code if the failure came from a response.
        cause: The underlying exception, if any.
    """

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        *,
        retryable: bool = False,
        status_code: int | None = None,
        cause: BaseException | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, context)
        self.kind = kind
        self.retryable = retryable
        self.status_code = status_code
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause

    def __str__(self) -> str:
        if self.status_code is not None:
            return f"{self.kind.value} error (status {self.status_code}): {self.message}"
        return f"{self.kind.value} error: {self.message}"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}({self.kind.value!r}, {self.message!r}, "
            f"retryable={self.retryable!r}, status_code={self.status_code!r})"
        )

    @classmethod
    def network(cls, cause: BaseException | None = None) -> FetchError:
        """Connection refused, DNS failure, broken pipe and similar."""
        detail = f": {cause}" if cause is not None and str(cause) else ""
        return cls(
            ErrorKind.NETWORK,
            f"network request failed{detail}",
            retryable=True,
            cause=cause,
        )

    @classmethod
    def rate_limit(cls, status_code: int = 429) -> FetchError:
        return cls(
            ErrorKind.RATE_LIMIT,
            "rate limit exceeded",
            retryable=True,
            status_code=status_code,
        )

    @classmethod
    def server(cls, status_code: int) -> FetchError:
        return cls(
            ErrorKind.SERVER,
            "server returned an error",
            retryable=True,
            status_code=status_code,
        )

    @classmethod
    def client(cls, status_code: int, message: str | None = None) -> FetchError:
        return cls(
            ErrorKind.CLIENT,
            message or f"client error: HTTP {status_code}",
            retryable=False,
            status_code=status_code,
        )

    @classmethod
    def validation(cls, message: str) -> FetchError:
        """The response arrived but did not contain a usable value."""
        return cls(ErrorKind.VALIDATION, message, retryable=False)

    @classmethod
    def timeout(cls, cause: BaseException | None = None) -> FetchError:
        return cls(
            ErrorKind.TIMEOUT,
            "request timed out",
            retryable=True,
            cause=cause,
        )

    @classmethod
    def unknown(
        cls,
        message: str,
        status_code: int | None = None,
        cause: BaseException | None = None,
    ) -> FetchError:
        return cls(
            ErrorKind.UNKNOWN,
            message,
            retryable=False,
            status_code=status_code,
            cause=cause,
        )


def classify_status(status_code: int) -> FetchError:
    """Map an unsuccessful HTTP status code to a FetchError.

    429 is RateLimit, 5xx is Server, other 4xx is Client. Anything else that
    reaches this point (1xx, 3xx) is Unknown.
    """
    if status_code == 429:
        return FetchError.rate_limit(status_code)
    if status_code >= 500:
        return FetchError.server(status_code)
    if status_code >= 400:
        return FetchError.client(status_code)
    return FetchError.unknown(
        f"unexpected status code: {status_code}", status_code=status_code
    )


def classify_exception(exc: BaseException) -> FetchError:
    """Map an exception raised while talking to a provider to a FetchError.

    Deadline expiry is only reported as Timeout when it is the exception
    itself; an httpx transport failure is Network regardless of what caused
    it underneath.
    """
    if isinstance(exc, FetchError):
        return exc
    if isinstance(exc, (TimeoutError, asyncio.TimeoutError, httpx.TimeoutException)):
        return FetchError.timeout(exc)
    if isinstance(exc, httpx.TransportError):
        return FetchError.network(exc)
    return FetchError.unknown(f"unexpected error: {exc!r}", cause=exc)
