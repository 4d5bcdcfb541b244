"""
HTTP transport shared by all fetch units.

Wraps an httpx.AsyncClient with the pieces every provider call needs:
- per-source rate limiting before each attempt
- the retry policy around each request
- classification of failures into FetchError
- JSON decoding (orjson)
"""

from __future__ import annotations

import asyncio
from typing import Any, Mapping

import httpx
import orjson

from finfetch.data.rate_limit import RateLimiterRegistry
from finfetch.data.retry import RetryPolicy
from finfetch.exceptions import FetchError, classify_exception, classify_status
from finfetch.logging import get_logger

logger = get_logger(__name__)

# Request timeout per attempt, in seconds
REQUEST_TIMEOUT = 30.0

# Query parameters that carry credentials and must never be logged
SECRET_PARAMS = frozenset({"apikey", "api_key", "token"})


def _redact(params: Mapping[str, Any] | None) -> dict[str, Any]:
    if not params:
        return {}
    return {k: ("***" if k.lower() in SECRET_PARAMS else v) for k, v in params.items()}


class HTTPTransport:
    """Rate-limited, retrying JSON GET client for one data source.

    Args:
        source: Source name used for rate limiting and logging.
        base_url: Provider base URL; request paths are appended to it.
        limiter: Registry shared by all units of the run.
        retry_policy: Retry bound and backoff.
        headers: Extra static headers (e.g. an API key header).
        timeout: Per-attempt httpx timeout in seconds.
        transport: Optional httpx transport (tests pass httpx.MockTransport).
    """

    def __init__(
        self,
        source: str,
        base_url: str,
        limiter: RateLimiterRegistry,
        retry_policy: RetryPolicy | None = None,
        headers: Mapping[str, str] | None = None,
        timeout: float = REQUEST_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.source = source
        self.base_url = base_url.rstrip("/")
        self.limiter = limiter
        self.retry_policy = retry_policy or RetryPolicy()
        self.headers = {"Accept": "application/json", **(headers or {})}
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client with the source's headers."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                headers=self.headers,
                timeout=self.timeout,
                follow_redirects=True,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    def url_for(self, path: str = "") -> str:
        if not path:
            return self.base_url
        return f"{self.base_url}/{path.lstrip('/')}"

    async def _send(
        self,
        url: str,
        params: Mapping[str, Any] | None,
        deadline: float | None,
    ) -> httpx.Response:
        """One attempt: wait for a rate-limit token, then GET."""
        await self.limiter.wait(self.source, deadline)
        return await self._get_client().get(url, params=params)

    async def get_json(
        self,
        path: str = "",
        params: Mapping[str, Any] | None = None,
        deadline: float | None = None,
    ) -> Any:
        """GET ``path`` and decode the JSON body.

        Args:
            path: Path relative to the base URL ("" for the base URL itself).
            params: Query parameters.
            deadline: Event loop time after which rate-limit waits give up.

        Returns:
            The decoded JSON document.

        Raises:
            FetchError: Network/Timeout for transport failures, RateLimit,
                Server or Client for unsuccessful status codes, Validation if
                the body is not JSON.
        """
        url = self.url_for(path)
        logger.debug(
            "Requesting",
            source=self.source,
            url=url,
            params=_redact(params),
        )

        try:
            response = await self.retry_policy.execute(
                self._send, url=url, params=params, deadline=deadline
            )
        except FetchError:
            raise
        except (httpx.HTTPError, TimeoutError, asyncio.TimeoutError) as e:
            raise classify_exception(e) from e

        if not response.is_success:
            error = classify_status(response.status_code)
            error.context.update({"source": self.source, "url": url})
            logger.debug(
                "Request failed",
                source=self.source,
                url=url,
                status_code=response.status_code,
                kind=error.kind.value,
            )
            raise error

        try:
            return orjson.loads(response.content)
        except orjson.JSONDecodeError as e:
            raise FetchError.validation(
                f"{self.source} returned a non-JSON body"
            ) from e
