"""
Tests for the shared HTTP transport.
"""

from __future__ import annotations

from typing import Callable

import httpx
import pytest

from finfetch.data.http import HTTPTransport
from finfetch.exceptions import ErrorKind, FetchError


class TestHTTPTransport:
    """Test request building and response handling."""

    def test_url_for(self, make_http: Callable[..., HTTPTransport]) -> None:
        http = make_http(lambda r: httpx.Response(200), base_url="https://api.test.local/v1/")
        assert http.url_for() == "https://api.test.local/v1"
        assert http.url_for("/avm/value") == "https://api.test.local/v1/avm/value"
        assert http.url_for("avm/value") == "https://api.test.local/v1/avm/value"

    @pytest.mark.asyncio
    async def test_get_json_sends_params_and_headers(
        self, make_http: Callable[..., HTTPTransport]
    ) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"price": 1.5})

        http = make_http(handler, headers={"X-Api-Key": "secret"})
        data = await http.get_json("/value", params={"symbol": "AAPL"})

        assert data == {"price": 1.5}
        request = seen[0]
        assert request.url.path == "/value"
        assert request.url.params["symbol"] == "AAPL"
        assert request.headers["Accept"] == "application/json"
        assert request.headers["X-Api-Key"] == "secret"
        await http.close()

    @pytest.mark.asyncio
    async def test_non_json_body_is_validation(
        self, make_http: Callable[..., HTTPTransport]
    ) -> None:
        http = make_http(lambda r: httpx.Response(200, text="<html>oops</html>"))

        with pytest.raises(FetchError) as exc_info:
            await http.get_json()

        assert exc_info.value.kind == ErrorKind.VALIDATION
        await http.close()

    @pytest.mark.asyncio
    async def test_status_error_carries_source(
        self, make_http: Callable[..., HTTPTransport]
    ) -> None:
        http = make_http(lambda r: httpx.Response(403), source="rentcast")

        with pytest.raises(FetchError) as exc_info:
            await http.get_json("/avm/value")

        error = exc_info.value
        assert error.kind == ErrorKind.CLIENT
        assert error.status_code == 403
        assert error.context["source"] == "rentcast"
        assert error.context["url"] == "https://api.test.local/avm/value"
        await http.close()

    @pytest.mark.asyncio
    async def test_exhausted_timeouts_are_timeout(
        self, make_http: Callable[..., HTTPTransport]
    ) -> None:
        attempts = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal attempts
            attempts += 1
            raise httpx.ReadTimeout("timed out", request=request)

        http = make_http(handler)

        with pytest.raises(FetchError) as exc_info:
            await http.get_json()

        assert exc_info.value.kind == ErrorKind.TIMEOUT
        assert isinstance(exc_info.value.__cause__, httpx.ReadTimeout)
        assert attempts == 4
        await http.close()

    @pytest.mark.asyncio
    async def test_exhausted_connect_errors_are_network(
        self, make_http: Callable[..., HTTPTransport]
    ) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        http = make_http(handler)

        with pytest.raises(FetchError) as exc_info:
            await http.get_json()

        assert exc_info.value.kind == ErrorKind.NETWORK
        assert exc_info.value.retryable
        await http.close()

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self, make_http: Callable[..., HTTPTransport]) -> None:
        http = make_http(lambda r: httpx.Response(200, json={}))
        await http.get_json()
        await http.close()
        await http.close()
        assert http._client is None
