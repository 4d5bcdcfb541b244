"""
Pytest configuration and fixtures for finance fetcher tests.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Callable, Generator
from unittest.mock import patch

import httpx
import pytest

from finfetch.config import CONFIG_PATH_ENV, Settings, clear_settings_cache
from finfetch.data.http import HTTPTransport
from finfetch.data.rate_limit import RateLimiterRegistry
from finfetch.data.retry import RetryPolicy

Handler = Callable[[httpx.Request], httpx.Response]

TEST_WALLET = "0x742d35Cc6634C0532925a3b844Bc454e4438f44e"


@pytest.fixture(autouse=True)
def isolated_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Run every test in an empty directory with no finfetch settings in env.

    Keeps a developer's .env, config.yaml or exported keys out of the tests.
    """
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv(CONFIG_PATH_ENV, raising=False)
    for name in Settings.model_fields:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture(autouse=True)
def reset_settings_cache() -> Generator[None, None, None]:
    """Automatically reset settings cache before and after each test."""
    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture
def mock_env_vars() -> Generator[dict[str, str], None, None]:
    """Provide mock environment variables for a fully configured run."""
    env_vars = {
        "ETHERSCAN_API_KEY": "test-etherscan-key-123456",
        "ALPHAVANTAGE_API_KEY": "test-alphavantage-key",
        "RENTCAST_API_KEY": "test-rentcast-key-abcdef",
        "ETHEREUM_WALLETS": TEST_WALLET,
        "STOCK_SYMBOLS": "AAPL,GOOGL",
        "PROPERTIES": (
            '[{"address": "5500 Grand Lake Dr, San Antonio, TX 78244", '
            '"property_type": "Single Family", "bedrooms": 3, '
            '"bathrooms": 2, "square_footage": 1878}]'
        ),
        "LOG_LEVEL": "DEBUG",
    }

    with patch.dict(os.environ, env_vars, clear=False):
        clear_settings_cache()
        yield env_vars


@pytest.fixture
def mock_settings(mock_env_vars: dict[str, str]) -> Settings:
    """Provide a Settings instance with mock configuration."""
    from finfetch.config import get_settings

    return get_settings()


@pytest.fixture
def limiter() -> RateLimiterRegistry:
    """Rate limiter that never waits."""
    return RateLimiterRegistry.unlimited()


@pytest.fixture
def retry_policy() -> RetryPolicy:
    """Default retry bound with no backoff delay."""
    return RetryPolicy.immediate()


@pytest.fixture
def make_http(
    limiter: RateLimiterRegistry, retry_policy: RetryPolicy
) -> Callable[..., HTTPTransport]:
    """Factory for an HTTPTransport served by an httpx.MockTransport handler."""

    def _make(
        handler: Handler,
        source: str = "test",
        base_url: str = "https://api.test.local",
        **kwargs: Any,
    ) -> HTTPTransport:
        kwargs.setdefault("retry_policy", retry_policy)
        return HTTPTransport(
            source,
            base_url,
            kwargs.pop("limiter", limiter),
            transport=httpx.MockTransport(handler),
            **kwargs,
        )

    return _make

