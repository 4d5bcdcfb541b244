"""
Build fetch units from settings.

Each source is one entry in UNIT_BUILDERS; adding a provider means adding a
builder here and its unit class.
"""

from __future__ import annotations

from typing import Callable

import httpx

from finfetch.config import Settings
from finfetch.data.alphavantage import StockQuoteUnit
from finfetch.data.base import FetchUnit
from finfetch.data.etherscan import WalletBalanceUnit
from finfetch.data.http import HTTPTransport
from finfetch.data.rate_limit import RateLimiterRegistry
from finfetch.data.rentcast import API_KEY_HEADER, PropertyParams, PropertyValuationUnit
from finfetch.data.retry import RetryPolicy
from finfetch.logging import get_logger
from finfetch.types import SourceName

logger = get_logger(__name__)

UnitBuilder = Callable[
    [Settings, RateLimiterRegistry, RetryPolicy, httpx.AsyncBaseTransport | None],
    list[FetchUnit],
]


def build_rate_limiter(settings: Settings) -> RateLimiterRegistry:
    """Production limits, or none when RATE_LIMITS_ENABLED is off."""
    if settings.RATE_LIMITS_ENABLED:
        return RateLimiterRegistry()
    logger.info("Rate limiting disabled")
    return RateLimiterRegistry.unlimited()


def build_retry_policy(settings: Settings) -> RetryPolicy:
    return RetryPolicy(
        max_retries=settings.MAX_RETRIES,
        initial_backoff=settings.RETRY_INITIAL_BACKOFF,
        max_backoff=settings.RETRY_MAX_BACKOFF,
    )


def _wallet_units(
    settings: Settings,
    limiter: RateLimiterRegistry,
    retry_policy: RetryPolicy,
    transport: httpx.AsyncBaseTransport | None,
) -> list[FetchUnit]:
    units: list[FetchUnit] = []
    for address in settings.ETHEREUM_WALLETS:
        http = HTTPTransport(
            SourceName.ETHERSCAN.value,
            settings.ETHERSCAN_BASE_URL,
            limiter,
            retry_policy=retry_policy,
            transport=transport,
        )
        units.append(WalletBalanceUnit(settings.ETHERSCAN_API_KEY or "", address, http))
    return units


def _stock_units(
    settings: Settings,
    limiter: RateLimiterRegistry,
    retry_policy: RetryPolicy,
    transport: httpx.AsyncBaseTransport | None,
) -> list[FetchUnit]:
    units: list[FetchUnit] = []
    for symbol in settings.STOCK_SYMBOLS:
        http = HTTPTransport(
            SourceName.ALPHAVANTAGE.value,
            settings.ALPHAVANTAGE_BASE_URL,
            limiter,
            retry_policy=retry_policy,
            transport=transport,
        )
        units.append(StockQuoteUnit(settings.ALPHAVANTAGE_API_KEY or "", symbol, http))
    return units


def _property_units(
    settings: Settings,
    limiter: RateLimiterRegistry,
    retry_policy: RetryPolicy,
    transport: httpx.AsyncBaseTransport | None,
) -> list[FetchUnit]:
    units: list[FetchUnit] = []
    for prop in settings.PROPERTIES:
        http = HTTPTransport(
            SourceName.RENTCAST.value,
            settings.RENTCAST_BASE_URL,
            limiter,
            retry_policy=retry_policy,
            headers={API_KEY_HEADER: settings.RENTCAST_API_KEY or ""},
            transport=transport,
        )
        params = PropertyParams(**prop.model_dump())
        units.append(PropertyValuationUnit(params, http))
    return units


UNIT_BUILDERS: dict[SourceName, UnitBuilder] = {
    SourceName.ETHERSCAN: _wallet_units,
    SourceName.ALPHAVANTAGE: _stock_units,
    SourceName.RENTCAST: _property_units,
}


def build_fetch_units(
    settings: Settings,
    limiter: RateLimiterRegistry | None = None,
    retry_policy: RetryPolicy | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> list[FetchUnit]:
    """Create one unit per configured wallet, symbol and property.

    Args:
        settings: Validated settings.
        limiter: Shared rate limiter; built from settings if omitted.
        retry_policy: Retry policy; built from settings if omitted.
        transport: Optional httpx transport passed to every unit.

    Returns:
        Units in configuration order: wallets, then symbols, then properties.
    """
    limiter = limiter or build_rate_limiter(settings)
    retry_policy = retry_policy or build_retry_policy(settings)

    units: list[FetchUnit] = []
    for source, builder in UNIT_BUILDERS.items():
        built = builder(settings, limiter, retry_policy, transport)
        if built:
            logger.debug("Built fetch units", source=source.value, count=len(built))
        units.extend(built)
    return units
