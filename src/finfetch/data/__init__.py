"""
Data fetching package.

This package handles fetching values from external providers:
- Etherscan (Ethereum wallet balances in USD)
- Alpha Vantage (stock quotes)
- Rentcast (property valuations)

Shared plumbing: the HTTP transport, per-source rate limiting and the retry
policy.
"""

from finfetch.data.alphavantage import StockQuoteUnit
from finfetch.data.base import FetchUnit
from finfetch.data.etherscan import WalletBalanceUnit
from finfetch.data.http import HTTPTransport
from finfetch.data.rate_limit import RateLimit, RateLimiterRegistry, TokenBucket
from finfetch.data.registry import build_fetch_units
from finfetch.data.rentcast import PropertyParams, PropertyValuationUnit
from finfetch.data.retry import RetryPolicy, should_retry

__all__ = [
    "FetchUnit",
    "HTTPTransport",
    "PropertyParams",
    "PropertyValuationUnit",
    "RateLimit",
    "RateLimiterRegistry",
    "RetryPolicy",
    "StockQuoteUnit",
    "TokenBucket",
    "WalletBalanceUnit",
    "build_fetch_units",
    "should_retry",
]
