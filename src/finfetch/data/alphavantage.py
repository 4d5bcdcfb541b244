"""
Alpha Vantage client for stock quotes.

Uses the GLOBAL_QUOTE function and reports the "05. price" field. Alpha
Vantage answers throttled or malformed requests with HTTP 200 and a textual
notice instead of a quote; those bodies are reported as validation failures.
"""

from __future__ import annotations

from typing import Any

from finfetch.data.base import FetchUnit, parse_decimal
from finfetch.data.http import HTTPTransport
from finfetch.exceptions import FetchError
from finfetch.logging import get_logger
from finfetch.types import SourceName

logger = get_logger(__name__)

ALPHAVANTAGE_BASE_URL = "https://www.alphavantage.co/query"

QUOTE_KEY = "Global Quote"
PRICE_FIELD = "05. price"

# Body keys Alpha Vantage uses for throttling notices and request errors
NOTICE_KEYS = ("Note", "Information", "Error Message")


def extract_quote_price(data: Any, symbol: str) -> float:
    """Pull the current price out of a GLOBAL_QUOTE response.

    Raises:
        FetchError: Validation if the body is a provider notice, the price
            field is missing, or it is not a decimal number.
    """
    if not isinstance(data, dict):
        raise FetchError.validation(f"unexpected quote response shape for {symbol}")

    quote = data.get(QUOTE_KEY)
    if not quote:
        for notice_key in NOTICE_KEYS:
            if notice_key in data:
                raise FetchError.validation(
                    f"alphavantage returned a notice for {symbol}: {data[notice_key]}"
                )
        raise FetchError.validation(f"price not found in response for {symbol}")

    if not isinstance(quote, dict) or PRICE_FIELD not in quote:
        raise FetchError.validation(f"price not found in response for {symbol}")

    return float(parse_decimal(quote[PRICE_FIELD], f"stock price for {symbol}"))


class StockQuoteUnit(FetchUnit):
    """Latest trade price of one ticker."""

    def __init__(self, api_key: str, symbol: str, http: HTTPTransport) -> None:
        super().__init__(http)
        self.api_key = api_key
        self.symbol = symbol

    @property
    def source_name(self) -> str:
        return SourceName.ALPHAVANTAGE.value

    @property
    def identifier(self) -> str:
        return self.symbol

    async def _fetch_value(self, deadline: float | None) -> float:
        logger.debug("Fetching stock price", ticker=self.symbol)

        data = await self.http.get_json(
            params={
                "function": "GLOBAL_QUOTE",
                "symbol": self.symbol,
                "apikey": self.api_key,
            },
            deadline=deadline,
        )
        return extract_quote_price(data, self.symbol)
