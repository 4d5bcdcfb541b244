"""
Base class for fetch units.

A fetch unit is one configured request for a single number from one
provider: a wallet balance, a stock quote, a property valuation. Concrete
units implement:

- source_name / identifier: what the unit's key is built from
- _fetch_value(): the provider calls, returning a float or raising FetchError

FetchUnit.fetch() wraps _fetch_value() so that every failure, including the
deadline expiring and unexpected exceptions, becomes a failed Outcome instead
of propagating to the orchestrator.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from decimal import Decimal, InvalidOperation
from typing import Any

from finfetch.data.http import HTTPTransport
from finfetch.exceptions import FetchError, classify_exception
from finfetch.logging import get_logger, log_context
from finfetch.types import Outcome, make_key

logger = get_logger(__name__)


def parse_decimal(raw: Any, field: str) -> Decimal:
    """Parse a provider's numeric-as-string field.

    Raises:
        FetchError: Validation if the value is missing, empty, not a number,
            or not finite.
    """
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        raise FetchError.validation(f"{field} not found in response")
    if isinstance(raw, bool) or not isinstance(raw, (str, int, float)):
        raise FetchError.validation(f"{field} has unexpected type {type(raw).__name__}")
    try:
        value = Decimal(str(raw).strip())
    except InvalidOperation as e:
        raise FetchError.validation(f"failed to parse {field}: {raw!r}") from e
    if not value.is_finite():
        raise FetchError.validation(f"{field} is not a finite number: {raw!r}")
    return value


class FetchUnit(ABC):
    """Abstract base class for a single fetchable value."""

    def __init__(self, http: HTTPTransport) -> None:
        self.http = http

    @property
    @abstractmethod
    def source_name(self) -> str:
        """Name of this data source (first key segment)."""
        ...

    @property
    @abstractmethod
    def identifier(self) -> str:
        """Request-specific identifier (second key segment)."""
        ...

    @abstractmethod
    async def _fetch_value(self, deadline: float | None) -> float:
        """Call the provider and compute the value.

        Raises:
            FetchError: For every expected failure.
        """
        ...

    def key(self) -> str:
        """Hierarchical key ``source:identifier``, independent of fetch state."""
        return make_key(self.source_name, self.identifier)

    async def fetch(self, deadline: float | None = None) -> Outcome:
        """Fetch the value and report it as an Outcome.

        Args:
            deadline: Event loop time (``loop.time()``) at which the fetch is
                abandoned with a Timeout error. None means no deadline.

        Returns:
            A successful Outcome with the value, or a failed Outcome carrying
            a FetchError. Never raises for fetch failures.
        """
        key = self.key()
        with log_context(unit=key, source=self.source_name):
            try:
                async with asyncio.timeout_at(deadline):
                    value = await self._fetch_value(deadline)
            except FetchError as e:
                e.context.setdefault("key", key)
                logger.debug("Fetch failed", kind=e.kind.value, error=str(e))
                return Outcome.failure(key, e)
            except TimeoutError as e:
                logger.debug("Fetch hit deadline")
                return Outcome.failure(key, classify_exception(e))
            except Exception as e:
                logger.exception("Unexpected error during fetch", error=str(e))
                return Outcome.failure(key, classify_exception(e))

            logger.debug("Fetched value", value=value)
            return Outcome.success(key, value)

    async def close(self) -> None:
        """Close the unit's HTTP client."""
        await self.http.close()

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.key()!r})"
