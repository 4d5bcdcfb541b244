"""
Core types for the finance fetcher.

This module defines the data structures shared by every layer:
- SourceName enum for the supported providers
- Outcome, the frozen key/value/error result of one fetch unit
- Helpers for key construction, run IDs and timestamps
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum

from uuid6 import uuid7

from finfetch.exceptions import FetchError

KEY_SEPARATOR = ":"


def generate_id(prefix: str = "") -> str:
    """Generate a time-ordered unique ID using UUID7.

    Args:
        prefix: Optional prefix for the ID (e.g., "run")

    Returns:
        A unique ID string, optionally prefixed.
    """
    uid = str(uuid7())
    return f"{prefix}_{uid}" if prefix else uid


def utc_now() -> datetime:
    """Get current UTC time with timezone info."""
    return datetime.now(timezone.utc)


class SourceName(str, Enum):
    """External data providers with a fetch unit implementation."""

    ETHERSCAN = "etherscan"
    ALPHAVANTAGE = "alphavantage"
    RENTCAST = "rentcast"


def normalize_identifier(identifier: str) -> str:
    """Make an identifier safe to use as a single key segment.

    Identifiers containing spaces or commas (street addresses) are lowercased,
    spaces become underscores and commas are dropped. Anything else, such as
    a checksummed wallet address or a ticker, is kept as given.

    Examples:
        "5500 Grand Lake Dr, San Antonio, TX 78244"
            -> "5500_grand_lake_dr_san_antonio_tx_78244"
        "0xAbC123" -> "0xAbC123"
    """
    identifier = identifier.strip()
    if " " in identifier or "," in identifier:
        identifier = identifier.lower().replace(" ", "_").replace(",", "")
    return identifier


def make_key(source: str, identifier: str) -> str:
    """Build the hierarchical key ``source:identifier``."""
    return f"{source}{KEY_SEPARATOR}{normalize_identifier(identifier)}"


@dataclass(frozen=True)
class Outcome:
    """Result of running one fetch unit.

    Exactly one of value and error is set. A failed outcome never carries a
    number, so callers cannot mistake a failure for a real zero.
    """

    key: str
    value: float | None = None
    error: FetchError | None = None

    def __post_init__(self) -> None:
        if (self.value is None) == (self.error is None):
            raise ValueError(
                f"Outcome for {self.key!r} must have exactly one of value or error"
            )

    @property
    def ok(self) -> bool:
        """True when the unit produced a value."""
        return self.error is None

    @classmethod
    def success(cls, key: str, value: float) -> Outcome:
        return cls(key=key, value=float(value))

    @classmethod
    def failure(cls, key: str, error: FetchError) -> Outcome:
        return cls(key=key, error=error)
