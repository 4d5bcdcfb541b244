"""
Tests for core types: keys and outcomes.
"""

from __future__ import annotations

import pytest

from finfetch.exceptions import FetchError
from finfetch.types import Outcome, generate_id, make_key, normalize_identifier


class TestKeys:
    """Test key construction."""

    def test_address_is_normalized(self) -> None:
        key = make_key("rentcast", "5500 Grand Lake Dr, San Antonio, TX 78244")
        assert key == "rentcast:5500_grand_lake_dr_san_antonio_tx_78244"

    def test_wallet_address_kept_as_given(self) -> None:
        """Checksummed addresses keep their case."""
        wallet = "0x742d35Cc6634C0532925a3b844Bc454e4438f44e"
        assert make_key("etherscan", wallet) == f"etherscan:{wallet}"

    def test_ticker_kept_as_given(self) -> None:
        assert make_key("alphavantage", "AAPL") == "alphavantage:AAPL"

    def test_surrounding_whitespace_stripped(self) -> None:
        assert normalize_identifier("  AAPL ") == "AAPL"

    def test_key_is_stable(self) -> None:
        address = "1 Main St, Springfield"
        assert make_key("rentcast", address) == make_key("rentcast", address)


class TestOutcome:
    """Test the Outcome invariant."""

    def test_success(self) -> None:
        outcome = Outcome.success("alphavantage:AAPL", 178.23)
        assert outcome.ok
        assert outcome.value == 178.23
        assert outcome.error is None

    def test_failure_has_no_value(self) -> None:
        outcome = Outcome.failure("alphavantage:AAPL", FetchError.validation("bad"))
        assert not outcome.ok
        assert outcome.value is None

    def test_zero_is_a_valid_value(self) -> None:
        outcome = Outcome.success("etherscan:0xabc", 0)
        assert outcome.ok
        assert outcome.value == 0.0

    def test_value_and_error_rejected(self) -> None:
        with pytest.raises(ValueError):
            Outcome(key="k", value=1.0, error=FetchError.validation("bad"))

    def test_neither_rejected(self) -> None:
        with pytest.raises(ValueError):
            Outcome(key="k")


class TestGenerateId:
    def test_prefix(self) -> None:
        assert generate_id("run").startswith("run_")

    def test_unique(self) -> None:
        assert generate_id() != generate_id()
