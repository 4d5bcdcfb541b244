"""
Etherscan client for Ethereum wallet balances.

The value of a wallet is its ETH balance converted to USD. That takes two
calls, in order: the current ETH/USD price, then the balance in wei. The wei
to ETH conversion is done with Decimal so that very large balances are not
rounded before the multiplication.
"""

from __future__ import annotations

from decimal import Decimal, localcontext
from typing import Any

from finfetch.data.base import FetchUnit, parse_decimal
from finfetch.data.http import HTTPTransport
from finfetch.exceptions import FetchError
from finfetch.logging import get_logger
from finfetch.types import SourceName

logger = get_logger(__name__)

ETHERSCAN_BASE_URL = "https://api.etherscan.io/v2/api"

# Ethereum mainnet on the v2 multichain API
CHAIN_ID = "1"

# 1 ETH = 10^18 wei
WEI_DECIMALS = 18

# Enough digits for any uint256 balance
_DECIMAL_PRECISION = 80


def wei_to_usd(balance_wei: str, price: Decimal, decimals: int = WEI_DECIMALS) -> float:
    """Convert a smallest-unit balance string to a fiat value.

    Args:
        balance_wei: Balance as a string of decimal digits.
        price: Fiat price of one whole unit.
        decimals: Decimal exponent of the asset.

    Raises:
        FetchError: Validation if balance_wei is not a non-negative integer.
    """
    digits = balance_wei.strip()
    if not (digits.isascii() and digits.isdigit()):
        raise FetchError.validation(f"failed to parse balance: {balance_wei!r}")

    with localcontext() as ctx:
        ctx.prec = _DECIMAL_PRECISION
        balance = Decimal(int(digits)).scaleb(-decimals)
        return float(balance * price)


class WalletBalanceUnit(FetchUnit):
    """USD value of one Ethereum wallet."""

    def __init__(self, api_key: str, address: str, http: HTTPTransport) -> None:
        """Initialize the wallet unit.

        Args:
            api_key: Etherscan API key (sent as the apikey query parameter).
            address: Wallet address, kept as given for the key.
            http: Transport bound to the Etherscan base URL.
        """
        super().__init__(http)
        self.api_key = api_key
        self.address = address

    @property
    def source_name(self) -> str:
        return SourceName.ETHERSCAN.value

    @property
    def identifier(self) -> str:
        return self.address

    def _params(self, **params: str) -> dict[str, str]:
        return {"chainid": CHAIN_ID, **params, "apikey": self.api_key}

    @staticmethod
    def _check_status(data: Any, what: str) -> None:
        """Reject error envelopes that arrive with HTTP 200.

        Etherscan reports failures (including "Max rate limit reached") as
        status "0" with the reason in result.
        """
        if not isinstance(data, dict):
            raise FetchError.validation(f"unexpected {what} response shape")
        if str(data.get("status", "1")) == "0" and isinstance(data.get("result"), str):
            message = data.get("message") or "NOTOK"
            raise FetchError.validation(
                f"etherscan {what} request rejected: {message} - {data['result']}"
            )

    async def fetch_eth_price(self, deadline: float | None = None) -> Decimal:
        """Get the current ETH/USD price."""
        data = await self.http.get_json(
            params=self._params(module="stats", action="ethprice"),
            deadline=deadline,
        )
        self._check_status(data, "price")

        result = data.get("result")
        if not isinstance(result, dict):
            raise FetchError.validation("ETH price not found in response")
        return parse_decimal(result.get("ethusd"), "ETH price")

    async def fetch_balance_wei(self, deadline: float | None = None) -> str:
        """Get the wallet balance in wei, as returned by the API."""
        data = await self.http.get_json(
            params=self._params(
                module="account",
                action="balance",
                address=self.address,
                tag="latest",
            ),
            deadline=deadline,
        )
        self._check_status(data, "balance")

        result = data.get("result")
        if result is None or result == "":
            raise FetchError.validation("balance not found in response")
        return str(result)

    async def _fetch_value(self, deadline: float | None) -> float:
        price = await self.fetch_eth_price(deadline)
        balance_wei = await self.fetch_balance_wei(deadline)
        value = wei_to_usd(balance_wei, price)

        logger.debug(
            "Computed wallet value",
            address=self.address,
            balance_wei=balance_wei,
            eth_usd=str(price),
        )
        return value
