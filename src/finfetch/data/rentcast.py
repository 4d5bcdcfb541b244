"""
Rentcast client for automated property valuations.

Calls the /avm/value endpoint with the property's address and attributes and
reports the top-level price estimate. The rest of the response (price range,
subject property and comparables) is kept on the unit after a successful
fetch when it parses, for callers that want more than the headline number.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from finfetch.data.base import FetchUnit, parse_decimal
from finfetch.data.http import HTTPTransport
from finfetch.exceptions import FetchError
from finfetch.logging import get_logger
from finfetch.types import SourceName

logger = get_logger(__name__)

RENTCAST_BASE_URL = "https://api.rentcast.io/v1"
VALUE_PATH = "/avm/value"
API_KEY_HEADER = "X-Api-Key"


class _RentcastModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class SubjectProperty(_RentcastModel):
    """The property being valued, as Rentcast resolved it."""

    id: str | None = None
    formatted_address: str | None = Field(default=None, alias="formattedAddress")
    city: str | None = None
    state: str | None = None
    zip_code: str | None = Field(default=None, alias="zipCode")
    county: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    property_type: str | None = Field(default=None, alias="propertyType")
    bedrooms: int | None = None
    bathrooms: float | None = None
    square_footage: int | None = Field(default=None, alias="squareFootage")
    lot_size: float | None = Field(default=None, alias="lotSize")
    year_built: int | None = Field(default=None, alias="yearBuilt")
    last_sale_date: str | None = Field(default=None, alias="lastSaleDate")
    last_sale_price: float | None = Field(default=None, alias="lastSalePrice")


class Comparable(SubjectProperty):
    """A nearby listing used for the estimate."""

    status: str | None = None
    price: float | None = None
    listing_type: str | None = Field(default=None, alias="listingType")
    listed_date: str | None = Field(default=None, alias="listedDate")
    removed_date: str | None = Field(default=None, alias="removedDate")
    days_on_market: int | None = Field(default=None, alias="daysOnMarket")
    distance: float | None = None
    days_old: int | None = Field(default=None, alias="daysOld")
    correlation: float | None = None


class PropertyValuation(_RentcastModel):
    """Response of GET /avm/value."""

    price: float | None = None
    price_range_low: float | None = Field(default=None, alias="priceRangeLow")
    price_range_high: float | None = Field(default=None, alias="priceRangeHigh")
    subject_property: SubjectProperty | None = Field(default=None, alias="subjectProperty")
    comparables: list[Comparable] = Field(default_factory=list)


class PropertyParams(BaseModel):
    """Description of a property to value."""

    address: str
    property_type: str = "Single Family"
    bedrooms: int = Field(default=0, ge=0)
    bathrooms: float = Field(default=0.0, ge=0)
    square_footage: int = Field(default=0, ge=0)

    def to_query(self) -> dict[str, str]:
        """Query parameters in the form the AVM endpoint expects."""
        return {
            "address": self.address,
            "propertyType": self.property_type,
            "bedrooms": str(self.bedrooms),
            "bathrooms": f"{self.bathrooms:.1f}",
            "squareFootage": str(self.square_footage),
        }


def parse_valuation(data: Any, address: str) -> PropertyValuation:
    """Require a usable price, then read whatever detail the body carries.

    Only ``price`` decides success. A zero price cannot be told apart from a
    missing one, so both fail. Detail that does not match the models is
    dropped with a warning and the valuation keeps just the price.

    Raises:
        FetchError: Validation if the body is not an object or has no price.
    """
    if not isinstance(data, dict):
        raise FetchError.validation(f"unexpected valuation response shape for {address}")

    try:
        price = parse_decimal(data.get("price"), "price")
    except FetchError as e:
        raise FetchError.validation(f"{e.message} for {address}") from e
    if price == 0:
        raise FetchError.validation(f"price not found in response for {address}")

    try:
        valuation = PropertyValuation.model_validate(data)
    except ValidationError as e:
        logger.warning(
            "Ignoring malformed valuation detail",
            address=address,
            errors=e.error_count(),
        )
        valuation = PropertyValuation()
    valuation.price = float(price)
    return valuation


class PropertyValuationUnit(FetchUnit):
    """Estimated market value of one property."""

    def __init__(self, params: PropertyParams, http: HTTPTransport) -> None:
        """Initialize the valuation unit.

        Args:
            params: Address and attributes of the property.
            http: Transport bound to the Rentcast base URL, carrying the
                X-Api-Key header.
        """
        super().__init__(http)
        self.params = params
        self.last_response: PropertyValuation | None = None

    @property
    def source_name(self) -> str:
        return SourceName.RENTCAST.value

    @property
    def identifier(self) -> str:
        return self.params.address

    async def _fetch_value(self, deadline: float | None) -> float:
        logger.debug("Fetching property valuation", address=self.params.address)

        data = await self.http.get_json(
            VALUE_PATH,
            params=self.params.to_query(),
            deadline=deadline,
        )
        valuation = parse_valuation(data, self.params.address)

        self.last_response = valuation
        logger.debug(
            "Valuation received",
            price=valuation.price,
            comparables=len(valuation.comparables),
        )
        return float(valuation.price)
