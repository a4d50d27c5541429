"""
Venue Response Schemas

pydantic models validating venue payloads at the client boundary. A record
that fails validation is skipped on its own; it never turns into a partially
populated quote further down the pipeline.
"""

from datetime import datetime, timezone
from typing import Any, List, Optional, Type, TypeVar

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator


T = TypeVar("T", bound=BaseModel)


def _blank_to_none(value: Any) -> Any:
    # Venues send "" for fields they have no value for
    if isinstance(value, str) and not value.strip():
        return None
    return value


class VenueModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True, frozen=True)


# --- Deribit -----------------------------------------------------------------


class DeribitEnvelope(VenueModel):
    """JSON-RPC envelope returned by every Deribit public endpoint."""
    result: Any = None
    error: Optional[dict] = None


class DeribitBookSummary(VenueModel):
    """One row of get_book_summary_by_currency."""
    instrument_name: str = Field(min_length=1)
    bid_price: Optional[float] = None
    ask_price: Optional[float] = None
    mark_price: Optional[float] = None
    mark_iv: Optional[float] = None
    underlying_price: Optional[float] = None
    open_interest: Optional[float] = None
    volume: Optional[float] = None

    @field_validator("bid_price", "ask_price", mode="before")
    @classmethod
    def _side_present(cls, value: Any) -> Any:
        value = _blank_to_none(value)
        if value is not None and float(value) <= 0:
            return None
        return value


class DeribitIndexPrice(VenueModel):
    index_price: float = Field(gt=0)


class DeribitVolatilityIndexData(VenueModel):
    """Candles as [timestamp, open, high, low, close]."""
    data: List[List[float]] = Field(default_factory=list)

    @field_validator("data")
    @classmethod
    def _candle_shape(cls, value: List[List[float]]) -> List[List[float]]:
        for candle in value:
            if len(candle) < 5:
                raise ValueError(f"Malformed DVOL candle: {candle}")
        return value

    @property
    def last_close(self) -> Optional[float]:
        if not self.data:
            return None
        return self.data[-1][4]


# --- Bybit -------------------------------------------------------------------


class BybitEnvelope(VenueModel):
    ret_code: int = Field(alias="retCode")
    ret_msg: str = Field(default="", alias="retMsg")
    result: Optional[dict] = None


class BybitListResult(VenueModel):
    items: List[Any] = Field(default_factory=list, alias="list")
    next_page_cursor: str = Field(default="", alias="nextPageCursor")

    @field_validator("next_page_cursor", mode="before")
    @classmethod
    def _cursor(cls, value: Any) -> Any:
        return value or ""


class BybitTicker(VenueModel):
    """One option ticker from /v5/market/tickers. IVs are fractions."""
    symbol: str = Field(min_length=1)
    bid_price: Optional[float] = Field(default=None, alias="bid1Price")
    ask_price: Optional[float] = Field(default=None, alias="ask1Price")
    bid_iv: Optional[float] = Field(default=None, alias="bidIv")
    ask_iv: Optional[float] = Field(default=None, alias="askIv")
    mark_iv: float = Field(default=0.0, alias="markIv")
    delta: Optional[float] = None
    underlying_price: Optional[float] = Field(default=None, alias="underlyingPrice")

    @field_validator("bid_iv", "ask_iv", "delta", "underlying_price", mode="before")
    @classmethod
    def _blank(cls, value: Any) -> Any:
        return _blank_to_none(value)

    @field_validator("mark_iv", mode="before")
    @classmethod
    def _mark_iv(cls, value: Any) -> Any:
        value = _blank_to_none(value)
        return 0.0 if value is None else value

    @field_validator("bid_price", "ask_price", mode="before")
    @classmethod
    def _side_present(cls, value: Any) -> Any:
        value = _blank_to_none(value)
        if value is not None and float(value) <= 0:
            return None
        return value


class BybitInstrument(VenueModel):
    """One option contract from /v5/market/instruments-info."""
    symbol: str = Field(min_length=1)
    options_type: str = Field(alias="optionsType")
    delivery_time: int = Field(alias="deliveryTime", gt=0)
    status: str = ""

    @field_validator("options_type")
    @classmethod
    def _options_type(cls, value: str) -> str:
        if value.lower() not in ("call", "put"):
            raise ValueError(f"Unknown optionsType: {value!r}")
        return value.lower()

    @property
    def expiry(self) -> datetime:
        return datetime.fromtimestamp(self.delivery_time / 1000, tz=timezone.utc)


def validate_records(model: Type[T], records: Any, venue: str) -> List[T]:
    """
    Validate a list of raw records, skipping the invalid ones.

    Args:
        model: pydantic model for one record
        records: Raw decoded JSON list
        venue: Venue name for logging

    Returns:
        Validated records in input order
    """
    if not isinstance(records, list):
        logger.warning(f"{venue}: expected a list of {model.__name__}, got {type(records).__name__}")
        return []

    valid: List[T] = []
    skipped = 0
    for record in records:
        try:
            valid.append(model.model_validate(record))
        except ValidationError as e:
            skipped += 1
            logger.debug(f"{venue}: skipping invalid {model.__name__}: {e.errors()[0]['msg']}")

    if skipped:
        logger.debug(f"{venue}: skipped {skipped}/{len(records)} invalid {model.__name__} records")

    return valid
