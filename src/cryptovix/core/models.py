"""
Data models for the CryptoVIX aggregation engine.

This module contains the dataclass definitions shared across venue clients,
the snapshot builder, the scorers and persistence, kept here to avoid
circular imports.

All models are frozen: a Snapshot or IndexResult is built once per cycle and
handed to consumers without ever being mutated afterwards.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Dict, Mapping, Optional, Tuple


class Venue(Enum):
    """Derivatives venues feeding the index."""
    DERIBIT = "deribit"
    BYBIT = "bybit"


class OptionType(Enum):
    CALL = "call"
    PUT = "put"

    @classmethod
    def from_letter(cls, letter: str) -> "OptionType":
        """Map a venue type letter ('C' or 'P') to an OptionType."""
        letter = letter.upper()
        if letter == "C":
            return cls.CALL
        if letter == "P":
            return cls.PUT
        raise ValueError(f"Unknown option type letter: {letter!r}")


@dataclass(frozen=True)
class OptionQuote:
    """
    Normalized option quote from a single venue.

    Attributes:
        venue: Venue the quote was observed on
        instrument_id: Venue-native instrument identifier
        expiry: Expiry timestamp (UTC)
        strike: Strike price (USD)
        option_type: Call or put
        bid: Best bid
        ask: Best ask
        mid: (bid + ask) / 2
        observed_at: When the quote was observed (UTC)
    """
    venue: Venue
    instrument_id: str
    expiry: datetime
    strike: float
    option_type: OptionType
    bid: float
    ask: float
    mid: float
    observed_at: datetime

    @classmethod
    def from_sides(
        cls,
        venue: Venue,
        instrument_id: str,
        expiry: datetime,
        strike: float,
        option_type: OptionType,
        bid: Optional[float],
        ask: Optional[float],
        observed_at: datetime,
    ) -> Optional["OptionQuote"]:
        """
        Build a quote, computing mid only when both sides are present.

        Returns:
            OptionQuote, or None if either side is missing
        """
        if bid is None or ask is None:
            return None

        return cls(
            venue=venue,
            instrument_id=instrument_id,
            expiry=expiry,
            strike=strike,
            option_type=option_type,
            bid=bid,
            ask=ask,
            mid=(bid + ask) / 2,
            observed_at=observed_at,
        )


@dataclass(frozen=True)
class InstrumentMetadata:
    """Slow-changing instrument metadata (served from the instruments cache)."""
    symbol: str
    strike: float
    expiry: datetime
    option_type: OptionType


@dataclass(frozen=True)
class VenueSnapshot:
    """
    Per-venue result of one aggregation cycle.

    Attributes:
        venue: Venue this snapshot belongs to
        quotes: Retained quotes (mid > 0)
        signal: Venue IV signal in venue-native units (0.0 means no data)
        healthy: True if the venue fetch succeeded this cycle
        fetched_at: When the venue data was fetched, None if the fetch failed
        error: Failure description for unhealthy venues
    """
    venue: Venue
    quotes: Tuple[OptionQuote, ...] = ()
    signal: float = 0.0
    healthy: bool = False
    fetched_at: Optional[datetime] = None
    error: Optional[str] = None

    @classmethod
    def failed(cls, venue: Venue, error: str) -> "VenueSnapshot":
        """Unhealthy snapshot with no quotes and a zero signal."""
        return cls(venue=venue, error=error)


@dataclass(frozen=True)
class Snapshot:
    """
    Unified snapshot across all venues for one cycle.

    Attributes:
        venues: Venue snapshots keyed by venue (read-only)
        spot_price: Underlying spot/index price (0.0 if unknown)
        built_at: When the snapshot was assembled (UTC)
    """
    venues: Mapping[Venue, VenueSnapshot]
    spot_price: float
    built_at: datetime

    def __post_init__(self):
        # Freeze the mapping so consumers cannot alter a published snapshot
        object.__setattr__(self, "venues", MappingProxyType(dict(self.venues)))

    def venue(self, venue: Venue) -> VenueSnapshot:
        """Snapshot for a venue, or an unhealthy placeholder if absent."""
        return self.venues.get(venue) or VenueSnapshot.failed(venue, "missing")

    @property
    def quotes(self) -> Tuple[OptionQuote, ...]:
        """All retained quotes across venues."""
        return tuple(q for vs in self.venues.values() for q in vs.quotes)

    @property
    def venue_signals(self) -> Mapping[Venue, float]:
        return MappingProxyType({v: vs.signal for v, vs in self.venues.items()})

    @property
    def venue_health(self) -> Mapping[Venue, bool]:
        return MappingProxyType({v: vs.healthy for v, vs in self.venues.items()})

    @property
    def last_fetch(self) -> Mapping[Venue, Optional[datetime]]:
        return MappingProxyType({v: vs.fetched_at for v, vs in self.venues.items()})

    @property
    def quote_counts(self) -> Dict[str, int]:
        """Number of retained quotes per venue name."""
        return {v.value: len(vs.quotes) for v, vs in self.venues.items()}


@dataclass(frozen=True)
class IndexSignals:
    """
    Inputs to the index blend.

    Attributes:
        deribit_iv: Deribit DVOL in percentage points (e.g. 52.4)
        bybit_iv: Bybit ATM 30-day IV as a fraction (e.g. 0.48)
        spot_price: Underlying price (USD)
        timestamp: Reading timestamp (UTC)
    """
    deribit_iv: float
    bybit_iv: float
    spot_price: float
    timestamp: datetime

    @classmethod
    def from_snapshot(cls, snapshot: Snapshot) -> "IndexSignals":
        return cls(
            deribit_iv=snapshot.venue(Venue.DERIBIT).signal,
            bybit_iv=snapshot.venue(Venue.BYBIT).signal,
            spot_price=snapshot.spot_price,
            timestamp=snapshot.built_at,
        )


@dataclass(frozen=True)
class IndexComponents:
    """Per-venue components of an index value, in percentage points."""
    deribit_iv: float
    bybit_iv: float
    weighted_avg: float


@dataclass(frozen=True)
class IndexMetadata:
    btc_price: float


@dataclass(frozen=True)
class IndexResult:
    """
    Final index reading for one cycle.

    Attributes:
        timestamp: Reading timestamp (UTC)
        value: Index value in percentage points, rounded to 2 dp
        components: Per-venue breakdown
        metadata: Underlying metadata
    """
    timestamp: datetime
    value: float
    components: IndexComponents
    metadata: IndexMetadata

    def to_dict(self) -> dict:
        """Convert to dictionary for logging and storage."""
        return {
            "timestamp": self.timestamp.isoformat(),
            "value": self.value,
            "components": {
                "deribit_iv": self.components.deribit_iv,
                "bybit_iv": self.components.bybit_iv,
                "weighted_avg": self.components.weighted_avg,
            },
            "metadata": {"btc_price": self.metadata.btc_price},
        }


@dataclass(frozen=True)
class Reading:
    """Persisted index reading as returned by the readings table."""
    value: float
    deribit_iv: float
    bybit_iv: float
    btc_price: float
    created_at: datetime
    confidence: Optional[int] = field(default=None)
