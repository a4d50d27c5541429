"""
CryptoVIX Core Package

Venue clients, instrument parsing, the instruments cache, snapshot
aggregation, confidence scoring and the index blend.
"""

from cryptovix.core.confidence import calculate_confidence
from cryptovix.core.index_builder import UnitMismatchError, build_index
from cryptovix.core.models import (
    IndexResult,
    IndexSignals,
    OptionQuote,
    OptionType,
    Reading,
    Snapshot,
    Venue,
    VenueSnapshot,
)
from cryptovix.core.snapshot_builder import SnapshotAggregator

__all__ = [
    "IndexResult",
    "IndexSignals",
    "OptionQuote",
    "OptionType",
    "Reading",
    "Snapshot",
    "SnapshotAggregator",
    "UnitMismatchError",
    "Venue",
    "VenueSnapshot",
    "build_index",
    "calculate_confidence",
]
