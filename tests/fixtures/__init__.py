"""Test fixtures for CryptoVIX tests.

This package provides reusable test fixtures for:
- Raw Deribit and Bybit API payloads
- Pre-built snapshots with configurable venue health and quote counts

Fixtures are auto-discovered by pytest through conftest.py.
"""

from tests.fixtures.venue_fixtures import (
    bybit_instruments_payload,
    bybit_tickers_payload,
    deribit_book_payload,
    healthy_snapshot,
)

__all__ = [
    "bybit_instruments_payload",
    "bybit_tickers_payload",
    "deribit_book_payload",
    "healthy_snapshot",
]
