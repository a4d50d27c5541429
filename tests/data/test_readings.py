"""
Tests for Index Readings Persistence

Unit tests for the Delta Lake readings table: table creation, idempotent
inserts and time-ordered queries.
"""

import shutil
from datetime import datetime, timedelta, timezone

import pytest
from deltalake import DeltaTable

from cryptovix.core.models import IndexComponents, IndexMetadata, IndexResult
from cryptovix.data.readings import VixReadingsTable
from tests.fixtures.venue_fixtures import FIXED_NOW


@pytest.fixture
def readings_table(lake_path):
    """Create readings table for testing."""
    return VixReadingsTable(table_path=str(lake_path / "vix_readings"))


def make_result(timestamp: datetime, value: float = 50.64) -> IndexResult:
    return IndexResult(
        timestamp=timestamp,
        value=value,
        components=IndexComponents(deribit_iv=52.4, bybit_iv=48.0, weighted_avg=value),
        metadata=IndexMetadata(btc_price=64800.0),
    )


class TestVixReadingsTable:
    """Test table lifecycle."""

    def test_init_creates_table(self, lake_path):
        path = lake_path / "vix_readings"
        if path.exists():
            shutil.rmtree(path)

        VixReadingsTable(table_path=str(path))

        assert DeltaTable.is_deltatable(str(path))

    def test_init_reuses_existing_table(self, readings_table):
        readings_table.insert_reading(make_result(FIXED_NOW))

        reopened = VixReadingsTable(table_path=str(readings_table.table_path))

        assert reopened.get_latest_reading() is not None

    def test_table_schema(self, readings_table):
        schema = readings_table.get_table().schema()
        field_names = [field.name for field in schema.fields]

        for name in ("created_at", "value", "deribit_iv", "bybit_iv", "btc_price", "confidence", "date"):
            assert name in field_names


class TestInsertReading:
    """Test idempotent inserts."""

    def test_insert_and_read_back(self, readings_table):
        assert readings_table.insert_reading(make_result(FIXED_NOW), confidence=87)

        latest = readings_table.get_latest_reading()

        assert latest.value == 50.64
        assert latest.deribit_iv == 52.4
        assert latest.bybit_iv == 48.0
        assert latest.btc_price == 64800.0
        assert latest.confidence == 87
        assert latest.created_at == FIXED_NOW

    def test_duplicate_created_at_is_skipped(self, readings_table):
        assert readings_table.insert_reading(make_result(FIXED_NOW, value=50.0))
        assert not readings_table.insert_reading(make_result(FIXED_NOW, value=99.0))

        readings = readings_table.get_readings(FIXED_NOW - timedelta(hours=1))

        assert len(readings) == 1
        assert readings[0].value == 50.0

    def test_confidence_is_optional(self, readings_table):
        readings_table.insert_reading(make_result(FIXED_NOW))
        assert readings_table.get_latest_reading().confidence is None

    def test_non_utc_timestamp_is_normalized(self, readings_table):
        cet = timezone(timedelta(hours=1))
        readings_table.insert_reading(make_result(FIXED_NOW.astimezone(cet)))

        assert readings_table.get_latest_reading().created_at == FIXED_NOW


class TestQueries:
    """Test latest and range queries."""

    def test_latest_on_empty_table(self, readings_table):
        assert readings_table.get_latest_reading() is None

    def test_latest_picks_greatest_created_at(self, readings_table):
        for minutes, value in ((10, 51.0), (0, 50.0), (5, 52.0)):
            readings_table.insert_reading(make_result(FIXED_NOW + timedelta(minutes=minutes), value))

        latest = readings_table.get_latest_reading()

        assert latest.value == 51.0
        assert latest.created_at == FIXED_NOW + timedelta(minutes=10)

    def test_get_readings_since_is_inclusive_and_ascending(self, readings_table):
        for minutes in (15, 0, 10, 5):
            readings_table.insert_reading(make_result(FIXED_NOW + timedelta(minutes=minutes), 50.0 + minutes))

        readings = readings_table.get_readings(FIXED_NOW + timedelta(minutes=5))

        assert [r.value for r in readings] == [55.0, 60.0, 65.0]
        assert readings == sorted(readings, key=lambda r: r.created_at)

    def test_get_readings_empty_range(self, readings_table):
        readings_table.insert_reading(make_result(FIXED_NOW))
        assert readings_table.get_readings(FIXED_NOW + timedelta(days=1)) == []
