"""
Index Readings Persistence

Delta Lake table holding one row per published CryptoVIX reading.

Key patterns:
- created_at is the natural key: inserting a reading whose timestamp already
  exists is a no-op (anti-join dedupe, no MERGE needed)
- Timestamps are stored as naive UTC microseconds and returned tz-aware
- Reads go through polars (pl.read_delta)
"""

from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

import polars as pl
from deltalake import DeltaTable, write_deltalake
from loguru import logger

from cryptovix.core.models import IndexResult, Reading


READINGS_SCHEMA = pl.Schema({
    'created_at': pl.Datetime("us"),
    'value': pl.Float64,
    'deribit_iv': pl.Float64,
    'bybit_iv': pl.Float64,
    'btc_price': pl.Float64,
    'confidence': pl.Int64,
    'date': pl.Date,
})


def _to_naive_utc(ts: datetime) -> datetime:
    if ts.tzinfo is None:
        return ts
    return ts.astimezone(timezone.utc).replace(tzinfo=None)


class VixReadingsTable:
    """Delta Lake table for index readings with idempotent inserts."""

    def __init__(self, table_path: str = "data/lake/vix_readings"):
        """
        Initialize readings table.

        Args:
            table_path: Path to Delta Lake table (default: data/lake/vix_readings)
        """
        self.table_path = Path(table_path)
        self._ensure_table_exists()

    def _ensure_table_exists(self) -> None:
        """Create table if it doesn't exist."""
        if DeltaTable.is_deltatable(str(self.table_path)):
            return

        empty_df = pl.DataFrame(schema=READINGS_SCHEMA)
        write_deltalake(str(self.table_path), empty_df.limit(0), mode="overwrite")

        logger.info(f"✓ Created Delta Lake table: {self.table_path}")

    def get_table(self) -> DeltaTable:
        """Get DeltaTable instance."""
        return DeltaTable(str(self.table_path))

    def _read(self) -> pl.DataFrame:
        # Some deltalake versions read naive timestamps back as UTC-zoned
        return pl.read_delta(str(self.table_path)).with_columns(
            pl.col('created_at').dt.replace_time_zone(None)
        )

    def insert_reading(self, result: IndexResult, confidence: Optional[int] = None) -> bool:
        """
        Persist an index reading.

        Args:
            result: Index result for one cycle
            confidence: Confidence score for the snapshot behind the result

        Returns:
            bool: True if written, False if a reading with the same
                created_at already exists
        """
        created_at = _to_naive_utc(result.timestamp)

        row = pl.DataFrame(
            [{
                'created_at': created_at,
                'value': result.value,
                'deribit_iv': result.components.deribit_iv,
                'bybit_iv': result.components.bybit_iv,
                'btc_price': result.metadata.btc_price,
                'confidence': confidence,
                'date': created_at.date(),
            }],
            schema=READINGS_SCHEMA,
        )

        existing = self._read().select('created_at')
        if len(existing) > 0:
            row = row.join(existing, on='created_at', how='anti')

        if len(row) == 0:
            logger.debug(f"Reading at {result.timestamp.isoformat()} already stored, skipping")
            return False

        write_deltalake(str(self.table_path), row, mode="append")
        logger.info(f"✓ Stored reading {result.value:.2f} at {result.timestamp.isoformat()}")
        return True

    def get_latest_reading(self) -> Optional[Reading]:
        """
        Read the most recent reading.

        Returns:
            Reading with the greatest created_at, or None if the table is empty
        """
        df = self._read()
        if len(df) == 0:
            return None

        latest = df.sort('created_at', descending=True).head(1)
        return self._to_readings(latest)[0]

    def get_readings(self, since: datetime) -> List[Reading]:
        """
        Read all readings created at or after a point in time.

        Args:
            since: Inclusive lower bound (naive values are taken as UTC)

        Returns:
            Readings ordered by created_at ascending
        """
        df = self._read().filter(pl.col('created_at') >= _to_naive_utc(since))
        return self._to_readings(df.sort('created_at'))

    @staticmethod
    def _to_readings(df: pl.DataFrame) -> List[Reading]:
        readings = []
        for row in df.iter_rows(named=True):
            confidence = row['confidence']
            readings.append(Reading(
                value=row['value'],
                deribit_iv=row['deribit_iv'],
                bybit_iv=row['bybit_iv'],
                btc_price=row['btc_price'],
                created_at=row['created_at'].replace(tzinfo=timezone.utc),
                confidence=int(confidence) if confidence is not None else None,
            ))
        return readings
