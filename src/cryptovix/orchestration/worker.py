"""
Index Worker

Runs the aggregation cycle on a fixed interval: snapshot -> confidence ->
index -> persistence, with one JSON metrics line logged per cycle.

Cycles are single-flight: a tick that fires while the previous cycle is still
running is skipped and logged, never queued.

Usage:
    cryptovix-worker [--config config/cryptovix.yaml] [--once] [--dry-run]

Exit codes:
    0: Success (clean shutdown, or --once cycle completed)
    1: Cycle failed in --once mode
    2: Fatal error (invalid configuration)
"""

import argparse
import asyncio
import json
import signal
import sys
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Set

import httpx
from loguru import logger

from cryptovix.config.aggregator_config import AggregatorConfig, load_aggregator_config
from cryptovix.core.bybit_client import BybitClient
from cryptovix.core.confidence import calculate_confidence
from cryptovix.core.deribit_client import DeribitClient
from cryptovix.core.index_builder import build_index
from cryptovix.core.instruments_cache import InstrumentsCache
from cryptovix.core.models import IndexResult, IndexSignals, Snapshot, Venue
from cryptovix.core.snapshot_builder import SnapshotAggregator
from cryptovix.data.readings import VixReadingsTable


class WorkerState(Enum):
    STOPPED = "stopped"
    RUNNING = "running"
    STOPPING = "stopping"


@dataclass
class CycleReport:
    """
    Outcome of one aggregation cycle.

    Attributes:
        snapshot: Snapshot the index was built from
        result: Index result
        confidence: Confidence score for the snapshot
        stored: True if the reading was written to the readings table
    """
    snapshot: Snapshot
    result: IndexResult
    confidence: int
    stored: bool


class IndexWorker:
    """
    Periodic CryptoVIX cycle runner.

    Attributes:
        aggregator: Builds the per-cycle Snapshot
        store: Readings table (None disables persistence)
        config: Aggregator configuration
    """

    def __init__(
        self,
        aggregator: SnapshotAggregator,
        store: Optional[VixReadingsTable],
        config: AggregatorConfig,
    ):
        self.aggregator = aggregator
        self.store = store
        self.config = config
        self.state = WorkerState.STOPPED

        self._cycle_lock = asyncio.Lock()
        self._shutdown_event = asyncio.Event()
        self._tasks: Set[asyncio.Task] = set()
        self._last_success: Dict[Venue, Optional[datetime]] = {v: None for v in Venue}
        self.cycles_run = 0
        self.cycles_skipped = 0

    @property
    def last_successful_snapshot(self) -> Dict[Venue, Optional[datetime]]:
        """Most recent healthy fetch time per venue across cycles."""
        return dict(self._last_success)

    async def run_cycle(self) -> Optional[CycleReport]:
        """
        Run one aggregation cycle.

        Returns:
            CycleReport, or None if a cycle was already in flight

        Raises:
            Exception: Persistence and index errors propagate to the caller
        """
        if self._cycle_lock.locked():
            self.cycles_skipped += 1
            logger.warning("Previous cycle still running - skipping this tick")
            return None

        async with self._cycle_lock:
            snapshot = await self.aggregator.build_snapshot(self.config.base_asset)
            confidence = calculate_confidence(snapshot)
            result = build_index(IndexSignals.from_snapshot(snapshot), self.config.weights)

            for venue, venue_snapshot in snapshot.venues.items():
                if venue_snapshot.healthy and venue_snapshot.fetched_at is not None:
                    self._last_success[venue] = venue_snapshot.fetched_at

            stored = False
            if self.store is not None:
                stored = self.store.insert_reading(result, confidence=confidence)

            self.cycles_run += 1
            report = CycleReport(
                snapshot=snapshot,
                result=result,
                confidence=confidence,
                stored=stored,
            )
            logger.info(f"METRICS {json.dumps(self.metrics(report))}")
            return report

    def metrics(self, report: CycleReport) -> dict:
        """Metrics payload for one cycle."""
        return {
            "tenor": f"{self.config.target_dte:.0f}d",
            "value": report.result.value,
            "confidence": report.confidence,
            "components": report.result.to_dict()["components"],
            "quote_counts": report.snapshot.quote_counts,
            "last_successful_snapshot": {
                venue.value: ts.isoformat() if ts else None
                for venue, ts in self._last_success.items()
            },
            "stored": report.stored,
        }

    async def _tick(self) -> None:
        try:
            await self.run_cycle()
        except Exception as e:
            logger.exception(f"Cycle failed: {e}")

    def _spawn_tick(self) -> None:
        task = asyncio.create_task(self._tick())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def run(self) -> None:
        """
        Main loop: one cycle at startup, then one per snapshot_interval until
        stop is requested.
        """
        self.state = WorkerState.RUNNING
        interval = self.config.snapshot_interval
        logger.info(f"✓ Index worker started (interval: {interval}s)")

        self._spawn_tick()
        while not self._shutdown_event.is_set():
            try:
                await asyncio.wait_for(self._shutdown_event.wait(), timeout=interval)
            except asyncio.TimeoutError:
                self._spawn_tick()

        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

        self.state = WorkerState.STOPPED
        logger.info(f"✓ Index worker stopped ({self.cycles_run} cycles, {self.cycles_skipped} skipped)")

    def request_stop(self) -> None:
        """Signal the main loop to exit after in-flight cycles finish."""
        if self.state is WorkerState.RUNNING:
            self.state = WorkerState.STOPPING
            logger.info("Stopping index worker...")
        self._shutdown_event.set()


def build_worker(config: AggregatorConfig, http: httpx.AsyncClient, dry_run: bool = False) -> IndexWorker:
    """
    Wire clients, cache, aggregator and storage from configuration.

    Args:
        config: Aggregator configuration
        http: Shared HTTP client (owned by the caller)
        dry_run: Skip persistence

    Returns:
        Ready-to-run IndexWorker
    """
    deribit = DeribitClient(http, base_url=config.deribit.base_url, timeout=config.http.timeout)
    bybit = BybitClient(
        http,
        base_url=config.bybit.base_url,
        timeout=config.http.timeout,
        page_limit=config.bybit.page_limit,
        max_pages=config.bybit.max_pages,
    )

    cache = InstrumentsCache(
        loader=lambda: bybit.fetch_instruments(config.base_asset),
        ttl=timedelta(seconds=config.bybit.instruments_ttl),
        name="bybit instruments",
    )
    aggregator = SnapshotAggregator(deribit, bybit, cache, target_dte=config.target_dte)

    store = None
    if config.storage.enabled and not dry_run:
        store = VixReadingsTable(config.storage.table_path)

    return IndexWorker(aggregator, store, config)


def _setup_logging(config: AggregatorConfig) -> None:
    """Configure loguru sinks from config."""
    logger.remove()
    logger.add(
        sys.stderr,
        level=config.logging.level,
        format="<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | <level>{message}</level>"
    )

    if config.logging.file:
        log_file = Path(config.logging.file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        logger.add(log_file, **config.get_log_config())


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description="CryptoVIX index worker")
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="Path to config file (default: config/cryptovix.yaml)"
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single cycle and exit"
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Don't write readings to Delta Lake (just fetch and log)"
    )
    return parser.parse_args(argv)


async def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the index worker."""
    args = parse_args(argv)

    try:
        config = load_aggregator_config(args.config)
    except ValueError as e:
        logger.error(f"Invalid configuration: {e}")
        return 2

    _setup_logging(config)

    logger.info("=" * 70)
    logger.info("CRYPTOVIX INDEX WORKER")
    logger.info("=" * 70)
    logger.info(f"Base asset: {config.base_asset}")
    logger.info(f"Interval: {config.snapshot_interval}s")
    logger.info(f"Dry Run: {args.dry_run}")
    logger.info("-" * 70)

    async with httpx.AsyncClient(
        timeout=config.http.timeout,
        headers={"User-Agent": config.http.user_agent},
    ) as http:
        worker = build_worker(config, http, dry_run=args.dry_run)

        if args.once:
            try:
                report = await worker.run_cycle()
            except Exception as e:
                logger.exception(f"Cycle failed: {e}")
                return 1
            if report is None:
                return 1
            logger.info(f"✓ CryptoVIX {report.result.value:.2f} (confidence {report.confidence})")
            return 0

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, worker.request_stop)

        await worker.run()

    return 0


def cli() -> None:
    """Console script entry point."""
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    cli()
