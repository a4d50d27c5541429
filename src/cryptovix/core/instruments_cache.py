"""
Instruments Cache

TTL cache of slow-changing instrument metadata (symbol -> expiry, type,
strike), so identifiers are not re-fetched and re-parsed every 5-minute cycle.

Policy:
- Served from cache while age < ttl (default 30 minutes)
- Refreshed on miss or expiry through the injected async loader
- On refresh failure the previous mapping is served unchanged, or an empty
  mapping if nothing was ever loaded (stale-while-revalidate; staleness is
  unbounded if the loader keeps failing)

Refreshes are single-flight: concurrent callers wait on one in-flight
refresh. A refreshed mapping is published with a single attribute
assignment, so readers see either the complete old or complete new entry.
"""

import asyncio
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from types import MappingProxyType
from typing import Awaitable, Callable, Mapping, Optional

from loguru import logger

from cryptovix.core.models import InstrumentMetadata


DEFAULT_TTL = timedelta(minutes=30)

_EMPTY: Mapping[str, InstrumentMetadata] = MappingProxyType({})


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class InstrumentsCacheEntry:
    mapping: Mapping[str, InstrumentMetadata]
    cached_at: datetime

    def age(self, now: datetime) -> timedelta:
        return now - self.cached_at


class InstrumentsCache:
    """
    Stale-while-revalidate cache around an instruments loader.

    Attributes:
        loader: Async callable returning a fresh symbol -> metadata mapping
        ttl: Maximum age before a refresh is attempted
    """

    def __init__(
        self,
        loader: Callable[[], Awaitable[Mapping[str, InstrumentMetadata]]],
        ttl: timedelta = DEFAULT_TTL,
        clock: Callable[[], datetime] = utc_now,
        name: str = "instruments",
    ):
        self.loader = loader
        self.ttl = ttl
        self.clock = clock
        self.name = name
        self._entry: Optional[InstrumentsCacheEntry] = None
        self._refresh_lock = asyncio.Lock()
        self._refresh_count = 0
        self._stale = False

    @property
    def entry(self) -> Optional[InstrumentsCacheEntry]:
        """Currently published entry (None before the first successful load)."""
        return self._entry

    def is_fresh(self, now: Optional[datetime] = None) -> bool:
        entry = self._entry
        if entry is None or self._stale:
            return False
        return entry.age(now or self.clock()) < self.ttl

    def invalidate(self) -> None:
        """Force a refresh on the next get(); the stale mapping stays servable."""
        self._stale = True

    async def get(self) -> Mapping[str, InstrumentMetadata]:
        """
        Return the current mapping, refreshing it if missing or expired.

        Returns:
            Read-only symbol -> InstrumentMetadata mapping
        """
        if self.is_fresh():
            return self._entry.mapping

        seen = self._refresh_count
        async with self._refresh_lock:
            # A refresh finished while we waited: reuse its outcome
            if self._refresh_count != seen:
                return self._entry.mapping if self._entry else _EMPTY
            return await self._refresh()

    async def _refresh(self) -> Mapping[str, InstrumentMetadata]:
        previous = self._entry
        try:
            fresh = await self.loader()
        except Exception as e:
            self._refresh_count += 1
            if previous is not None:
                logger.warning(
                    f"{self.name} cache refresh failed ({e}); serving stale mapping "
                    f"({len(previous.mapping)} entries, cached at {previous.cached_at.isoformat()})"
                )
                return previous.mapping
            logger.warning(f"{self.name} cache refresh failed ({e}); no previous mapping, serving empty")
            return _EMPTY

        entry = InstrumentsCacheEntry(mapping=MappingProxyType(dict(fresh)), cached_at=self.clock())
        self._entry = entry
        self._stale = False
        self._refresh_count += 1
        logger.info(f"✓ Cached {len(entry.mapping)} {self.name}")
        return entry.mapping
