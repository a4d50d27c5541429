"""
Snapshot Aggregator

Builds one unified Snapshot per cycle from Deribit and Bybit.

Per-venue algorithms:
- Deribit publishes a volatility index (DVOL): its value is the signal. The
  option chain is fetched alongside it and filtered (mid > 0) for quality
  scoring only.
- Bybit has no published index: the signal is the ATM implied volatility of
  the expiry closest to 30 days (see select_target_expiry and
  select_atm_strike for the selection and tie-break rules).

Both venue pipelines run concurrently and settle independently: a fault in one
venue marks that venue unhealthy with a zero signal and never aborts the other.
"""

import asyncio
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from loguru import logger

from cryptovix.core.bybit_client import BybitClient
from cryptovix.core.deribit_client import DeribitClient
from cryptovix.core.index_builder import UnitMismatchError, fraction_to_percent
from cryptovix.core.instrument_parser import InstrumentParseError, parse_instrument
from cryptovix.core.instruments_cache import InstrumentsCache
from cryptovix.core.models import (
    InstrumentMetadata,
    OptionQuote,
    OptionType,
    Snapshot,
    Venue,
    VenueSnapshot,
)
from cryptovix.core.venue_schemas import BybitTicker, DeribitBookSummary


SECONDS_PER_DAY = 86_400
TARGET_DTE = 30.0
ATM_DELTA = 0.5


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class AtmCandidate:
    """Bybit option surviving the DTE and mark IV filters."""
    strike: float
    option_type: OptionType
    mark_iv: float
    delta: Optional[float] = None


def days_to_expiry(expiry: datetime, now: datetime) -> float:
    """Fractional days between now and expiry (negative once expired)."""
    return (expiry - now).total_seconds() / SECONDS_PER_DAY


def select_target_expiry(
    dte_by_expiry: Mapping[datetime, float],
    target_dte: float = TARGET_DTE,
) -> Optional[datetime]:
    """
    Pick the expiry whose DTE is closest to target_dte.

    Candidates are sorted by expiry ascending before comparing, and a later
    candidate only wins with a strictly smaller distance. Ties therefore
    resolve to the first candidate in sorted order, i.e. the nearer expiry
    (DTEs 25 and 35 against a target of 30 select 25). This tie-break is an
    implementation choice, not a market convention.

    Returns:
        Selected expiry, or None if there are no candidates
    """
    best: Optional[datetime] = None
    best_distance = float("inf")

    for expiry in sorted(dte_by_expiry):
        distance = abs(dte_by_expiry[expiry] - target_dte)
        if distance < best_distance:
            best_distance = distance
            best = expiry

    return best


def select_atm_strike(candidates: Sequence[AtmCandidate], spot_price: float) -> Optional[float]:
    """
    Pick the at-the-money strike within one expiry.

    With a positive spot price, the strike closest to spot wins; strikes are
    compared in ascending order so an exact tie keeps the lower strike.
    Without a spot price, falls back to the call whose |delta| is closest to
    0.5 (calls compared in ascending strike order, ties keep the lower strike).

    Returns:
        ATM strike, or None if no candidate qualifies
    """
    if spot_price and spot_price > 0:
        strikes = sorted({c.strike for c in candidates})
        if not strikes:
            return None
        return min(strikes, key=lambda strike: abs(strike - spot_price))

    calls = sorted(
        (c for c in candidates if c.option_type is OptionType.CALL and c.delta is not None),
        key=lambda c: c.strike,
    )
    if not calls:
        return None
    return min(calls, key=lambda c: abs(abs(c.delta) - ATM_DELTA)).strike


def atm_signal(candidates: Iterable[AtmCandidate], strike: float) -> float:
    """
    Average call and put mark IV at a strike.

    Returns:
        Mean of call and put IV if both exist, the single IV if only one
        exists, 0.0 if neither does
    """
    call_iv: Optional[float] = None
    put_iv: Optional[float] = None

    for c in candidates:
        if c.strike != strike:
            continue
        if c.option_type is OptionType.CALL and call_iv is None:
            call_iv = c.mark_iv
        elif c.option_type is OptionType.PUT and put_iv is None:
            put_iv = c.mark_iv

    if call_iv is not None and put_iv is not None:
        return (call_iv + put_iv) / 2
    if call_iv is not None:
        return call_iv
    if put_iv is not None:
        return put_iv
    return 0.0


class SnapshotAggregator:
    """
    Combines Deribit and Bybit data into a single Snapshot.

    Attributes:
        deribit: Deribit client (DVOL, spot, option chain)
        bybit: Bybit client (option tickers)
        instruments_cache: Bybit instruments metadata cache
        target_dte: Target tenor for the Bybit ATM signal (days)
        clock: Returns the current UTC time
    """

    def __init__(
        self,
        deribit: DeribitClient,
        bybit: BybitClient,
        instruments_cache: InstrumentsCache,
        target_dte: float = TARGET_DTE,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.deribit = deribit
        self.bybit = bybit
        self.instruments_cache = instruments_cache
        self.target_dte = target_dte
        self.clock = clock

    async def build_snapshot(self, base_asset: str = "BTC") -> Snapshot:
        """
        Build a complete snapshot for a base asset.

        Resolves even when one or both venues fail; failures surface as
        unhealthy venue snapshots, not exceptions.

        Args:
            base_asset: Base asset (BTC)

        Returns:
            Snapshot for this cycle
        """
        now = self.clock()
        index_name = f"{base_asset.lower()}_usd"

        spot_task = asyncio.create_task(self.deribit.fetch_spot_price(index_name))

        try:
            results = await asyncio.gather(
                self._deribit_pipeline(base_asset, now),
                self._bybit_pipeline(base_asset, spot_task, now),
                return_exceptions=True,
            )
        except asyncio.CancelledError:
            spot_task.cancel()
            raise

        try:
            spot_price = await spot_task
        except Exception as e:
            logger.warning(f"Spot price fetch failed: {e}")
            spot_price = 0.0

        venues: Dict[Venue, VenueSnapshot] = {}
        for venue, result in zip((Venue.DERIBIT, Venue.BYBIT), results):
            if isinstance(result, BaseException):
                logger.error(f"{venue.value} snapshot failed: {result!r}")
                venues[venue] = VenueSnapshot.failed(venue, repr(result))
            else:
                venues[venue] = result

        snapshot = Snapshot(venues=venues, spot_price=spot_price, built_at=now)
        health = {v.value: h for v, h in snapshot.venue_health.items()}

        logger.info(
            f"Snapshot {base_asset}: spot={spot_price:.2f}, "
            f"quotes={snapshot.quote_counts}, health={health}"
        )
        return snapshot

    async def _deribit_pipeline(self, base_asset: str, now: datetime) -> VenueSnapshot:
        chain, dvol = await asyncio.gather(
            self.deribit.fetch_option_chain(base_asset),
            self.deribit.fetch_volatility_index(base_asset),
        )

        quotes = self.normalize_deribit_chain(chain, now)
        healthy = dvol > 0

        logger.info(
            f"Deribit: {len(chain)} options, {len(quotes)} retained, DVOL={dvol:.2f}"
        )

        if not healthy:
            logger.warning("Deribit DVOL unavailable - venue marked unhealthy")
            return VenueSnapshot(
                venue=Venue.DERIBIT,
                quotes=quotes,
                fetched_at=now,
                error="DVOL unavailable",
            )

        return VenueSnapshot(
            venue=Venue.DERIBIT,
            quotes=quotes,
            signal=dvol,
            healthy=True,
            fetched_at=now,
        )

    async def _bybit_pipeline(
        self,
        base_asset: str,
        spot_task: "asyncio.Task[float]",
        now: datetime,
    ) -> VenueSnapshot:
        instruments, tickers = await asyncio.gather(
            self.instruments_cache.get(),
            self.bybit.fetch_option_chain(base_asset),
        )

        if not tickers:
            logger.warning("Bybit returned no option tickers - venue marked unhealthy")
            return VenueSnapshot(venue=Venue.BYBIT, fetched_at=now, error="no tickers")

        by_expiry, dte_by_expiry, quotes = self.normalize_bybit_tickers(tickers, instruments, now)

        try:
            spot_price = await spot_task
        except Exception:
            spot_price = 0.0
        signal = 0.0
        expiry = select_target_expiry(dte_by_expiry, self.target_dte)
        strike: Optional[float] = None

        if expiry is not None:
            candidates = by_expiry[expiry]
            strike = select_atm_strike(candidates, spot_price)
            if strike is not None:
                signal = atm_signal(candidates, strike)

        logger.info(
            f"Bybit: ATM {self.target_dte:.0f}d IV = {signal:.4f} "
            f"(expiry={expiry.date() if expiry else None}, strike={strike}, "
            f"{len(tickers)} tickers, {len(quotes)} retained)"
        )

        try:
            fraction_to_percent(signal)
        except UnitMismatchError as e:
            logger.warning(f"Bybit ATM IV rejected - venue marked unhealthy: {e}")
            return VenueSnapshot(
                venue=Venue.BYBIT,
                quotes=quotes,
                fetched_at=now,
                error=str(e),
            )

        return VenueSnapshot(
            venue=Venue.BYBIT,
            quotes=quotes,
            signal=signal,
            healthy=True,
            fetched_at=now,
        )

    @staticmethod
    def normalize_deribit_chain(
        chain: Iterable[DeribitBookSummary],
        now: datetime,
    ) -> Tuple[OptionQuote, ...]:
        """Parse and filter Deribit book summaries into quotes with mid > 0."""
        quotes: List[OptionQuote] = []

        for row in chain:
            try:
                parsed = parse_instrument(row.instrument_name)
            except InstrumentParseError:
                logger.debug(f"Deribit: skipping unparseable instrument {row.instrument_name}")
                continue

            quote = OptionQuote.from_sides(
                venue=Venue.DERIBIT,
                instrument_id=row.instrument_name,
                expiry=parsed.expiry,
                strike=parsed.strike,
                option_type=parsed.option_type,
                bid=row.bid_price,
                ask=row.ask_price,
                observed_at=now,
            )
            if quote is not None and quote.mid > 0:
                quotes.append(quote)

        return tuple(quotes)

    @staticmethod
    def normalize_bybit_tickers(
        tickers: Iterable[BybitTicker],
        instruments: Mapping[str, InstrumentMetadata],
        now: datetime,
    ) -> Tuple[Dict[datetime, List[AtmCandidate]], Dict[datetime, float], Tuple[OptionQuote, ...]]:
        """
        Resolve, filter and group Bybit tickers.

        Metadata comes from the instruments cache, falling back to parsing
        the symbol. Tickers with DTE <= 0 or mark IV <= 0 are discarded.

        Returns:
            (candidates grouped by expiry, DTE per expiry, retained quotes)
        """
        by_expiry: Dict[datetime, List[AtmCandidate]] = {}
        dte_by_expiry: Dict[datetime, float] = {}
        quotes: List[OptionQuote] = []

        for ticker in tickers:
            meta = instruments.get(ticker.symbol)
            if meta is not None:
                strike, expiry, option_type = meta.strike, meta.expiry, meta.option_type
            else:
                try:
                    strike, expiry, option_type = parse_instrument(ticker.symbol)
                except InstrumentParseError:
                    logger.debug(f"Bybit: skipping unparseable symbol {ticker.symbol}")
                    continue

            dte = days_to_expiry(expiry, now)
            if dte <= 0 or ticker.mark_iv <= 0:
                continue

            by_expiry.setdefault(expiry, []).append(
                AtmCandidate(
                    strike=strike,
                    option_type=option_type,
                    mark_iv=ticker.mark_iv,
                    delta=ticker.delta,
                )
            )
            dte_by_expiry[expiry] = dte

            quote = OptionQuote.from_sides(
                venue=Venue.BYBIT,
                instrument_id=ticker.symbol,
                expiry=expiry,
                strike=strike,
                option_type=option_type,
                bid=ticker.bid_price,
                ask=ticker.ask_price,
                observed_at=now,
            )
            if quote is not None and quote.mid > 0:
                quotes.append(quote)

        return by_expiry, dte_by_expiry, tuple(quotes)
