"""
Confidence Scorer

Derives a 0-100 quality score for a Snapshot. Penalties compound
multiplicatively, so several concurrent problems drive the score down fast.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

from cryptovix.core.models import Snapshot, Venue


DERIBIT_DOWN_FACTOR = 0.7
BYBIT_DOWN_FACTOR = 0.8

LOW_QUOTES_THRESHOLD = 50
LOW_QUOTES_FACTOR = 0.9
VERY_LOW_QUOTES_THRESHOLD = 10
VERY_LOW_QUOTES_FACTOR = 0.5

STALENESS_THRESHOLD = timedelta(seconds=60)
STALENESS_FACTOR = 0.8
MAX_STALENESS = timedelta(minutes=5)
MAX_STALENESS_FACTOR = 0.5


def max_staleness(snapshot: Snapshot, now: datetime) -> timedelta:
    """
    Largest per-venue data age. A venue without a fetch timestamp (failed
    fetch or missing venue) counts as infinitely stale.
    """
    worst = timedelta(0)
    for venue in Venue:
        fetched_at = snapshot.venue(venue).fetched_at
        if fetched_at is None:
            return timedelta.max
        worst = max(worst, now - fetched_at)
    return worst


def calculate_confidence(snapshot: Snapshot, now: Optional[datetime] = None) -> int:
    """
    Calculate confidence score based on venue health, quote count and staleness.

    Args:
        snapshot: Snapshot to score
        now: Evaluation time (default: current UTC time)

    Returns:
        int: Confidence in [0, 100]
    """
    now = now or datetime.now(timezone.utc)
    confidence = 100.0

    deribit_ok = snapshot.venue(Venue.DERIBIT).healthy
    bybit_ok = snapshot.venue(Venue.BYBIT).healthy
    if not deribit_ok:
        confidence *= DERIBIT_DOWN_FACTOR
    if not bybit_ok:
        confidence *= BYBIT_DOWN_FACTOR
    if not deribit_ok and not bybit_ok:
        confidence = 0.0

    total_quotes = len(snapshot.quotes)
    if total_quotes < LOW_QUOTES_THRESHOLD:
        confidence *= LOW_QUOTES_FACTOR
    if total_quotes < VERY_LOW_QUOTES_THRESHOLD:
        confidence *= VERY_LOW_QUOTES_FACTOR
    if total_quotes == 0:
        confidence = 0.0

    staleness = max_staleness(snapshot, now)
    if staleness > MAX_STALENESS:
        confidence *= MAX_STALENESS_FACTOR
    elif staleness > STALENESS_THRESHOLD:
        confidence *= STALENESS_FACTOR

    # Round half up; the score is never negative
    return max(0, min(100, int(confidence + 0.5)))
