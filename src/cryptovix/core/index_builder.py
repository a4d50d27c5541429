"""
Index Builder

Blends the per-venue IV signals into the CryptoVIX value.

Units: Deribit DVOL arrives in percentage points (52.4), Bybit ATM IV arrives
as a fraction (0.48). Bybit is converted with fraction_to_percent before the
blend; the conversion rejects values that are not plausible fractions.
"""

import math
from typing import Mapping

from cryptovix.core.models import IndexComponents, IndexMetadata, IndexResult, IndexSignals


DEFAULT_WEIGHTS: Mapping[str, float] = {"deribit": 0.6, "bybit": 0.4}

# 500% annualized IV; anything above this is almost surely already in percent
MAX_FRACTIONAL_IV = 5.0


class UnitMismatchError(ValueError):
    """Raised when a signal is not in the units the blend expects."""


def fraction_to_percent(value: float) -> float:
    """
    Convert a fractional IV (0.48) to percentage points (48.0).

    Raises:
        UnitMismatchError: If value is negative, not finite, or too large to
            be a fraction
    """
    if not math.isfinite(value) or value < 0:
        raise UnitMismatchError(f"Invalid fractional IV: {value}")
    if value > MAX_FRACTIONAL_IV:
        raise UnitMismatchError(
            f"Fractional IV {value} exceeds {MAX_FRACTIONAL_IV}; value looks like percentage points"
        )
    return value * 100


def blend(components: Mapping[str, float], weights: Mapping[str, float] = DEFAULT_WEIGHTS) -> float:
    """
    Weighted sum of already-normalized components.

    Args:
        components: Component values keyed like weights (percentage points)
        weights: Component weights, must sum to 1

    Returns:
        Unrounded weighted average
    """
    if set(components) != set(weights):
        raise ValueError(f"Components {sorted(components)} do not match weights {sorted(weights)}")
    if not math.isclose(sum(weights.values()), 1.0, abs_tol=1e-9):
        raise ValueError(f"Weights must sum to 1, got {sum(weights.values())}")

    # Fixed key order keeps the float result independent of mapping order
    return sum(components[key] * weights[key] for key in sorted(weights))


def build_index(signals: IndexSignals, weights: Mapping[str, float] = DEFAULT_WEIGHTS) -> IndexResult:
    """
    Build the index result from venue signals.

    Args:
        signals: Deribit IV (percent), Bybit IV (fraction), spot, timestamp
        weights: Venue weights (default 60% Deribit / 40% Bybit)

    Returns:
        IndexResult with value and components rounded to 2 decimal places

    Raises:
        UnitMismatchError: If a signal is outside its expected units
    """
    if not math.isfinite(signals.deribit_iv) or signals.deribit_iv < 0:
        raise UnitMismatchError(f"Invalid Deribit IV: {signals.deribit_iv}")

    deribit_pct = signals.deribit_iv
    bybit_pct = fraction_to_percent(signals.bybit_iv)

    weighted_avg = blend({"deribit": deribit_pct, "bybit": bybit_pct}, weights)
    value = round(weighted_avg, 2)

    return IndexResult(
        timestamp=signals.timestamp,
        value=value,
        components=IndexComponents(
            deribit_iv=round(deribit_pct, 2),
            bybit_iv=round(bybit_pct, 2),
            weighted_avg=value,
        ),
        metadata=IndexMetadata(btc_price=round(signals.spot_price, 2)),
    )
