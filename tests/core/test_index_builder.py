"""
Tests for the index blend and unit normalization.
"""

import math

import pytest

from cryptovix.core.index_builder import (
    DEFAULT_WEIGHTS,
    UnitMismatchError,
    blend,
    build_index,
    fraction_to_percent,
)
from cryptovix.core.models import IndexSignals
from tests.fixtures.venue_fixtures import FIXED_NOW


def signals(deribit_iv=52.4, bybit_iv=0.48, spot_price=64812.5):
    return IndexSignals(
        deribit_iv=deribit_iv,
        bybit_iv=bybit_iv,
        spot_price=spot_price,
        timestamp=FIXED_NOW,
    )


class TestFractionToPercent:
    """Test Bybit unit conversion."""

    def test_converts_fraction(self):
        assert fraction_to_percent(0.48) == pytest.approx(48.0)

    def test_zero_passes_through(self):
        assert fraction_to_percent(0.0) == 0.0

    @pytest.mark.parametrize("value", [48.0, 5.01, -0.1, math.nan, math.inf])
    def test_rejects_implausible_values(self, value):
        with pytest.raises(UnitMismatchError):
            fraction_to_percent(value)


class TestBlend:
    """Test weighted averaging."""

    def test_sixty_forty(self):
        assert round(blend({"deribit": 55.0, "bybit": 45.0}), 2) == 51.0

    def test_mapping_order_does_not_matter(self):
        a = blend({"deribit": 52.4, "bybit": 48.0})
        b = blend({"bybit": 48.0, "deribit": 52.4})
        assert a == b

    def test_custom_weights(self):
        assert blend({"deribit": 50.0, "bybit": 40.0}, {"deribit": 0.5, "bybit": 0.5}) == 45.0

    def test_weights_must_sum_to_one(self):
        with pytest.raises(ValueError):
            blend({"deribit": 50.0, "bybit": 40.0}, {"deribit": 0.6, "bybit": 0.6})

    def test_components_must_match_weights(self):
        with pytest.raises(ValueError):
            blend({"deribit": 50.0}, DEFAULT_WEIGHTS)


class TestBuildIndex:
    """Test index construction."""

    def test_reference_values(self):
        result = build_index(signals())

        assert result.value == 50.64
        assert result.components.deribit_iv == 52.4
        assert result.components.bybit_iv == 48.0
        assert result.components.weighted_avg == 50.64
        assert result.metadata.btc_price == 64812.5
        assert result.timestamp == FIXED_NOW

    def test_deterministic(self):
        first = build_index(signals())
        assert all(build_index(signals()) == first for _ in range(10))

    def test_rounds_to_two_decimals(self):
        result = build_index(signals(deribit_iv=52.123, bybit_iv=0.48765))

        bybit_pct = fraction_to_percent(0.48765)
        assert result.value == round(blend({"deribit": 52.123, "bybit": bybit_pct}), 2)
        assert result.components.bybit_iv == round(bybit_pct, 2)
        assert result.value == round(result.value, 2)

    def test_bybit_in_percent_is_rejected(self):
        with pytest.raises(UnitMismatchError):
            build_index(signals(bybit_iv=48.0))

    def test_negative_deribit_is_rejected(self):
        with pytest.raises(UnitMismatchError):
            build_index(signals(deribit_iv=-1.0))

    def test_zero_signals_produce_zero_index(self):
        result = build_index(signals(deribit_iv=0.0, bybit_iv=0.0, spot_price=0.0))
        assert result.value == 0.0

    def test_to_dict(self):
        payload = build_index(signals()).to_dict()

        assert payload == {
            "timestamp": FIXED_NOW.isoformat(),
            "value": 50.64,
            "components": {"deribit_iv": 52.4, "bybit_iv": 48.0, "weighted_avg": 50.64},
            "metadata": {"btc_price": 64812.5},
        }
