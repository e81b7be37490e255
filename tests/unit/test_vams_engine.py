"""
Unit Tests for the VAMS State Engine
"""

import pytest

from regime_engine.domain.models import Available, Insufficient, VamsState
from regime_engine.domain.services.vams_engine import VamsEngine


@pytest.fixture
def engine(engine_config):
    return VamsEngine(engine_config)


class TestVamsEngine:
    def test_uptrend_is_bullish(self, engine, market):
        series = market.series("SPY", market.trend(260, 0.002))
        reading = engine.reading(series)
        assert isinstance(reading.score, Available)
        assert reading.score.value > 0.5
        assert reading.state == VamsState.BULLISH

    def test_downtrend_is_bearish(self, engine, market):
        series = market.series("GLD", market.trend(260, -0.002))
        assert engine.reading(series).state == VamsState.BEARISH

    def test_sideways_is_neutral(self, engine, market):
        series = market.series("BTC-USD", market.trend(260, 0.0))
        reading = engine.reading(series)
        assert -0.5 < reading.score.value < 0.5
        assert reading.state == VamsState.NEUTRAL

    def test_short_history_defaults_to_neutral(self, engine, market):
        series = market.series("SPY", market.trend(200, 0.002))
        reading = engine.reading(series)
        assert isinstance(reading.score, Insufficient)
        assert reading.state == VamsState.NEUTRAL

    def test_zero_volatility_scores_zero(self, engine, market):
        series = market.series("SPY", [100.0] * 260)
        assert engine.score(series) == Available(0.0)

    def test_state_thresholds_inclusive(self, engine):
        assert engine.state(0.5) == VamsState.BULLISH
        assert engine.state(-0.5) == VamsState.BEARISH
        assert engine.state(0.49) == VamsState.NEUTRAL

    def test_scale_map(self, engine):
        assert engine.scale(VamsState.BULLISH) == 1.0
        assert engine.scale(VamsState.NEUTRAL) == 0.5
        assert engine.scale(VamsState.BEARISH) == 0.0

    def test_compute_states_per_proxy(self, engine, market):
        series = {
            "SPY": market.series("SPY", market.trend(260, 0.002)),
            "GLD": market.series("GLD", market.trend(260, -0.002)),
        }
        states = engine.compute_states(series)
        assert states.stocks.state == VamsState.BULLISH
        assert states.gold.state == VamsState.BEARISH
        assert states.btc.state == VamsState.NEUTRAL
