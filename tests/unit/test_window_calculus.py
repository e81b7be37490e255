"""
Unit Tests for Window Calculus
"""

import math
from datetime import date

import pytest

from regime_engine.domain.models import Available, Insufficient, MarketObservation
from regime_engine.domain.services import window_calculus as wc


def obs(symbol, day, close):
    return MarketObservation(symbol=symbol, date=date(2025, 1, day), close=close)


class TestSeriesFor:
    """Ordering, dedupe and as-of filtering"""

    def test_sorted_regardless_of_input_order(self):
        data = [obs("SPY", 3, 103.0), obs("SPY", 1, 101.0), obs("SPY", 2, 102.0)]
        result = wc.series_for(data, "SPY")
        assert [o.date.day for o in result] == [1, 2, 3]

    def test_duplicate_date_last_occurrence_wins(self):
        data = [obs("SPY", 1, 100.0), obs("SPY", 1, 105.0)]
        result = wc.series_for(data, "SPY")
        assert len(result) == 1
        assert result[0].close == 105.0

    def test_asof_excludes_later_dates(self):
        data = [obs("SPY", 1, 100.0), obs("SPY", 2, 101.0), obs("SPY", 3, 102.0)]
        result = wc.series_for(data, "SPY", asof=date(2025, 1, 2))
        assert [o.date.day for o in result] == [1, 2]

    def test_group_by_symbol(self):
        data = [obs("TLT", 2, 90.0), obs("SPY", 1, 100.0), obs("TLT", 1, 91.0)]
        grouped = wc.group_by_symbol(data)
        assert set(grouped) == {"SPY", "TLT"}
        assert [o.close for o in grouped["TLT"]] == [91.0, 90.0]


class TestTotalReturn:
    def test_uses_last_n_observations(self, market):
        series = market.series("SPY", [50.0, 100.0, 101.0, 102.0, 110.0])
        result = wc.total_return(series, 4)
        assert isinstance(result, Available)
        assert result.value == pytest.approx(0.10)

    def test_insufficient_when_short(self, market):
        series = market.series("SPY", [100.0] * 20)
        result = wc.total_return(series, 21)
        assert isinstance(result, Insufficient)
        assert result.value == 0.0
        assert "21" in result.reason

    def test_step_series_matches_requested_return(self, market):
        series = market.series("SPY", market.step(0.05))
        assert wc.total_return(series, 63).value == pytest.approx(0.05)
        assert wc.total_return(series, 21).value == pytest.approx(0.05)


class TestRatioTotalReturn:
    def test_ratio_of_two_series(self, market):
        hyg = market.series("HYG", market.step(0.03))
        ief = market.series("IEF", market.step(0.0))
        result = wc.ratio_total_return(hyg, ief, 63)
        assert result.value == pytest.approx(0.03)

    def test_common_dates_only(self):
        num = [obs("EEM", d, 100.0 + d) for d in (1, 2, 3, 4)]
        den = [obs("SPY", d, 100.0) for d in (2, 3, 4, 5)]
        # common dates in the last 4 of each: 2, 3, 4
        result = wc.ratio_total_return(num, den, 4)
        assert result.value == pytest.approx(104.0 / 102.0 - 1)

    def test_insufficient_when_either_side_short(self, market):
        num = market.series("EEM", [100.0] * 70)
        den = market.series("SPY", [100.0] * 30)
        assert isinstance(wc.ratio_total_return(num, den, 63), Insufficient)

    def test_insufficient_without_overlap(self):
        num = [obs("EEM", d, 100.0) for d in (1, 2)]
        den = [obs("SPY", d, 100.0) for d in (3, 4)]
        assert isinstance(wc.ratio_total_return(num, den, 2), Insufficient)


class TestVolatility:
    def test_population_stdev_annualized(self, market):
        closes = [100.0, 110.0, 99.0, 108.9]
        series = market.series("SPY", closes)
        returns = wc.daily_returns(series)
        mean = sum(returns) / len(returns)
        expected = math.sqrt(sum((r - mean) ** 2 for r in returns) / len(returns)) * math.sqrt(252)
        result = wc.annualized_volatility(series, 3, 252)
        assert result.value == pytest.approx(expected)

    def test_flat_series_has_zero_volatility(self, market):
        series = market.series("SPY", [100.0] * 70)
        assert wc.annualized_volatility(series, 63, 252).value == 0.0

    def test_needs_n_returns(self, market):
        series = market.series("SPY", [100.0] * 63)
        assert isinstance(wc.annualized_volatility(series, 63, 252), Insufficient)


class TestHelpers:
    def test_daily_returns(self, market):
        returns = wc.daily_returns(market.series("SPY", [100.0, 110.0, 99.0]))
        assert len(returns) == 2
        assert returns[0] == pytest.approx(0.10)
        assert returns[1] == pytest.approx(-0.10)

    def test_sign_treats_zero_as_positive(self):
        assert wc.sign(0.0) == 1
        assert wc.sign(0.3) == 1
        assert wc.sign(-0.0001) == -1

    def test_latest_helpers_on_empty(self):
        assert wc.latest_close([]) is None
        assert wc.latest_date([]) is None
