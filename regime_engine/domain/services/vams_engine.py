"""
VAMS STATE ENGINE (ENGINE-2)
Volatility-adjusted momentum per proxy asset

score = (0.6 x TR_126 + 0.4 x TR_252) / (stdev(returns, 63) x sqrt(252))
state = +2 / 0 / -2 by the score thresholds
scale = fixed lookup of state
"""

from dataclasses import dataclass
from typing import Mapping, Sequence

from regime_engine.domain.models import (
    Available,
    Insufficient,
    MarketObservation,
    VamsState,
    WindowResult,
)
from regime_engine.domain.services.config_engine import EngineConfig
from regime_engine.domain.services import window_calculus as wc


@dataclass(frozen=True)
class VamsReading:
    state: VamsState
    score: WindowResult


@dataclass(frozen=True)
class VamsStates:
    stocks: VamsReading
    gold: VamsReading
    btc: VamsReading


class VamsEngine:
    """
    VAMS Engine
    Scores trend quality; does NOT decide allocations
    """

    def __init__(self, config: EngineConfig):
        self.config = config

    def score(self, series: Sequence[MarketObservation]) -> WindowResult:
        windows = self.config.windows
        vams = self.config.vams

        if len(series) < windows.year:
            return Insufficient(f"need {windows.year} observations, have {len(series)}")

        tr_long = wc.total_return(series, windows.long)
        tr_year = wc.total_return(series, windows.year)
        if isinstance(tr_long, Insufficient):
            return tr_long
        if isinstance(tr_year, Insufficient):
            return tr_year

        momentum = vams.momentum_short_weight * tr_long.value + vams.momentum_long_weight * tr_year.value

        volatility = wc.annualized_volatility(series, windows.volatility, windows.annualization)
        if isinstance(volatility, Insufficient):
            return volatility
        if volatility.value == 0:
            return Available(0.0)
        return Available(momentum / volatility.value)

    def state(self, score: float) -> VamsState:
        vams = self.config.vams
        if score >= vams.bullish_threshold:
            return VamsState.BULLISH
        if score <= vams.bearish_threshold:
            return VamsState.BEARISH
        return VamsState.NEUTRAL

    def scale(self, state: VamsState) -> float:
        return self.config.vams.scale_map.get(int(state), 0.5)

    def reading(self, series: Sequence[MarketObservation]) -> VamsReading:
        result = self.score(series)
        if isinstance(result, Insufficient):
            return VamsReading(state=VamsState.NEUTRAL, score=result)
        return VamsReading(state=self.state(result.value), score=result)

    def compute_states(self, series: Mapping[str, Sequence[MarketObservation]]) -> VamsStates:
        vams = self.config.vams
        return VamsStates(
            stocks=self.reading(series.get(vams.stocks_symbol, ())),
            gold=self.reading(series.get(vams.gold_symbol, ())),
            btc=self.reading(series.get(vams.btc_symbol, ())),
        )
