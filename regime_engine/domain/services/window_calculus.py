"""
WINDOW CALCULUS
Windowed returns and volatility over the last N observations

RULES:
✅ Windows count observations, not calendar days
✅ Input is re-sorted by date before use, so fetch order never matters
✅ Insufficient data yields Insufficient(reason), never an exception
"""

from datetime import date
from typing import Dict, Iterable, List, Optional, Sequence
import math
import statistics

from regime_engine.domain.models import (
    Available,
    Insufficient,
    MarketObservation,
    WindowResult,
)


def series_for(
    observations: Iterable[MarketObservation],
    symbol: str,
    asof: Optional[date] = None,
) -> List[MarketObservation]:
    """
    Observations for one symbol, sorted ascending by date, one per date,
    restricted to dates at or before `asof` when given.

    When a date appears twice the last occurrence in input order wins.
    """
    by_date: Dict[date, MarketObservation] = {}
    for obs in observations:
        if obs.symbol != symbol:
            continue
        if asof is not None and obs.date > asof:
            continue
        by_date[obs.date] = obs
    return [by_date[d] for d in sorted(by_date)]


def group_by_symbol(
    observations: Iterable[MarketObservation],
    asof: Optional[date] = None,
) -> Dict[str, List[MarketObservation]]:
    materialized = list(observations)
    symbols = sorted({obs.symbol for obs in materialized})
    return {symbol: series_for(materialized, symbol, asof) for symbol in symbols}


def last_n(series: Sequence[MarketObservation], n: int) -> List[MarketObservation]:
    if n <= 0:
        return []
    return list(series[-n:])


def total_return(series: Sequence[MarketObservation], n: int) -> WindowResult:
    """
    TR_N = (last.close - first.close) / first.close over the last N observations.
    """
    if len(series) < n:
        return Insufficient(f"need {n} observations, have {len(series)}")
    window = last_n(series, n)
    if len(window) < 2:
        return Insufficient("window shorter than 2 observations")
    first, last = window[0].close, window[-1].close
    if first == 0:
        return Insufficient("zero base close")
    return Available((last - first) / first)


def ratio_total_return(
    numerator: Sequence[MarketObservation],
    denominator: Sequence[MarketObservation],
    n: int,
) -> WindowResult:
    """
    Total return of numerator/denominator over the dates common to the last
    N observations of each series.
    """
    if len(numerator) < n or len(denominator) < n:
        return Insufficient(
            f"need {n} observations, have {len(numerator)}/{len(denominator)}"
        )

    closes_a = {obs.date: obs.close for obs in last_n(numerator, n)}
    closes_b = {obs.date: obs.close for obs in last_n(denominator, n)}
    common = sorted(set(closes_a) & set(closes_b))
    if len(common) < 2:
        return Insufficient(f"only {len(common)} common dates")

    first_ratio = closes_a[common[0]] / closes_b[common[0]]
    last_ratio = closes_a[common[-1]] / closes_b[common[-1]]
    if first_ratio == 0:
        return Insufficient("zero base ratio")
    return Available((last_ratio - first_ratio) / first_ratio)


def daily_returns(series: Sequence[MarketObservation]) -> List[float]:
    """Close-to-close returns; one fewer value than observations."""
    returns = []
    for prev, curr in zip(series, series[1:]):
        if prev.close == 0:
            continue
        returns.append((curr.close - prev.close) / prev.close)
    return returns


def annualized_volatility(
    series: Sequence[MarketObservation],
    n: int = 63,
    annualization: int = 252,
) -> WindowResult:
    """
    Population standard deviation of the last N daily returns, times sqrt(annualization).
    """
    returns = daily_returns(series)
    if len(returns) < n:
        return Insufficient(f"need {n} daily returns, have {len(returns)}")
    window = returns[-n:]
    return Available(statistics.pstdev(window) * math.sqrt(annualization))


def latest_close(series: Sequence[MarketObservation]) -> Optional[float]:
    if not series:
        return None
    return series[-1].close


def latest_date(series: Sequence[MarketObservation]) -> Optional[date]:
    if not series:
        return None
    return series[-1].date


def sign(value: float) -> int:
    """+1 for value >= 0, else -1."""
    return 1 if value >= 0 else -1
