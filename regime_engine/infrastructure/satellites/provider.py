"""
Satellite data provider.

Only the commodity nowcast basket is derived locally (TR_21 of the
commodities ETF as of its latest close); the other series need external
feeds and resolve to nothing, so their fallback chains apply.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Dict, Mapping, Optional, Protocol, Sequence, Tuple

from regime_engine.domain.models import Insufficient, MarketObservation, SatelliteObservation
from regime_engine.domain.services import window_calculus as wc
from regime_engine.domain.services.satellite_engine import age_in_days

logger = logging.getLogger(__name__)

COMMODITY_BASKET = "Commodity Nowcast Basket (Energy+Metals)"


class SatelliteDataProvider(Protocol):
    async def get_latest_observation(
        self,
        series: str,
        market_series: Mapping[str, Sequence[MarketObservation]],
    ) -> Optional[Tuple[float, date]]:
        ...


class DefaultSatelliteDataProvider:
    def __init__(self, commodity_symbol: str = "PDBC", window: int = 21):
        self.commodity_symbol = commodity_symbol
        self.window = window

    async def get_latest_observation(
        self,
        series: str,
        market_series: Mapping[str, Sequence[MarketObservation]],
    ) -> Optional[Tuple[float, date]]:
        if series == COMMODITY_BASKET:
            return self._commodity_basket(market_series)
        return None

    def _commodity_basket(
        self,
        market_series: Mapping[str, Sequence[MarketObservation]],
    ) -> Optional[Tuple[float, date]]:
        data = market_series.get(self.commodity_symbol, ())
        result = wc.total_return(data, self.window)
        if isinstance(result, Insufficient):
            return None
        return result.value, data[-1].date


async def fetch_satellite_observations(
    provider: SatelliteDataProvider,
    series_names: Sequence[str],
    market_series: Mapping[str, Sequence[MarketObservation]],
    asof: date,
) -> Dict[str, SatelliteObservation]:
    """
    Latest observation per series, aged against the as-of date.

    A failing series is logged and treated as missing; observations dated
    after the as-of date are ignored.
    """
    resolved: Dict[str, SatelliteObservation] = {}
    for name in series_names:
        try:
            latest = await provider.get_latest_observation(name, market_series)
        except Exception as exc:
            logger.warning(f"Satellite {name} unavailable: {exc}")
            continue
        if latest is None:
            continue
        value, observed = latest
        age = age_in_days(observed, asof)
        if age < 0:
            logger.warning(f"Satellite {name} dated {observed} after as-of {asof}; ignored")
            continue
        resolved[name] = SatelliteObservation(series=name, value=value, observation_date=observed, age_days=age)
    return resolved
