"""
CoinGecko Market Data Provider
Daily BTC-USD closes from market_chart/range
"""

import logging
from datetime import date, datetime, time, timedelta, timezone
from typing import Dict, List, Optional

import httpx

from regime_engine.core.errors import MarketDataError
from regime_engine.domain.models import MarketObservation

logger = logging.getLogger(__name__)

COINGECKO_URL = "https://api.coingecko.com/api/v3/coins/{coin}/market_chart/range"


class CoinGeckoProvider:
    def __init__(self, client: Optional[httpx.AsyncClient] = None, timeout_seconds: float = 20.0):
        self._client = client
        self.timeout_seconds = timeout_seconds
        self.coin_mapping: Dict[str, str] = {"BTC-USD": "bitcoin"}

    @staticmethod
    def parse_prices(symbol: str, payload: Dict) -> List[MarketObservation]:
        """Last price of each UTC day wins."""
        by_day: Dict[date, float] = {}
        for ts_ms, price in payload.get("prices", []):
            if price is None or price <= 0:
                continue
            day = datetime.fromtimestamp(ts_ms / 1000, tz=timezone.utc).date()
            by_day[day] = float(price)
        return [MarketObservation(symbol=symbol, date=d, close=by_day[d]) for d in sorted(by_day)]

    async def get_history(self, symbol: str, start: date, end: date) -> List[MarketObservation]:
        coin = self.coin_mapping.get(symbol)
        if coin is None:
            raise MarketDataError(f"No CoinGecko coin for {symbol}", symbol=symbol, provider="coingecko")

        start_ts = int(datetime.combine(start, time.min, tzinfo=timezone.utc).timestamp())
        end_ts = int(datetime.combine(end + timedelta(days=1), time.min, tzinfo=timezone.utc).timestamp())
        params = {"vs_currency": "usd", "from": str(start_ts), "to": str(end_ts)}
        url = COINGECKO_URL.format(coin=coin)

        try:
            if self._client is not None:
                response = await self._client.get(url, params=params)
            else:
                async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                    response = await client.get(url, params=params)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise MarketDataError(f"CoinGecko request failed: {exc}", symbol=symbol, provider="coingecko") from exc

        return [obs for obs in self.parse_prices(symbol, response.json()) if start <= obs.date <= end]
