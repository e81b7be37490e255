"""
FRED Market Data Provider
CBOE VIX close (VIXCLS) from the St. Louis Fed
"""

import io
import logging
from datetime import date
from typing import Dict, List, Optional

import httpx
import pandas as pd

from regime_engine.core.errors import MarketDataError
from regime_engine.domain.models import MarketObservation

logger = logging.getLogger(__name__)

FRED_API_URL = "https://api.stlouisfed.org/fred/series/observations"
FRED_GRAPH_URL = "https://fred.stlouisfed.org/graph/fredgraph.csv"


class FredProvider:
    """
    FRED series provider.
    Uses the JSON API when an API key is configured, else the public CSV export.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
        timeout_seconds: float = 20.0,
    ):
        self.api_key = (api_key or "").strip() or None
        self._client = client
        self.timeout_seconds = timeout_seconds
        self.series_mapping: Dict[str, str] = {"VIX": "VIXCLS"}

    async def _get(self, url: str, params: Dict[str, str]) -> httpx.Response:
        if self._client is not None:
            return await self._client.get(url, params=params)
        async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
            return await client.get(url, params=params)

    @staticmethod
    def parse_json(symbol: str, payload: Dict) -> List[MarketObservation]:
        observations = []
        for item in payload.get("observations", []):
            raw = item.get("value")
            # FRED marks holidays with "."
            if raw in (None, "", "."):
                continue
            value = float(raw)
            if value <= 0:
                continue
            observations.append(MarketObservation(symbol=symbol, date=date.fromisoformat(item["date"]), close=value))
        return observations

    @staticmethod
    def parse_csv(symbol: str, series_id: str, text: str) -> List[MarketObservation]:
        frame = pd.read_csv(io.StringIO(text), na_values=["."])
        date_col = "observation_date" if "observation_date" in frame.columns else frame.columns[0]
        if series_id not in frame.columns:
            raise MarketDataError(f"FRED CSV missing {series_id}", symbol=symbol, provider="fred")
        frame = frame.dropna(subset=[series_id])
        observations = []
        for raw_date, value in zip(frame[date_col], frame[series_id]):
            if float(value) <= 0:
                continue
            observations.append(
                MarketObservation(symbol=symbol, date=date.fromisoformat(str(raw_date)[:10]), close=float(value))
            )
        return observations

    async def get_history(self, symbol: str, start: date, end: date) -> List[MarketObservation]:
        series_id = self.series_mapping.get(symbol)
        if series_id is None:
            raise MarketDataError(f"No FRED series for {symbol}", symbol=symbol, provider="fred")

        try:
            if self.api_key:
                response = await self._get(FRED_API_URL, {
                    "series_id": series_id,
                    "api_key": self.api_key,
                    "file_type": "json",
                    "observation_start": start.isoformat(),
                    "observation_end": end.isoformat(),
                })
                response.raise_for_status()
                return self.parse_json(symbol, response.json())

            response = await self._get(FRED_GRAPH_URL, {
                "id": series_id,
                "cosd": start.isoformat(),
                "coed": end.isoformat(),
            })
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise MarketDataError(f"FRED request failed: {exc}", symbol=symbol, provider="fred") from exc

        return self.parse_csv(symbol, series_id, response.text)
