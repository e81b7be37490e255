"""
Stooq Market Data Provider
Daily CSV downloads for US-listed ETFs
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

STOOQ_URL = "https://stooq.com/q/d/l/"


class StooqProvider:
    """
    Stooq CSV provider (no API key)
    """

    def __init__(self, client: Optional[httpx.AsyncClient] = None, timeout_seconds: float = 20.0):
        self._client = client
        self.timeout_seconds = timeout_seconds
        self.symbol_mapping: Dict[str, str] = {}

    def stooq_symbol(self, symbol: str) -> str:
        return self.symbol_mapping.get(symbol, f"{symbol.lower()}.us")

    @staticmethod
    def parse_csv(symbol: str, text: str) -> List[MarketObservation]:
        if not text or not text.strip() or text.strip().lower().startswith("no data"):
            return []
        frame = pd.read_csv(io.StringIO(text))
        if "Date" not in frame.columns or "Close" not in frame.columns:
            raise MarketDataError(f"Unexpected Stooq payload for {symbol}", symbol=symbol, provider="stooq")

        frame = frame.dropna(subset=["Date", "Close"])
        observations = []
        for row in frame.itertuples(index=False):
            close = float(row.Close)
            if close <= 0:
                continue
            observations.append(
                MarketObservation(symbol=symbol, date=date.fromisoformat(str(row.Date)[:10]), close=close)
            )
        return observations

    async def get_history(self, symbol: str, start: date, end: date) -> List[MarketObservation]:
        params = {
            "s": self.stooq_symbol(symbol),
            "d1": start.strftime("%Y%m%d"),
            "d2": end.strftime("%Y%m%d"),
            "i": "d",
        }
        try:
            if self._client is not None:
                response = await self._client.get(STOOQ_URL, params=params)
            else:
                async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                    response = await client.get(STOOQ_URL, params=params)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise MarketDataError(f"Stooq request failed: {exc}", symbol=symbol, provider="stooq") from exc

        return self.parse_csv(symbol, response.text)
