"""
YFinance Market Data Provider
Async-safe Yahoo Finance daily history for US ETFs, VIX and BTC
"""

import asyncio
import logging
import os
import random
from datetime import date, timedelta
from typing import Dict, List, Optional

import pandas as pd
import yfinance as yf

from regime_engine.core.errors import MarketDataError
from regime_engine.domain.models import MarketObservation

logger = logging.getLogger(__name__)


class YFinanceProvider:
    """
    Yahoo Finance data provider
    Async-safe via thread offloading
    """

    def __init__(self, retries: int = 2):
        self.symbol_mapping: Dict[str, str] = {
            "VIX": "^VIX",
            "BTC-USD": "BTC-USD",
        }
        self.retries = retries
        self._apply_symbol_overrides()

    def _apply_symbol_overrides(self) -> None:
        """
        Apply Yahoo symbol mapping overrides from env.

        Format: YF_SYMBOL_OVERRIDES="PDBC=DBC,VIX=^VIX"
        """
        raw = os.getenv("YF_SYMBOL_OVERRIDES", "").strip()
        if not raw:
            return
        overrides: Dict[str, str] = {}
        for pair in raw.split(","):
            pair = pair.strip()
            if not pair or "=" not in pair:
                continue
            key, value = pair.split("=", 1)
            key = key.strip().upper()
            value = value.strip()
            if key and value:
                overrides[key] = value
        if overrides:
            self.symbol_mapping.update(overrides)

    # ------------------------------------------------------------------
    # INTERNAL HELPERS
    # ------------------------------------------------------------------

    async def _history(self, ticker: yf.Ticker, **kwargs) -> pd.DataFrame:
        """
        Async-safe wrapper around yfinance history()
        """
        return await asyncio.to_thread(ticker.history, **kwargs)

    async def _history_with_retry(self, ticker: yf.Ticker, **kwargs) -> pd.DataFrame:
        """
        Retry wrapper around history() to handle transient failures.
        """
        last_exc: Optional[Exception] = None
        for attempt in range(self.retries + 1):
            try:
                return await self._history(ticker, **kwargs)
            except Exception as exc:
                last_exc = exc
                await asyncio.sleep(0.4 * (2 ** attempt) + random.random() * 0.2)
        raise MarketDataError(f"yfinance history failed: {last_exc}", provider="yfinance")

    @staticmethod
    def frame_to_observations(symbol: str, frame: pd.DataFrame) -> List[MarketObservation]:
        if frame is None or frame.empty or "Close" not in frame:
            return []
        closes = frame["Close"].dropna()
        observations = []
        for ts, close in closes.items():
            value = float(close)
            if value <= 0:
                continue
            observations.append(MarketObservation(symbol=symbol, date=pd.Timestamp(ts).date(), close=value))
        return observations

    # ------------------------------------------------------------------
    # HISTORICAL PRICES
    # ------------------------------------------------------------------

    async def get_history(self, symbol: str, start: date, end: date) -> List[MarketObservation]:
        yf_symbol = self.symbol_mapping.get(symbol, symbol)
        ticker = yf.Ticker(yf_symbol)

        frame = await self._history_with_retry(
            ticker,
            start=start.isoformat(),
            # yfinance treats end as exclusive
            end=(end + timedelta(days=1)).isoformat(),
            interval="1d",
            auto_adjust=False,
        )
        observations = self.frame_to_observations(symbol, frame)
        if not observations:
            logger.warning(f"No yfinance history for {symbol} ({yf_symbol})")
        return observations
