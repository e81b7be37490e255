"""
Market data provider protocol for type hints.
"""

from __future__ import annotations

from datetime import date
from typing import List, Protocol

from regime_engine.domain.models import MarketObservation


class MarketDataProvider(Protocol):
    async def get_history(self, symbol: str, start: date, end: date) -> List[MarketObservation]:
        """Daily closes for `symbol` between start and end (inclusive), any order."""
        ...
