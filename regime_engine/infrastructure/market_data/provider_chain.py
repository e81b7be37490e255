"""
Provider chain - per symbol, try primary, then fallbacks.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import date
from typing import Dict, List, Mapping, Sequence, Tuple

from regime_engine.domain.models import MarketObservation, SymbolDiagnostic
from regime_engine.infrastructure.market_data.types import MarketDataProvider

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NamedProvider:
    name: str
    provider: MarketDataProvider


@dataclass(frozen=True)
class MarketDataBundle:
    """All observations of one fetch, sorted by (symbol, date), plus diagnostics"""
    observations: Tuple[MarketObservation, ...]
    diagnostics: Mapping[str, SymbolDiagnostic]

    @property
    def is_empty(self) -> bool:
        return not self.observations


class ChainedMarketDataProvider:
    """
    Resolves each symbol through its own ordered provider chain.

    Provider failures and empty results are absorbed into the symbol's
    diagnostic note; the next provider in the chain is tried.
    """

    def __init__(
        self,
        providers: Mapping[str, MarketDataProvider],
        chains: Mapping[str, Sequence[str]],
        default_chain: Sequence[str],
        timeout_seconds: float = 20.0,
        max_concurrency: int = 4,
    ):
        self.providers = dict(providers)
        self.chains = {symbol: tuple(chain) for symbol, chain in chains.items()}
        self.default_chain = tuple(default_chain)
        self.timeout_seconds = timeout_seconds
        self.max_concurrency = max(1, max_concurrency)

    def chain_for(self, symbol: str) -> List[NamedProvider]:
        names = self.chains.get(symbol, self.default_chain)
        return [NamedProvider(name, self.providers[name]) for name in names if name in self.providers]

    async def get_history(self, symbol: str, start: date, end: date) -> List[MarketObservation]:
        observations, _ = await self.fetch_symbol(symbol, start, end)
        return observations

    async def fetch_symbol(
        self,
        symbol: str,
        start: date,
        end: date,
    ) -> Tuple[List[MarketObservation], SymbolDiagnostic]:
        notes: List[str] = []
        for named in self.chain_for(symbol):
            try:
                data = await asyncio.wait_for(
                    named.provider.get_history(symbol, start, end),
                    timeout=self.timeout_seconds,
                )
            except asyncio.TimeoutError:
                notes.append(f"{named.name}: timeout after {self.timeout_seconds}s")
                logger.warning(f"{named.name} timed out for {symbol}")
                continue
            except Exception as exc:
                notes.append(f"{named.name}: {exc}")
                logger.warning(f"{named.name} failed for {symbol}: {exc}")
                continue

            data = [obs for obs in data if start <= obs.date <= end]
            if not data:
                notes.append(f"{named.name}: empty")
                continue

            last_date = max(obs.date for obs in data)
            return data, SymbolDiagnostic(
                symbol=symbol,
                provider=named.name,
                last_date=last_date,
                observation_count=len({obs.date for obs in data}),
                ok=True,
                note="; ".join(notes) or None,
            )

        if not notes:
            notes.append("no provider configured")
        return [], SymbolDiagnostic(
            symbol=symbol,
            provider=None,
            last_date=None,
            observation_count=0,
            ok=False,
            note="; ".join(notes),
        )

    async def fetch_all(self, symbols: Sequence[str], start: date, end: date) -> MarketDataBundle:
        """
        Fetch every symbol concurrently (bounded), then sort so completion
        order never leaks into results.
        """
        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def _one(symbol: str):
            async with semaphore:
                return symbol, await self.fetch_symbol(symbol, start, end)

        results = await asyncio.gather(*(_one(s) for s in symbols))

        observations: List[MarketObservation] = []
        diagnostics: Dict[str, SymbolDiagnostic] = {}
        for symbol, (data, diagnostic) in results:
            observations.extend(data)
            diagnostics[symbol] = diagnostic

        observations.sort(key=lambda obs: (obs.symbol, obs.date))
        return MarketDataBundle(observations=tuple(observations), diagnostics=diagnostics)
