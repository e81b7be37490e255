import asyncio
from datetime import date, timedelta
from pathlib import Path
from typing import Dict, Iterable, List, Optional

import pytest
from fastapi import FastAPI

from regime_engine.api.routes import health, regime
from regime_engine.core.errors import MarketDataError
from regime_engine.domain.models import MarketObservation
from regime_engine.domain.services.config_engine import default_engine_config
from regime_engine.infrastructure.locks import InProcessWriterLock
from regime_engine.infrastructure.market_data.provider_chain import ChainedMarketDataProvider
from regime_engine.infrastructure.replay.loader import ReplayLoader
from regime_engine.infrastructure.storage.local import LocalFileStorageAdapter
from regime_engine.services.regime_service import RegimeService

CORE_SYMBOLS = ("SPY", "HYG", "IEF", "TIP", "EEM", "PDBC", "TLT", "UUP", "VIX")
END_DATE = date(2025, 12, 31)
CUTOVER = date(2025, 11, 28)
VERSION = "regime-engine-test"

SEED_HEADER = (
    "date,run_date,regime,risk_regime,risk_score,infl_score,infl_core_score,infl_sat_score,"
    "risk_axis,infl_axis,risk_tiebreaker_used,infl_tiebreaker_used,"
    "stocks_vams_state,gold_vams_state,btc_vams_state,"
    "stocks_target,gold_target,btc_target,stocks_scale,gold_scale,btc_scale,"
    "stocks_actual,gold_actual,btc_actual,cash,flip_watch_status"
)
SEED_ROWS = [
    "2025-11-24,2025-11-24,REFLATION,RISK ON,2,1.0,1,0.0,RiskOn,Inflation,false,false,"
    "0,0,0,0.6,0.3,0.1,0.5,0.5,0.5,0.3,0.15,0.05,0.5,NONE",
    "2025-11-25,2025-11-25,DEFLATION,RISK OFF,-2,-1.0,-1,0.0,RiskOff,Disinflation,false,false,"
    "0,0,0,0.3,0.3,0.05,0.5,0.5,0.5,0.15,0.15,0.025,0.675,STRONG_FLIP",
    "2025-11-28,2025-11-28,DEFLATION,RISK OFF,-1,-1.0,-1,0.0,RiskOff,Disinflation,false,false,"
    "0,0,0,0.3,0.3,0.05,0.5,0.5,0.5,0.15,0.15,0.025,0.675,NONE",
]

# Risk on (4 votes), disinflationary: GOLDILOCKS
GOLDILOCKS_RETURNS = {"SPY": 0.05, "HYG": 0.03, "VIX": -0.20, "EEM": 0.10, "PDBC": -0.05}
GOLDILOCKS_BASES = {"VIX": 20.0}


# ------------------------------------------------------------------
# SERIES BUILDERS
# ------------------------------------------------------------------

def business_days(end: date, count: int) -> List[date]:
    days: List[date] = []
    current = end
    while len(days) < count:
        if current.weekday() < 5:
            days.append(current)
        current -= timedelta(days=1)
    return list(reversed(days))


class MarketFactory:
    """Synthetic daily series ending on END_DATE"""

    @staticmethod
    def series(symbol: str, closes: Iterable[float], end: date = END_DATE) -> List[MarketObservation]:
        closes = list(closes)
        return [
            MarketObservation(symbol=symbol, date=d, close=float(c))
            for d, c in zip(business_days(end, len(closes)), closes)
        ]

    @staticmethod
    def step(total_return: float, n: int = 70, base: float = 100.0) -> List[float]:
        """Flat, then one move on the last day: every window return equals total_return."""
        return [base] * (n - 1) + [base * (1 + total_return)]

    @staticmethod
    def trend(n: int, growth: float, wiggle: float = 0.01, base: float = 100.0) -> List[float]:
        """Geometric drift with an alternating wiggle (non-zero volatility)."""
        return [base * (1 + growth) ** i * (1 + wiggle * (-1) ** i) for i in range(n)]

    @classmethod
    def market(
        cls,
        returns: Optional[Dict[str, float]] = None,
        bases: Optional[Dict[str, float]] = None,
        n: int = 70,
        symbols: Iterable[str] = CORE_SYMBOLS,
        end: date = END_DATE,
    ) -> Dict[str, List[MarketObservation]]:
        returns = returns or {}
        bases = bases or {}
        return {
            symbol: cls.series(symbol, cls.step(returns.get(symbol, 0.0), n, bases.get(symbol, 100.0)), end)
            for symbol in symbols
        }


# ------------------------------------------------------------------
# FAKE PROVIDERS
# ------------------------------------------------------------------

class FakeMarketDataProvider:
    def __init__(
        self,
        data: Optional[Dict[str, List[MarketObservation]]] = None,
        fail: Iterable[str] = (),
        delay: float = 0.0,
    ):
        self.data = data or {}
        self.fail = set(fail)
        self.delay = delay
        self.calls: List[str] = []

    async def get_history(self, symbol: str, start: date, end: date) -> List[MarketObservation]:
        self.calls.append(symbol)
        if self.delay:
            await asyncio.sleep(self.delay)
        if symbol in self.fail:
            raise MarketDataError(f"boom {symbol}", symbol=symbol, provider="fake")
        return [obs for obs in self.data.get(symbol, []) if start <= obs.date <= end]


def chain_of(provider: FakeMarketDataProvider, timeout_seconds: float = 5.0) -> ChainedMarketDataProvider:
    return ChainedMarketDataProvider(
        providers={"fake": provider},
        chains={},
        default_chain=["fake"],
        timeout_seconds=timeout_seconds,
    )


# ------------------------------------------------------------------
# FIXTURES
# ------------------------------------------------------------------

@pytest.fixture
def market():
    return MarketFactory


@pytest.fixture
def engine_config():
    return default_engine_config()


@pytest.fixture
def storage(tmp_path) -> LocalFileStorageAdapter:
    return LocalFileStorageAdapter(base_dir=tmp_path / "store", version=VERSION)


@pytest.fixture
def seed_file(tmp_path) -> Path:
    path = tmp_path / "seed.csv"
    path.write_text("\n".join([SEED_HEADER] + SEED_ROWS) + "\n", encoding="utf-8")
    return path


@pytest.fixture
def goldilocks_data():
    return MarketFactory.market(returns=GOLDILOCKS_RETURNS, bases=GOLDILOCKS_BASES)


@pytest.fixture
def fake_provider(goldilocks_data) -> FakeMarketDataProvider:
    return FakeMarketDataProvider(goldilocks_data)


@pytest.fixture
def make_provider():
    """Factory: FakeMarketDataProvider(data, fail=(), delay=0.0)"""
    return FakeMarketDataProvider


@pytest.fixture
def make_service(engine_config, storage, seed_file):
    """Factory: RegimeService over temp storage with a pinned clock"""

    def _make(
        provider: FakeMarketDataProvider,
        today: date = END_DATE,
        seed_path: Optional[Path] = None,
    ) -> RegimeService:
        return RegimeService(
            config=engine_config,
            storage=storage,
            replay=ReplayLoader(seed_path or seed_file, CUTOVER),
            market_data=chain_of(provider),
            cutover=CUTOVER,
            writer_lock=InProcessWriterLock(),
            today_provider=lambda: today,
        )

    return _make


@pytest.fixture
def make_app():
    def _make(service: RegimeService) -> FastAPI:
        app = FastAPI()
        app.include_router(regime.router, prefix="/api/v1/regime", tags=["Regime"])
        app.include_router(health.router, prefix="/api/v1/regime", tags=["Health"])
        app.state.regime_service = service
        return app

    return _make
