"""
Market data provider factory (config-driven).
"""

from __future__ import annotations

import logging
from typing import Dict, Optional

from regime_engine.config import Settings, settings as default_settings
from regime_engine.domain.services.config_engine import EngineConfig
from regime_engine.infrastructure.market_data.coingecko_provider import CoinGeckoProvider
from regime_engine.infrastructure.market_data.fred_provider import FredProvider
from regime_engine.infrastructure.market_data.provider_chain import ChainedMarketDataProvider
from regime_engine.infrastructure.market_data.stooq_provider import StooqProvider
from regime_engine.infrastructure.market_data.types import MarketDataProvider
from regime_engine.infrastructure.market_data.yfinance_provider import YFinanceProvider

logger = logging.getLogger(__name__)


def _build_provider(name: str, settings: Settings) -> MarketDataProvider:
    name = (name or "").lower()
    timeout = settings.MARKET_DATA_TIMEOUT_SECONDS
    if name == "stooq":
        return StooqProvider(timeout_seconds=timeout)
    if name == "fred":
        return FredProvider(api_key=settings.FRED_API_KEY, timeout_seconds=timeout)
    if name == "coingecko":
        return CoinGeckoProvider(timeout_seconds=timeout)
    if name == "yfinance":
        return YFinanceProvider()
    raise ValueError(f"Unknown market data provider: {name}")


def get_market_data_provider(
    engine_config: EngineConfig,
    settings: Optional[Settings] = None,
) -> ChainedMarketDataProvider:
    settings = settings or default_settings
    md = engine_config.market_data

    names = list(md.default_providers)
    for chain in md.symbol_providers.values():
        names.extend(chain)

    providers: Dict[str, MarketDataProvider] = {}
    for name in names:
        if name in providers:
            continue
        try:
            providers[name] = _build_provider(name, settings)
        except ValueError as exc:
            logger.warning(f"Skipping provider: {exc}")

    if not providers:
        raise RuntimeError("No valid market data providers configured")

    return ChainedMarketDataProvider(
        providers=providers,
        chains=md.symbol_providers,
        default_chain=md.default_providers,
        timeout_seconds=settings.MARKET_DATA_TIMEOUT_SECONDS,
        max_concurrency=settings.MARKET_DATA_MAX_CONCURRENCY,
    )
