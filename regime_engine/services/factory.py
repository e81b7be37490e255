"""
Wiring for RegimeService from runtime settings.
Shared by the API lifespan and the CLI.
"""

import logging
from pathlib import Path
from typing import Optional

from regime_engine.config import Settings, settings as default_settings
from regime_engine.domain.services.config_engine import load_engine_config
from regime_engine.infrastructure.locks import get_writer_lock
from regime_engine.infrastructure.market_data.provider_factory import get_market_data_provider
from regime_engine.infrastructure.replay.loader import ReplayLoader
from regime_engine.infrastructure.storage.factory import get_storage_adapter
from regime_engine.services.regime_service import RegimeService
from regime_engine.utils.time import today_in

logger = logging.getLogger(__name__)


def build_regime_service(settings: Optional[Settings] = None) -> RegimeService:
    """Raises ConfigurationError on invalid engine config or storage wiring."""
    settings = settings or default_settings

    config_path = Path(settings.ENGINE_CONFIG_FILE)
    engine_config = load_engine_config(config_path if config_path.exists() else None)
    if not config_path.exists():
        logger.warning(f"Engine config {config_path} not found, using built-in defaults")

    storage = get_storage_adapter(settings)
    market_data = get_market_data_provider(engine_config, settings)
    replay = ReplayLoader(Path(settings.SEED_FILE_PATH), settings.CUTOVER_DATE)
    writer_lock = get_writer_lock(
        settings.REDIS_ENABLED,
        settings.REDIS_URL,
        settings.WRITER_LOCK_TTL_SECONDS,
    )
    tz_name = settings.TIMEZONE

    return RegimeService(
        config=engine_config,
        storage=storage,
        replay=replay,
        market_data=market_data,
        cutover=settings.CUTOVER_DATE,
        writer_lock=writer_lock,
        lookback_days=settings.MARKET_DATA_LOOKBACK_DAYS,
        fetch_timeout_seconds=settings.MARKET_DATA_TOTAL_TIMEOUT_SECONDS,
        health_max_age_days=settings.HEALTH_MAX_AGE_DAYS,
        today_provider=lambda: today_in(tz_name),
    )
