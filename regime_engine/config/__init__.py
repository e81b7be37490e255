"""
Application Settings
Load from environment variables
"""

from datetime import date
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings from environment"""

    # ======================
    # Application
    # ======================
    APP_ENV: str = "development"
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 8000

    # ======================
    # Model
    # ======================
    MODEL_VERSION: str = "regime-engine-v1.0.1"
    CUTOVER_DATE: date = date(2025, 11, 28)
    ENGINE_CONFIG_FILE: str = "config/engine.yml"
    SEED_FILE_PATH: str = "data/seed/regime_replay_history.csv"

    # ======================
    # Storage
    # ======================
    STORAGE_BACKEND: str = "local"
    LOCAL_STORAGE_DIR: str = ".regime_store"
    BLOB_BASE_URL: Optional[str] = None
    BLOB_READ_WRITE_TOKEN: Optional[str] = None
    BLOB_TIMEOUT_SECONDS: float = 15.0

    # ======================
    # Market Data
    # ======================
    MARKET_DATA_LOOKBACK_DAYS: int = 380
    MARKET_DATA_TIMEOUT_SECONDS: float = 20.0
    MARKET_DATA_MAX_CONCURRENCY: int = 4
    MARKET_DATA_TOTAL_TIMEOUT_SECONDS: float = 120.0
    FRED_API_KEY: Optional[str] = None

    # ======================
    # Writer lock (Redis optional)
    # ======================
    REDIS_ENABLED: bool = False
    REDIS_URL: str = "redis://localhost:6379/0"
    WRITER_LOCK_TTL_SECONDS: int = 120

    # ======================
    # Scheduler
    # ======================
    SCHEDULER_ENABLED: bool = False
    DAILY_RUN_TIME: str = "17:15"
    TIMEZONE: str = "America/New_York"

    # ======================
    # Health
    # ======================
    HEALTH_MAX_AGE_DAYS: int = 4

    # ======================
    # Pydantic v2 config
    # ======================
    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="forbid",
    )

    @property
    def is_development(self) -> bool:
        return self.APP_ENV.lower() == "development"


settings = Settings()
