"""
FastAPI Main Application
Regime engine read APIs plus the daily scheduler
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI

from regime_engine import __version__
from regime_engine.api.routes import health, regime
from regime_engine.config import settings
from regime_engine.core.logging import setup_logging
from regime_engine.scheduler.scheduler import RegimeScheduler
from regime_engine.services.factory import build_regime_service

setup_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """
    Application lifespan manager
    Configuration errors abort startup
    """
    logger.info("=" * 60)
    logger.info(f"Starting Regime Engine ({settings.MODEL_VERSION})")
    logger.info("=" * 60)

    service = build_regime_service(settings)
    app.state.regime_service = service

    seed = service.seed_status()
    if not seed.is_ready:
        logger.warning(f"Replay seed not ready at {seed.path}; read APIs will return NOT_SEEDED")
    logger.info(f"Cutover date: {settings.CUTOVER_DATE}")

    scheduler = None
    if settings.SCHEDULER_ENABLED:
        try:
            scheduler = RegimeScheduler(service, settings.DAILY_RUN_TIME, settings.TIMEZONE)
            scheduler.start()
        except Exception as e:
            logger.error(f"Failed to start scheduler: {e}")
            scheduler = None
    else:
        logger.info("Scheduler disabled")

    yield

    logger.info("Shutting down Regime Engine...")
    if scheduler:
        scheduler.stop()
    await service.writer_lock.close()
    logger.info("Shutdown complete")


app = FastAPI(
    title="Regime Classification & Allocation Engine",
    description="Daily market regime snapshots with replay history",
    version=__version__,
    lifespan=lifespan,
)

app.include_router(regime.router, prefix="/api/v1/regime", tags=["Regime"])
app.include_router(health.router, prefix="/api/v1/regime", tags=["Health"])


@app.get("/")
async def root():
    return {
        "service": "Regime Engine",
        "version": __version__,
        "model_version": settings.MODEL_VERSION,
        "docs": "/docs",
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("regime_engine.main:app", host=settings.API_HOST, port=settings.API_PORT, reload=settings.DEBUG)
