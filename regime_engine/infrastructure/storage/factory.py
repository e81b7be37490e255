"""
Storage adapter selection from explicit configuration.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from regime_engine.config import Settings, settings as default_settings
from regime_engine.core.errors import ConfigurationError
from regime_engine.infrastructure.storage.base import TextObjectStorageAdapter
from regime_engine.infrastructure.storage.blob import BlobStorageAdapter
from regime_engine.infrastructure.storage.local import LocalFileStorageAdapter

logger = logging.getLogger(__name__)


def get_storage_adapter(settings: Optional[Settings] = None) -> TextObjectStorageAdapter:
    """
    STORAGE_BACKEND=blob   requires BLOB_BASE_URL and BLOB_READ_WRITE_TOKEN
    STORAGE_BACKEND=local  only allowed when APP_ENV=development
    """
    settings = settings or default_settings
    backend = (settings.STORAGE_BACKEND or "").strip().lower()

    if backend == "blob":
        base_url = (settings.BLOB_BASE_URL or "").strip()
        token = (settings.BLOB_READ_WRITE_TOKEN or "").strip()
        if not base_url or not token:
            raise ConfigurationError("Blob storage requires BLOB_BASE_URL and BLOB_READ_WRITE_TOKEN")
        logger.info(f"Using blob storage at {base_url} ({settings.MODEL_VERSION})")
        return BlobStorageAdapter(
            base_url=base_url,
            token=token,
            version=settings.MODEL_VERSION,
            timeout_seconds=settings.BLOB_TIMEOUT_SECONDS,
        )

    if backend == "local":
        if not settings.is_development:
            raise ConfigurationError(
                f"Local storage is only allowed in development (APP_ENV={settings.APP_ENV})"
            )
        base_dir = Path(settings.LOCAL_STORAGE_DIR)
        logger.info(f"Using local storage at {base_dir.resolve()} ({settings.MODEL_VERSION})")
        return LocalFileStorageAdapter(base_dir=base_dir, version=settings.MODEL_VERSION)

    raise ConfigurationError(f"Unknown STORAGE_BACKEND: {settings.STORAGE_BACKEND!r}")
