"""
Local filesystem storage (development only).
"""

from __future__ import annotations

import asyncio
import logging
import os
import tempfile
from pathlib import Path
from typing import Optional

from regime_engine.core.errors import StorageError
from regime_engine.infrastructure.storage.base import TextObjectStorageAdapter

logger = logging.getLogger(__name__)


class LocalFileStorageAdapter(TextObjectStorageAdapter):
    """
    Keys map to files under `base_dir`. Whole-object writes go through a
    temp file + os.replace so readers never see a partial file.
    """

    def __init__(self, base_dir: Path, version: str):
        super().__init__(version)
        self.base_dir = Path(base_dir)

    def _path(self, key: str) -> Path:
        return self.base_dir / key

    # ------------------------------------------------------------------
    # SYNC HELPERS (run in a worker thread)
    # ------------------------------------------------------------------

    def _read_sync(self, key: str) -> Optional[str]:
        path = self._path(key)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def _write_sync(self, key: str, body: str) -> None:
        path = self._path(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(body)
            os.replace(tmp, path)
        except BaseException:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise

    def _append_sync(self, key: str, line: str) -> None:
        path = self._path(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "a", encoding="utf-8") as f:
            f.write(line + "\n")

    # ------------------------------------------------------------------
    # PRIMITIVES
    # ------------------------------------------------------------------

    async def _read_text(self, key: str) -> Optional[str]:
        try:
            return await asyncio.to_thread(self._read_sync, key)
        except OSError as exc:
            raise StorageError(f"Failed to read {key}: {exc}") from exc

    async def _write_text(self, key: str, body: str) -> None:
        try:
            await asyncio.to_thread(self._write_sync, key, body)
        except OSError as exc:
            logger.error(f"Failed to write {key}: {exc}")
            raise StorageError(f"Failed to write {key}: {exc}") from exc

    async def _append_line(self, key: str, line: str) -> None:
        try:
            await asyncio.to_thread(self._append_sync, key, line)
        except OSError as exc:
            logger.error(f"Failed to append to {key}: {exc}")
            raise StorageError(f"Failed to append to {key}: {exc}") from exc
