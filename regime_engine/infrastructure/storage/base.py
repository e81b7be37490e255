"""
Storage adapter contract.

Three artifacts per model version:
- history.jsonl  append-only, one snapshot per line, oldest first
- latest.json    single snapshot, always fully overwritten
- meta.json      {version, lastUpdated}
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional, Protocol

from regime_engine.core.errors import StorageError
from regime_engine.domain.models import RegimeSnapshot, StorageMeta

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StorageKeys:
    history: str
    latest: str
    meta: str

    @classmethod
    def for_version(cls, version: str) -> "StorageKeys":
        return cls(
            history=f"{version}/history.jsonl",
            latest=f"{version}/latest.json",
            meta=f"{version}/meta.json",
        )


class StorageAdapter(Protocol):
    version: str

    async def read_history(self) -> List[RegimeSnapshot]:
        ...

    async def append_to_history(self, snapshot: RegimeSnapshot) -> bool:
        ...

    async def read_latest(self) -> Optional[RegimeSnapshot]:
        ...

    async def write_latest(self, snapshot: RegimeSnapshot) -> None:
        ...

    async def read_meta(self) -> Optional[StorageMeta]:
        ...

    async def write_meta(self, meta: StorageMeta) -> None:
        ...


class TextObjectStorageAdapter(ABC):
    """
    Snapshot storage over a minimal text-object backend.

    Subclasses provide whole-object read/write; appends default to
    read + rewrite and may be overridden with a native append.
    """

    def __init__(self, version: str):
        self.version = version
        self.keys = StorageKeys.for_version(version)

    # ------------------------------------------------------------------
    # BACKEND PRIMITIVES
    # ------------------------------------------------------------------

    @abstractmethod
    async def _read_text(self, key: str) -> Optional[str]:
        """Object body, or None when the object does not exist."""

    @abstractmethod
    async def _write_text(self, key: str, body: str) -> None:
        """Replace the whole object."""

    async def _append_line(self, key: str, line: str) -> None:
        existing = await self._read_text(key) or ""
        if existing and not existing.endswith("\n"):
            existing += "\n"
        await self._write_text(key, existing + line + "\n")

    # ------------------------------------------------------------------
    # HISTORY
    # ------------------------------------------------------------------

    async def read_history(self) -> List[RegimeSnapshot]:
        body = await self._read_text(self.keys.history)
        if not body:
            return []
        snapshots = []
        for lineno, line in enumerate(body.splitlines(), start=1):
            line = line.strip()
            if not line:
                continue
            try:
                snapshots.append(RegimeSnapshot.from_dict(json.loads(line)))
            except (ValueError, KeyError) as exc:
                raise StorageError(f"Corrupt history line {lineno}: {exc}") from exc
        return snapshots

    async def append_to_history(self, snapshot: RegimeSnapshot) -> bool:
        """
        Append one snapshot. Skipped (returns False) unless its date is
        strictly after the last history row.
        """
        history = await self.read_history()
        if history and snapshot.date <= history[-1].date:
            logger.info(
                f"History append skipped: {snapshot.date} not after last row {history[-1].date}"
            )
            return False
        await self._append_line(self.keys.history, json.dumps(snapshot.to_dict()))
        return True

    # ------------------------------------------------------------------
    # LATEST
    # ------------------------------------------------------------------

    async def read_latest(self) -> Optional[RegimeSnapshot]:
        body = await self._read_text(self.keys.latest)
        if not body:
            return None
        try:
            return RegimeSnapshot.from_dict(json.loads(body))
        except (ValueError, KeyError) as exc:
            raise StorageError(f"Corrupt latest snapshot: {exc}") from exc

    async def write_latest(self, snapshot: RegimeSnapshot) -> None:
        await self._write_text(self.keys.latest, json.dumps(snapshot.to_dict(), indent=2))

    # ------------------------------------------------------------------
    # META
    # ------------------------------------------------------------------

    async def read_meta(self) -> Optional[StorageMeta]:
        body = await self._read_text(self.keys.meta)
        if not body:
            return None
        try:
            return StorageMeta.from_dict(json.loads(body))
        except (ValueError, KeyError) as exc:
            raise StorageError(f"Corrupt meta record: {exc}") from exc

    async def write_meta(self, meta: Optional[StorageMeta] = None) -> None:
        meta = meta or StorageMeta(version=self.version, last_updated=datetime.now(timezone.utc))
        await self._write_text(self.keys.meta, json.dumps(meta.to_dict()))
