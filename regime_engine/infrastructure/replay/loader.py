"""
Replay loader - historical snapshots from the frozen seed CSV.

Rows dated at or before the cutover become `source=replay` snapshots;
later rows are ignored (those dates belong to the computed path).
The file is parsed once per loader.
"""

from __future__ import annotations

import logging
from datetime import date
from pathlib import Path
from typing import Any, Dict, List, Optional

import pandas as pd

from regime_engine.domain.models import RegimeSnapshot, SeedStatus, SnapshotSource
from regime_engine.infrastructure.replay.seed_status import check_seed_status

logger = logging.getLogger(__name__)


class ReplayLoader:
    def __init__(self, seed_path: Path, cutover: date):
        self.seed_path = Path(seed_path)
        self.cutover = cutover
        self._rows: Optional[List[RegimeSnapshot]] = None

    def seed_status(self) -> SeedStatus:
        return check_seed_status(self.seed_path)

    def load(self) -> List[RegimeSnapshot]:
        if self._rows is None:
            self._rows = self._parse()
        return list(self._rows)

    def _parse(self) -> List[RegimeSnapshot]:
        status = self.seed_status()
        if not status.is_ready:
            logger.warning(f"Replay seed not available: {status.path} (exists={status.exists})")
            return []

        frame = pd.read_csv(self.seed_path, dtype=str, keep_default_na=False)
        rows: Dict[date, RegimeSnapshot] = {}
        for record in frame.to_dict(orient="records"):
            snapshot = self._to_snapshot(record)
            if snapshot is None or snapshot.date > self.cutover:
                continue
            rows[snapshot.date] = snapshot

        logger.info(f"Loaded {len(rows)} replay rows through {self.cutover}")
        return [rows[d] for d in sorted(rows)]

    @staticmethod
    def _to_snapshot(record: Dict[str, Any]) -> Optional[RegimeSnapshot]:
        cleaned = {k.strip(): (v.strip() if isinstance(v, str) else v) for k, v in record.items()}
        if not cleaned.get("date") or not cleaned.get("regime"):
            return None
        cleaned["source"] = SnapshotSource.REPLAY.value
        try:
            return RegimeSnapshot.from_dict(cleaned)
        except (ValueError, KeyError) as exc:
            logger.warning(f"Skipping malformed replay row {cleaned.get('date')}: {exc}")
            return None

    def rows_between(self, start: Optional[date] = None, end: Optional[date] = None) -> List[RegimeSnapshot]:
        return [
            row for row in self.load()
            if (start is None or row.date >= start) and (end is None or row.date <= end)
        ]

    def last_on_or_before(self, target: date) -> Optional[RegimeSnapshot]:
        candidates = [row for row in self.load() if row.date <= target]
        return candidates[-1] if candidates else None
