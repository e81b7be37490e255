"""
FLIP-WATCH GUARD (ENGINE-5)
Persistence guard for regime changes

NONE                  regime unchanged (or no previous regime)
STRONG_FLIP           changed and max(|risk|, |infl|) >= strong score
PENDING_CONFIRMATION  changed within the confirmation window of the last flip
BREWING               changed, otherwise

The status is informational: the snapshot regime always updates.
`should_apply_flip` is the gate a consumer may consult before committing.
"""

from datetime import date
from typing import Optional, Sequence

from regime_engine.domain.models import FlipWatchStatus, Regime, RegimeSnapshot
from regime_engine.domain.services.config_engine import FlipWatchConfig


class FlipWatchGuard:
    """
    Flip-Watch Guard
    Stateless: everything it needs is passed in
    """

    def __init__(self, config: FlipWatchConfig):
        self.config = config

    def detect(
        self,
        current_regime: Regime,
        previous_regime: Optional[Regime],
        risk_score: float,
        infl_score: float,
        days_since_last_flip: Optional[int],
    ) -> FlipWatchStatus:
        """
        `days_since_last_flip` of None means no earlier flip is known, which
        is treated as outside the confirmation window.
        """
        if previous_regime is None or previous_regime == current_regime:
            return FlipWatchStatus.NONE

        if max(abs(risk_score), abs(infl_score)) >= self.config.strong_flip_score:
            return FlipWatchStatus.STRONG_FLIP

        if days_since_last_flip is not None and days_since_last_flip <= self.config.confirmation_days:
            return FlipWatchStatus.PENDING_CONFIRMATION

        return FlipWatchStatus.BREWING

    def should_apply_flip(self, status: FlipWatchStatus, days_pending: int) -> bool:
        if status == FlipWatchStatus.STRONG_FLIP:
            return True
        if status == FlipWatchStatus.PENDING_CONFIRMATION:
            return days_pending >= self.config.confirmation_days
        return False

    @staticmethod
    def days_since_last_flip(history: Sequence[RegimeSnapshot], asof: date) -> Optional[int]:
        """Calendar days since the most recent earlier snapshot with a non-NONE status."""
        for snapshot in reversed(history):
            if snapshot.date >= asof:
                continue
            if snapshot.flip_watch_status != FlipWatchStatus.NONE:
                return (asof - snapshot.date).days
        return None

    @staticmethod
    def days_pending(
        history: Sequence[RegimeSnapshot],
        asof: date,
        current_status: FlipWatchStatus,
    ) -> int:
        """Consecutive trailing snapshots (today included) with a non-NONE status."""
        if current_status == FlipWatchStatus.NONE:
            return 0
        count = 1
        for snapshot in reversed(history):
            if snapshot.date >= asof:
                continue
            if snapshot.flip_watch_status == FlipWatchStatus.NONE:
                break
            count += 1
        return count
