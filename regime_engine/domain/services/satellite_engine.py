"""
SATELLITE SIGNAL PROCESSOR (ENGINE-3)
Fold slower-cadence inflation signals into the inflation axis

RESPONSIBILITIES:
- Resolve each satellite through its primary -> fallback chain
- Drop observations older than the series TTL
- Decay votes by age: raw x weight x 0.5^(age / half_life)
- Clamp the summed effective votes to [-1, +1]

RULES:
❌ No fetching (observations are resolved up front by infrastructure)
✅ Pure calculation
✅ Deterministic output
"""

from dataclasses import dataclass
from datetime import date
from typing import List, Mapping, Optional, Tuple

from regime_engine.domain.models import SatelliteContribution, SatelliteObservation
from regime_engine.domain.services.config_engine import EngineConfig, SatelliteConfig


@dataclass(frozen=True)
class SatelliteResult:
    score: float
    contributions: Tuple[SatelliteContribution, ...]


class SatelliteEngine:
    """
    Satellite Signal Processor
    """

    def __init__(self, config: EngineConfig):
        self.config = config

    def series_to_fetch(self) -> Tuple[str, ...]:
        """Every series any satellite could resolve to, in config order."""
        names: List[str] = []
        for satellite in self.config.satellites:
            for name in (satellite.series,) + satellite.fallbacks:
                if name not in names:
                    names.append(name)
        return tuple(names)

    def resolve(
        self,
        satellite: SatelliteConfig,
        observations: Mapping[str, SatelliteObservation],
    ) -> Optional[SatelliteObservation]:
        for name in (satellite.series,) + satellite.fallbacks:
            observation = observations.get(name)
            if observation is not None:
                return observation
        return None

    @staticmethod
    def raw_vote(thresholds: SatelliteConfig, value: float) -> int:
        if value >= thresholds.on_threshold:
            return 1
        if value <= thresholds.off_threshold:
            return -1
        return 0

    @staticmethod
    def decay(age_days: int, half_life_days: float) -> float:
        return 0.5 ** (age_days / half_life_days)

    def contribution(
        self,
        satellite: SatelliteConfig,
        observation: Optional[SatelliteObservation],
    ) -> SatelliteContribution:
        if observation is None:
            return SatelliteContribution(
                series=satellite.series,
                resolved_series=None,
                value=None,
                observation_date=None,
                age_days=None,
                raw_vote=0,
                effective_vote=0.0,
            )

        # A fallback observation is voted with its own series' thresholds when configured
        thresholds = self.config.get_satellite(observation.series) or satellite
        raw = self.raw_vote(thresholds, observation.value)
        expired = observation.age_days > satellite.ttl_days
        effective = 0.0
        if not expired:
            effective = raw * satellite.weight * self.decay(observation.age_days, satellite.half_life_days)

        return SatelliteContribution(
            series=satellite.series,
            resolved_series=observation.series,
            value=observation.value,
            observation_date=observation.observation_date,
            age_days=observation.age_days,
            raw_vote=raw,
            effective_vote=effective,
            expired=expired,
        )

    def process(self, observations: Mapping[str, SatelliteObservation]) -> SatelliteResult:
        contributions = tuple(
            self.contribution(satellite, self.resolve(satellite, observations))
            for satellite in self.config.satellites
        )
        total = sum(c.effective_vote for c in contributions)
        return SatelliteResult(score=max(-1.0, min(1.0, total)), contributions=contributions)


def age_in_days(observation_date: date, asof: date) -> int:
    """Whole days between an observation and the as-of date."""
    return (asof - observation_date).days
