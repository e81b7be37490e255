"""
REGIME SERVICE (Orchestration / Lifecycle)

Replay vs computed sourcing split at the cutover date, the daily pipeline,
persistence, and degradation to the last persisted snapshot.

Pipeline (computed dates only):
fetch -> coverage check -> satellites -> votes + tie-break -> classify
-> stress override -> VAMS -> allocation -> flip watch -> persist
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from regime_engine.core.errors import RegimeNotReadyError, ReplayModeError
from regime_engine.domain.models import (
    MarketObservation,
    RegimeSnapshot,
    SatelliteObservation,
    SeedStatus,
    SnapshotSource,
    StorageMeta,
    SymbolDiagnostic,
    infl_axis_label,
    risk_axis_label,
)
from regime_engine.domain.services import window_calculus as wc
from regime_engine.domain.services.agreement import (
    compute_agreement_delta,
    compute_axis_stats,
    inflation_direction,
    risk_direction,
)
from regime_engine.domain.services.allocation_engine import AllocationEngine
from regime_engine.domain.services.config_engine import EngineConfig
from regime_engine.domain.services.flip_watch import FlipWatchGuard
from regime_engine.domain.services.satellite_engine import SatelliteEngine
from regime_engine.domain.services.vams_engine import VamsEngine
from regime_engine.domain.services.voting_engine import VotingEngine
from regime_engine.infrastructure.locks import InProcessWriterLock, WriterLock
from regime_engine.infrastructure.market_data.provider_chain import ChainedMarketDataProvider, MarketDataBundle
from regime_engine.infrastructure.replay.loader import ReplayLoader
from regime_engine.infrastructure.satellites.provider import (
    DefaultSatelliteDataProvider,
    SatelliteDataProvider,
    fetch_satellite_observations,
)
from regime_engine.infrastructure.storage.base import StorageAdapter
from regime_engine.utils.time import today_in, utc_now

logger = logging.getLogger(__name__)

STALE_MARKET_DATA_UNAVAILABLE = "MARKET_DATA_UNAVAILABLE"
STALE_MISSING_CORE_SERIES = "MISSING_CORE_SERIES"
STALE_INSUFFICIENT_HISTORY = "INSUFFICIENT_HISTORY"
STALE_FETCH_TIMEOUT = "FETCH_TIMEOUT"
STALE_FETCH_ERROR = "FETCH_ERROR"

Series = Mapping[str, Sequence[MarketObservation]]


@dataclass(frozen=True)
class Coverage:
    """Result of the core-symbol health check for one fetch"""
    asof: Optional[date]
    series: Dict[str, List[MarketObservation]]
    diagnostics: Tuple[SymbolDiagnostic, ...]
    stale_reason: Optional[str] = None


class RegimeService:
    """
    Orchestration engine. The only writer of snapshots, and the only
    reader consumers go through.
    """

    def __init__(
        self,
        config: EngineConfig,
        storage: StorageAdapter,
        replay: ReplayLoader,
        market_data: ChainedMarketDataProvider,
        cutover: date,
        satellite_provider: Optional[SatelliteDataProvider] = None,
        writer_lock: Optional[WriterLock] = None,
        lookback_days: int = 380,
        fetch_timeout_seconds: Optional[float] = None,
        health_max_age_days: int = 4,
        today_provider: Optional[Callable[[], date]] = None,
    ):
        self.config = config
        self.storage = storage
        self.replay = replay
        self.market_data = market_data
        self.cutover = cutover
        self.satellite_provider = satellite_provider or DefaultSatelliteDataProvider(
            commodity_symbol=config.tie_break.inflation_symbol,
            window=config.windows.short,
        )
        self.writer_lock = writer_lock or InProcessWriterLock()
        self.lookback_days = lookback_days
        self.fetch_timeout_seconds = fetch_timeout_seconds
        self.health_max_age_days = health_max_age_days
        self._today = today_provider or today_in

        self.voting = VotingEngine(config)
        self.vams = VamsEngine(config)
        self.satellites = SatelliteEngine(config)
        self.allocation = AllocationEngine(config)
        self.flip_watch = FlipWatchGuard(config.flip_watch)

    @property
    def version(self) -> str:
        return self.storage.version

    def seed_status(self) -> SeedStatus:
        return self.replay.seed_status()

    # ------------------------------------------------------------------
    # TODAY
    # ------------------------------------------------------------------

    async def get_today(self) -> RegimeSnapshot:
        """
        Today's snapshot: replay row on or before the cutover, otherwise
        the computed snapshot for the current as-of date (computed at most
        once per as-of date), or the last persisted snapshot marked stale.
        """
        today = self._today()
        if today <= self.cutover:
            return self._replay_on_or_before(today)

        try:
            bundle = await self._fetch(today)
        except asyncio.TimeoutError:
            return await self._stale_or_fail(STALE_FETCH_TIMEOUT)
        except Exception as exc:
            logger.error(f"Market data fetch failed: {exc}")
            return await self._stale_or_fail(f"{STALE_FETCH_ERROR}: {exc}")

        if bundle.is_empty:
            return await self._stale_or_fail(STALE_MARKET_DATA_UNAVAILABLE)

        coverage = self.assess_coverage(bundle)
        if coverage.stale_reason:
            return await self._stale_or_fail(coverage.stale_reason)

        asof = coverage.asof
        if asof <= self.cutover:
            return self._replay_on_or_before(asof)

        latest = await self.storage.read_latest()
        if latest is not None and latest.date == asof and not latest.stale:
            logger.info(f"Snapshot for {asof} already computed; returning latest")
            return latest

        async with self.writer_lock.hold(self.version):
            # Another trigger may have written this or a later as-of date while we waited
            latest = await self.storage.read_latest()
            if latest is not None and latest.date >= asof and not latest.stale:
                logger.info(f"Snapshot for {latest.date} written by a concurrent run")
                return latest

            history = await self.get_history()
            snapshot = await self.compute_snapshot(coverage, today, history)
            await self._persist(snapshot)

        return snapshot

    async def _fetch(self, today: date) -> MarketDataBundle:
        start = today - timedelta(days=self.lookback_days)
        fetch = self.market_data.fetch_all(self.config.all_symbols, start, today)
        if self.fetch_timeout_seconds:
            return await asyncio.wait_for(fetch, timeout=self.fetch_timeout_seconds)
        return await fetch

    def _replay_on_or_before(self, target: date) -> RegimeSnapshot:
        row = self.replay.last_on_or_before(target)
        if row is None:
            reason = "NOT_SEEDED" if not self.seed_status().is_ready else "REPLAY_ROW_NOT_FOUND"
            raise RegimeNotReadyError(reason)
        return row

    async def _stale_or_fail(self, reason: str) -> RegimeSnapshot:
        logger.warning(f"Falling back to last snapshot: {reason}")
        latest = await self.storage.read_latest()
        if latest is None:
            logger.error(f"No prior snapshot to fall back to ({reason})")
            raise RegimeNotReadyError(reason)
        return latest.as_stale(reason)

    async def _persist(self, snapshot: RegimeSnapshot) -> bool:
        """
        Append to history, then move the latest pointer forward.

        Writers in other processes may share the store, so latest is only
        overwritten when the append succeeded and nothing newer is there.
        """
        appended = await self.storage.append_to_history(snapshot)
        if not appended:
            logger.warning(f"Snapshot {snapshot.date} not newer than history; latest left unchanged")
            return False

        current = await self.storage.read_latest()
        if current is not None and current.date > snapshot.date:
            logger.warning(f"Latest already at {current.date}; not rewinding to {snapshot.date}")
            return False

        await self.storage.write_latest(snapshot)
        await self.storage.write_meta(StorageMeta(version=self.version, last_updated=utc_now()))
        logger.info(f"Persisted snapshot {snapshot.date}")
        return True

    # ------------------------------------------------------------------
    # COVERAGE
    # ------------------------------------------------------------------

    def assess_coverage(self, bundle: MarketDataBundle) -> Coverage:
        """
        Decide the as-of date and whether enough core symbols are healthy.

        Healthy: at least `medium` window observations at the as-of date.
        """
        cfg = self.config
        needed = cfg.windows.medium
        raw = wc.group_by_symbol(bundle.observations)

        present = [s for s in cfg.core_symbols if raw.get(s)]
        if len(present) < cfg.min_healthy_core_symbols:
            missing = [s for s in cfg.core_symbols if s not in present]
            logger.warning(f"Missing core series: {', '.join(missing)}")
            return Coverage(None, {}, (), STALE_MISSING_CORE_SERIES)

        candidates = [s for s in present if len(raw[s]) >= needed]
        if len(candidates) < cfg.min_healthy_core_symbols:
            short = [s for s in cfg.core_symbols if s not in candidates]
            return Coverage(None, {}, (), f"{STALE_INSUFFICIENT_HISTORY}: {','.join(short)}")

        asof = min(raw[s][-1].date for s in candidates)
        series = {symbol: wc.series_for(data, symbol, asof) for symbol, data in raw.items()}

        unhealthy = [s for s in cfg.core_symbols if len(series.get(s, ())) < needed]
        if len(cfg.core_symbols) - len(unhealthy) < cfg.min_healthy_core_symbols:
            return Coverage(None, {}, (), f"{STALE_INSUFFICIENT_HISTORY}: {','.join(unhealthy)}")

        diagnostics = []
        for symbol in cfg.all_symbols:
            fetched = bundle.diagnostics.get(symbol)
            data = series.get(symbol, [])
            note = fetched.note if fetched else None
            ok = bool(data) if symbol not in cfg.core_symbols else symbol not in unhealthy
            if symbol in unhealthy and data:
                note = "; ".join(filter(None, [note, f"insufficient history ({len(data)} < {needed})"]))
            diagnostics.append(SymbolDiagnostic(
                symbol=symbol,
                provider=fetched.provider if fetched else None,
                last_date=data[-1].date if data else None,
                observation_count=len(data),
                ok=ok,
                note=note,
            ))
        if unhealthy:
            logger.warning(f"Degraded coverage, neutral votes for: {', '.join(unhealthy)}")

        return Coverage(asof=asof, series=series, diagnostics=tuple(diagnostics))

    # ------------------------------------------------------------------
    # COMPUTATION
    # ------------------------------------------------------------------

    async def compute_snapshot(
        self,
        coverage: Coverage,
        run_date: date,
        history: Sequence[RegimeSnapshot],
    ) -> RegimeSnapshot:
        if coverage.asof is None:
            raise RegimeNotReadyError(coverage.stale_reason or STALE_MARKET_DATA_UNAVAILABLE)
        satellite_observations = await fetch_satellite_observations(
            self.satellite_provider,
            self.satellites.series_to_fetch(),
            coverage.series,
            coverage.asof,
        )
        return self.build_snapshot(
            series=coverage.series,
            asof=coverage.asof,
            run_date=run_date,
            history=history,
            satellite_observations=satellite_observations,
            diagnostics=coverage.diagnostics,
        )

    def build_snapshot(
        self,
        series: Series,
        asof: date,
        run_date: date,
        history: Sequence[RegimeSnapshot] = (),
        satellite_observations: Optional[Mapping[str, SatelliteObservation]] = None,
        diagnostics: Sequence[SymbolDiagnostic] = (),
    ) -> RegimeSnapshot:
        """Pure pipeline from as-of series to a computed snapshot."""
        if asof <= self.cutover:
            raise ReplayModeError(f"{asof} is on or before cutover {self.cutover}; replay only")

        sat = self.satellites.process(satellite_observations or {})
        classification = self.voting.evaluate(series, sat.score)
        vams = self.vams.compute_states(series)
        allocation = self.allocation.allocate(
            classification.risk_regime,
            vams.stocks.state,
            vams.gold.state,
            vams.btc.state,
        )

        prior = [s for s in history if s.date < asof]
        previous_regime = prior[-1].regime if prior else None
        days_since = self.flip_watch.days_since_last_flip(prior, asof)
        status = self.flip_watch.detect(
            classification.regime,
            previous_regime,
            classification.risk_score,
            classification.infl_score,
            days_since,
        )
        days_pending = self.flip_watch.days_pending(prior, asof, status)
        if previous_regime is not None and previous_regime != classification.regime:
            logger.info(
                f"Regime flip {previous_regime.value} -> {classification.regime.value}: "
                f"{status.value}, apply={self.flip_watch.should_apply_flip(status, days_pending)}"
            )

        logger.info(
            f"{asof}: {classification.regime.value} ({classification.risk_regime.value}) "
            f"risk={classification.risk_score} infl={classification.infl_score:.3f} "
            f"(core={classification.infl_core_score} sat={sat.score:.3f})"
        )

        return RegimeSnapshot(
            date=asof,
            run_date=run_date,
            regime=classification.regime,
            risk_regime=classification.risk_regime,
            risk_score=classification.risk_score,
            infl_score=classification.infl_score,
            infl_core_score=classification.infl_core_score,
            infl_sat_score=classification.infl_sat_score,
            risk_axis=risk_axis_label(classification.risk_score),
            infl_axis=infl_axis_label(classification.infl_score),
            risk_tiebreaker_used=classification.risk_tiebreak.used,
            infl_tiebreaker_used=classification.infl_tiebreak.used,
            stocks_vams_state=vams.stocks.state,
            gold_vams_state=vams.gold.state,
            btc_vams_state=vams.btc.state,
            allocation=allocation,
            flip_watch_status=status,
            source=SnapshotSource.COMPUTED,
            risk_receipts=classification.votes.risk_receipts,
            inflation_receipts=classification.votes.inflation_receipts,
            satellite_receipts=sat.contributions,
            symbol_diagnostics=tuple(diagnostics),
        )

    # ------------------------------------------------------------------
    # HISTORY
    # ------------------------------------------------------------------

    async def get_history(
        self,
        start: Optional[date] = None,
        end: Optional[date] = None,
    ) -> List[RegimeSnapshot]:
        """
        Replay rows (<= cutover) merged with computed rows (> cutover),
        sorted by date, one row per date.
        """
        if start is not None and end is not None and start > end:
            raise ValueError(f"start {start} is after end {end}")

        def in_range(d: date) -> bool:
            return (start is None or d >= start) and (end is None or d <= end)

        merged: Dict[date, RegimeSnapshot] = {}
        for row in self.replay.rows_between(start, end):
            merged[row.date] = row

        for row in await self.storage.read_history():
            if row.date <= self.cutover or not in_range(row.date):
                continue
            if row.source != SnapshotSource.COMPUTED:
                continue
            merged.setdefault(row.date, row)

        return [merged[d] for d in sorted(merged)]

    async def get_snapshot(self, target: date) -> Optional[RegimeSnapshot]:
        rows = await self.get_history(target, target)
        return rows[0] if rows else None

    # ------------------------------------------------------------------
    # EXPLAIN / HEALTH
    # ------------------------------------------------------------------

    async def explain(self, target: date) -> Optional[Dict[str, Any]]:
        history = await self.get_history(end=target)
        if not history or history[-1].date != target:
            return None

        snapshot = history[-1]
        previous = history[-2] if len(history) > 1 else None
        prior = history[:-1]
        days_pending = self.flip_watch.days_pending(prior, target, snapshot.flip_watch_status)

        delta = compute_agreement_delta(snapshot, previous) if previous else {"risk": None, "inflation": None}
        return {
            "snapshot": snapshot.to_dict(),
            "previous_date": previous.date.isoformat() if previous else None,
            "agreement": {
                "risk": compute_axis_stats(snapshot.risk_receipts, risk_direction(snapshot)).to_dict(),
                "inflation": compute_axis_stats(
                    snapshot.inflation_receipts, inflation_direction(snapshot)
                ).to_dict(),
            },
            "agreement_trend": {axis: d.to_dict() if d else None for axis, d in delta.items()},
            "flip_watch": {
                "status": snapshot.flip_watch_status.value,
                "days_pending": days_pending,
                "flip_confirmed": self.flip_watch.should_apply_flip(snapshot.flip_watch_status, days_pending),
            },
        }

    async def health(self) -> Dict[str, Any]:
        latest = await self.storage.read_latest()
        meta = await self.storage.read_meta()
        seed = self.seed_status()
        today = self._today()

        if latest is None and today <= self.cutover:
            latest = self.replay.last_on_or_before(today)

        if latest is None:
            status = "NOT_READY"
            age_days = None
        else:
            age_days = (today - latest.date).days
            status = "OK" if age_days <= self.health_max_age_days else "WARN"

        return {
            "status": status,
            "version": self.version,
            "cutover_date": self.cutover.isoformat(),
            "seed": {"exists": seed.exists, "is_empty": seed.is_empty},
            "freshness": {
                "latest_date": latest.date.isoformat() if latest else None,
                "age_days": age_days,
                "max_age_days": self.health_max_age_days,
                "last_updated": meta.last_updated.isoformat() if meta else None,
            },
        }

    # ------------------------------------------------------------------
    # SENSITIVITY SWEEP
    # ------------------------------------------------------------------

    async def sweep_thresholds(self, factors: Sequence[float]) -> List[Dict[str, Any]]:
        """
        Re-run votes and classification over one fetch with every vote
        threshold scaled by each factor. Nothing is persisted.
        """
        today = self._today()
        bundle = await self._fetch(today)
        coverage = self.assess_coverage(bundle)
        if coverage.stale_reason or coverage.asof is None:
            raise RegimeNotReadyError(coverage.stale_reason or STALE_MARKET_DATA_UNAVAILABLE)

        satellite_observations = await fetch_satellite_observations(
            self.satellite_provider,
            self.satellites.series_to_fetch(),
            coverage.series,
            coverage.asof,
        )
        sat_score = self.satellites.process(satellite_observations).score

        results = []
        for factor in factors:
            engine = VotingEngine(self.config.with_threshold_scale(factor))
            classification = engine.evaluate(coverage.series, sat_score)
            results.append({
                "factor": factor,
                "asof": coverage.asof.isoformat(),
                "regime": classification.regime.value,
                "risk_regime": classification.risk_regime.value,
                "risk_score": classification.risk_score,
                "infl_score": classification.infl_score,
                "stress_override": classification.stress_override,
            })
        return results
