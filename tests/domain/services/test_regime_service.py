"""
Tests for RegimeService
Replay/computed split, persistence, idempotency and stale fallback
"""

import asyncio
from dataclasses import replace
from datetime import date

import pytest

from regime_engine.core.errors import RegimeNotReadyError, ReplayModeError
from regime_engine.domain.models import (
    FlipWatchStatus,
    Regime,
    RiskRegime,
    SnapshotSource,
)

CORE_SYMBOLS = ("SPY", "HYG", "IEF", "TIP", "EEM", "PDBC", "TLT", "UUP", "VIX")
END_DATE = date(2025, 12, 31)
CUTOVER = date(2025, 11, 28)


class TestComputedPath:
    """Dates after the cutover are computed and persisted once"""

    @pytest.mark.asyncio
    async def test_today_computes_and_persists(self, make_service, fake_provider, storage):
        service = make_service(fake_provider)
        snapshot = await service.get_today()

        assert snapshot.source == SnapshotSource.COMPUTED
        assert snapshot.date == END_DATE
        assert snapshot.run_date == END_DATE
        assert snapshot.regime == Regime.GOLDILOCKS
        assert snapshot.risk_regime == RiskRegime.RISK_ON
        assert snapshot.risk_score == 4
        assert snapshot.stale is False

        history = await storage.read_history()
        assert [s.date for s in history] == [END_DATE]
        assert (await storage.read_latest()) == snapshot
        assert (await storage.read_meta()).version == storage.version

    @pytest.mark.asyncio
    async def test_snapshot_contents(self, make_service, fake_provider):
        snapshot = await make_service(fake_provider).get_today()

        # commodity basket down 5% resolves three satellites; clamped to -1
        assert snapshot.infl_core_score == -1
        assert snapshot.infl_sat_score == pytest.approx(-1.0)
        assert snapshot.infl_score == pytest.approx(-2.0)
        assert snapshot.risk_axis == "RiskOn"
        assert snapshot.infl_axis == "Disinflation"

        assert len(snapshot.risk_receipts) == 4
        assert len(snapshot.inflation_receipts) == 4
        assert len(snapshot.satellite_receipts) == 7

        # short history: every VAMS state neutral
        alloc = snapshot.allocation
        assert (alloc.stocks_actual, alloc.gold_actual, alloc.btc_actual) == pytest.approx((0.30, 0.15, 0.05))
        assert alloc.cash == pytest.approx(0.50)

        diagnostics = {d.symbol: d for d in snapshot.symbol_diagnostics}
        assert all(diagnostics[s].ok for s in CORE_SYMBOLS)
        assert diagnostics["GLD"].ok is False

    @pytest.mark.asyncio
    async def test_flip_against_last_replay_row(self, make_service, fake_provider):
        # last replay row is DEFLATION; GOLDILOCKS with risk score 4 is a strong flip
        snapshot = await make_service(fake_provider).get_today()
        assert snapshot.flip_watch_status == FlipWatchStatus.STRONG_FLIP

    @pytest.mark.asyncio
    async def test_second_call_is_idempotent(self, make_service, fake_provider, storage):
        service = make_service(fake_provider)
        first = await service.get_today()
        second = await service.get_today()
        assert second == first
        assert len(await storage.read_history()) == 1

    @pytest.mark.asyncio
    async def test_concurrent_triggers_append_once(self, make_service, fake_provider, storage):
        service = make_service(fake_provider)
        results = await asyncio.gather(*(service.get_today() for _ in range(4)))
        assert len({r.date for r in results}) == 1
        assert len(await storage.read_history()) == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("pause", ["before_append", "after_append"])
    async def test_lagging_writer_never_rewinds_latest(
        self, make_service, make_provider, market, goldilocks_data, storage, monkeypatch, pause
    ):
        lagging_day = date(2025, 12, 30)
        lagging_data = dict(goldilocks_data)
        lagging_data["TLT"] = market.series("TLT", market.step(0.0), end=lagging_day)

        append = storage.append_to_history

        async def slow_append(snapshot):
            if snapshot.date == lagging_day and pause == "before_append":
                await asyncio.sleep(0.2)
            appended = await append(snapshot)
            if snapshot.date == lagging_day and pause == "after_append":
                await asyncio.sleep(0.2)
            return appended

        monkeypatch.setattr(storage, "append_to_history", slow_append)

        # separate service instances, as with two processes sharing one store
        lagging = make_service(make_provider(lagging_data))
        current = make_service(make_provider(goldilocks_data))
        await asyncio.gather(lagging.get_today(), current.get_today())

        history = await storage.read_history()
        latest = await storage.read_latest()
        assert history[-1].date == END_DATE
        assert [s.date for s in history] == sorted({s.date for s in history})
        assert latest.date == END_DATE
        assert (await current.get_today()).date == END_DATE

    @pytest.mark.asyncio
    async def test_persist_skips_latest_when_history_is_newer(self, make_service, fake_provider, storage):
        service = make_service(fake_provider)
        newest = await service.get_today()

        older = replace(newest, date=date(2025, 12, 30), run_date=date(2025, 12, 30))
        assert await service._persist(older) is False
        assert (await storage.read_latest()).date == END_DATE
        assert [s.date for s in await storage.read_history()] == [END_DATE]

    @pytest.mark.asyncio
    async def test_asof_is_min_last_date_of_core(self, make_service, make_provider, market, goldilocks_data):
        data = dict(goldilocks_data)
        data["TLT"] = market.series("TLT", market.step(0.0), end=date(2025, 12, 30))
        snapshot = await make_service(make_provider(data)).get_today()
        assert snapshot.date == date(2025, 12, 30)
        assert snapshot.run_date == END_DATE

    @pytest.mark.asyncio
    async def test_degraded_core_symbol_votes_neutral(self, make_service, make_provider, goldilocks_data):
        data = {k: v for k, v in goldilocks_data.items() if k != "TIP"}
        snapshot = await make_service(make_provider(data)).get_today()
        tip = next(r for r in snapshot.inflation_receipts if r.key == "tip_ief")
        assert tip.available is False
        assert tip.vote == 0
        diag = next(d for d in snapshot.symbol_diagnostics if d.symbol == "TIP")
        assert diag.ok is False

    def test_build_snapshot_refuses_replay_dates(self, make_service, fake_provider, goldilocks_data):
        service = make_service(fake_provider)
        with pytest.raises(ReplayModeError):
            service.build_snapshot(goldilocks_data, CUTOVER, END_DATE)


class TestStaleFallback:
    """Data failures degrade to the last persisted snapshot"""

    @pytest.mark.asyncio
    async def test_no_data_serves_last_snapshot_stale(self, make_service, fake_provider, storage):
        service = make_service(fake_provider)
        good = await service.get_today()

        fake_provider.data = {}
        stale = await service.get_today()

        assert stale.stale is True
        assert stale.stale_reason == "MARKET_DATA_UNAVAILABLE"
        assert stale.date == good.date
        assert stale.regime == good.regime
        # nothing stale is ever written
        assert (await storage.read_latest()).stale is False
        assert len(await storage.read_history()) == 1

    @pytest.mark.asyncio
    async def test_no_data_and_no_snapshot_is_hard_failure(self, make_service, make_provider):
        service = make_service(make_provider({}))
        with pytest.raises(RegimeNotReadyError) as exc:
            await service.get_today()
        assert exc.value.reason == "MARKET_DATA_UNAVAILABLE"

    @pytest.mark.asyncio
    async def test_provider_errors_become_missing_data(self, make_service, make_provider, goldilocks_data):
        provider = make_provider(goldilocks_data, fail=CORE_SYMBOLS[:4])
        with pytest.raises(RegimeNotReadyError) as exc:
            await make_service(provider).get_today()
        assert exc.value.reason == "MISSING_CORE_SERIES"

    @pytest.mark.asyncio
    async def test_short_history_reason_lists_symbols(self, make_service, make_provider, market):
        data = market.market(n=40)
        with pytest.raises(RegimeNotReadyError) as exc:
            await make_service(make_provider(data)).get_today()
        assert exc.value.reason.startswith("INSUFFICIENT_HISTORY: ")
        assert "SPY" in exc.value.reason

    @pytest.mark.asyncio
    async def test_whole_fetch_timeout(self, make_service, make_provider, goldilocks_data):
        service = make_service(make_provider(goldilocks_data, delay=0.5))
        service.fetch_timeout_seconds = 0.05
        with pytest.raises(RegimeNotReadyError) as exc:
            await service.get_today()
        assert exc.value.reason == "FETCH_TIMEOUT"

    @pytest.mark.asyncio
    async def test_fetch_exception_reason(self, make_service, fake_provider, monkeypatch):
        service = make_service(fake_provider)

        async def explode(*args, **kwargs):
            raise RuntimeError("network gone")

        monkeypatch.setattr(service.market_data, "fetch_all", explode)
        with pytest.raises(RegimeNotReadyError) as exc:
            await service.get_today()
        assert exc.value.reason == "FETCH_ERROR: network gone"


class TestReplayPath:
    @pytest.mark.asyncio
    async def test_today_before_cutover_reads_replay(self, make_service, fake_provider, storage):
        service = make_service(fake_provider, today=date(2025, 11, 27))
        snapshot = await service.get_today()
        assert snapshot.source == SnapshotSource.REPLAY
        assert snapshot.date == date(2025, 11, 25)
        assert fake_provider.calls == []
        assert await storage.read_history() == []

    @pytest.mark.asyncio
    async def test_missing_seed_before_cutover(self, make_service, fake_provider, tmp_path):
        service = make_service(fake_provider, today=CUTOVER, seed_path=tmp_path / "missing.csv")
        with pytest.raises(RegimeNotReadyError) as exc:
            await service.get_today()
        assert exc.value.reason == "NOT_SEEDED"


class TestHistory:
    @pytest.mark.asyncio
    async def test_replay_then_computed(self, make_service, fake_provider):
        service = make_service(fake_provider)
        await service.get_today()

        rows = await service.get_history()
        assert [r.source for r in rows] == [SnapshotSource.REPLAY] * 3 + [SnapshotSource.COMPUTED]
        assert [r.date for r in rows] == sorted(r.date for r in rows)

    @pytest.mark.asyncio
    async def test_storage_rows_at_or_before_cutover_are_excluded(self, make_service, fake_provider, storage):
        service = make_service(fake_provider)
        computed = await service.get_today()
        storage_rows = await storage.read_history()
        assert storage_rows == [computed]

        # rewrite history with an extra computed row dated in the replay segment
        early = replace(computed, date=date(2025, 11, 26), run_date=date(2025, 11, 26))
        path = storage.base_dir / storage.keys.history
        path.unlink()
        await storage.append_to_history(early)
        await storage.append_to_history(computed)

        rows = await service.get_history()
        assert date(2025, 11, 26) not in [r.date for r in rows]
        assert rows[-1] == computed

    @pytest.mark.asyncio
    async def test_range_filter(self, make_service, fake_provider):
        service = make_service(fake_provider)
        await service.get_today()
        rows = await service.get_history(date(2025, 11, 25), date(2025, 11, 28))
        assert [r.date.day for r in rows] == [25, 28]

    @pytest.mark.asyncio
    async def test_inverted_range(self, make_service, fake_provider):
        with pytest.raises(ValueError):
            await make_service(fake_provider).get_history(date(2025, 12, 2), date(2025, 12, 1))

    @pytest.mark.asyncio
    async def test_get_snapshot(self, make_service, fake_provider):
        service = make_service(fake_provider)
        assert (await service.get_snapshot(date(2025, 11, 24))).regime == Regime.REFLATION
        assert await service.get_snapshot(date(2025, 11, 26)) is None


class TestExplainAndHealth:
    @pytest.mark.asyncio
    async def test_explain_computed_day(self, make_service, fake_provider):
        service = make_service(fake_provider)
        await service.get_today()
        result = await service.explain(END_DATE)

        assert result["snapshot"]["date"] == END_DATE.isoformat()
        assert result["previous_date"] == CUTOVER.isoformat()
        assert result["agreement"]["risk"]["agree"] == 4
        assert result["agreement"]["risk"]["confidence_label"] == "High"
        # replay rows carry no receipts, so there is no trend
        assert result["agreement_trend"]["risk"] is None
        assert result["flip_watch"] == {
            "status": "STRONG_FLIP",
            "days_pending": 1,
            "flip_confirmed": True,
        }

    @pytest.mark.asyncio
    async def test_explain_unknown_date(self, make_service, fake_provider):
        assert await make_service(fake_provider).explain(date(2025, 11, 26)) is None

    @pytest.mark.asyncio
    async def test_health(self, make_service, fake_provider):
        service = make_service(fake_provider)
        assert (await service.health())["status"] == "NOT_READY"

        await service.get_today()
        health = await service.health()
        assert health["status"] == "OK"
        assert health["freshness"]["latest_date"] == END_DATE.isoformat()
        assert health["freshness"]["age_days"] == 0

    @pytest.mark.asyncio
    async def test_health_warns_when_old(self, make_service, fake_provider):
        await make_service(fake_provider).get_today()
        later = make_service(fake_provider, today=date(2026, 1, 10))
        assert (await later.health())["status"] == "WARN"


class TestSweep:
    @pytest.mark.asyncio
    async def test_sweep_thresholds(self, make_service, fake_provider, storage):
        results = await make_service(fake_provider).sweep_thresholds([1.0, 3.0])
        assert [r["factor"] for r in results] == [1.0, 3.0]
        assert results[0]["risk_score"] == 4
        assert results[0]["regime"] == "GOLDILOCKS"
        # tripled thresholds: SPY (+5%) and VIX (-20%) no longer vote
        assert results[1]["risk_score"] < results[0]["risk_score"]
        assert all(r["stress_override"] is False for r in results)
        assert await storage.read_history() == []
