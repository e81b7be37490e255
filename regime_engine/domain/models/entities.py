"""
Domain Models - Entities
Pure domain objects with no infrastructure dependencies
"""

from dataclasses import dataclass, field, replace
from datetime import date, datetime
from enum import Enum, IntEnum
from typing import Any, Dict, Optional, Tuple, Union
import math


class Regime(str, Enum):
    """Macro quadrant from crossing risk and inflation axis signs"""
    GOLDILOCKS = "GOLDILOCKS"
    REFLATION = "REFLATION"
    INFLATION = "INFLATION"
    DEFLATION = "DEFLATION"

    @property
    def risk_regime(self) -> "RiskRegime":
        if self in (Regime.GOLDILOCKS, Regime.REFLATION):
            return RiskRegime.RISK_ON
        return RiskRegime.RISK_OFF


class RiskRegime(str, Enum):
    """Risk-on / risk-off split of the four quadrants"""
    RISK_ON = "RISK ON"
    RISK_OFF = "RISK OFF"


class Axis(str, Enum):
    """Voting axis"""
    RISK = "risk"
    INFLATION = "inflation"


class FlipWatchStatus(str, Enum):
    """Persistence guard status for a detected regime change"""
    NONE = "NONE"
    BREWING = "BREWING"
    PENDING_CONFIRMATION = "PENDING_CONFIRMATION"
    STRONG_FLIP = "STRONG_FLIP"


class SnapshotSource(str, Enum):
    """Where a snapshot came from"""
    REPLAY = "replay"
    COMPUTED = "computed"


class VamsState(IntEnum):
    """Discrete trend/volatility state per proxy asset"""
    BEARISH = -2
    NEUTRAL = 0
    BULLISH = 2


# ------------------------------------------------------------------
# TAGGED WINDOW RESULTS
# ------------------------------------------------------------------

@dataclass(frozen=True)
class Available:
    """A window computation that had enough data"""
    value: float


@dataclass(frozen=True)
class Insufficient:
    """A window computation that could not run"""
    reason: str

    @property
    def value(self) -> float:
        return 0.0


WindowResult = Union[Available, Insufficient]


# ------------------------------------------------------------------
# OBSERVATIONS
# ------------------------------------------------------------------

@dataclass(frozen=True)
class MarketObservation:
    """Single daily close for one symbol - Immutable"""
    symbol: str
    date: date
    close: float

    def __post_init__(self):
        if not self.symbol:
            raise ValueError("Observation symbol cannot be empty")
        if not math.isfinite(self.close) or self.close <= 0:
            raise ValueError(f"Invalid close for {self.symbol} on {self.date}: {self.close}")


@dataclass(frozen=True)
class SatelliteObservation:
    """External inflation signal value resolved for one series"""
    series: str
    value: float
    observation_date: date
    age_days: int

    def __post_init__(self):
        if self.age_days < 0:
            raise ValueError("Satellite observation cannot be dated in the future")


# ------------------------------------------------------------------
# RECEIPTS
# ------------------------------------------------------------------

@dataclass(frozen=True)
class SignalVote:
    """Explainability receipt for one voting signal"""
    axis: Axis
    key: str
    label: str
    value: Optional[float]
    vote: int
    direction: str
    threshold: str
    available: bool = True
    note: Optional[str] = None

    def __post_init__(self):
        if self.vote not in (-1, 0, 1):
            raise ValueError(f"Vote must be -1, 0 or +1, got {self.vote}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "axis": self.axis.value,
            "key": self.key,
            "label": self.label,
            "value": self.value,
            "vote": self.vote,
            "direction": self.direction,
            "threshold": self.threshold,
            "available": self.available,
            "note": self.note,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SignalVote":
        value = data.get("value")
        return cls(
            axis=Axis(data["axis"]),
            key=data["key"],
            label=data.get("label", data["key"]),
            value=None if value is None else float(value),
            vote=int(data.get("vote", 0)),
            direction=data.get("direction", "Neutral"),
            threshold=data.get("threshold", "none"),
            available=bool(data.get("available", True)),
            note=data.get("note"),
        )


@dataclass(frozen=True)
class SatelliteContribution:
    """Receipt for one configured satellite after resolution, expiry and decay"""
    series: str
    resolved_series: Optional[str]
    value: Optional[float]
    observation_date: Optional[date]
    age_days: Optional[int]
    raw_vote: int
    effective_vote: float
    expired: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "series": self.series,
            "resolved_series": self.resolved_series,
            "value": self.value,
            "observation_date": self.observation_date.isoformat() if self.observation_date else None,
            "age_days": self.age_days,
            "raw_vote": self.raw_vote,
            "effective_vote": self.effective_vote,
            "expired": self.expired,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SatelliteContribution":
        obs_date = data.get("observation_date")
        value = data.get("value")
        age = data.get("age_days")
        return cls(
            series=data["series"],
            resolved_series=data.get("resolved_series"),
            value=None if value is None else float(value),
            observation_date=date.fromisoformat(obs_date) if obs_date else None,
            age_days=None if age is None else int(age),
            raw_vote=int(data.get("raw_vote", 0)),
            effective_vote=float(data.get("effective_vote", 0.0)),
            expired=bool(data.get("expired", False)),
        )


@dataclass(frozen=True)
class SymbolDiagnostic:
    """Per-symbol fetch diagnostics"""
    symbol: str
    provider: Optional[str]
    last_date: Optional[date]
    observation_count: int
    ok: bool
    note: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "symbol": self.symbol,
            "provider": self.provider,
            "last_date": self.last_date.isoformat() if self.last_date else None,
            "observation_count": self.observation_count,
            "ok": self.ok,
            "note": self.note,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SymbolDiagnostic":
        last = data.get("last_date")
        return cls(
            symbol=data["symbol"],
            provider=data.get("provider"),
            last_date=date.fromisoformat(last) if last else None,
            observation_count=int(data.get("observation_count", 0)),
            ok=bool(data.get("ok", False)),
            note=data.get("note"),
        )


# ------------------------------------------------------------------
# ALLOCATION + SNAPSHOT
# ------------------------------------------------------------------

@dataclass(frozen=True)
class AllocationOutput:
    """Target / scale / actual weights plus cash - Immutable"""
    stocks_target: float
    gold_target: float
    btc_target: float
    stocks_scale: float
    gold_scale: float
    btc_scale: float
    stocks_actual: float
    gold_actual: float
    btc_actual: float
    cash: float

    @property
    def total(self) -> float:
        return self.stocks_actual + self.gold_actual + self.btc_actual + self.cash

    def to_dict(self) -> Dict[str, float]:
        return {
            "stocks_target": self.stocks_target,
            "gold_target": self.gold_target,
            "btc_target": self.btc_target,
            "stocks_scale": self.stocks_scale,
            "gold_scale": self.gold_scale,
            "btc_scale": self.btc_scale,
            "stocks_actual": self.stocks_actual,
            "gold_actual": self.gold_actual,
            "btc_actual": self.btc_actual,
            "cash": self.cash,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AllocationOutput":
        def num(key: str, default: float = 0.0) -> float:
            value = data.get(key)
            if value is None or value == "":
                return default
            return float(value)

        return cls(
            stocks_target=num("stocks_target"),
            gold_target=num("gold_target"),
            btc_target=num("btc_target"),
            stocks_scale=num("stocks_scale", 0.5),
            gold_scale=num("gold_scale", 0.5),
            btc_scale=num("btc_scale", 0.5),
            stocks_actual=num("stocks_actual"),
            gold_actual=num("gold_actual"),
            btc_actual=num("btc_actual"),
            cash=num("cash"),
        )


def risk_axis_label(risk_score: float) -> str:
    return "RiskOn" if risk_score > 0 else "RiskOff"


def infl_axis_label(infl_score: float) -> str:
    return "Inflation" if infl_score > 0 else "Disinflation"


@dataclass(frozen=True)
class RegimeSnapshot:
    """
    One trading day's classification, allocation and provenance.

    Write-once: history rows are never modified; a stale copy of the latest
    snapshot is produced with `as_stale()` and never persisted.
    """
    date: date
    run_date: date
    regime: Regime
    risk_regime: RiskRegime
    risk_score: int
    infl_score: float
    infl_core_score: int
    infl_sat_score: float
    risk_axis: str
    infl_axis: str
    risk_tiebreaker_used: bool
    infl_tiebreaker_used: bool
    stocks_vams_state: VamsState
    gold_vams_state: VamsState
    btc_vams_state: VamsState
    allocation: AllocationOutput
    flip_watch_status: FlipWatchStatus
    source: SnapshotSource
    stale: bool = False
    stale_reason: Optional[str] = None
    risk_receipts: Tuple[SignalVote, ...] = field(default_factory=tuple)
    inflation_receipts: Tuple[SignalVote, ...] = field(default_factory=tuple)
    satellite_receipts: Tuple[SatelliteContribution, ...] = field(default_factory=tuple)
    symbol_diagnostics: Tuple[SymbolDiagnostic, ...] = field(default_factory=tuple)

    @property
    def receipts(self) -> Tuple[SignalVote, ...]:
        return self.risk_receipts + self.inflation_receipts

    def as_stale(self, reason: str) -> "RegimeSnapshot":
        return replace(self, stale=True, stale_reason=reason)

    def to_dict(self) -> Dict[str, Any]:
        """Flat, JSON-safe representation (one history line)"""
        data: Dict[str, Any] = {
            "date": self.date.isoformat(),
            "run_date": self.run_date.isoformat(),
            "regime": self.regime.value,
            "risk_regime": self.risk_regime.value,
            "risk_score": self.risk_score,
            "infl_score": self.infl_score,
            "infl_core_score": self.infl_core_score,
            "infl_sat_score": self.infl_sat_score,
            "risk_axis": self.risk_axis,
            "infl_axis": self.infl_axis,
            "risk_tiebreaker_used": self.risk_tiebreaker_used,
            "infl_tiebreaker_used": self.infl_tiebreaker_used,
            "stocks_vams_state": int(self.stocks_vams_state),
            "gold_vams_state": int(self.gold_vams_state),
            "btc_vams_state": int(self.btc_vams_state),
        }
        data.update(self.allocation.to_dict())
        data.update({
            "flip_watch_status": self.flip_watch_status.value,
            "source": self.source.value,
            "stale": self.stale,
            "stale_reason": self.stale_reason,
            "risk_receipts": [r.to_dict() for r in self.risk_receipts],
            "inflation_receipts": [r.to_dict() for r in self.inflation_receipts],
            "satellite_receipts": [s.to_dict() for s in self.satellite_receipts],
            "symbol_diagnostics": [d.to_dict() for d in self.symbol_diagnostics],
        })
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RegimeSnapshot":
        snapshot_date = date.fromisoformat(str(data["date"])[:10])
        run_date_raw = data.get("run_date") or data.get("run_date_utc")
        run_date = date.fromisoformat(str(run_date_raw)[:10]) if run_date_raw else snapshot_date

        risk_score = int(float(data.get("risk_score") or 0))
        infl_score = float(data.get("infl_score") or 0.0)
        regime = Regime(data["regime"])
        risk_regime_raw = data.get("risk_regime")
        risk_regime = RiskRegime(risk_regime_raw) if risk_regime_raw else regime.risk_regime

        return cls(
            date=snapshot_date,
            run_date=run_date,
            regime=regime,
            risk_regime=risk_regime,
            risk_score=risk_score,
            infl_score=infl_score,
            infl_core_score=int(float(data.get("infl_core_score") or 0)),
            infl_sat_score=float(data.get("infl_sat_score") or 0.0),
            risk_axis=data.get("risk_axis") or risk_axis_label(risk_score),
            infl_axis=data.get("infl_axis") or infl_axis_label(infl_score),
            risk_tiebreaker_used=_as_bool(data.get("risk_tiebreaker_used")),
            infl_tiebreaker_used=_as_bool(data.get("infl_tiebreaker_used")),
            stocks_vams_state=VamsState(int(float(data.get("stocks_vams_state") or 0))),
            gold_vams_state=VamsState(int(float(data.get("gold_vams_state") or 0))),
            btc_vams_state=VamsState(int(float(data.get("btc_vams_state") or 0))),
            allocation=AllocationOutput.from_dict(data),
            flip_watch_status=FlipWatchStatus(data.get("flip_watch_status") or "NONE"),
            source=SnapshotSource(data.get("source") or SnapshotSource.COMPUTED.value),
            stale=_as_bool(data.get("stale")),
            stale_reason=data.get("stale_reason") or None,
            risk_receipts=tuple(SignalVote.from_dict(r) for r in data.get("risk_receipts") or ()),
            inflation_receipts=tuple(SignalVote.from_dict(r) for r in data.get("inflation_receipts") or ()),
            satellite_receipts=tuple(
                SatelliteContribution.from_dict(s) for s in data.get("satellite_receipts") or ()
            ),
            symbol_diagnostics=tuple(
                SymbolDiagnostic.from_dict(d) for d in data.get("symbol_diagnostics") or ()
            ),
        )


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes")
    return bool(value)


@dataclass(frozen=True)
class StorageMeta:
    """Storage metadata record"""
    version: str
    last_updated: datetime

    def to_dict(self) -> Dict[str, str]:
        return {"version": self.version, "lastUpdated": self.last_updated.isoformat()}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StorageMeta":
        return cls(
            version=data["version"],
            last_updated=datetime.fromisoformat(data["lastUpdated"]),
        )


@dataclass(frozen=True)
class SeedStatus:
    """Replay seed file presence"""
    exists: bool
    is_empty: bool
    path: str

    @property
    def is_ready(self) -> bool:
        return self.exists and not self.is_empty
