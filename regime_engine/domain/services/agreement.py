"""
Receipt agreement statistics.

How many non-neutral votes on an axis agree with that axis' final direction,
how broad the signal coverage is, and how agreement moved since the previous
snapshot.
"""

from dataclasses import dataclass
from typing import Dict, Optional, Sequence

from regime_engine.domain.models import RegimeSnapshot, RiskRegime, SignalVote

TREND_IMPROVED = "improved"
TREND_WORSENED = "worsened"
TREND_UNCHANGED = "unchanged"

# |delta pct| below this many percentage points counts as unchanged
TREND_UNCHANGED_BAND = 0.5

CONFIDENCE_HIGH = 0.85
CONFIDENCE_MEDIUM = 0.65

_POSITIVE_DIRECTIONS = ("Risk On", "Inflation")


@dataclass(frozen=True)
class AxisAgreement:
    agree: int
    total: int
    disagree: int
    pct: Optional[float]

    def to_dict(self) -> Dict:
        return {"agree": self.agree, "total": self.total, "disagree": self.disagree, "pct": self.pct}


@dataclass(frozen=True)
class AxisStats:
    total_signals: int
    non_neutral: int
    agree: int
    disagree: int
    agreement_pct: Optional[float]
    coverage_pct: Optional[float]
    confidence_score: Optional[float]
    confidence_label: str

    def to_dict(self) -> Dict:
        return {
            "total_signals": self.total_signals,
            "non_neutral": self.non_neutral,
            "agree": self.agree,
            "disagree": self.disagree,
            "agreement_pct": self.agreement_pct,
            "coverage_pct": self.coverage_pct,
            "confidence_score": self.confidence_score,
            "confidence_label": self.confidence_label,
        }


@dataclass(frozen=True)
class AgreementDelta:
    current: AxisAgreement
    previous: AxisAgreement
    delta_pct: float
    trend: str
    line: str

    def to_dict(self) -> Dict:
        return {
            "current": self.current.to_dict(),
            "previous": self.previous.to_dict(),
            "delta_pct": self.delta_pct,
            "trend": self.trend,
            "line": self.line,
        }


def _agrees(vote: int, axis_direction: str) -> bool:
    if axis_direction in _POSITIVE_DIRECTIONS:
        return vote > 0
    return vote < 0


def compute_axis_agreement(receipts: Sequence[SignalVote], axis_direction: str) -> AxisAgreement:
    non_zero = [r for r in receipts if r.vote != 0]
    total = len(non_zero)
    if total == 0:
        return AxisAgreement(agree=0, total=0, disagree=0, pct=None)
    agree = sum(1 for r in non_zero if _agrees(r.vote, axis_direction))
    return AxisAgreement(agree=agree, total=total, disagree=total - agree, pct=agree / total * 100)


def compute_axis_stats(receipts: Sequence[SignalVote], axis_direction: str) -> AxisStats:
    """
    Agreement plus coverage, with a confidence heuristic
    (0.7 x agreement + 0.3 x coverage). Not a probability.
    """
    total_signals = len(receipts)
    agreement = compute_axis_agreement(receipts, axis_direction)

    if total_signals == 0 or agreement.total == 0:
        return AxisStats(
            total_signals=total_signals,
            non_neutral=0,
            agree=0,
            disagree=0,
            agreement_pct=None,
            coverage_pct=0.0 if total_signals else None,
            confidence_score=None,
            confidence_label="n/a",
        )

    coverage_pct = agreement.total / total_signals * 100
    score = 0.7 * (agreement.pct / 100) + 0.3 * (coverage_pct / 100)
    if score >= CONFIDENCE_HIGH:
        label = "High"
    elif score >= CONFIDENCE_MEDIUM:
        label = "Medium"
    else:
        label = "Low"

    return AxisStats(
        total_signals=total_signals,
        non_neutral=agreement.total,
        agree=agreement.agree,
        disagree=agreement.disagree,
        agreement_pct=agreement.pct,
        coverage_pct=coverage_pct,
        confidence_score=score,
        confidence_label=label,
    )


def risk_direction(snapshot: RegimeSnapshot) -> str:
    return "Risk On" if snapshot.risk_regime == RiskRegime.RISK_ON else "Risk Off"


def inflation_direction(snapshot: RegimeSnapshot) -> str:
    return "Inflation" if snapshot.infl_axis == "Inflation" else "Disinflation"


def trend_label(delta_pct: float) -> str:
    if abs(delta_pct) < TREND_UNCHANGED_BAND:
        return TREND_UNCHANGED
    return TREND_IMPROVED if delta_pct > 0 else TREND_WORSENED


def _delta(prefix: str, current: AxisAgreement, previous: AxisAgreement) -> Optional[AgreementDelta]:
    if current.pct is None or previous.pct is None:
        return None
    delta = current.pct - previous.pct
    trend = trend_label(delta)
    line = (
        f"{prefix} {previous.agree}/{previous.total} ({previous.pct:.0f}%) -> "
        f"{current.agree}/{current.total} ({current.pct:.0f}%) ({trend})"
    )
    return AgreementDelta(current=current, previous=previous, delta_pct=delta, trend=trend, line=line)


def compute_agreement_delta(
    current: RegimeSnapshot,
    previous: RegimeSnapshot,
) -> Dict[str, Optional[AgreementDelta]]:
    """
    Day-over-day agreement change per axis. Both days are measured against
    the current snapshot's axis direction.
    """
    risk_dir = risk_direction(current)
    infl_dir = inflation_direction(current)
    return {
        "risk": _delta(
            "Risk agreement:",
            compute_axis_agreement(current.risk_receipts, risk_dir),
            compute_axis_agreement(previous.risk_receipts, risk_dir),
        ),
        "inflation": _delta(
            "Inflation agreement:",
            compute_axis_agreement(current.inflation_receipts, infl_dir),
            compute_axis_agreement(previous.inflation_receipts, infl_dir),
        ),
    }
