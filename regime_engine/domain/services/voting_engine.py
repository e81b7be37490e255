"""
OPTION-B VOTING ENGINE (ENGINE-1)
Risk / inflation axis scores, regime classification, stress override

RESPONSIBILITIES:
- Turn eight windowed returns into threshold votes with receipts
- Resolve zero-score ties for both axes in one step
- Classify the regime quadrant
- Force RISK OFF under combined volatility and credit stress

RULES:
❌ No I/O
❌ No hidden state between calls
✅ Pure calculation
✅ Deterministic output
"""

from dataclasses import dataclass
from typing import List, Mapping, Optional, Sequence, Tuple
import logging

from regime_engine.domain.models import (
    Axis,
    Insufficient,
    MarketObservation,
    Regime,
    RiskRegime,
    SignalVote,
    WindowResult,
)
from regime_engine.domain.services.config_engine import EngineConfig, SignalConfig
from regime_engine.domain.services import window_calculus as wc

logger = logging.getLogger(__name__)

Series = Mapping[str, Sequence[MarketObservation]]


@dataclass(frozen=True)
class VoteResult:
    """Pre-tie-break axis sums with their receipts"""
    risk_score: int
    infl_core_score: int
    risk_receipts: Tuple[SignalVote, ...]
    inflation_receipts: Tuple[SignalVote, ...]

    def signal_value(self, key: str) -> Optional[float]:
        for receipt in self.risk_receipts + self.inflation_receipts:
            if receipt.key == key:
                return receipt.value if receipt.available else None
        return None


@dataclass(frozen=True)
class TieBreak:
    """Outcome of the zero-score tie-break for one axis"""
    score: float
    used: bool
    reason: str
    input_value: Optional[float] = None


@dataclass(frozen=True)
class Classification:
    """Final axis scores and regime label"""
    regime: Regime
    risk_regime: RiskRegime
    risk_score: int
    infl_score: float
    infl_core_score: int
    infl_sat_score: float
    risk_tiebreak: TieBreak
    infl_tiebreak: TieBreak
    stress_override: bool
    votes: VoteResult


class VotingEngine:
    """
    Option-B Voting Engine
    Computes axis scores; does NOT allocate
    """

    def __init__(self, config: EngineConfig):
        self.config = config

    # ------------------------------------------------------------------
    # VOTES
    # ------------------------------------------------------------------

    def compute_votes(self, series: Series) -> VoteResult:
        """
        Evaluate every configured signal.

        `series` maps symbol -> observations already restricted to the
        as-of date and sorted ascending.
        """
        risk: List[SignalVote] = []
        inflation: List[SignalVote] = []

        for signal in self.config.signals:
            result = self._signal_value(signal, series)
            receipt = self._receipt(signal, result)
            if signal.axis == Axis.RISK:
                risk.append(receipt)
            else:
                inflation.append(receipt)

        return VoteResult(
            risk_score=sum(r.vote for r in risk),
            infl_core_score=sum(r.vote for r in inflation),
            risk_receipts=tuple(risk),
            inflation_receipts=tuple(inflation),
        )

    @staticmethod
    def _signal_value(signal: SignalConfig, series: Series) -> WindowResult:
        numerator = series.get(signal.symbol, ())
        if signal.denominator is None:
            return wc.total_return(numerator, signal.window)
        denominator = series.get(signal.denominator, ())
        return wc.ratio_total_return(numerator, denominator, signal.window)

    @staticmethod
    def vote(signal: SignalConfig, value: float) -> int:
        """Map a measured value to -1, 0 or +1 using the signal's threshold pair."""
        if signal.comparison == "above":
            if value >= signal.on_threshold:
                return 1
            if value <= signal.off_threshold:
                return -1
            return 0
        if value <= signal.on_threshold:
            return 1
        if value >= signal.off_threshold:
            return -1
        return 0

    def _receipt(self, signal: SignalConfig, result: WindowResult) -> SignalVote:
        if isinstance(result, Insufficient):
            return SignalVote(
                axis=signal.axis,
                key=signal.key,
                label=signal.label,
                value=None,
                vote=0,
                direction="Neutral",
                threshold="none",
                available=False,
                note=result.reason,
            )

        vote = self.vote(signal, result.value)
        if vote > 0:
            direction = signal.positive_direction
        elif vote < 0:
            direction = signal.negative_direction
        else:
            direction = "Neutral"
        return SignalVote(
            axis=signal.axis,
            key=signal.key,
            label=signal.label,
            value=result.value,
            vote=vote,
            direction=direction,
            threshold=signal.describe(vote),
        )

    # ------------------------------------------------------------------
    # TIE-BREAK
    # ------------------------------------------------------------------

    def resolve_tie_breaks(
        self,
        risk_score: float,
        infl_score: float,
        series: Series,
    ) -> Tuple[TieBreak, TieBreak]:
        """
        Apply the zero-score tie-break to both axes once all contributions
        (core votes and satellites) are known.
        """
        tb = self.config.tie_break
        return (
            self._tie_break(risk_score, series.get(tb.risk_symbol, ()), tb.window),
            self._tie_break(infl_score, series.get(tb.inflation_symbol, ()), tb.window),
        )

    @staticmethod
    def _tie_break(
        score: float,
        reference: Sequence[MarketObservation],
        window: int,
    ) -> TieBreak:
        if score != 0:
            return TieBreak(score=score, used=False, reason="not_applicable")

        result = wc.total_return(reference, window)
        if isinstance(result, Insufficient):
            return TieBreak(score=score, used=False, reason=f"insufficient_reference: {result.reason}")
        return TieBreak(
            score=wc.sign(result.value),
            used=True,
            reason="score_zero",
            input_value=result.value,
        )

    # ------------------------------------------------------------------
    # CLASSIFICATION
    # ------------------------------------------------------------------

    @staticmethod
    def classify_regime(risk_score: float, infl_score: float) -> Regime:
        """Quadrant from the signs of the two axis scores."""
        risk_on = risk_score > 0
        inflationary = infl_score > 0

        if risk_on and not inflationary:
            return Regime.GOLDILOCKS
        if risk_on and inflationary:
            return Regime.REFLATION
        if inflationary:
            return Regime.INFLATION
        return Regime.DEFLATION

    def stress_triggered(
        self,
        volatility_level: Optional[float],
        credit_value: Optional[float],
    ) -> bool:
        stress = self.config.stress
        if volatility_level is None or credit_value is None:
            return False
        return volatility_level > stress.volatility_limit and credit_value <= stress.credit_limit

    def apply_stress_override(
        self,
        regime: Regime,
        infl_score: float,
        volatility_level: Optional[float],
        credit_value: Optional[float],
    ) -> Tuple[Regime, RiskRegime, bool]:
        """
        Force RISK OFF under stress; a risk-on quadrant is reclassified to
        INFLATION or DEFLATION by the inflation score sign.
        """
        if not self.stress_triggered(volatility_level, credit_value):
            return regime, regime.risk_regime, False

        if regime.risk_regime == RiskRegime.RISK_ON:
            reclassified = Regime.INFLATION if infl_score > 0 else Regime.DEFLATION
            logger.warning(
                "Stress override: VIX=%.2f credit TR=%.4f, %s -> %s",
                volatility_level, credit_value, regime.value, reclassified.value,
            )
            regime = reclassified
        return regime, RiskRegime.RISK_OFF, True

    # ------------------------------------------------------------------
    # PIPELINE
    # ------------------------------------------------------------------

    def evaluate(self, series: Series, infl_sat_score: float = 0.0) -> Classification:
        """
        Votes -> satellite fold-in -> unified tie-break -> classify -> stress override.
        """
        votes = self.compute_votes(series)
        infl_total = votes.infl_core_score + infl_sat_score

        risk_tb, infl_tb = self.resolve_tie_breaks(votes.risk_score, infl_total, series)
        risk_score = int(risk_tb.score)
        infl_score = float(infl_tb.score)

        regime = self.classify_regime(risk_score, infl_score)

        vix_series = series.get(self.config.stress.volatility_symbol, ())
        regime, risk_regime, stressed = self.apply_stress_override(
            regime,
            infl_score,
            wc.latest_close(vix_series),
            votes.signal_value(self.config.stress.credit_signal),
        )

        return Classification(
            regime=regime,
            risk_regime=risk_regime,
            risk_score=risk_score,
            infl_score=infl_score,
            infl_core_score=votes.infl_core_score,
            infl_sat_score=float(infl_sat_score),
            risk_tiebreak=risk_tb,
            infl_tiebreak=infl_tb,
            stress_override=stressed,
            votes=votes,
        )
