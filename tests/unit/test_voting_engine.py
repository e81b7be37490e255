"""
Unit Tests for the Option-B Voting Engine
"""

import pytest

from regime_engine.domain.models import Axis, Regime, RiskRegime
from regime_engine.domain.services.voting_engine import VotingEngine


@pytest.fixture
def engine(engine_config):
    return VotingEngine(engine_config)


def receipt(result, key):
    for r in result.risk_receipts + result.inflation_receipts:
        if r.key == key:
            return r
    raise KeyError(key)


class TestVotes:
    """Threshold votes and receipts"""

    def test_goldilocks_votes(self, engine, goldilocks_data):
        result = engine.compute_votes(goldilocks_data)
        assert result.risk_score == 4
        assert result.infl_core_score == -1
        assert [r.vote for r in result.risk_receipts] == [1, 1, 1, 1]

    def test_spy_receipt_threshold_description(self, engine, market):
        result = engine.compute_votes(market.market({"SPY": 0.03}))
        spy = receipt(result, "spy")
        assert spy.vote == 1
        assert spy.direction == "Risk On"
        assert spy.threshold == ">= 0.02 (Risk On)"
        assert spy.value == pytest.approx(0.03)

    def test_neutral_band(self, engine, market):
        result = engine.compute_votes(market.market({"SPY": 0.01}))
        spy = receipt(result, "spy")
        assert spy.vote == 0
        assert spy.direction == "Neutral"
        assert spy.threshold == "none"

    def test_vix_votes_inverted(self, engine, market):
        falling = receipt(engine.compute_votes(market.market({"VIX": -0.15})), "vix")
        rising = receipt(engine.compute_votes(market.market({"VIX": 0.15})), "vix")
        assert falling.vote == 1
        assert falling.threshold == "<= -0.1 (Risk On)"
        assert rising.vote == -1
        assert rising.threshold == ">= 0.1 (Risk Off)"

    def test_tlt_rally_votes_plus_one_labelled_disinflation(self, engine, market):
        tlt = receipt(engine.compute_votes(market.market({"TLT": 0.03})), "tlt")
        assert tlt.axis == Axis.INFLATION
        assert tlt.vote == 1
        assert tlt.direction == "Disinflation"
        assert tlt.threshold == ">= 0.01 (Disinflation)"

    def test_uup_selloff_votes_minus_one_labelled_inflation(self, engine, market):
        uup = receipt(engine.compute_votes(market.market({"UUP": -0.03})), "uup")
        assert uup.vote == -1
        assert uup.direction == "Inflation"

    def test_missing_series_is_neutral_and_unavailable(self, engine, market):
        data = market.market({"SPY": 0.05})
        del data["TIP"]
        tip = receipt(engine.compute_votes(data), "tip_ief")
        assert tip.vote == 0
        assert tip.available is False
        assert tip.value is None
        assert tip.note

    def test_signal_value_lookup(self, engine, market):
        result = engine.compute_votes(market.market({"HYG": -0.03}))
        assert result.signal_value("hyg_ief") == pytest.approx(-0.03)
        assert result.signal_value("unknown") is None


class TestTieBreaks:
    """Tie-break fires only on a zero score"""

    def test_zero_risk_score_uses_spy_tr21_sign(self, engine, market):
        data = market.market({"SPY": 0.01})  # below the vote threshold
        risk_tb, _ = engine.resolve_tie_breaks(0, 1.0, data)
        assert risk_tb.used is True
        assert risk_tb.score == 1
        assert risk_tb.reason == "score_zero"
        assert risk_tb.input_value == pytest.approx(0.01)

    def test_zero_inflation_score_negative_reference(self, engine, market):
        data = market.market({"PDBC": -0.01})
        _, infl_tb = engine.resolve_tie_breaks(1, 0.0, data)
        assert infl_tb.used is True
        assert infl_tb.score == -1

    def test_non_zero_scores_untouched(self, engine, market):
        data = market.market()
        risk_tb, infl_tb = engine.resolve_tie_breaks(-1, 0.4, data)
        assert (risk_tb.score, risk_tb.used, risk_tb.reason) == (-1, False, "not_applicable")
        assert (infl_tb.score, infl_tb.used) == (0.4, False)

    def test_insufficient_reference_leaves_zero(self, engine, market):
        data = market.market()
        del data["PDBC"]
        _, infl_tb = engine.resolve_tie_breaks(1, 0.0, data)
        assert infl_tb.score == 0
        assert infl_tb.used is False
        assert infl_tb.reason.startswith("insufficient_reference")

    def test_satellites_can_cancel_a_tie(self, engine, market):
        # core inflation votes sum to zero, satellites push it positive
        data = market.market({"SPY": 0.05})
        result = engine.evaluate(data, infl_sat_score=0.5)
        assert result.infl_core_score == 0
        assert result.infl_score == pytest.approx(0.5)
        assert result.infl_tiebreak.used is False


class TestClassification:
    @pytest.mark.parametrize(
        "risk,infl,expected",
        [
            (2, -1.0, Regime.GOLDILOCKS),
            (1, 0.5, Regime.REFLATION),
            (-1, 2.0, Regime.INFLATION),
            (-3, -0.2, Regime.DEFLATION),
        ],
    )
    def test_quadrants(self, risk, infl, expected):
        assert VotingEngine.classify_regime(risk, infl) == expected

    def test_goldilocks_scenario(self, engine, goldilocks_data):
        result = engine.evaluate(goldilocks_data)
        assert result.regime == Regime.GOLDILOCKS
        assert result.risk_regime == RiskRegime.RISK_ON
        assert result.stress_override is False

    def test_stress_override_forces_risk_off(self, engine, market):
        # risk score +1 but VIX at 35 and credit ratio down 3%
        data = market.market(
            {"SPY": 0.05, "EEM": 0.10, "HYG": -0.03, "PDBC": -0.05},
            bases={"VIX": 35.0},
        )
        result = engine.evaluate(data)
        assert result.risk_score == 1
        assert result.stress_override is True
        assert result.risk_regime == RiskRegime.RISK_OFF
        assert result.regime == Regime.DEFLATION

    def test_stress_override_needs_both_conditions(self, engine, market):
        data = market.market({"SPY": 0.05, "EEM": 0.10, "HYG": -0.01}, bases={"VIX": 35.0})
        result = engine.evaluate(data)
        assert result.stress_override is False
        assert result.risk_regime == RiskRegime.RISK_ON

    def test_stress_keeps_risk_off_regime(self, engine):
        regime, risk_regime, applied = engine.apply_stress_override(Regime.INFLATION, 1.0, 40.0, -0.05)
        assert (regime, risk_regime, applied) == (Regime.INFLATION, RiskRegime.RISK_OFF, True)

    def test_stress_reclassifies_reflation_to_inflation(self, engine):
        regime, _, applied = engine.apply_stress_override(Regime.REFLATION, 2.0, 31.0, -0.02)
        assert applied is True
        assert regime == Regime.INFLATION
