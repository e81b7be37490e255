"""
ALLOCATION ENGINE (ENGINE-4)
Convert risk regime + VAMS states into target / scale / actual weights

RESPONSIBILITIES:
- Targets from the risk regime only
- actual = target x scale
- cash = clamp(1 - sum(actual), 0, 1)
- Keep sum(actual) + cash == 1 within tolerance

RULES:
❌ Never raise on a tolerance violation (log and correct)
✅ Pure calculation
✅ Deterministic output
"""

from dataclasses import dataclass
import logging

from regime_engine.domain.models import AllocationOutput, RiskRegime, VamsState
from regime_engine.domain.services.config_engine import EngineConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Targets:
    stocks: float
    gold: float
    btc: float


class AllocationEngine:
    """
    Allocation Engine
    """

    def __init__(self, config: EngineConfig):
        self.config = config

    def targets(self, risk_regime: RiskRegime) -> Targets:
        alloc = self.config.allocation
        if risk_regime == RiskRegime.RISK_ON:
            return Targets(stocks=alloc.stocks_risk_on, gold=alloc.gold, btc=alloc.btc_risk_on)
        return Targets(stocks=alloc.stocks_risk_off, gold=alloc.gold, btc=alloc.btc_risk_off)

    def scale(self, state: VamsState) -> float:
        return self.config.vams.scale_map.get(int(state), 0.5)

    def allocate(
        self,
        risk_regime: RiskRegime,
        stocks_state: VamsState,
        gold_state: VamsState,
        btc_state: VamsState,
    ) -> AllocationOutput:
        tolerance = self.config.allocation.tolerance
        targets = self.targets(risk_regime)

        stocks_scale = self.scale(stocks_state)
        gold_scale = self.scale(gold_state)
        btc_scale = self.scale(btc_state)

        stocks_actual = targets.stocks * stocks_scale
        gold_actual = targets.gold * gold_scale
        btc_actual = targets.btc * btc_scale

        invested = stocks_actual + gold_actual + btc_actual
        cash = self._clamp(1.0 - invested)

        total = invested + cash
        diff = 1.0 - total
        if abs(diff) > tolerance:
            if cash + diff >= 0.0:
                cash += diff
                action = "absorbed into cash"
            else:
                # over-invested with no cash left: scale the sleeves down
                factor = 1.0 / invested
                stocks_actual *= factor
                gold_actual *= factor
                btc_actual *= factor
                cash = self._clamp(1.0 - (stocks_actual + gold_actual + btc_actual))
                action = "normalized"

            if abs(diff) < self.config.allocation.small_gap:
                logger.debug("Allocation sum %.8f off by %.8f; %s", total, diff, action)
            else:
                logger.warning("Allocation sum %.8f off by %.8f; %s", total, diff, action)

        return AllocationOutput(
            stocks_target=targets.stocks,
            gold_target=targets.gold,
            btc_target=targets.btc,
            stocks_scale=stocks_scale,
            gold_scale=gold_scale,
            btc_scale=btc_scale,
            stocks_actual=stocks_actual,
            gold_actual=gold_actual,
            btc_actual=btc_actual,
            cash=cash,
        )

    @staticmethod
    def _clamp(value: float) -> float:
        return max(0.0, min(1.0, value))
