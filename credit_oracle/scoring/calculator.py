"""
Credit Score Calculator

Maps a wallet's lending activity snapshot to a credit score on the familiar
300-850 scale. The score is published on-chain by the oracle and read by
lending contracts, so the formula is fixed, additive and fully deterministic:
the same snapshot always yields the same score.

SCORING METHODOLOGY:
--------------------
Every wallet starts at a base score of 500 and earns independent bonuses:

1. Lending activity (+100)
   Any borrow or supply activity observed on a lending protocol.

2. Never liquidated (+50)
   No liquidation event found for the wallet.

3. Account age (+100)
   First observed activity at least 6 months ago.

4. Multi-protocol (+50)
   Activity on at least 2 distinct lending protocols.

5. Repayment history (0 to +150, one tier only)
   - strong:  150 (full "perfect repayment" weight)
   - good:    floor(150 * 0.7) = 105
   - average: floor(150 * 0.4) = 60
   - poor / none / unrecognized: 0

The total is clamped to [300, 850]. The maximum achievable raw total is 950,
so strong profiles saturate at 850.
"""
import math
from dataclasses import dataclass, field

from credit_oracle.logging import get_logger
from credit_oracle.scoring.activity import ActivitySnapshot, RepaymentHistory

logger = get_logger(__name__)

MIN_SCORE = 300
MAX_SCORE = 850
BASE_SCORE = 500

WEIGHTS = {
    "has_lending_activity": 100,
    "never_liquidated": 50,
    "account_age": 100,
    "multi_protocol": 50,
    "perfect_repayment": 150,
}

THRESHOLDS = {
    "account_age_months": 6,
    "min_protocols": 2,
}

# Fraction of the perfect repayment weight earned by each tier
REPAYMENT_TIER_FACTORS = {
    RepaymentHistory.STRONG.value: 1.0,
    RepaymentHistory.GOOD.value: 0.7,
    RepaymentHistory.AVERAGE.value: 0.4,
}


@dataclass
class CreditScore:
    """Final credit score with the bonus breakdown that produced it."""
    total_score: int
    raw_score: int
    components: dict[str, int] = field(default_factory=dict)

    @property
    def clamped(self) -> bool:
        return self.total_score != self.raw_score


def repayment_bonus(repayment_history: str) -> int:
    """Bonus for a repayment tier. Unrecognized tiers earn nothing."""
    factor = REPAYMENT_TIER_FACTORS.get(repayment_history)
    if factor is None:
        return 0
    return math.floor(WEIGHTS["perfect_repayment"] * factor)


class CreditScoreCalculator:
    """Calculates credit scores from wallet activity snapshots."""

    def calculate(self, activity: ActivitySnapshot) -> CreditScore:
        """
        Calculate the credit score for a snapshot.

        Args:
            activity: The wallet's activity snapshot (never modified)

        Returns:
            CreditScore with the clamped total and per-bonus components
        """
        components: dict[str, int] = {}

        if activity.has_lending_activity:
            components["has_lending_activity"] = WEIGHTS["has_lending_activity"]

        if activity.never_liquidated:
            components["never_liquidated"] = WEIGHTS["never_liquidated"]

        if activity.account_age_months >= THRESHOLDS["account_age_months"]:
            components["account_age"] = WEIGHTS["account_age"]

        if activity.protocol_count >= THRESHOLDS["min_protocols"]:
            components["multi_protocol"] = WEIGHTS["multi_protocol"]

        bonus = repayment_bonus(activity.repayment_history)
        if bonus:
            components["repayment"] = bonus

        raw_score = BASE_SCORE + sum(components.values())
        total_score = max(min(raw_score, MAX_SCORE), MIN_SCORE)

        logger.debug(
            "credit_score_calculated",
            address=activity.address,
            raw_score=raw_score,
            total_score=total_score,
            components=components,
        )

        return CreditScore(
            total_score=total_score,
            raw_score=raw_score,
            components=components,
        )


_default_calculator = CreditScoreCalculator()


def score(activity: ActivitySnapshot) -> int:
    """Return the bounded integer credit score for a snapshot."""
    return _default_calculator.calculate(activity).total_score
