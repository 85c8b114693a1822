"""Credit scoring module for wallet activity."""
from credit_oracle.scoring.activity import ActivitySnapshot, RepaymentHistory
from credit_oracle.scoring.calculator import CreditScore, CreditScoreCalculator, score

__all__ = [
    "ActivitySnapshot",
    "CreditScore",
    "CreditScoreCalculator",
    "RepaymentHistory",
    "score",
]
