"""Wallet activity snapshot consumed by the credit score calculator."""
from dataclasses import dataclass
from enum import Enum


class RepaymentHistory(str, Enum):
    """Ordinal repayment quality, worst to best."""
    NONE = "none"
    POOR = "poor"
    AVERAGE = "average"
    GOOD = "good"
    STRONG = "strong"


@dataclass(frozen=True)
class ActivitySnapshot:
    """Observed lending facts for one wallet at one point in time."""
    address: str
    has_lending_activity: bool
    never_liquidated: bool
    account_age_months: int
    protocol_count: int
    repayment_history: str  # A RepaymentHistory value; unknown tiers are tolerated
    total_borrowed_usd: float = 0.0  # Informational, not scored
    total_repaid_usd: float = 0.0  # Informational, not scored

    def __post_init__(self) -> None:
        if self.account_age_months < 0:
            raise ValueError("account_age_months must be non-negative")
        if self.protocol_count < 0:
            raise ValueError("protocol_count must be non-negative")
        if self.total_borrowed_usd < 0 or self.total_repaid_usd < 0:
            raise ValueError("USD totals must be non-negative")
        # Normalize enum members to their plain string value
        if isinstance(self.repayment_history, RepaymentHistory):
            object.__setattr__(self, "repayment_history", self.repayment_history.value)
