"""Tests for the credit score formula and activity snapshots."""
import pytest

from credit_oracle.scoring import ActivitySnapshot, CreditScoreCalculator, RepaymentHistory, score
from credit_oracle.scoring.calculator import (
    BASE_SCORE,
    MAX_SCORE,
    MIN_SCORE,
    repayment_bonus,
)
from credit_oracle.services.activity import mock_activity_profile


def make_snapshot(**overrides) -> ActivitySnapshot:
    """Snapshot with no bonuses except never_liquidated, unless overridden."""
    fields = dict(
        address="0x" + "a" * 40,
        has_lending_activity=False,
        never_liquidated=True,
        account_age_months=0,
        protocol_count=0,
        repayment_history="none",
    )
    fields.update(overrides)
    return ActivitySnapshot(**fields)


class TestRepaymentBonus:
    """Test the repayment tier bonus."""

    def test_tier_bonuses(self):
        """Tiers earn a floored fraction of the full repayment weight."""
        assert repayment_bonus("strong") == 150
        assert repayment_bonus("good") == 105
        assert repayment_bonus("average") == 60

    def test_poor_and_none_earn_nothing(self):
        assert repayment_bonus("poor") == 0
        assert repayment_bonus("none") == 0

    def test_unrecognized_tier_earns_nothing(self):
        """Unknown tier strings score like 'none' instead of raising."""
        assert repayment_bonus("perfect") == 0
        assert repayment_bonus("") == 0


class TestCreditScoreCalculator:
    """Test the additive credit score formula."""

    def setup_method(self):
        self.calculator = CreditScoreCalculator()

    def test_strong_profile_saturates_at_max(self):
        """All bonuses sum to 950 and clamp to 850."""
        result = self.calculator.calculate(make_snapshot(
            has_lending_activity=True,
            account_age_months=12,
            protocol_count=3,
            repayment_history="strong",
        ))

        assert result.raw_score == 950
        assert result.total_score == MAX_SCORE
        assert result.clamped is True

    def test_good_profile_also_saturates(self):
        result = self.calculator.calculate(make_snapshot(
            has_lending_activity=True,
            account_age_months=8,
            protocol_count=2,
            repayment_history="good",
        ))

        assert result.raw_score == 905
        assert result.total_score == 850

    def test_average_profile(self):
        """500 + 100 + 50 + 60 = 710, no age or multi-protocol bonus."""
        result = self.calculator.calculate(make_snapshot(
            has_lending_activity=True,
            account_age_months=4,
            protocol_count=1,
            repayment_history="average",
        ))

        assert result.total_score == 710
        assert result.clamped is False
        assert result.components == {
            "has_lending_activity": 100,
            "never_liquidated": 50,
            "repayment": 60,
        }

    def test_new_wallet(self):
        """Only the never-liquidated bonus applies."""
        result = self.calculator.calculate(make_snapshot(account_age_months=1))
        assert result.total_score == 550

    def test_liquidated_wallet_without_history_gets_base(self):
        result = self.calculator.calculate(make_snapshot(never_liquidated=False))
        assert result.total_score == BASE_SCORE
        assert result.components == {}

    def test_account_age_threshold_is_inclusive(self):
        """Six months qualifies, five does not."""
        at_threshold = self.calculator.calculate(make_snapshot(account_age_months=6))
        below = self.calculator.calculate(make_snapshot(account_age_months=5))

        assert at_threshold.total_score - below.total_score == 100
        assert "account_age" in at_threshold.components
        assert "account_age" not in below.components

    def test_protocol_threshold_is_inclusive(self):
        two = self.calculator.calculate(make_snapshot(protocol_count=2))
        one = self.calculator.calculate(make_snapshot(protocol_count=1))

        assert two.total_score - one.total_score == 50

    def test_enum_member_scores_like_its_value(self):
        by_enum = self.calculator.calculate(make_snapshot(repayment_history=RepaymentHistory.GOOD))
        by_value = self.calculator.calculate(make_snapshot(repayment_history="good"))

        assert by_enum.total_score == by_value.total_score

    def test_unknown_tier_does_not_raise(self):
        result = self.calculator.calculate(make_snapshot(repayment_history="perfect"))
        assert result.total_score == 550

    def test_score_always_within_bounds(self):
        """Every combination of inputs lands in [300, 850]."""
        for has_activity in (True, False):
            for never_liquidated in (True, False):
                for age in (0, 5, 6, 120):
                    for protocols in (0, 1, 2, 10):
                        for tier in ("none", "poor", "average", "good", "strong", "bogus"):
                            value = score(make_snapshot(
                                has_lending_activity=has_activity,
                                never_liquidated=never_liquidated,
                                account_age_months=age,
                                protocol_count=protocols,
                                repayment_history=tier,
                            ))
                            assert MIN_SCORE <= value <= MAX_SCORE

    def test_better_repayment_never_lowers_score(self):
        """Walking the tiers upward with everything else fixed is non-decreasing."""
        tiers = ["none", "poor", "average", "good", "strong"]
        for has_activity in (True, False):
            for age in (0, 12):
                for protocols in (0, 3):
                    scores = [
                        score(make_snapshot(
                            has_lending_activity=has_activity,
                            account_age_months=age,
                            protocol_count=protocols,
                            repayment_history=tier,
                        ))
                        for tier in tiers
                    ]
                    assert scores == sorted(scores)

    def test_lending_activity_never_lowers_score(self):
        for tier in ("none", "poor", "average", "good", "strong"):
            for age in (0, 12):
                without = score(make_snapshot(account_age_months=age, repayment_history=tier))
                with_activity = score(make_snapshot(
                    has_lending_activity=True, account_age_months=age, repayment_history=tier,
                ))
                assert with_activity >= without

    def test_deterministic(self):
        snapshot = make_snapshot(has_lending_activity=True, repayment_history="good")
        assert score(snapshot) == score(snapshot)

    def test_snapshot_not_modified(self):
        snapshot = make_snapshot(has_lending_activity=True, protocol_count=3)
        before = (snapshot.has_lending_activity, snapshot.protocol_count, snapshot.repayment_history)

        self.calculator.calculate(snapshot)

        assert (snapshot.has_lending_activity, snapshot.protocol_count, snapshot.repayment_history) == before


class TestActivitySnapshot:
    """Test snapshot validation."""

    def test_negative_age_rejected(self):
        with pytest.raises(ValueError):
            make_snapshot(account_age_months=-1)

    def test_negative_protocol_count_rejected(self):
        with pytest.raises(ValueError):
            make_snapshot(protocol_count=-2)

    def test_negative_usd_totals_rejected(self):
        with pytest.raises(ValueError):
            make_snapshot(total_borrowed_usd=-10.0)

    def test_enum_normalized_to_string(self):
        snapshot = make_snapshot(repayment_history=RepaymentHistory.STRONG)
        assert snapshot.repayment_history == "strong"


class TestMockProfiles:
    """Test the deterministic demo profiles end to end through the formula."""

    @pytest.mark.parametrize(
        "last_char,expected",
        [
            ("0", 850),  # strong borrower
            ("1", 850),  # good borrower
            ("2", 710),  # average borrower
            ("3", 550),  # new wallet
        ],
    )
    def test_profile_scores(self, last_char, expected):
        address = "0x" + "5" * 39 + last_char
        assert score(mock_activity_profile(address)) == expected

    def test_selection_ignores_case(self):
        """'A' and 'a' select the same profile."""
        lower = mock_activity_profile("0x" + "5" * 39 + "a")
        upper = mock_activity_profile("0x" + "5" * 39 + "A")

        assert lower.account_age_months == upper.account_age_months
        assert lower.repayment_history == upper.repayment_history
