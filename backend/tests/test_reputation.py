"""
Tests for worker reputation: tiers, approval rate and the ledger.
"""
import pytest
from decimal import Decimal
from unittest.mock import MagicMock

from conftest import FakeUserStore, conditional_failure
from shared.errors import NotFound
from shared.reputation import ReputationLedger, calculate_approval_rate, calculate_tier, format_rate


class TestTier:
    """Tests for calculate_tier."""

    @pytest.mark.parametrize('rate, tier', [
        (100, 'Elite'),
        (95, 'Elite'),
        (94.99, 'Gold'),
        (85, 'Gold'),
        (84.99, 'Silver'),
        (70, 'Silver'),
        (69.99, 'Bronze'),
        (0, 'Bronze'),
        (Decimal('95.0000'), 'Elite'),
    ])
    def test_thresholds(self, rate, tier):
        assert calculate_tier(rate) == tier

    @pytest.mark.parametrize('rate', [float('nan'), None, 'lots'])
    def test_non_numeric_is_bronze(self, rate):
        assert calculate_tier(rate) == 'Bronze'


class TestApprovalRate:
    """Tests for calculate_approval_rate."""

    def test_no_submissions(self):
        assert calculate_approval_rate(0, 0) == 0.0

    def test_rate(self):
        assert calculate_approval_rate(3, 4) == 75.0

    def test_format_rate(self):
        assert format_rate(Decimal('66.6667')) == '66.67'
        assert format_rate(None) == '0.00'


class TestLedger:
    """Tests for ReputationLedger."""

    def make_users(self, total=0, approved=0):
        return FakeUserStore([{
            'userId': 'user-1',
            'totalSubmissionsCount': total,
            'approvedSubmissionsCount': approved,
            'tier': 'Bronze'
        }])

    def test_recompute_approved(self):
        users = self.make_users(total=3, approved=2)

        user = ReputationLedger(users).recompute('user-1', True)

        assert user['totalSubmissionsCount'] == 4
        assert user['approvedSubmissionsCount'] == 3
        assert user['approvalRate'] == Decimal('75.0')
        assert user['tier'] == 'Silver'

    def test_recompute_rejected(self):
        users = self.make_users(total=1, approved=1)

        user = ReputationLedger(users).recompute('user-1', False)

        assert user['totalSubmissionsCount'] == 2
        assert user['approvedSubmissionsCount'] == 1
        assert user['tier'] == 'Bronze'

    def test_approval_rate_rounded_to_four_places(self):
        users = self.make_users(total=2, approved=2)

        user = ReputationLedger(users).recompute('user-1', False)

        assert user['approvalRate'] == Decimal('66.6667')

    def test_reclassify_keeps_total(self):
        users = self.make_users(total=4, approved=4)

        user = ReputationLedger(users).reclassify('user-1', False)

        assert user['totalSubmissionsCount'] == 4
        assert user['approvedSubmissionsCount'] == 3
        assert user['tier'] == 'Silver'

    def test_unknown_user(self):
        with pytest.raises(NotFound):
            ReputationLedger(self.make_users()).recompute('ghost', True)

    def test_stale_derived_write_yields_to_newer_counters(self):
        """A concurrent writer moved the counters: our derived write is skipped."""
        users = MagicMock()
        users.add_submission_counts.return_value = {
            'userId': 'user-1', 'totalSubmissionsCount': 1, 'approvedSubmissionsCount': 1, 'tier': 'Bronze'
        }
        users.set_reputation.side_effect = conditional_failure()
        newest = {'userId': 'user-1', 'totalSubmissionsCount': 2, 'approvedSubmissionsCount': 2, 'tier': 'Elite'}
        users.get.return_value = newest

        assert ReputationLedger(users).recompute('user-1', True) == newest
        users.get.assert_called_once_with('user-1', consistent=True)

    def test_derived_write_conditioned_on_counters(self):
        users = MagicMock()
        users.add_submission_counts.return_value = {
            'userId': 'user-1', 'totalSubmissionsCount': 10, 'approvedSubmissionsCount': 9
        }
        users.set_reputation.return_value = {'userId': 'user-1', 'tier': 'Gold'}

        ReputationLedger(users).recompute('user-1', True)

        users.add_submission_counts.assert_called_once_with('user-1', 1, 1)
        kwargs = users.set_reputation.call_args[1]
        assert kwargs['total'] == 10
        assert kwargs['approved'] == 9
        assert kwargs['tier'] == 'Gold'
        assert kwargs['approval_rate'] == Decimal('90.0')
