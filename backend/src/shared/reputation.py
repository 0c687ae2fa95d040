"""
Reputation ledger - approval rate and tier for workers.

Counters are changed with an atomic ADD; the derived approvalRate and tier
are then written conditional on the counters they were computed from. If a
concurrent update for the same worker slips in between, our derived write
is skipped: the other writer holds newer counters and writes newer values.
"""
import math
from typing import Any, Dict
from botocore.exceptions import ClientError
from shared.dynamo import is_conditional_failure, to_decimal
from shared.logging import logger
from shared.models import Tier


# Minimum approval rate (percent) per tier, highest first
TIER_THRESHOLDS = (
    (95, Tier.ELITE),
    (85, Tier.GOLD),
    (70, Tier.SILVER),
)


def calculate_tier(approval_rate) -> str:
    """
    Map an approval rate (0-100) to a tier.

    Rules:
    - ELITE: rate >= 95
    - GOLD: rate >= 85
    - SILVER: rate >= 70
    - BRONZE: anything else, including NaN and non-numeric input
    """
    try:
        rate = float(approval_rate)
    except (TypeError, ValueError):
        return Tier.BRONZE
    if math.isnan(rate):
        return Tier.BRONZE
    for threshold, tier in TIER_THRESHOLDS:
        if rate >= threshold:
            return tier
    return Tier.BRONZE


def calculate_approval_rate(approved: int, total: int) -> float:
    """100 * approved / total, or 0 when there is nothing to rate."""
    if total <= 0:
        return 0.0
    return (approved / total) * 100


class ReputationLedger:
    """Keeps a worker's counters, approvalRate and tier in step."""

    def __init__(self, user_store):
        self.users = user_store

    def recompute(self, user_id: str, was_approved: bool) -> Dict[str, Any]:
        """Count one newly decided submission for the worker."""
        return self._apply(user_id, total_delta=1, approved_delta=1 if was_approved else 0)

    def reclassify(self, user_id: str, now_approved: bool) -> Dict[str, Any]:
        """
        Move an already counted submission between Approved and Rejected.
        The total is unchanged; only the approved counter moves.
        """
        return self._apply(user_id, total_delta=0, approved_delta=1 if now_approved else -1)

    def _apply(self, user_id: str, total_delta: int, approved_delta: int) -> Dict[str, Any]:
        user = self.users.add_submission_counts(user_id, total_delta, approved_delta)

        total = int(user.get('totalSubmissionsCount', 0))
        approved = int(user.get('approvedSubmissionsCount', 0))
        rate = calculate_approval_rate(approved, total)
        tier = calculate_tier(rate)
        previous_tier = user.get('tier', Tier.BRONZE)

        try:
            user = self.users.set_reputation(
                user_id,
                approval_rate=to_decimal(round(rate, 4)),
                tier=tier,
                total=total,
                approved=approved
            )
        except ClientError as e:
            if not is_conditional_failure(e):
                raise
            logger.info(f"[PERFORMANCE] Concurrent update for user {user_id}; newer counters already applied")
            return self.users.get(user_id, consistent=True)

        if previous_tier != tier:
            logger.info(f"[PERFORMANCE] User {user_id} tier changed: {previous_tier} -> {tier}")

        logger.info(
            f"[PERFORMANCE] Updated user {user_id} metrics: Tier={tier}, ApprovalRate={rate:.2f}%, "
            f"Approved={approved}, Total={total}"
        )
        return user


def format_rate(approval_rate) -> str:
    """Approval rate with two decimals, as shown to workers."""
    try:
        return f"{float(approval_rate or 0):.2f}"
    except (TypeError, ValueError):
        return '0.00'
