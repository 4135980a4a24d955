"""
steward.engine.rewards — Reward Claim Rules
============================================

Pure eligibility rule for redeeming a reward with points.  Checks run in a
fixed order and the first failing check names the refusal reason.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from steward.engine.standing import as_utc


@dataclass(frozen=True, slots=True)
class ClaimEligibility:
    can_claim: bool
    reason: str | None = None


def can_user_claim(
    reward: Any,
    user: Any,
    claims_by_user: int,
    now: datetime | None = None,
) -> ClaimEligibility:
    """Decide whether *user* may claim *reward*.

    Parameters
    ----------
    reward : Reward row (or look-alike).
    user : User row; only ``points`` and ``level`` are read.
    claims_by_user : How many times this user already claimed this reward.
    now : Evaluation time (defaults to the current UTC time).

    A ``level_required`` tier must match the member's current tier exactly;
    members above or below it are refused.
    """
    now = as_utc(now) or datetime.now(UTC)

    if not reward.is_active:
        return ClaimEligibility(False, "Reward is not active")

    if reward.stock != -1 and reward.times_claimed >= reward.stock:
        return ClaimEligibility(False, "Reward is out of stock")

    if user.points < reward.points_cost:
        return ClaimEligibility(False, "Insufficient points")

    if reward.level_required and user.level != reward.level_required:
        return ClaimEligibility(False, f"Requires {reward.level_required} level")

    if claims_by_user >= reward.max_per_user:
        return ClaimEligibility(False, "Maximum claims reached for this user")

    starts_at = as_utc(reward.starts_at)
    if starts_at is not None and now < starts_at:
        return ClaimEligibility(False, "Reward not yet available")

    ends_at = as_utc(reward.ends_at)
    if ends_at is not None and now > ends_at:
        return ClaimEligibility(False, "Reward period has ended")

    return ClaimEligibility(True)
