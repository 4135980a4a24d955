"""
steward.services.reward_service — Reward Redemption
====================================================

Validates a claim against :func:`steward.engine.rewards.can_user_claim`,
deducts the cost through the points service and records the claim, all in
one transaction.  The reward row is locked (``SELECT … FOR UPDATE`` on
PostgreSQL) so stock cannot be oversold.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from steward.database.models import Reward, RewardClaim, User
from steward.engine.rewards import ClaimEligibility, can_user_claim
from steward.errors import ClaimRejected, NotFoundError
from steward.services.points_service import PointsChange, add_points

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ClaimResult:
    claim_id: int
    reward_id: int
    reward_name: str
    points_spent: int
    points_change: PointsChange

    @property
    def remaining_points(self) -> int:
        return self.points_change.points


def _claims_by_user(session: Session, reward_id: int, user_id: int) -> int:
    return session.scalar(
        select(func.count()).select_from(RewardClaim).where(
            RewardClaim.reward_id == reward_id,
            RewardClaim.user_id == user_id,
        )
    ) or 0


def claim_eligibility(engine: Engine, user_id: int, reward_id: int) -> ClaimEligibility:
    """Read-only preview of :func:`claim_reward`'s decision."""
    with Session(engine) as session:
        user = session.get(User, user_id)
        if user is None:
            raise NotFoundError("User", user_id)
        reward = session.get(Reward, reward_id)
        if reward is None:
            raise NotFoundError("Reward", reward_id)
        return can_user_claim(reward, user, _claims_by_user(session, reward_id, user_id))


def claim_reward(
    engine: Engine,
    user_id: int,
    reward_id: int,
    now: datetime | None = None,
) -> ClaimResult:
    """Redeem *reward_id* for *user_id*.

    Raises
    ------
    NotFoundError
        If the user or reward does not exist.
    ClaimRejected
        If any eligibility rule fails (insufficient points, out of stock…).
    """
    now = now or datetime.now(UTC)
    with Session(engine) as session:
        reward = session.scalar(
            select(Reward).where(Reward.id == reward_id).with_for_update()
        )
        if reward is None:
            raise NotFoundError("Reward", reward_id)
        user = session.scalar(select(User).where(User.id == user_id).with_for_update())
        if user is None:
            raise NotFoundError("User", user_id)

        eligibility = can_user_claim(
            reward, user, _claims_by_user(session, reward_id, user_id), now,
        )
        if not eligibility.can_claim:
            logger.info(
                "Claim of reward %d by user %d refused: %s",
                reward_id, user_id, eligibility.reason,
            )
            raise ClaimRejected(eligibility.reason or "Reward cannot be claimed")

        change = add_points(
            session, user_id, -reward.points_cost, f"Claimed reward: {reward.name}",
        )
        claim = RewardClaim(
            reward_id=reward_id,
            user_id=user_id,
            points_spent=reward.points_cost,
        )
        session.add(claim)
        reward.times_claimed += 1
        session.flush()

        result = ClaimResult(
            claim_id=claim.id,
            reward_id=reward_id,
            reward_name=reward.name,
            points_spent=reward.points_cost,
            points_change=change,
        )
        session.commit()

    logger.info(
        "User %d claimed reward %r for %d points", user_id, result.reward_name,
        result.points_spent,
    )
    return result
