"""
steward.services.points_service — Atomic Points & Level Updates
================================================================

Applies point deltas with a single ``UPDATE … RETURNING`` statement so two
concurrent awards for the same user can never overwrite each other.  The
new level is derived from the new balance in that same statement, and the
balance is clamped at zero.

Affordability is **not** checked here; callers that deduct points (reward
claims) validate the balance first.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import case, select, update
from sqlalchemy.orm import Session

from steward.constants import LEVEL_THRESHOLDS, POINT_VALUES, level_rank
from steward.database.models import POINTS_REASON_MAX, PointsHistory, User
from steward.errors import NotFoundError

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class PointsChange:
    """Outcome of one :func:`add_points` call."""

    user_id: int
    delta: int
    points: int
    old_level: str
    new_level: str

    @property
    def level_changed(self) -> bool:
        return self.new_level != self.old_level

    @property
    def leveled_up(self) -> bool:
        """True only when the member moved to a higher tier."""
        return level_rank(self.new_level) > level_rank(self.old_level)


def _level_expr(balance):
    """SQL CASE mirroring :func:`steward.constants.level_for_points`."""
    whens = [
        (balance >= minimum, name)
        for name, minimum in reversed(LEVEL_THRESHOLDS[1:])
    ]
    return case(*whens, else_=LEVEL_THRESHOLDS[0][0])


def journal_reason(reason: str) -> str:
    """Fit *reason* into the journal column, ellipsised when too long."""
    if len(reason) <= POINTS_REASON_MAX:
        return reason
    return reason[: POINTS_REASON_MAX - 1] + "…"


def add_points(session: Session, user_id: int, delta: int, reason: str) -> PointsChange:
    """Apply *delta* to the user's balance and journal it.

    The caller owns the transaction.

    Raises
    ------
    NotFoundError
        If the user does not exist.
    """
    old_level = session.scalar(select(User.level).where(User.id == user_id))
    if old_level is None:
        raise NotFoundError("User", user_id)

    # SET expressions see the pre-update row, so both columns derive from
    # the same balance.
    raw = User.points + delta
    balance = case((raw < 0, 0), else_=raw)
    row = session.execute(
        update(User)
        .where(User.id == user_id)
        .values(points=balance, level=_level_expr(balance))
        .returning(User.points, User.level)
        .execution_options(synchronize_session=False)
    ).one_or_none()
    if row is None:
        raise NotFoundError("User", user_id)

    session.add(PointsHistory(user_id=user_id, action=journal_reason(reason), points=delta))
    session.flush()

    # Keep any loaded User instance in step with the row we just wrote
    cached = session.identity_map.get(session.identity_key(User, user_id))
    if cached is not None:
        session.expire(cached, ["points", "level"])

    change = PointsChange(
        user_id=user_id,
        delta=delta,
        points=row.points,
        old_level=old_level,
        new_level=row.level,
    )
    if change.level_changed:
        logger.info(
            "User %d level %s → %s (%d points)",
            user_id, old_level, change.new_level, change.points,
        )
    return change


def award_action(session: Session, user_id: int, action: str, reason: str) -> PointsChange:
    """Award the catalogue value for *action* (e.g. ``"CREATE_POST"``)."""
    if action not in POINT_VALUES:
        raise ValueError(f"Unknown point action: {action!r}")
    return add_points(session, user_id, POINT_VALUES[action], reason)
