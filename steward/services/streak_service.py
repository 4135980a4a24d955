"""
steward.services.streak_service — Consecutive-day Streaks
==========================================================

Per-user streak counters for logins, posts and event attendance.

Rules (calendar days, UTC):
* same day as the last update → unchanged;
* the day after the last update → +1;
* any longer gap (or first activity) → restarts at 1.

Hitting a milestone length awards bonus points through the points service.
``reset_broken_streaks`` is the daily job that zeroes lapsed login streaks.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, date, datetime, timedelta

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from steward.database.models import StreakType, User, UserStreak
from steward.errors import NotFoundError
from steward.services.points_service import PointsChange, add_points

logger = logging.getLogger(__name__)

# streak type → {streak length: bonus points}
STREAK_MILESTONES: dict[str, dict[int, int]] = {
    StreakType.LOGIN: {7: 25, 14: 50, 30: 100, 100: 250},
    StreakType.POST: {7: 35, 14: 70, 30: 150},
    StreakType.EVENT: {5: 40, 10: 80, 20: 160},
}


@dataclass(frozen=True, slots=True)
class StreakUpdate:
    streak_type: str
    current: int
    longest: int
    advanced: bool
    points_change: PointsChange | None = None

    @property
    def milestone_reached(self) -> bool:
        return self.points_change is not None


def _today() -> date:
    return datetime.now(UTC).date()


def get_or_create_streak(session: Session, user_id: int, streak_type: str) -> UserStreak:
    """Fetch or insert the streak row for user+type."""
    streak = session.get(UserStreak, (user_id, streak_type))
    if streak is None:
        if session.get(User, user_id) is None:
            raise NotFoundError("User", user_id)
        streak = UserStreak(user_id=user_id, streak_type=streak_type, current=0, longest=0)
        session.add(streak)
        session.flush()
    return streak


def update_streak(
    session: Session,
    user_id: int,
    streak_type: str,
    today: date | None = None,
) -> StreakUpdate:
    """Record activity of *streak_type* for *today*.

    The caller owns the transaction.
    """
    if streak_type not in STREAK_MILESTONES:
        raise ValueError(f"Unknown streak type: {streak_type!r}")
    today = today or _today()
    streak = get_or_create_streak(session, user_id, streak_type)

    if streak.last_update == today:
        return StreakUpdate(streak_type, streak.current, streak.longest, advanced=False)

    if streak.last_update == today - timedelta(days=1):
        streak.current += 1
    else:
        streak.current = 1
    streak.last_update = today
    streak.longest = max(streak.longest, streak.current)
    session.flush()

    change = None
    bonus = STREAK_MILESTONES[streak_type].get(streak.current)
    if bonus:
        change = add_points(
            session, user_id, bonus, f"{streak.current}-day {streak_type} streak!",
        )
        logger.info(
            "User %d reached a %d-day %s streak (+%d)",
            user_id, streak.current, streak_type, bonus,
        )

    return StreakUpdate(
        streak_type, streak.current, streak.longest, advanced=True, points_change=change,
    )


def current_streak(session: Session, user_id: int, streak_type: str = StreakType.LOGIN) -> int:
    value = session.scalar(
        select(UserStreak.current).where(
            UserStreak.user_id == user_id, UserStreak.streak_type == streak_type,
        )
    )
    return value or 0


def streak_summary(session: Session, user_id: int) -> dict[str, dict[str, int]]:
    """``{streak_type: {"current": n, "longest": m}}`` for every streak type."""
    summary = {t: {"current": 0, "longest": 0} for t in STREAK_MILESTONES}
    rows = session.scalars(select(UserStreak).where(UserStreak.user_id == user_id))
    for row in rows:
        summary[row.streak_type] = {"current": row.current, "longest": row.longest}
    return summary


def reset_broken_streaks(session: Session, today: date | None = None) -> int:
    """Zero login streaks with no activity since yesterday.

    Returns the number of streaks reset.  The caller owns the transaction.
    """
    today = today or _today()
    yesterday = today - timedelta(days=1)
    result = session.execute(
        update(UserStreak)
        .where(
            UserStreak.streak_type == StreakType.LOGIN,
            UserStreak.current > 0,
            UserStreak.last_update < yesterday,
        )
        .values(current=0)
        .execution_options(synchronize_session=False)
    )
    count = result.rowcount or 0
    session.expire_all()
    logger.info("Reset %d broken login streaks", count)
    return count
