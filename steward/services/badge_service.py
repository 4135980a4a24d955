"""
steward.services.badge_service — Badge Snapshot & Idempotent Awarding
======================================================================

Loads the active badges a user has not yet earned, takes ONE snapshot of
the user's metrics, evaluates every badge against that snapshot and awards
the qualifying ones.

Awards are insert-if-absent on the ``badge_awards`` primary key
``(badge_id, user_id)``: the insert runs in a SAVEPOINT, and an
``IntegrityError`` means a concurrent evaluation got there first.  That is
a normal no-op, not an error, and no bonus points are paid twice.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from sqlalchemy import func, insert, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from steward.database.models import (
    Achievement,
    Badge,
    BadgeAward,
    ContentItem,
    ContentKind,
    CourseEnrollment,
    CriteriaType,
    EventAttendance,
    ModerationRecord,
    PointsHistory,
    Timeframe,
    User,
)
from steward.engine.badges import COUNTED_METRICS, BadgeContext, eligible_badges, window_start
from steward.errors import NotFoundError
from steward.services.audit import log_admin_action
from steward.services.points_service import PointsChange, add_points
from steward.services.streak_service import current_streak

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class EarnedBadge:
    badge_id: int
    name: str
    icon: str
    rarity: str
    reward_points: int


@dataclass(frozen=True, slots=True)
class BadgeCheckResult:
    """Badges newly earned in one pass, plus the bonus-point changes they caused."""

    user_id: int
    earned: tuple[EarnedBadge, ...] = ()
    points_changes: tuple[PointsChange, ...] = ()


# ---------------------------------------------------------------------------
# Snapshot
# ---------------------------------------------------------------------------
def get_earned_badge_ids(session: Session, user_id: int) -> set[int]:
    """Set of badge IDs the user already holds."""
    rows = session.scalars(
        select(BadgeAward.badge_id).where(BadgeAward.user_id == user_id)
    ).all()
    return set(rows)


def _count_metric(
    session: Session, user_id: int, criteria_type: str, since: datetime | None,
) -> int:
    if criteria_type == CriteriaType.POSTS:
        stmt = (
            select(func.count())
            .select_from(ContentItem)
            .join(ModerationRecord, ModerationRecord.content_id == ContentItem.id)
            .where(
                ContentItem.author_id == user_id,
                ContentItem.kind == ContentKind.POST,
                ModerationRecord.is_approved.is_(True),
            )
        )
        if since is not None:
            stmt = stmt.where(ContentItem.created_at >= since)
    elif criteria_type == CriteriaType.COMMENTS:
        stmt = select(func.count()).select_from(ContentItem).where(
            ContentItem.author_id == user_id,
            ContentItem.kind == ContentKind.COMMENT,
        )
        if since is not None:
            stmt = stmt.where(ContentItem.created_at >= since)
    elif criteria_type == CriteriaType.EVENTS:
        stmt = select(func.count()).select_from(EventAttendance).where(
            EventAttendance.user_id == user_id,
        )
        if since is not None:
            stmt = stmt.where(EventAttendance.attended_at >= since)
    elif criteria_type == CriteriaType.COURSES:
        stmt = select(func.count()).select_from(CourseEnrollment).where(
            CourseEnrollment.user_id == user_id,
            CourseEnrollment.progress == 100,
        )
        if since is not None:
            stmt = stmt.where(CourseEnrollment.updated_at >= since)
    else:
        return 0
    return session.scalar(stmt) or 0


def _points_in_window(session: Session, user_id: int, since: datetime | None) -> int:
    stmt = select(func.coalesce(func.sum(PointsHistory.points), 0)).where(
        PointsHistory.user_id == user_id,
    )
    if since is not None:
        stmt = stmt.where(PointsHistory.timestamp >= since)
    return session.scalar(stmt) or 0


def build_context(
    session: Session,
    user: User,
    badges: list[Badge],
    now: datetime | None = None,
) -> BadgeContext:
    """Snapshot only the metrics that *badges* ask about."""
    now = now or datetime.now(UTC)
    counts: dict[tuple[str, str], int] = {}
    for badge in badges:
        key = (badge.criteria_type, badge.criteria_timeframe or Timeframe.ALL_TIME)
        if key in counts:
            continue
        since = window_start(key[1], now)
        if key[0] == CriteriaType.POINTS and since is not None:
            counts[key] = _points_in_window(session, user.id, since)
        elif key[0] in COUNTED_METRICS:
            counts[key] = _count_metric(session, user.id, key[0], since)

    return BadgeContext(
        points=user.points,
        login_streak=current_streak(session, user.id),
        counts=counts,
    )


# ---------------------------------------------------------------------------
# Award
# ---------------------------------------------------------------------------
def award_badge(
    session: Session,
    badge: Badge,
    user_id: int,
    *,
    granted_by: int | None = None,
) -> PointsChange | bool:
    """Insert-if-absent award of *badge* to *user_id*.

    Returns ``False`` when the user already held the badge (nothing
    changed), otherwise the bonus :class:`PointsChange`, or ``True`` when
    the badge carries no bonus.  The caller owns the transaction.
    """
    try:
        with session.begin_nested():   # SAVEPOINT
            session.execute(
                insert(BadgeAward).values(
                    badge_id=badge.id,
                    user_id=user_id,
                    earned_at=datetime.now(UTC),
                    granted_by=granted_by,
                )
            )
    except IntegrityError:
        # Already earned: the SAVEPOINT was rolled back, the outer txn lives on
        logger.debug("Badge %d already held by user %d", badge.id, user_id)
        return False

    session.add(Achievement(
        user_id=user_id,
        badge_id=badge.id,
        title=badge.name,
        description=badge.description,
        icon=badge.icon,
    ))
    logger.info("Badge earned: %s (id=%d) by user %d", badge.name, badge.id, user_id)

    if badge.reward_points > 0:
        return add_points(session, user_id, badge.reward_points, f"Earned badge: {badge.name}")
    return True


def _earned(badge: Badge) -> EarnedBadge:
    return EarnedBadge(
        badge_id=badge.id,
        name=badge.name,
        icon=badge.icon,
        rarity=badge.rarity,
        reward_points=badge.reward_points,
    )


def check_badges(session: Session, user_id: int, now: datetime | None = None) -> BadgeCheckResult:
    """Evaluate and award badges within the caller's transaction."""
    user = session.get(User, user_id)
    if user is None:
        raise NotFoundError("User", user_id)

    earned_ids = get_earned_badge_ids(session, user_id)
    candidates = [
        b for b in session.scalars(
            select(Badge)
            .where(Badge.is_active.is_(True))
            .order_by(Badge.sort_order, Badge.id)
        ).all()
        if b.id not in earned_ids
    ]
    if not candidates:
        return BadgeCheckResult(user_id=user_id)

    ctx = build_context(session, user, candidates, now)
    earned: list[EarnedBadge] = []
    changes: list[PointsChange] = []
    for badge in eligible_badges(candidates, ctx, earned_ids):
        outcome = award_badge(session, badge, user_id)
        if outcome is False:
            continue
        earned.append(_earned(badge))
        if isinstance(outcome, PointsChange):
            changes.append(outcome)

    return BadgeCheckResult(user_id=user_id, earned=tuple(earned), points_changes=tuple(changes))


def check_eligibility(engine: Engine, user_id: int) -> BadgeCheckResult:
    """Run one badge evaluation pass for *user_id* in its own transaction."""
    with Session(engine) as session:
        result = check_badges(session, user_id)
        session.commit()
        return result


def grant_badge(engine: Engine, badge_id: int, user_id: int, admin_id: int) -> BadgeCheckResult:
    """Manually award a badge (any criteria type, including ``custom``).

    Granting a badge the user already holds is a no-op with an empty result.

    Raises
    ------
    NotFoundError
        If the badge or the user does not exist.
    """
    with Session(engine) as session:
        badge = session.get(Badge, badge_id)
        if badge is None:
            raise NotFoundError("Badge", badge_id)
        if session.get(User, user_id) is None:
            raise NotFoundError("User", user_id)

        outcome = award_badge(session, badge, user_id, granted_by=admin_id)
        if outcome is False:
            session.commit()
            return BadgeCheckResult(user_id=user_id)

        log_admin_action(
            session,
            actor_id=admin_id,
            action_type="GRANT_BADGE",
            target_table="badge_awards",
            target_id=f"{badge_id}:{user_id}",
            before=None,
            after={"badge_id": badge_id, "user_id": user_id, "granted_by": admin_id},
        )
        changes = (outcome,) if isinstance(outcome, PointsChange) else ()
        result = BadgeCheckResult(
            user_id=user_id, earned=(_earned(badge),), points_changes=changes,
        )
        session.commit()
        return result
