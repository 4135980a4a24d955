"""
steward.engine.badges — Badge Criteria Evaluation
==================================================

Handler-registry implementation of badge eligibility.  Each criteria type
maps to a pure handler that reads one metric out of a :class:`BadgeContext`
snapshot; the metric is then compared against the badge's target with the
badge's operator.

``custom`` badges have no handler and are never auto-awarded; they are
granted by an admin.

This module is pure calculation — no database I/O.
"""

from __future__ import annotations

import logging
import operator
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from steward.database.models import CriteriaType, Timeframe

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Badge Context: one stats snapshot per evaluation pass
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class BadgeContext:
    """Snapshot of the user's metrics, taken once per check.

    Parameters
    ----------
    points : Current points balance.
    login_streak : Current consecutive-day login streak.
    counts : ``(criteria_type, timeframe) → value`` for every metric the
        active badges ask about (post/comment/event/course counts and
        windowed points sums).
    """

    points: int = 0
    login_streak: int = 0
    counts: dict[tuple[str, str], int] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Operators
# ---------------------------------------------------------------------------
OPERATORS: dict[str, Callable[[Any, Any], bool]] = {
    ">=": operator.ge,
    ">": operator.gt,
    "=": operator.eq,
    "<": operator.lt,
    "<=": operator.le,
}


def compare(value: float, op: str, target: float) -> bool:
    """Apply *op*.  Unknown operators never qualify."""
    fn = OPERATORS.get(op)
    if fn is None:
        return False
    return fn(value, target)


# ---------------------------------------------------------------------------
# Metric handlers: (timeframe, ctx) → value
# ---------------------------------------------------------------------------
def _points(timeframe: str, ctx: BadgeContext) -> int:
    if timeframe == Timeframe.ALL_TIME:
        return ctx.points
    return ctx.counts.get((CriteriaType.POINTS, timeframe), 0)


def _streak(timeframe: str, ctx: BadgeContext) -> int:
    return ctx.login_streak


def _counter(criteria_type: str) -> Callable[[str, BadgeContext], int]:
    def handler(timeframe: str, ctx: BadgeContext) -> int:
        return ctx.counts.get((criteria_type, timeframe), 0)
    return handler


METRIC_HANDLERS: dict[str, Callable[[str, BadgeContext], int]] = {
    CriteriaType.POINTS: _points,
    CriteriaType.POSTS: _counter(CriteriaType.POSTS),
    CriteriaType.COMMENTS: _counter(CriteriaType.COMMENTS),
    CriteriaType.COURSES: _counter(CriteriaType.COURSES),
    CriteriaType.EVENTS: _counter(CriteriaType.EVENTS),
    CriteriaType.STREAK: _streak,
    # CriteriaType.CUSTOM intentionally omitted: admin-granted only
}

# Metrics that come from a count query (everything but raw points/streak)
COUNTED_METRICS: frozenset[str] = frozenset({
    CriteriaType.POSTS,
    CriteriaType.COMMENTS,
    CriteriaType.COURSES,
    CriteriaType.EVENTS,
})


def window_start(timeframe: str, now: datetime) -> datetime | None:
    """Start of the calendar window for *timeframe* (``None`` for all-time).

    Windows are aligned to UTC calendar boundaries: today, this ISO week
    (from Monday), this month.
    """
    midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)
    if timeframe == Timeframe.DAILY:
        return midnight
    if timeframe == Timeframe.WEEKLY:
        return midnight - timedelta(days=midnight.weekday())
    if timeframe == Timeframe.MONTHLY:
        return midnight.replace(day=1)
    return None


# ---------------------------------------------------------------------------
# Evaluation
# ---------------------------------------------------------------------------
def badge_qualifies(badge: Any, ctx: BadgeContext) -> bool:
    """True if *badge*'s criteria hold for *ctx*."""
    handler = METRIC_HANDLERS.get(badge.criteria_type)
    if handler is None:
        return False
    timeframe = badge.criteria_timeframe or Timeframe.ALL_TIME
    return compare(handler(timeframe, ctx), badge.criteria_operator, badge.criteria_value)


def eligible_badges(
    badges: Iterable[Any],
    ctx: BadgeContext,
    already_earned: set[int],
) -> list[Any]:
    """Badges newly satisfied by *ctx*.

    Each badge is judged against the same snapshot; earning one badge in
    this pass never makes another qualify in the same pass.
    """
    newly: list[Any] = []
    for badge in badges:
        if badge.id in already_earned or not badge.is_active:
            continue
        if badge_qualifies(badge, ctx):
            newly.append(badge)
            logger.debug("Badge criteria met: %s (id=%d)", badge.name, badge.id)
    return newly
