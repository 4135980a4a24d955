"""
steward.constants — Shared Constants & Helpers
===============================================

Single source of truth for the level tiers and per-action point values.
Import from here instead of duplicating in services and tests.
"""

from __future__ import annotations

# ---------------------------------------------------------------------------
# Level tiers
# ---------------------------------------------------------------------------
# (tier name, minimum points), ascending.  A tier runs up to one point below
# the next tier's minimum; the last tier is open-ended.
LEVEL_THRESHOLDS: list[tuple[str, int]] = [
    ("New Member", 0),
    ("Builder", 100),
    ("Overcomer", 250),
    ("Mentor-in-Training", 500),
    ("Legacy Leader", 750),
]

LEVEL_NAMES: list[str] = [name for name, _ in LEVEL_THRESHOLDS]
DEFAULT_LEVEL = LEVEL_NAMES[0]


def level_for_points(points: int) -> str:
    """Return the tier name for a points total.

    The transition is exact at each threshold: 99 is "New Member",
    100 is "Builder".
    """
    level = DEFAULT_LEVEL
    for name, minimum in LEVEL_THRESHOLDS:
        if points >= minimum:
            level = name
    return level


def level_rank(level: str | None) -> int:
    """Position of *level* in the tier ladder (-1 for unknown names)."""
    try:
        return LEVEL_NAMES.index(level)
    except ValueError:
        return -1


def next_level_info(points: int) -> dict:
    """Progress towards the next tier.

    Returns a dict with ``is_max_level``, ``current_level``, ``next_level``,
    ``points_to_next`` and ``progress`` (0–100).
    """
    current = level_for_points(points)
    index = LEVEL_NAMES.index(current)
    if index == len(LEVEL_THRESHOLDS) - 1:
        return {
            "is_max_level": True,
            "current_level": current,
            "next_level": None,
            "points_to_next": 0,
            "progress": 100.0,
        }

    current_min = LEVEL_THRESHOLDS[index][1]
    next_name, next_min = LEVEL_THRESHOLDS[index + 1]
    progress = (points - current_min) / (next_min - current_min) * 100
    return {
        "is_max_level": False,
        "current_level": current,
        "next_level": next_name,
        "points_to_next": next_min - points,
        "progress": min(100.0, max(0.0, progress)),
    }


# ---------------------------------------------------------------------------
# Point values per qualifying action
# ---------------------------------------------------------------------------
POINT_VALUES: dict[str, int] = {
    "ACCOUNT_REGISTRATION": 10,
    "DAILY_LOGIN": 2,
    "CREATE_POST": 5,
    "COMMENT_POST": 3,
    "LIKE_POST": 1,
    "SUBMIT_FEEDBACK": 5,
    "RESPOND_FEEDBACK": 3,
    "RSVP_EVENT": 5,
    "ATTEND_EVENT": 15,
    "COMPLETE_MODULE": 10,
    "COMPLETE_COURSE": 50,
    "JOIN_CHALLENGE": 5,
    "DAILY_CHALLENGE_TASK": 5,
    "COMPLETE_CHALLENGE": 25,
    "PROFILE_COMPLETION": 15,
    "SHARE_RESOURCE": 10,
}

# Points awarded for publishing each kind of content.  Messages earn nothing.
CONTENT_ACTIONS: dict[str, tuple[str, str]] = {
    "post": ("CREATE_POST", "Created post"),
    "comment": ("COMMENT_POST", "Added comment"),
    "feedback": ("SUBMIT_FEEDBACK", "Submitted feedback"),
}

CONTENT_KINDS: tuple[str, ...] = ("post", "comment", "message", "feedback")
