"""
steward.database.seed — Default Badge Catalogue
================================================

Baseline badges inserted on first startup so members can start earning
right away.  Idempotent — a badge is only inserted when no badge with the
same name exists, so admin edits are never overwritten.
"""

from __future__ import annotations

import logging

from sqlalchemy import Engine, select
from sqlalchemy.orm import Session

from steward.database.models import Badge

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Default badges
# ---------------------------------------------------------------------------
# name → (description, icon, category, rarity, criteria_type, value, reward_points)
DEFAULT_BADGES: dict[str, tuple[str, str, str, str, str, int, int]] = {
    "First Steps": (
        "Published your first approved post", "\U0001f463",
        "Engagement", "Common", "posts", 1, 10,
    ),
    "Conversation Starter": (
        "Added 10 comments", "\U0001f4ac", "Community", "Common", "comments", 10, 15,
    ),
    "Builder": (
        "Reached 100 points", "\U0001f9f1", "Achievement", "Uncommon", "points", 100, 20,
    ),
    "Overcomer": (
        "Reached 250 points", "⛰️", "Achievement", "Rare", "points", 250, 25,
    ),
    "Lifelong Learner": (
        "Completed 3 courses", "\U0001f4da", "Learning", "Rare", "courses", 3, 50,
    ),
    "Event Enthusiast": (
        "Attended 5 events", "\U0001f4c5", "Community", "Uncommon", "events", 5, 40,
    ),
    "Weekly Warrior": (
        "Achieved a 7-day login streak", "\U0001f525", "Streak", "Uncommon", "streak", 7, 25,
    ),
    "Monthly Master": (
        "Achieved a 30-day login streak", "\U0001f525", "Streak", "Epic", "streak", 30, 100,
    ),
}


# ---------------------------------------------------------------------------
# Seeder
# ---------------------------------------------------------------------------
def seed_default_badges(engine: Engine) -> int:
    """Insert default badges that don't yet exist.  Returns the insert count."""
    inserted = 0
    with Session(engine) as session:
        existing = set(session.scalars(select(Badge.name)).all())
        for order, (name, spec) in enumerate(DEFAULT_BADGES.items()):
            if name in existing:
                continue
            description, icon, category, rarity, ctype, value, reward = spec
            session.add(Badge(
                name=name,
                description=description,
                icon=icon,
                category=category,
                rarity=rarity,
                criteria_type=ctype,
                criteria_value=value,
                criteria_operator=">=",
                reward_points=reward,
                sort_order=order,
            ))
            inserted += 1
        session.commit()

    if inserted:
        logger.info("Seeded %d default badges.", inserted)
    return inserted
