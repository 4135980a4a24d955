"""
tests/test_points_service.py — Atomic Points & Level Updates
=============================================================

Uses an in-memory SQLite database via the shared conftest fixtures.
"""

from __future__ import annotations

import pytest
from conftest import make_user
from sqlalchemy import select
from sqlalchemy.orm import Session

from steward.constants import level_for_points
from steward.database.models import POINTS_REASON_MAX, PointsHistory, User
from steward.errors import NotFoundError
from steward.services.points_service import add_points, award_action, journal_reason


def _user(engine, user_id) -> User:
    with Session(engine) as session:
        return session.get(User, user_id)


class TestAddPoints:
    def test_delta_applied_and_journaled(self, db_engine):
        uid = make_user(db_engine)
        with Session(db_engine) as session:
            change = add_points(session, uid, 5, "Created post")
            session.commit()

        assert change.points == 5
        assert change.delta == 5
        assert not change.level_changed
        with Session(db_engine) as session:
            history = session.scalars(select(PointsHistory)).all()
            assert [(h.action, h.points) for h in history] == [("Created post", 5)]

    def test_level_flips_at_threshold(self, db_engine):
        uid = make_user(db_engine, points=95)
        with Session(db_engine) as session:
            change = add_points(session, uid, 5, "Created post")
            session.commit()

        assert change.points == 100
        assert change.old_level == "New Member"
        assert change.new_level == "Builder"
        assert change.leveled_up
        assert _user(db_engine, uid).level == "Builder"

    def test_balance_clamped_at_zero(self, db_engine):
        uid = make_user(db_engine, points=10)
        with Session(db_engine) as session:
            change = add_points(session, uid, -50, "Penalty")
            session.commit()

        assert change.points == 0
        assert _user(db_engine, uid).points == 0
        with Session(db_engine) as session:
            entry = session.scalar(select(PointsHistory))
            assert entry.points == -50

    def test_level_drops_with_balance(self, db_engine):
        uid = make_user(db_engine, points=260, level="Overcomer")
        with Session(db_engine) as session:
            change = add_points(session, uid, -20, "Claimed reward: Mug")
            session.commit()

        assert change.new_level == "Builder"
        assert change.level_changed
        assert not change.leveled_up

    def test_sequential_deltas_accumulate(self, db_engine):
        uid = make_user(db_engine)
        with Session(db_engine) as session:
            for _ in range(4):
                add_points(session, uid, 30, "Attended event")
            session.commit()
        user = _user(db_engine, uid)
        assert user.points == 120
        assert user.level == "Builder"

    def test_loaded_instance_is_refreshed(self, db_engine):
        uid = make_user(db_engine)
        with Session(db_engine) as session:
            user = session.get(User, uid)
            assert user.points == 0
            add_points(session, uid, 7, "Bonus")
            assert user.points == 7

    def test_unknown_user(self, db_engine):
        with Session(db_engine) as session:
            with pytest.raises(NotFoundError):
                add_points(session, 999, 5, "Created post")


class TestAwardAction:
    def test_catalogue_value(self, db_engine):
        uid = make_user(db_engine)
        with Session(db_engine) as session:
            change = award_action(session, uid, "COMMENT_POST", "Added comment")
            session.commit()
        assert change.points == 3

    def test_unknown_action(self, db_engine):
        uid = make_user(db_engine)
        with Session(db_engine) as session:
            with pytest.raises(ValueError):
                award_action(session, uid, "TELEPORT", "nope")


class TestMonotonicity:
    @pytest.mark.parametrize(("start", "n"), [(40, 25), (0, 60), (10, 25), (300, 300)])
    def test_add_then_remove_restores_balance(self, db_engine, start, n):
        uid = make_user(db_engine, points=start, level=level_for_points(start))
        with Session(db_engine) as session:
            up = add_points(session, uid, n, "Bonus")
            down = add_points(session, uid, -n, "Bonus reversed")
            session.commit()

        assert up.points == start + n
        assert down.points == start
        assert down.new_level == level_for_points(start)
        assert _user(db_engine, uid).points == start

    def test_remove_below_zero_then_add_back(self, db_engine):
        uid = make_user(db_engine, points=10)
        with Session(db_engine) as session:
            down = add_points(session, uid, -25, "Penalty")
            up = add_points(session, uid, 25, "Penalty reversed")
            session.commit()

        # The clamp absorbs the deficit, so reversing lands above the start
        assert down.points == 0
        assert up.points == 25
        with Session(db_engine) as session:
            journal = session.scalars(
                select(PointsHistory.points).order_by(PointsHistory.id)
            ).all()
        assert journal == [-25, 25]

    def test_balance_never_decreases_on_positive_delta(self, db_engine):
        uid = make_user(db_engine)
        seen = []
        with Session(db_engine) as session:
            for delta in (5, 0, 12, 1, 30):
                seen.append(add_points(session, uid, delta, "Created post").points)
            session.commit()
        assert seen == sorted(seen)
        assert seen[-1] == 48


class TestJournalReason:
    def test_long_reason_is_ellipsised(self, db_engine):
        uid = make_user(db_engine)
        with Session(db_engine) as session:
            add_points(session, uid, 5, "x" * 500)
            session.commit()
        with Session(db_engine) as session:
            entry = session.scalar(select(PointsHistory))
        assert len(entry.action) == POINTS_REASON_MAX
        assert entry.action.endswith("…")

    def test_short_reason_untouched(self):
        assert journal_reason("Created post") == "Created post"
        assert journal_reason("y" * POINTS_REASON_MAX) == "y" * POINTS_REASON_MAX
