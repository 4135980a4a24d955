"""
tests/test_moderation_service.py — Review Queue & Sanctions
============================================================
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest
from conftest import make_user
from sqlalchemy import select
from sqlalchemy.orm import Session

from steward.database.models import AdminLog, ContentItem, MemberWarning, ModerationRecord
from steward.engine.gate import ModerationGate
from steward.errors import NotFoundError
from steward.services.moderation_service import (
    ban_user,
    get_standing,
    issue_warning,
    lift_sanctions,
    pending_reviews,
    rescan_content,
    review_content,
    suspend_user,
)

ADMIN = 900


def _content(engine, author_id, *, flagged=False, record=True, body="hi", created_at=None):
    with Session(engine) as session:
        item = ContentItem(kind="post", author_id=author_id, body=body)
        if created_at is not None:
            item.created_at = created_at
        if record:
            item.moderation = ModerationRecord(
                is_approved=not flagged,
                flagged=flagged,
                issues=["profanity"] if flagged else [],
                severity=3 if flagged else 0,
                original_content="raw text" if flagged else None,
            )
        session.add(item)
        session.commit()
        return item.id


def _logs(engine) -> list[AdminLog]:
    with Session(engine) as session:
        return list(session.scalars(select(AdminLog).order_by(AdminLog.id)).all())


class TestReviewContent:
    def test_approve_flagged_item(self, db_engine):
        uid = make_user(db_engine)
        cid = _content(db_engine, uid, flagged=True)

        outcome = review_content(db_engine, cid, "approve", ADMIN, "false positive")

        assert outcome.is_approved
        assert outcome.author_id == uid
        with Session(db_engine) as session:
            record = session.get(ModerationRecord, cid)
            assert record.is_approved
            assert record.moderated_by == ADMIN
            assert record.moderated_at is not None
            assert record.notes == "false positive"
        (log,) = _logs(db_engine)
        assert log.action_type == "REVIEW_APPROVE"
        assert log.before_snapshot["is_approved"] is False
        assert log.after_snapshot["is_approved"] is True
        assert log.reason == "false positive"

    def test_reject(self, db_engine):
        uid = make_user(db_engine)
        cid = _content(db_engine, uid)
        outcome = review_content(db_engine, cid, "reject", ADMIN)
        assert not outcome.is_approved
        assert _logs(db_engine)[0].action_type == "REVIEW_REJECT"

    def test_creates_missing_record(self, db_engine):
        uid = make_user(db_engine)
        cid = _content(db_engine, uid, record=False)
        review_content(db_engine, cid, "reject", ADMIN)
        with Session(db_engine) as session:
            assert session.get(ModerationRecord, cid).is_approved is False

    def test_invalid_action(self, db_engine):
        with pytest.raises(ValueError):
            review_content(db_engine, 1, "escalate", ADMIN)

    def test_missing_content(self, db_engine):
        with pytest.raises(NotFoundError) as exc:
            review_content(db_engine, 404, "approve", ADMIN)
        assert exc.value.entity == "Content"


class TestPendingReviews:
    def test_flagged_unreviewed_oldest_first(self, db_engine):
        uid = make_user(db_engine)
        base = datetime(2026, 3, 1, tzinfo=UTC)
        newer = _content(db_engine, uid, flagged=True, created_at=base + timedelta(hours=2))
        older = _content(db_engine, uid, flagged=True, created_at=base)
        _content(db_engine, uid)
        reviewed = _content(db_engine, uid, flagged=True, created_at=base + timedelta(hours=1))
        review_content(db_engine, reviewed, "approve", ADMIN)

        queue = pending_reviews(db_engine)

        assert [p.content_id for p in queue] == [older, newer]
        assert queue[0].issues == ("profanity",)
        assert queue[0].original_content == "raw text"


class TestSanctions:
    def test_warning_does_not_block(self, db_engine):
        uid = make_user(db_engine)
        sanction = issue_warning(db_engine, uid, ADMIN, "be nice")
        assert sanction.type == "warning"
        assert sanction.expires_at is None
        assert get_standing(db_engine, uid).allowed
        assert _logs(db_engine)[0].action_type == "WARNING"

    def test_suspension_blocks_until_expiry(self, db_engine):
        uid = make_user(db_engine)
        sanction = suspend_user(db_engine, uid, ADMIN, "cool off", days=3)

        standing = get_standing(db_engine, uid)
        assert not standing.allowed
        assert standing.kind == "suspension"
        assert standing.reason == "cool off"

        later = sanction.expires_at + timedelta(seconds=1)
        assert get_standing(db_engine, uid, later).allowed

    def test_suspension_length_must_be_positive(self, db_engine):
        uid = make_user(db_engine)
        with pytest.raises(ValueError):
            suspend_user(db_engine, uid, ADMIN, "x", days=0)

    def test_ban_blocks(self, db_engine):
        uid = make_user(db_engine)
        ban_user(db_engine, uid, ADMIN, "spam ring")
        standing = get_standing(db_engine, uid)
        assert standing.kind == "ban"
        assert _logs(db_engine)[0].action_type == "BANNED"

    def test_lift_keeps_plain_warnings(self, db_engine):
        uid = make_user(db_engine)
        issue_warning(db_engine, uid, ADMIN, "first")
        suspend_user(db_engine, uid, ADMIN, "second")
        ban_user(db_engine, uid, ADMIN, "third")

        assert lift_sanctions(db_engine, uid, ADMIN, "appeal granted") == 2
        assert get_standing(db_engine, uid).allowed
        with Session(db_engine) as session:
            active = session.scalars(
                select(MemberWarning.type).where(MemberWarning.is_active.is_(True))
            ).all()
        assert active == ["warning"]
        lifts = [log for log in _logs(db_engine) if log.action_type == "LIFT_SANCTION"]
        assert len(lifts) == 2
        assert all(log.after_snapshot["is_active"] is False for log in lifts)

    def test_lift_with_nothing_active(self, db_engine):
        uid = make_user(db_engine)
        assert lift_sanctions(db_engine, uid, ADMIN) == 0

    def test_sanction_unknown_user(self, db_engine):
        with pytest.raises(NotFoundError):
            ban_user(db_engine, 404, ADMIN, "x")

    def test_standing_unknown_user(self, db_engine):
        with pytest.raises(NotFoundError):
            get_standing(db_engine, 404)


def _stored(engine, content_id) -> tuple[str, ModerationRecord | None]:
    with Session(engine) as session:
        item = session.get(ContentItem, content_id)
        return item.body, item.moderation


class TestRescanContent:
    def test_requires_ids(self, db_engine):
        with pytest.raises(ValueError):
            rescan_content(db_engine, ModerationGate(), [])

    def test_newly_flagged_item_is_cleaned_and_held(self, db_engine):
        uid = make_user(db_engine)
        cid = _content(db_engine, uid, body="This is a damn good idea")

        summary = rescan_content(db_engine, ModerationGate(), [cid])

        assert summary.total == 1
        assert summary.flagged == 1
        (result,) = summary.results
        assert result.issues == ("profanity",)
        body, record = _stored(db_engine, cid)
        assert body == "This is a **** good idea"
        assert record.original_content == "This is a damn good idea"
        assert record.flagged
        assert record.severity == 3
        assert record.is_approved is False

    def test_block_overrides_earlier_approval(self, db_engine):
        uid = make_user(db_engine)
        cid = _content(db_engine, uid, body="I will kill you")
        review_content(db_engine, cid, "approve", ADMIN)

        summary = rescan_content(db_engine, ModerationGate(), [cid])

        assert summary.blocked == 1
        _, record = _stored(db_engine, cid)
        assert record.is_approved is False
        assert "hate_speech" in record.issues

    def test_flag_keeps_earlier_approval(self, db_engine):
        uid = make_user(db_engine)
        cid = _content(db_engine, uid, body="damn fine work")
        review_content(db_engine, cid, "approve", ADMIN)

        rescan_content(db_engine, ModerationGate(), [cid])

        _, record = _stored(db_engine, cid)
        assert record.flagged
        assert record.is_approved is True

    def test_kept_original_is_rescanned(self, db_engine):
        uid = make_user(db_engine)
        with Session(db_engine) as session:
            item = ContentItem(kind="post", author_id=uid, body="**** it")
            item.moderation = ModerationRecord(
                is_approved=False, flagged=True, issues=["profanity"],
                severity=3, original_content="damn it",
            )
            session.add(item)
            session.commit()
            cid = item.id

        (result,) = rescan_content(db_engine, ModerationGate(), [cid]).results

        assert result.issues == ("profanity",)
        body, record = _stored(db_engine, cid)
        assert body == "**** it"
        assert record.original_content == "damn it"

    def test_clean_item_unchanged(self, db_engine):
        uid = make_user(db_engine)
        flagged = _content(db_engine, uid, flagged=True, body="hi")
        bare = _content(db_engine, uid, record=False, body="lovely day")

        summary = rescan_content(db_engine, ModerationGate(), [flagged, bare])

        assert summary.clean == 2
        body, record = _stored(db_engine, flagged)
        assert body == "hi"
        assert record.flagged
        assert record.original_content == "raw text"
        assert _stored(db_engine, bare)[1] is None

    def test_skips_attachments_and_unknown_ids(self, db_engine):
        uid = make_user(db_engine)
        with Session(db_engine) as session:
            item = ContentItem(
                kind="message", author_id=uid, body="https://cdn.example/damn.png",
                message_type="image",
            )
            session.add(item)
            session.commit()
            attachment = item.id
        text = _content(db_engine, uid, body="damn")

        summary = rescan_content(
            db_engine, ModerationGate(), [attachment, text, text, 404], batch_size=1,
        )

        assert [r.content_id for r in summary.results] == [text]
        assert _stored(db_engine, attachment)[1] is None
