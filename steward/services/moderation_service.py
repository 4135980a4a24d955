"""
steward.services.moderation_service — Admin Moderation Desk
============================================================

Review queue, member sanctions and batch rescans.  Every admin mutation
writes an ``admin_log`` row with before/after snapshots in the same
transaction as the change.

* ``review_content``  — approve / reject a flagged item
* ``issue_warning``   — plain warning (never blocks posting)
* ``suspend_user``    — time-boxed posting block (default 7 days)
* ``ban_user``        — permanent posting block
* ``lift_sanctions``  — deactivate active suspensions and bans
* ``pending_reviews`` — flagged items nobody has reviewed yet
* ``rescan_content``  — re-run the gate over stored items
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

from sqlalchemy import select
from sqlalchemy.orm import Session

from steward.database.models import (
    ContentItem,
    ContentKind,
    MemberWarning,
    ModerationRecord,
    User,
    WarningType,
)
from steward.engine.gate import ModerationGate
from steward.engine.standing import Standing, check_standing
from steward.errors import NotFoundError
from steward.services.audit import log_admin_action, row_to_dict

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)

REVIEW_ACTIONS = ("approve", "reject")
DEFAULT_SUSPENSION_DAYS = 7
RESCAN_BATCH_SIZE = 50


@dataclass(frozen=True, slots=True)
class ReviewOutcome:
    content_id: int
    kind: str
    author_id: int
    action: str
    is_approved: bool
    moderated_by: int
    moderated_at: datetime
    notes: str


@dataclass(frozen=True, slots=True)
class Sanction:
    warning_id: int
    user_id: int
    type: str
    reason: str | None
    issued_by: int
    issued_at: datetime
    expires_at: datetime | None


@dataclass(frozen=True, slots=True)
class PendingReview:
    content_id: int
    kind: str
    author_id: int
    body: str
    original_content: str | None
    issues: tuple[str, ...]
    severity: int
    created_at: datetime


@dataclass(frozen=True, slots=True)
class RescanResult:
    content_id: int
    should_block: bool
    should_flag: bool
    severity: int
    issues: tuple[str, ...]


@dataclass(frozen=True, slots=True)
class RescanSummary:
    results: tuple[RescanResult, ...] = ()

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def blocked(self) -> int:
        return sum(1 for r in self.results if r.should_block)

    @property
    def flagged(self) -> int:
        return sum(1 for r in self.results if r.should_flag)

    @property
    def clean(self) -> int:
        return sum(1 for r in self.results if r.severity == 0)


# ---------------------------------------------------------------------------
# Standing lookup
# ---------------------------------------------------------------------------
def load_standing(session: Session, user_id: int, now: datetime | None = None) -> Standing:
    """Standing of *user_id* from their active sanctions.

    Raises
    ------
    NotFoundError
        If the user does not exist.
    """
    if session.get(User, user_id) is None:
        raise NotFoundError("User", user_id)
    warnings = session.scalars(
        select(MemberWarning).where(
            MemberWarning.user_id == user_id,
            MemberWarning.is_active.is_(True),
        )
    ).all()
    return check_standing(warnings, now)


def get_standing(engine: Engine, user_id: int, now: datetime | None = None) -> Standing:
    with Session(engine) as session:
        return load_standing(session, user_id, now)


# ---------------------------------------------------------------------------
# Content review
# ---------------------------------------------------------------------------
def apply_review(
    session: Session,
    item: ContentItem,
    action: str,
    admin_id: int,
    notes: str = "",
) -> ReviewOutcome:
    """Overwrite *item*'s moderation record and audit it; the caller commits."""
    if action not in REVIEW_ACTIONS:
        raise ValueError(f"Invalid review action {action!r}; use 'approve' or 'reject'")

    record = item.moderation
    if record is None:
        record = ModerationRecord(content_id=item.id, issues=[], severity=0)
        session.add(record)
        session.flush()
    before = row_to_dict(record)

    now = datetime.now(UTC)
    record.is_approved = action == "approve"
    record.moderated_by = admin_id
    record.moderated_at = now
    record.notes = notes or ""
    session.flush()

    log_admin_action(
        session,
        actor_id=admin_id,
        action_type=f"REVIEW_{action.upper()}",
        target_table="moderation_records",
        target_id=item.id,
        before=before,
        after=row_to_dict(record),
        reason=notes or None,
    )
    return ReviewOutcome(
        content_id=item.id,
        kind=item.kind,
        author_id=item.author_id,
        action=action,
        is_approved=record.is_approved,
        moderated_by=admin_id,
        moderated_at=now,
        notes=record.notes,
    )


def review_content(
    engine: Engine,
    content_id: int,
    action: str,
    admin_id: int,
    notes: str = "",
) -> ReviewOutcome:
    """Approve or reject a content item, overwriting its moderation record.

    Raises
    ------
    ValueError
        If *action* is not ``"approve"`` or ``"reject"``.
    NotFoundError
        If the content item does not exist.
    """
    if action not in REVIEW_ACTIONS:
        raise ValueError(f"Invalid review action {action!r}; use 'approve' or 'reject'")

    with Session(engine) as session:
        item = session.get(ContentItem, content_id)
        if item is None:
            raise NotFoundError("Content", content_id)
        outcome = apply_review(session, item, action, admin_id, notes)
        session.commit()

    logger.info("Content %d %sd by admin %d", content_id, action, admin_id)
    return outcome


def pending_reviews(engine: Engine, limit: int = 50) -> list[PendingReview]:
    """Flagged items awaiting review, oldest first."""
    with Session(engine) as session:
        rows = session.execute(
            select(ContentItem, ModerationRecord)
            .join(ModerationRecord, ModerationRecord.content_id == ContentItem.id)
            .where(
                ModerationRecord.flagged.is_(True),
                ModerationRecord.moderated_at.is_(None),
            )
            .order_by(ContentItem.created_at, ContentItem.id)
            .limit(limit)
        ).all()
        return [
            PendingReview(
                content_id=item.id,
                kind=item.kind,
                author_id=item.author_id,
                body=item.body,
                original_content=record.original_content,
                issues=tuple(record.issues or ()),
                severity=record.severity,
                created_at=item.created_at,
            )
            for item, record in rows
        ]


# ---------------------------------------------------------------------------
# Sanctions
# ---------------------------------------------------------------------------
def record_sanction(
    session: Session,
    *,
    user_id: int,
    admin_id: int,
    kind: WarningType,
    reason: str | None,
    expires_at: datetime | None,
) -> Sanction:
    """Append a MemberWarning row and audit it; the caller commits."""
    if session.get(User, user_id) is None:
        raise NotFoundError("User", user_id)

    warning = MemberWarning(
        user_id=user_id,
        type=kind.value,
        reason=reason,
        issued_by=admin_id,
        issued_at=datetime.now(UTC),
        expires_at=expires_at,
        is_active=True,
    )
    session.add(warning)
    session.flush()
    log_admin_action(
        session,
        actor_id=admin_id,
        action_type=kind.value.upper(),
        target_table="user_warnings",
        target_id=warning.id,
        before=None,
        after=row_to_dict(warning),
        reason=reason,
    )
    return Sanction(
        warning_id=warning.id,
        user_id=user_id,
        type=warning.type,
        reason=reason,
        issued_by=admin_id,
        issued_at=warning.issued_at,
        expires_at=expires_at,
    )


def suspension_expiry(days: int, now: datetime | None = None) -> datetime:
    if days <= 0:
        raise ValueError("Suspension length must be at least one day")
    return (now or datetime.now(UTC)) + timedelta(days=days)


def _add_sanction(engine: Engine, **kwargs) -> Sanction:
    with Session(engine) as session:
        sanction = record_sanction(session, **kwargs)
        session.commit()

    logger.info(
        "User %d received %s from admin %d",
        sanction.user_id, sanction.type, sanction.issued_by,
    )
    return sanction


def issue_warning(engine: Engine, user_id: int, admin_id: int, reason: str) -> Sanction:
    return _add_sanction(
        engine, user_id=user_id, admin_id=admin_id,
        kind=WarningType.WARNING, reason=reason, expires_at=None,
    )


def suspend_user(
    engine: Engine,
    user_id: int,
    admin_id: int,
    reason: str,
    days: int = DEFAULT_SUSPENSION_DAYS,
) -> Sanction:
    """Block posting for *days* days from now."""
    return _add_sanction(
        engine, user_id=user_id, admin_id=admin_id,
        kind=WarningType.SUSPENSION, reason=reason,
        expires_at=suspension_expiry(days),
    )


def ban_user(engine: Engine, user_id: int, admin_id: int, reason: str) -> Sanction:
    return _add_sanction(
        engine, user_id=user_id, admin_id=admin_id,
        kind=WarningType.BANNED, reason=reason, expires_at=None,
    )


def lift_sanctions(
    engine: Engine, user_id: int, admin_id: int, reason: str | None = None,
) -> int:
    """Deactivate the user's active suspensions and bans.

    Plain warnings stay on record.  Returns the number of rows deactivated.
    """
    with Session(engine) as session:
        if session.get(User, user_id) is None:
            raise NotFoundError("User", user_id)

        active = session.scalars(
            select(MemberWarning).where(
                MemberWarning.user_id == user_id,
                MemberWarning.is_active.is_(True),
                MemberWarning.type.in_([WarningType.SUSPENSION, WarningType.BANNED]),
            )
        ).all()
        for warning in active:
            before = row_to_dict(warning)
            warning.is_active = False
            session.flush()
            log_admin_action(
                session,
                actor_id=admin_id,
                action_type="LIFT_SANCTION",
                target_table="user_warnings",
                target_id=warning.id,
                before=before,
                after=row_to_dict(warning),
                reason=reason,
            )
        session.commit()

    if active:
        logger.info("Admin %d lifted %d sanctions on user %d", admin_id, len(active), user_id)
    return len(active)


# ---------------------------------------------------------------------------
# Batch re-moderation
# ---------------------------------------------------------------------------
def rescan_content(
    engine: Engine,
    gate: ModerationGate,
    content_ids: Sequence[int],
    *,
    batch_size: int = RESCAN_BATCH_SIZE,
) -> RescanSummary:
    """Re-run the text gate over stored items and update their records.

    Used after the lexicon or thresholds change.  The pre-cleaning text is
    rescanned when the record kept it.  A flagging or blocking verdict
    marks the record flagged and, the first time, stores the cleaned body
    with the original kept aside.  Blocked items are unapproved even if an
    admin approved them earlier; flagged items are held for review only
    while nobody has reviewed them.  Clean verdicts change nothing.
    Attachment messages and unknown IDs are skipped.

    Raises
    ------
    ValueError
        If *content_ids* is empty.
    """
    ids = list(dict.fromkeys(content_ids))
    if not ids:
        raise ValueError("content_ids must not be empty")

    results: list[RescanResult] = []
    for start in range(0, len(ids), batch_size):
        batch = ids[start:start + batch_size]
        with Session(engine) as session:
            items = session.scalars(
                select(ContentItem)
                .where(ContentItem.id.in_(batch))
                .order_by(ContentItem.id)
            ).all()
            for item in items:
                if item.kind == ContentKind.MESSAGE and item.message_type != "text":
                    continue
                results.append(_rescan_item(session, gate, item))
            session.commit()

    summary = RescanSummary(results=tuple(results))
    logger.info(
        "Rescanned %d items: %d blocked, %d flagged, %d clean",
        summary.total, summary.blocked, summary.flagged, summary.clean,
    )
    return summary


def _rescan_item(session: Session, gate: ModerationGate, item: ContentItem) -> RescanResult:
    record = item.moderation
    text = (record.original_content if record is not None else None) or item.body

    decision = gate.moderate(text, item.kind, actor=item.author_id)
    if decision.should_block or decision.should_flag:
        if record is None:
            record = ModerationRecord(is_approved=True, flagged=False, severity=0)
            item.moderation = record
        record.issues = list(decision.issues)
        record.severity = decision.severity
        record.flagged = True
        if record.original_content is None:
            record.original_content = item.body
            item.body = decision.cleaned_content
        if decision.should_block or record.moderated_at is None:
            record.is_approved = False

    return RescanResult(
        content_id=item.id,
        should_block=decision.should_block,
        should_flag=decision.should_flag,
        severity=decision.severity,
        issues=decision.issues,
    )
