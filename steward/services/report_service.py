"""
steward.services.report_service — Member Reports
=================================================

Members report content (or other members) to the moderators; moderators
work the resulting queue.

Filing a report (:func:`report_content`):

* the reason must be one of :class:`ReportReason`
* nobody may report themselves or their own content
* one open report per reporter per target (a dismissed report may be refiled)
* at most ``MAX_REPORTS_PER_HOUR`` reports per reporter per rolling hour
* the reported text is run through the moderation gate; the verdict and the
  reason decide the priority, and content the gate would block is escalated
  straight away

Handling a report (:func:`handle_report`) applies one moderator action.
Sanctions and content removal go through the moderation desk helpers, so
they are audited exactly like the direct admin paths, in the same
transaction as the report update.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

from sqlalchemy import case, func, select
from sqlalchemy.orm import Session

from steward.database.models import (
    ContentItem,
    ContentKind,
    Report,
    ReportPriority,
    ReportReason,
    ReportStatus,
    User,
    WarningType,
)
from steward.engine.gate import GateDecision, ModerationGate
from steward.engine.standing import as_utc
from steward.engine.text_moderation import redact_personal_info
from steward.errors import NotFoundError, ReportRateLimited, ReportRejected, StewardError
from steward.services.audit import log_admin_action, row_to_dict
from steward.services.moderation_service import (
    DEFAULT_SUSPENSION_DAYS,
    Sanction,
    apply_review,
    record_sanction,
    suspension_expiry,
)

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)

REPORT_REASONS = tuple(r.value for r in ReportReason)
REPORT_TARGETS = (*(k.value for k in ContentKind), "user")
REPORT_ACTIONS = (
    "dismiss", "warn_user", "remove_content", "suspend_user", "ban_user", "escalate",
)

MAX_REPORTS_PER_HOUR = 10
DESCRIPTION_MAX_LENGTH = 1000
BULK_MAX_REPORTS = 50

SEVERITY_SCALE = {"low": 2, "medium": 5, "high": 8, "critical": 10}

URGENT_REASONS = frozenset({ReportReason.VIOLENCE, ReportReason.SELF_HARM})
HIGH_PRIORITY_REASONS = frozenset({
    ReportReason.HATE_SPEECH,
    ReportReason.VIOLENCE,
    ReportReason.SELF_HARM,
    ReportReason.ILLEGAL_ACTIVITY,
})

REVIEW_WINDOWS = {
    ReportPriority.URGENT: "< 1 hour",
    ReportPriority.HIGH: "< 24 hours",
}
_PRIORITY_RANK = {
    ReportPriority.URGENT.value: 0,
    ReportPriority.HIGH.value: 1,
    ReportPriority.MEDIUM.value: 2,
    ReportPriority.LOW.value: 3,
}

AUTO_ESCALATION_REASON = "Auto-escalated: the moderation gate blocks the reported content"

# action → (resolution text, sanction kind)
_RESOLUTIONS: dict[str, tuple[str, WarningType | None]] = {
    "dismiss": ("Report dismissed", None),
    "warn_user": ("User warned", WarningType.WARNING),
    "remove_content": ("Content removed", None),
    "suspend_user": ("User suspended", WarningType.SUSPENSION),
    "ban_user": ("User banned", WarningType.BANNED),
}


@dataclass(frozen=True, slots=True)
class FiledReport:
    report_id: int
    reporter_id: int
    reported_user_id: int | None
    content_type: str
    content_id: int
    reason: str
    status: str
    priority: str
    severity: int
    escalated: bool
    issues: tuple[str, ...]
    created_at: datetime

    @property
    def review_window(self) -> str:
        """Expected moderator turnaround for the report's priority."""
        return REVIEW_WINDOWS.get(self.priority, "< 72 hours")


@dataclass(frozen=True, slots=True)
class ReportOutcome:
    report_id: int
    action: str
    status: str
    priority: str
    reported_user_id: int | None
    resolution: str | None = None
    sanction: Sanction | None = None
    removed_content_id: int | None = None


@dataclass(frozen=True, slots=True)
class BulkReportOutcome:
    succeeded: tuple[ReportOutcome, ...] = ()
    failed: tuple[tuple[int, str], ...] = ()


# ---------------------------------------------------------------------------
# Priority
# ---------------------------------------------------------------------------
def report_priority(
    reason: str, severity: str = "medium", decision: GateDecision | None = None,
) -> ReportPriority:
    """Priority of a new report.

    Violence and self-harm are urgent.  Other serious reasons, a high
    reporter severity or content the gate blocks are high.  Everything
    else is medium.
    """
    if reason in URGENT_REASONS:
        return ReportPriority.URGENT
    if reason in HIGH_PRIORITY_REASONS or severity in ("high", "critical"):
        return ReportPriority.HIGH
    if decision is not None and decision.should_block:
        return ReportPriority.HIGH
    return ReportPriority.MEDIUM


def _record_action(
    report: Report, moderator_id: int | None, action: str, reason: str | None, now: datetime,
) -> None:
    entry = {
        "moderator": moderator_id,
        "action": action,
        "reason": reason,
        "at": now.isoformat(),
    }
    # Reassign so the JSON column is marked dirty
    report.actions = [*(report.actions or []), entry]


def _filed(report: Report) -> FiledReport:
    snapshot = report.moderation_snapshot or {}
    return FiledReport(
        report_id=report.id,
        reporter_id=report.reporter_id,
        reported_user_id=report.reported_user_id,
        content_type=report.content_type,
        content_id=report.content_id,
        reason=report.reason,
        status=report.status,
        priority=report.priority,
        severity=report.severity,
        escalated=any(a.get("action") == "escalated" for a in report.actions or ()),
        issues=tuple(snapshot.get("issues") or ()),
        created_at=as_utc(report.created_at),
    )


def _escalate(
    report: Report, moderator_id: int | None, reason: str | None, now: datetime,
) -> None:
    report.priority = ReportPriority.URGENT.value
    _record_action(report, moderator_id, "escalated", reason, now)


# ---------------------------------------------------------------------------
# Filing
# ---------------------------------------------------------------------------
def _resolve_target(
    session: Session, content_type: str, content_id: int,
) -> tuple[int, str | None]:
    """Owner of the target and the text to moderate (``None`` for users)."""
    if content_type == "user":
        if session.get(User, content_id) is None:
            raise NotFoundError("User", content_id)
        return content_id, None

    item = session.get(ContentItem, content_id)
    if item is None or item.kind != content_type:
        raise NotFoundError("Content", content_id)
    record = item.moderation
    original = record.original_content if record is not None else None
    return item.author_id, original or item.body


def report_content(
    engine: Engine,
    reporter_id: int,
    content_type: str,
    content_id: int,
    reason: str,
    description: str = "",
    *,
    severity: str = "medium",
    gate: ModerationGate | None = None,
    now: datetime | None = None,
) -> FiledReport:
    """File a report against a content item or a member.

    Raises
    ------
    ValueError
        Unknown reason, target type or severity, or an over-long description.
    NotFoundError
        The reporter or the target does not exist.
    ReportRejected
        Self-report, or an open report by the same reporter already exists.
    ReportRateLimited
        The reporter reached the hourly report limit.
    """
    if reason not in REPORT_REASONS:
        raise ValueError(f"Invalid report reason {reason!r}")
    if content_type not in REPORT_TARGETS:
        raise ValueError(f"Invalid report target {content_type!r}")
    if severity not in SEVERITY_SCALE:
        raise ValueError(f"Invalid report severity {severity!r}")
    description = (description or "").strip()
    if len(description) > DESCRIPTION_MAX_LENGTH:
        raise ValueError(f"Description is limited to {DESCRIPTION_MAX_LENGTH} characters")

    gate = gate or ModerationGate()
    now = as_utc(now) or datetime.now(UTC)

    with Session(engine) as session:
        if session.get(User, reporter_id) is None:
            raise NotFoundError("User", reporter_id)

        reported_user_id, text = _resolve_target(session, content_type, content_id)
        if reported_user_id == reporter_id:
            raise ReportRejected("You cannot report your own content")

        open_report = session.scalar(
            select(Report.id).where(
                Report.reporter_id == reporter_id,
                Report.content_type == content_type,
                Report.content_id == content_id,
                Report.status != ReportStatus.DISMISSED,
            ).limit(1)
        )
        if open_report is not None:
            raise ReportRejected("You have already reported this content")

        recent = session.scalar(
            select(func.count()).select_from(Report).where(
                Report.reporter_id == reporter_id,
                Report.created_at >= now - timedelta(hours=1),
            )
        ) or 0
        if recent >= MAX_REPORTS_PER_HOUR:
            raise ReportRateLimited(
                "Too many reports in the last hour. Please wait before reporting again."
            )

        decision = None
        if text:
            decision = gate.moderate(text, content_type, actor=reported_user_id)

        report = Report(
            reporter_id=reporter_id,
            reported_user_id=reported_user_id,
            content_type=content_type,
            content_id=content_id,
            reason=reason,
            description=redact_personal_info(description),
            status=ReportStatus.PENDING.value,
            priority=report_priority(reason, severity, decision).value,
            severity=SEVERITY_SCALE[severity],
            moderation_snapshot=None if decision is None else {
                "should_block": decision.should_block,
                "should_flag": decision.should_flag,
                "severity": decision.severity,
                "issues": list(decision.issues),
            },
            content_snapshot=text,
            actions=[],
            created_at=now,
        )
        if decision is not None and decision.should_block:
            _escalate(report, None, AUTO_ESCALATION_REASON, now)
        session.add(report)
        session.flush()

        filed = _filed(report)
        session.commit()

    logger.info(
        "User %d reported %s %d (%s, priority %s)",
        reporter_id, content_type, content_id, reason, filed.priority,
    )
    return filed


# ---------------------------------------------------------------------------
# Handling
# ---------------------------------------------------------------------------
def handle_report(
    engine: Engine,
    report_id: int,
    action: str,
    admin_id: int,
    reason: str | None = None,
    *,
    days: int = DEFAULT_SUSPENSION_DAYS,
) -> ReportOutcome:
    """Apply one moderator *action* to an open report.

    ``escalate`` raises the priority to urgent and leaves the report open;
    every other action closes it (``dismiss`` as dismissed, the rest as
    resolved).

    Raises
    ------
    ValueError
        Unknown action, ``remove_content`` on a member report, or a
        non-positive suspension length.
    NotFoundError
        The report does not exist.
    ReportRejected
        The report was already resolved or dismissed.
    """
    if action not in REPORT_ACTIONS:
        raise ValueError(f"Invalid report action {action!r}")

    now = datetime.now(UTC)
    with Session(engine) as session:
        report = session.get(Report, report_id, with_for_update=True)
        if report is None:
            raise NotFoundError("Report", report_id)
        if report.status in (ReportStatus.RESOLVED, ReportStatus.DISMISSED):
            raise ReportRejected("Report has already been handled")
        if action == "remove_content" and report.content_type == "user":
            raise ValueError("remove_content applies to content reports only")

        before = row_to_dict(report)
        sanction = None
        removed = None
        if action == "escalate":
            _escalate(report, admin_id, reason, now)
        else:
            _record_action(report, admin_id, action, reason, now)
            resolution, kind = _RESOLUTIONS[action]
            if kind is not None and report.reported_user_id is not None:
                sanction = record_sanction(
                    session,
                    user_id=report.reported_user_id,
                    admin_id=admin_id,
                    kind=kind,
                    reason=reason,
                    expires_at=(
                        suspension_expiry(days, now)
                        if kind == WarningType.SUSPENSION else None
                    ),
                )
            if action == "remove_content":
                item = session.get(ContentItem, report.content_id)
                if item is not None:
                    apply_review(session, item, "reject", admin_id, reason or resolution)
                    removed = item.id

            report.status = (
                ReportStatus.DISMISSED.value if action == "dismiss"
                else ReportStatus.RESOLVED.value
            )
            report.resolved_by = admin_id
            report.resolved_at = now
            report.resolution = resolution
            report.action_taken = reason
        session.flush()

        log_admin_action(
            session,
            actor_id=admin_id,
            action_type=f"REPORT_{action.upper()}",
            target_table="reports",
            target_id=report.id,
            before=before,
            after=row_to_dict(report),
            reason=reason,
        )
        outcome = ReportOutcome(
            report_id=report.id,
            action=action,
            status=report.status,
            priority=report.priority,
            reported_user_id=report.reported_user_id,
            resolution=report.resolution,
            sanction=sanction,
            removed_content_id=removed,
        )
        session.commit()

    logger.info("Report %d handled by admin %d: %s", report_id, admin_id, action)
    return outcome


def handle_reports(
    engine: Engine,
    report_ids: Sequence[int],
    action: str,
    admin_id: int,
    reason: str | None = None,
    *,
    days: int = DEFAULT_SUSPENSION_DAYS,
) -> BulkReportOutcome:
    """Apply *action* to up to ``BULK_MAX_REPORTS`` reports, one transaction each.

    A report that cannot be handled is listed in ``failed`` with the reason;
    it does not stop the rest.
    """
    if not report_ids:
        raise ValueError("report_ids must not be empty")
    if len(report_ids) > BULK_MAX_REPORTS:
        raise ValueError(f"At most {BULK_MAX_REPORTS} reports can be handled at once")
    if action not in REPORT_ACTIONS:
        raise ValueError(f"Invalid report action {action!r}")

    succeeded: list[ReportOutcome] = []
    failed: list[tuple[int, str]] = []
    for report_id in report_ids:
        try:
            succeeded.append(
                handle_report(engine, report_id, action, admin_id, reason, days=days)
            )
        except (StewardError, ValueError) as exc:
            failed.append((report_id, str(exc)))

    logger.info(
        "Bulk %s by admin %d: %d handled, %d failed",
        action, admin_id, len(succeeded), len(failed),
    )
    return BulkReportOutcome(succeeded=tuple(succeeded), failed=tuple(failed))


def open_reports(engine: Engine, limit: int = 50) -> list[FiledReport]:
    """Unhandled reports, most urgent first and oldest first within a priority."""
    urgency = case(_PRIORITY_RANK, value=Report.priority, else_=len(_PRIORITY_RANK))
    with Session(engine) as session:
        rows = session.scalars(
            select(Report)
            .where(Report.status.in_([ReportStatus.PENDING, ReportStatus.REVIEWING]))
            .order_by(urgency, Report.created_at, Report.id)
            .limit(limit)
        ).all()
        return [_filed(report) for report in rows]
