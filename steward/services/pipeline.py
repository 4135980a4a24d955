"""
steward.services.pipeline — Submission Pipeline
================================================

The order every content submission goes through:

    1. Standing   — banned / suspended authors are rejected (AccessDenied)
    2. Gate       — blocked content is rejected (PolicyViolation); nothing
                    is written in any form
    3. Persist    — content (cleaned text when flagged) + moderation record
    4. Points     — the action's catalogue value, plus post-streak bonuses
    5. Badges     — one evaluation pass over a fresh snapshot

Notifications (flagged content, level-ups, badges) are emitted after the
data is committed and are never awaited.

The database work is synchronous SQLAlchemy; each unit of work runs on a
worker thread via :func:`run_db` so the event loop stays responsive.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import date
from typing import TYPE_CHECKING

from sqlalchemy.orm import Session

from steward.config import StewardConfig
from steward.constants import CONTENT_ACTIONS, POINT_VALUES
from steward.database.engine import run_db
from steward.database.models import ContentItem, ContentKind, ModerationRecord, StreakType
from steward.engine.gate import GateDecision, ModerationGate, record_fields
from steward.engine.image_moderation import ImageModerator
from steward.errors import AccessDenied, PolicyViolation
from steward.services import moderation_service, report_service, reward_service
from steward.services.badge_service import (
    BadgeCheckResult,
    EarnedBadge,
    check_eligibility,
    grant_badge,
)
from steward.services.notifier import (
    BADGE_EARNED,
    CONTENT_FLAGGED,
    CONTENT_REPORTED,
    CONTENT_REVIEWED,
    LEVEL_UP,
    REPORT_HANDLED,
    REWARD_CLAIMED,
    USER_SANCTIONED,
    NotificationDispatcher,
)
from steward.services.points_service import PointsChange, add_points
from steward.services.streak_service import StreakUpdate, update_streak

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)

FILTERED_MESSAGE = "Content was filtered for community guidelines"


@dataclass(frozen=True, slots=True)
class SubmissionResult:
    """What the request layer needs to build its success response."""

    content_id: int
    kind: str
    content: str
    flagged: bool
    issues: tuple[str, ...] = ()
    severity: int = 0
    points_changes: tuple[PointsChange, ...] = ()
    badges: tuple[EarnedBadge, ...] = ()
    provider_notes: tuple[str, ...] = ()

    @property
    def message(self) -> str | None:
        return FILTERED_MESSAGE if self.flagged else None


@dataclass(frozen=True, slots=True)
class LoginResult:
    streak: StreakUpdate
    points_changes: tuple[PointsChange, ...] = ()
    badges: tuple[EarnedBadge, ...] = ()


class SubmissionPipeline:
    """Standing → Gate → persist → points → badges, with notifications.

    Parameters
    ----------
    engine : SQLAlchemy engine.
    gate : The moderation gate.
    dispatcher : Notification dispatcher (injected; never awaited).
    config : Loaded configuration.
    """

    def __init__(
        self,
        engine: Engine,
        gate: ModerationGate,
        dispatcher: NotificationDispatcher,
        config: StewardConfig | None = None,
    ) -> None:
        self.engine = engine
        self.gate = gate
        self.dispatcher = dispatcher
        self.config = config or StewardConfig()

    @classmethod
    def from_config(cls, engine: Engine, config: StewardConfig) -> SubmissionPipeline:
        """Wire the gate, image classifier and dispatcher from *config*."""
        gate = ModerationGate(
            config.moderation, image_moderator=ImageModerator(config.images),
        )
        dispatcher = NotificationDispatcher.from_settings(config.notifications)
        return cls(engine, gate, dispatcher, config)

    # ------------------------------------------------------------------
    # Content submission
    # ------------------------------------------------------------------
    async def submit(
        self,
        user_id: int,
        kind: str,
        content: str | None,
        *,
        images: Sequence[str] = (),
        message_type: str = "text",
        parent_id: int | None = None,
    ) -> SubmissionResult:
        """Run one submission through the full pipeline.

        Raises
        ------
        AccessDenied
            The author is banned or currently suspended.
        PolicyViolation
            The gate blocked the content.
        NotFoundError
            The author does not exist.
        """
        standing = await run_db(moderation_service.get_standing, self.engine, user_id)
        if not standing.allowed:
            logger.info("Rejected %s from user %d: %s", kind, user_id, standing.kind)
            raise AccessDenied(standing)

        decision = await self.gate.moderate_submission(
            content, kind, images=images, message_type=message_type, actor=user_id,
        )
        if decision.should_block:
            raise PolicyViolation(
                decision.issues, decision.severity,
                decision.reason or "Content violates community guidelines",
            )

        content_id, changes = await run_db(
            self._persist, user_id, kind, content or "", decision,
            list(images), message_type, parent_id,
        )
        badge_result = await run_db(check_eligibility, self.engine, user_id)

        if decision.should_flag:
            self.dispatcher.emit(CONTENT_FLAGGED, {
                "content_id": content_id,
                "kind": kind,
                "author_id": user_id,
                "issues": list(decision.issues),
                "severity": decision.severity,
            })
        all_changes = (*changes, *badge_result.points_changes)
        self._announce(all_changes, badge_result)

        return SubmissionResult(
            content_id=content_id,
            kind=kind,
            content=decision.cleaned_content,
            flagged=decision.should_flag,
            issues=decision.issues,
            severity=decision.severity,
            points_changes=all_changes,
            badges=badge_result.earned,
            provider_notes=decision.provider_notes,
        )

    def _persist(
        self,
        user_id: int,
        kind: str,
        original: str,
        decision: GateDecision,
        images: list[str],
        message_type: str,
        parent_id: int | None,
    ) -> tuple[int, tuple[PointsChange, ...]]:
        with Session(self.engine) as session:
            item = ContentItem(
                kind=kind,
                author_id=user_id,
                parent_id=parent_id,
                body=decision.cleaned_content,
                message_type=message_type,
                images=images or None,
            )
            item.moderation = ModerationRecord(**record_fields(decision, original))
            session.add(item)
            session.flush()

            changes: list[PointsChange] = []
            if kind in CONTENT_ACTIONS:
                action, reason = CONTENT_ACTIONS[kind]
                changes.append(add_points(session, user_id, POINT_VALUES[action], reason))
            if kind == ContentKind.POST:
                streak = update_streak(session, user_id, StreakType.POST)
                if streak.points_change is not None:
                    changes.append(streak.points_change)

            content_id = item.id
            session.commit()
        return content_id, tuple(changes)

    # ------------------------------------------------------------------
    # Gamification entry points
    # ------------------------------------------------------------------
    async def check_badges(self, user_id: int) -> BadgeCheckResult:
        """Re-evaluate badges for *user_id* and announce new ones."""
        result = await run_db(check_eligibility, self.engine, user_id)
        self._announce(result.points_changes, result)
        return result

    async def award_points(self, user_id: int, delta: int, reason: str) -> PointsChange:
        """Apply a manual point delta, then re-evaluate badges."""
        change = await run_db(self._add_points, user_id, delta, reason)
        self._announce((change,), None)
        await self.check_badges(user_id)
        return change

    def _add_points(self, user_id: int, delta: int, reason: str) -> PointsChange:
        with Session(self.engine) as session:
            change = add_points(session, user_id, delta, reason)
            session.commit()
        return change

    async def record_login(self, user_id: int, today: date | None = None) -> LoginResult:
        """Advance the login streak; the first login of a day earns points."""
        streak, changes = await run_db(self._record_login, user_id, today)
        badge_result = await run_db(check_eligibility, self.engine, user_id)
        all_changes = (*changes, *badge_result.points_changes)
        self._announce(all_changes, badge_result)
        return LoginResult(streak=streak, points_changes=all_changes, badges=badge_result.earned)

    def _record_login(
        self, user_id: int, today: date | None,
    ) -> tuple[StreakUpdate, tuple[PointsChange, ...]]:
        with Session(self.engine) as session:
            streak = update_streak(session, user_id, StreakType.LOGIN, today)
            changes: list[PointsChange] = []
            if streak.advanced:
                changes.append(
                    add_points(session, user_id, POINT_VALUES["DAILY_LOGIN"], "Daily login")
                )
            if streak.points_change is not None:
                changes.append(streak.points_change)
            session.commit()
        return streak, tuple(changes)

    async def grant_badge(self, badge_id: int, user_id: int, admin_id: int) -> BadgeCheckResult:
        result = await run_db(grant_badge, self.engine, badge_id, user_id, admin_id)
        self._announce(result.points_changes, result)
        return result

    async def claim_reward(self, user_id: int, reward_id: int) -> reward_service.ClaimResult:
        result = await run_db(reward_service.claim_reward, self.engine, user_id, reward_id)
        self.dispatcher.emit(REWARD_CLAIMED, {
            "user_id": user_id,
            "reward_id": reward_id,
            "reward_name": result.reward_name,
            "points_spent": result.points_spent,
            "remaining_points": result.remaining_points,
        })
        return result

    # ------------------------------------------------------------------
    # Admin entry points
    # ------------------------------------------------------------------
    async def review_content(
        self, content_id: int, action: str, admin_id: int, notes: str = "",
    ) -> moderation_service.ReviewOutcome:
        outcome = await run_db(
            moderation_service.review_content, self.engine, content_id, action, admin_id, notes,
        )
        self.dispatcher.emit(CONTENT_REVIEWED, {
            "content_id": outcome.content_id,
            "kind": outcome.kind,
            "author_id": outcome.author_id,
            "action": outcome.action,
            "is_approved": outcome.is_approved,
            "moderated_by": admin_id,
            "notes": outcome.notes,
        })
        # An approved post can complete a post-count badge
        if outcome.is_approved:
            await self.check_badges(outcome.author_id)
        return outcome

    async def issue_sanction(
        self,
        user_id: int,
        admin_id: int,
        kind: str,
        reason: str,
        *,
        days: int = moderation_service.DEFAULT_SUSPENSION_DAYS,
    ) -> moderation_service.Sanction:
        """Issue a ``warning``, ``suspension`` or ``ban``."""
        if kind == "warning":
            sanction = await run_db(
                moderation_service.issue_warning, self.engine, user_id, admin_id, reason,
            )
        elif kind == "suspension":
            sanction = await run_db(
                moderation_service.suspend_user, self.engine, user_id, admin_id, reason, days,
            )
        elif kind == "ban":
            sanction = await run_db(
                moderation_service.ban_user, self.engine, user_id, admin_id, reason,
            )
        else:
            raise ValueError(f"Unknown sanction kind: {kind!r}")

        self._announce_sanction(sanction)
        return sanction

    async def rescan_content(
        self, content_ids: Sequence[int],
    ) -> moderation_service.RescanSummary:
        """Re-run the gate over stored items and flag what now fails it."""
        summary = await run_db(
            moderation_service.rescan_content, self.engine, self.gate, list(content_ids),
        )
        for result in summary.results:
            if result.should_flag or result.should_block:
                self.dispatcher.emit(CONTENT_FLAGGED, {
                    "content_id": result.content_id,
                    "issues": list(result.issues),
                    "severity": result.severity,
                    "rescan": True,
                })
        return summary

    # ------------------------------------------------------------------
    # Member reports
    # ------------------------------------------------------------------
    async def report_content(
        self,
        reporter_id: int,
        content_type: str,
        content_id: int,
        reason: str,
        description: str = "",
        *,
        severity: str = "medium",
    ) -> report_service.FiledReport:
        """File a member report; the reported text goes through the gate."""
        filed = await run_db(
            report_service.report_content, self.engine, reporter_id, content_type,
            content_id, reason, description, severity=severity, gate=self.gate,
        )
        self.dispatcher.emit(CONTENT_REPORTED, {
            "report_id": filed.report_id,
            "reporter_id": filed.reporter_id,
            "reported_user_id": filed.reported_user_id,
            "content_type": filed.content_type,
            "content_id": filed.content_id,
            "reason": filed.reason,
            "priority": filed.priority,
            "escalated": filed.escalated,
        })
        return filed

    async def handle_report(
        self,
        report_id: int,
        action: str,
        admin_id: int,
        reason: str | None = None,
        *,
        days: int = moderation_service.DEFAULT_SUSPENSION_DAYS,
    ) -> report_service.ReportOutcome:
        outcome = await run_db(
            report_service.handle_report, self.engine, report_id, action, admin_id,
            reason, days=days,
        )
        self.dispatcher.emit(REPORT_HANDLED, {
            "report_id": outcome.report_id,
            "action": outcome.action,
            "status": outcome.status,
            "priority": outcome.priority,
            "reported_user_id": outcome.reported_user_id,
            "handled_by": admin_id,
        })
        if outcome.sanction is not None:
            self._announce_sanction(outcome.sanction)
        return outcome

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------
    def _announce_sanction(self, sanction: moderation_service.Sanction) -> None:
        self.dispatcher.emit(USER_SANCTIONED, {
            "user_id": sanction.user_id,
            "type": sanction.type,
            "reason": sanction.reason,
            "issued_by": sanction.issued_by,
            "expires_at": sanction.expires_at.isoformat() if sanction.expires_at else None,
        })

    def _announce(
        self,
        changes: Iterable[PointsChange],
        badges: BadgeCheckResult | None,
    ) -> None:
        for change in changes:
            if change.leveled_up:
                self.dispatcher.emit(LEVEL_UP, {
                    "user_id": change.user_id,
                    "old_level": change.old_level,
                    "new_level": change.new_level,
                    "points": change.points,
                })
        if badges is None:
            return
        for badge in badges.earned:
            self.dispatcher.emit(BADGE_EARNED, {
                "user_id": badges.user_id,
                "badge_id": badge.badge_id,
                "name": badge.name,
                "icon": badge.icon,
                "rarity": badge.rarity,
                "reward_points": badge.reward_points,
            })
