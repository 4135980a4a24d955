"""
steward.database.models — SQLAlchemy 2.0 Data Models
=====================================================

Tables:
- users              — Community members (points, level, role)
- user_warnings      — Warnings, suspensions and bans (append-only)
- user_streaks       — Per-user login / post / event streak counters
- points_history     — Append-only points journal
- content_items      — Posts, comments, messages and feedback
- moderation_records — One moderation record per content item
- badges             — Admin-defined badges with award criteria
- badge_awards       — Earned badges (one row per user per badge)
- achievements       — The user's achievement list
- course_enrollments — Course progress (source of the ``courses`` metric)
- event_attendance   — Attended events (source of the ``events`` metric)
- rewards            — Redeemable rewards priced in points
- reward_claims      — Reward redemptions
- reports            — Member reports against content or other members
- admin_log          — Append-only audit trail

Records carry no behaviour; the engine and service modules own the rules.
"""

from __future__ import annotations

import enum
from datetime import UTC, date, datetime

from sqlalchemy import (
    BigInteger,
    Boolean,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from steward.constants import DEFAULT_LEVEL


POINTS_REASON_MAX = 200


def utcnow() -> datetime:
    return datetime.now(UTC)


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """Shared base for all Steward ORM models."""


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class ContentKind(enum.StrEnum):
    """Kinds of user-generated content that pass through the gate."""
    POST = "post"
    COMMENT = "comment"
    MESSAGE = "message"
    FEEDBACK = "feedback"


class WarningType(enum.StrEnum):
    WARNING = "warning"
    SUSPENSION = "suspension"
    BANNED = "banned"


class CriteriaType(enum.StrEnum):
    """The user metric a badge is judged on."""
    POINTS = "points"
    POSTS = "posts"
    COMMENTS = "comments"
    COURSES = "courses"
    EVENTS = "events"
    STREAK = "streak"
    CUSTOM = "custom"


class Timeframe(enum.StrEnum):
    ALL_TIME = "all-time"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class StreakType(enum.StrEnum):
    LOGIN = "login"
    POST = "post"
    EVENT = "event"


class ReportReason(enum.StrEnum):
    SPAM = "spam"
    HARASSMENT = "harassment"
    HATE_SPEECH = "hate_speech"
    INAPPROPRIATE_CONTENT = "inappropriate_content"
    MISINFORMATION = "misinformation"
    VIOLENCE = "violence"
    SELF_HARM = "self_harm"
    ILLEGAL_ACTIVITY = "illegal_activity"
    PERSONAL_INFORMATION = "personal_information"
    IMPERSONATION = "impersonation"
    COPYRIGHT = "copyright"
    OTHER = "other"


class ReportStatus(enum.StrEnum):
    PENDING = "pending"
    REVIEWING = "reviewing"
    RESOLVED = "resolved"
    DISMISSED = "dismissed"


class ReportPriority(enum.StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------
class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    username: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    display_name: Mapped[str | None] = mapped_column(String(100), default=None)
    role: Mapped[str] = mapped_column(String(20), nullable=False, default="user")
    points: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    level: Mapped[str] = mapped_column(String(30), nullable=False, default=DEFAULT_LEVEL)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow
    )

    # Relationships
    warnings: Mapped[list[MemberWarning]] = relationship(
        back_populates="user",
        cascade="all, delete-orphan",
        foreign_keys="MemberWarning.user_id",
        order_by="MemberWarning.issued_at",
    )
    points_history: Mapped[list[PointsHistory]] = relationship(
        back_populates="user", cascade="all, delete-orphan",
        order_by="PointsHistory.id",
    )
    achievements: Mapped[list[Achievement]] = relationship(
        back_populates="user", cascade="all, delete-orphan"
    )
    streaks: Mapped[list[UserStreak]] = relationship(
        back_populates="user", cascade="all, delete-orphan"
    )

    __table_args__ = (
        Index("ix_users_points_desc", "points"),
    )

    def __repr__(self) -> str:
        return f"<User id={self.id} username={self.username!r} level={self.level!r}>"


# ---------------------------------------------------------------------------
# MemberWarning: warnings, suspensions and bans
# ---------------------------------------------------------------------------
class MemberWarning(Base):
    """A sanction entry.  Rows are only ever appended or deactivated."""
    __tablename__ = "user_warnings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    type: Mapped[str] = mapped_column(String(20), nullable=False)
    reason: Mapped[str | None] = mapped_column(Text, default=None)
    issued_by: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    issued_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    expires_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    user: Mapped[User] = relationship(back_populates="warnings", foreign_keys=[user_id])

    __table_args__ = (
        Index("ix_user_warnings_user_active", "user_id", "is_active"),
    )

    def __repr__(self) -> str:
        return (
            f"<MemberWarning id={self.id} user={self.user_id} "
            f"type={self.type!r} active={self.is_active}>"
        )


# ---------------------------------------------------------------------------
# UserStreak: consecutive-day counters
# ---------------------------------------------------------------------------
class UserStreak(Base):
    __tablename__ = "user_streaks"

    user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    streak_type: Mapped[str] = mapped_column(String(20), primary_key=True)
    current: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    longest: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_update: Mapped[date | None] = mapped_column(Date, nullable=True)

    user: Mapped[User] = relationship(back_populates="streaks")

    def __repr__(self) -> str:
        return f"<UserStreak user={self.user_id} type={self.streak_type!r} current={self.current}>"


# ---------------------------------------------------------------------------
# PointsHistory: append-only points journal
# ---------------------------------------------------------------------------
class PointsHistory(Base):
    __tablename__ = "points_history"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    action: Mapped[str] = mapped_column(String(POINTS_REASON_MAX), nullable=False)
    points: Mapped[int] = mapped_column(Integer, nullable=False)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    user: Mapped[User] = relationship(back_populates="points_history")

    __table_args__ = (
        Index("ix_points_history_user_time", "user_id", "timestamp"),
    )

    def __repr__(self) -> str:
        return f"<PointsHistory user={self.user_id} action={self.action!r} points={self.points}>"


# ---------------------------------------------------------------------------
# ContentItem: posts, comments, messages, feedback
# ---------------------------------------------------------------------------
class ContentItem(Base):
    __tablename__ = "content_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    kind: Mapped[str] = mapped_column(String(20), nullable=False)
    author_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    # Comment → post, message → conversation partner, etc.
    parent_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    body: Mapped[str] = mapped_column(Text, nullable=False, default="")
    message_type: Mapped[str] = mapped_column(String(20), nullable=False, default="text")
    images: Mapped[list | None] = mapped_column(JSONB, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    moderation: Mapped[ModerationRecord | None] = relationship(
        back_populates="content", uselist=False, cascade="all, delete-orphan"
    )

    __table_args__ = (
        Index("ix_content_items_author_kind", "author_id", "kind", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<ContentItem id={self.id} kind={self.kind!r} author={self.author_id}>"


# ---------------------------------------------------------------------------
# ModerationRecord: attached to every persisted content item
# ---------------------------------------------------------------------------
class ModerationRecord(Base):
    __tablename__ = "moderation_records"

    content_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("content_items.id", ondelete="CASCADE"), primary_key=True
    )
    is_approved: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    flagged: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    issues: Mapped[list | None] = mapped_column(JSONB, nullable=True)
    severity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    original_content: Mapped[str | None] = mapped_column(Text, nullable=True)
    moderated_by: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    moderated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    notes: Mapped[str] = mapped_column(Text, nullable=False, default="")

    content: Mapped[ContentItem] = relationship(back_populates="moderation")

    __table_args__ = (
        Index("ix_moderation_records_flagged", "flagged", "moderated_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<ModerationRecord content={self.content_id} "
            f"approved={self.is_approved} flagged={self.flagged}>"
        )


# ---------------------------------------------------------------------------
# Badge: admin-defined recognition with typed criteria
# ---------------------------------------------------------------------------
class Badge(Base):
    __tablename__ = "badges"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False, unique=True)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    icon: Mapped[str] = mapped_column(String(50), nullable=False, default="")
    category: Mapped[str] = mapped_column(String(30), nullable=False, default="Achievement")
    rarity: Mapped[str] = mapped_column(String(20), nullable=False, default="Common")

    criteria_type: Mapped[str] = mapped_column(String(20), nullable=False)
    criteria_value: Mapped[float] = mapped_column(Float, nullable=False)
    criteria_operator: Mapped[str] = mapped_column(String(2), nullable=False, default=">=")
    criteria_timeframe: Mapped[str] = mapped_column(
        String(20), nullable=False, default=Timeframe.ALL_TIME.value
    )

    reward_points: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    sort_order: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    earned_by: Mapped[list[BadgeAward]] = relationship(
        back_populates="badge", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<Badge id={self.id} name={self.name!r}>"


# ---------------------------------------------------------------------------
# BadgeAward: the badge's earned-by set (unique per user)
# ---------------------------------------------------------------------------
class BadgeAward(Base):
    __tablename__ = "badge_awards"

    badge_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("badges.id", ondelete="CASCADE"), primary_key=True
    )
    user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    earned_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    granted_by: Mapped[int | None] = mapped_column(BigInteger, nullable=True)

    badge: Mapped[Badge] = relationship(back_populates="earned_by")

    def __repr__(self) -> str:
        return f"<BadgeAward badge={self.badge_id} user={self.user_id}>"


# ---------------------------------------------------------------------------
# Achievement: entries in the user's achievement list
# ---------------------------------------------------------------------------
class Achievement(Base):
    __tablename__ = "achievements"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    badge_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("badges.id", ondelete="SET NULL"), nullable=True
    )
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, default=None)
    icon: Mapped[str | None] = mapped_column(String(50), default=None)
    earned_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    user: Mapped[User] = relationship(back_populates="achievements")

    def __repr__(self) -> str:
        return f"<Achievement user={self.user_id} title={self.title!r}>"


# ---------------------------------------------------------------------------
# Course enrollments & event attendance: badge metric sources
# ---------------------------------------------------------------------------
class CourseEnrollment(Base):
    __tablename__ = "course_enrollments"

    user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    course_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    progress: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


class EventAttendance(Base):
    __tablename__ = "event_attendance"

    user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    event_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    attended_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


# ---------------------------------------------------------------------------
# Rewards: point redemption catalogue
# ---------------------------------------------------------------------------
class Reward(Base):
    __tablename__ = "rewards"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    points_cost: Mapped[int] = mapped_column(Integer, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    stock: Mapped[int] = mapped_column(Integer, nullable=False, default=-1)  # -1 = unlimited
    times_claimed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    max_per_user: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    level_required: Mapped[str | None] = mapped_column(String(30), nullable=True)
    starts_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    ends_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return f"<Reward id={self.id} name={self.name!r} cost={self.points_cost}>"


class RewardClaim(Base):
    __tablename__ = "reward_claims"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    reward_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("rewards.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    points_spent: Mapped[int] = mapped_column(Integer, nullable=False)
    claimed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (
        Index("ix_reward_claims_reward_user", "reward_id", "user_id"),
    )


# ---------------------------------------------------------------------------
# Report: a member flags content (or another member) for the moderators
# ---------------------------------------------------------------------------
class Report(Base):
    __tablename__ = "reports"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    reporter_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    reported_user_id: Mapped[int | None] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    # "post" | "comment" | "message" | "feedback" → content_items.id; "user" → users.id
    content_type: Mapped[str] = mapped_column(String(20), nullable=False)
    content_id: Mapped[int] = mapped_column(Integer, nullable=False)
    reason: Mapped[str] = mapped_column(String(30), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ReportStatus.PENDING.value
    )
    priority: Mapped[str] = mapped_column(
        String(10), nullable=False, default=ReportPriority.MEDIUM.value
    )
    severity: Mapped[int] = mapped_column(Integer, nullable=False, default=5)  # 1..10

    # Gate verdict on the reported text and the text itself, at report time
    moderation_snapshot: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    content_snapshot: Mapped[str | None] = mapped_column(Text, nullable=True)
    # [{"moderator": id | None, "action": ..., "reason": ..., "at": iso}, ...]
    actions: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)

    resolved_by: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    resolved_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    resolution: Mapped[str | None] = mapped_column(String(200), nullable=True)
    action_taken: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (
        Index("ix_reports_reporter_time", "reporter_id", "created_at"),
        Index("ix_reports_target", "content_type", "content_id"),
        Index("ix_reports_status_priority", "status", "priority"),
    )

    def __repr__(self) -> str:
        return (
            f"<Report id={self.id} {self.content_type}:{self.content_id} "
            f"reason={self.reason!r} status={self.status!r}>"
        )


# ---------------------------------------------------------------------------
# AdminLog: append-only audit trail
# ---------------------------------------------------------------------------
class AdminLog(Base):
    __tablename__ = "admin_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    actor_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    action_type: Mapped[str] = mapped_column(String(50), nullable=False)
    target_table: Mapped[str] = mapped_column(String(50), nullable=False)
    target_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    before_snapshot: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    after_snapshot: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (
        Index("ix_admin_log_actor_time", "actor_id", "timestamp"),
        Index("ix_admin_log_target", "target_table", "target_id", "timestamp"),
    )

    def __repr__(self) -> str:
        return f"<AdminLog id={self.id} actor={self.actor_id} action={self.action_type}>"
