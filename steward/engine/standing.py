"""
steward.engine.standing — User Standing Tracker
================================================

Decides whether a member may submit content, from their warning history.

Precedence: an active ban denies outright; otherwise an active suspension
whose ``expires_at`` is still in the future denies; everything else
(plain warnings, expired or lifted sanctions, no history) is allowed.

The check fails **open**: if evaluation itself breaks (malformed rows,
unexpected types) the error is logged and the member is allowed.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import UTC, datetime

from steward.database.models import MemberWarning, WarningType

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Standing:
    """Allow, or Deny with the sanction that caused it."""

    allowed: bool = True
    kind: str | None = None             # "ban" | "suspension"
    reason: str | None = None
    issued_at: datetime | None = None
    expires_at: datetime | None = None


ALLOW = Standing()


def as_utc(value: datetime | None) -> datetime | None:
    """Treat naive datetimes as UTC (SQLite drops tzinfo on the way back)."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=UTC)


def check_standing(
    warnings: Iterable[MemberWarning] | None, now: datetime | None = None,
) -> Standing:
    """Evaluate *warnings* (the member's MemberWarning rows) at *now*."""
    try:
        return _evaluate(warnings or (), as_utc(now) or datetime.now(UTC))
    except Exception:
        logger.exception("Standing check failed; allowing by policy")
        return ALLOW


def _evaluate(warnings: Iterable[MemberWarning], now: datetime) -> Standing:
    active = [w for w in warnings if w.is_active]

    for w in active:
        if w.type == WarningType.BANNED:
            return Standing(
                allowed=False,
                kind="ban",
                reason=w.reason,
                issued_at=as_utc(w.issued_at),
            )

    for w in active:
        if w.type != WarningType.SUSPENSION:
            continue
        expires_at = as_utc(w.expires_at)
        if expires_at is not None and expires_at > now:
            return Standing(
                allowed=False,
                kind="suspension",
                reason=w.reason,
                issued_at=as_utc(w.issued_at),
                expires_at=expires_at,
            )

    return ALLOW
