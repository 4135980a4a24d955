"""
steward.errors — Domain Exceptions
===================================

Moderation verdicts and standing checks are returned as values.  The
exceptions below are raised by the services that act on those values,
so the request layer can map each one to a response.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from steward.engine.standing import Standing


class StewardError(Exception):
    """Base class for all Steward errors."""


class NotFoundError(StewardError):
    """A referenced user, badge, reward, report or content item does not exist."""

    def __init__(self, entity: str, entity_id: object) -> None:
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} {entity_id!r} not found")


class PolicyViolation(StewardError):
    """Submission blocked by the moderation gate.  Nothing was persisted."""

    def __init__(
        self,
        issues: tuple[str, ...] | list[str],
        severity: int,
        reason: str = "Content violates community guidelines",
    ) -> None:
        self.issues = tuple(issues)
        self.severity = severity
        self.reason = reason
        super().__init__(f"{reason} (issues={list(self.issues)}, severity={severity})")


class AccessDenied(StewardError):
    """Submission refused because the author is banned or suspended."""

    def __init__(self, standing: Standing) -> None:
        self.standing = standing
        self.kind = standing.kind
        self.reason = standing.reason
        self.expires_at = standing.expires_at
        if standing.kind == "ban":
            message = "Account is banned from posting content"
        else:
            message = "Account is temporarily suspended from posting"
        super().__init__(message)


class ClaimRejected(StewardError):
    """A reward claim failed an eligibility rule."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(reason)


class ReportRejected(StewardError):
    """A report was refused (self-report, duplicate, already handled)."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(reason)


class ReportRateLimited(ReportRejected):
    """The reporter filed too many reports in the last hour."""
