"""
steward.engine.gate — Moderation Gate
======================================

Single entry point every content submission passes through before it is
persisted.  Combines the text verdict with the media rules:

* posts — image count limit, filename/URL keyword heuristic, and a
  classifier scan of every http(s) image;
* non-text messages — keyword heuristic over the attachment reference and
  a classifier scan of image URLs found in it (text rules are skipped);
* everything else — text verdict only.

The gate returns a :class:`GateDecision`; it never raises for a policy
outcome.  Acting on the decision (rejecting, persisting the cleaned text)
is the caller's job.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, replace

from steward.config import ModerationSettings
from steward.constants import CONTENT_KINDS
from steward.engine.image_moderation import (
    ImageModerator,
    extract_image_urls,
    is_http_url,
    looks_explicit_name,
)
from steward.engine.text_moderation import TextModerator

logger = logging.getLogger(__name__)
audit_logger = logging.getLogger("steward.audit")

ISSUE_TOO_MANY_IMAGES = "too_many_images"
ISSUE_EXPLICIT_IMAGE = "explicit_image"

REASON_GUIDELINES = "Content violates community guidelines"
REASON_EXPLICIT_IMAGE = "Images violate community guidelines (nudity is not allowed)"


@dataclass(frozen=True, slots=True)
class GateDecision:
    """Moderation verdict for one submission.

    ``provider_notes`` carries image-classifier failure codes.  They are
    observational only and never change the outcome.
    """

    kind: str
    should_block: bool = False
    should_flag: bool = False
    severity: int = 0
    issues: tuple[str, ...] = ()
    cleaned_content: str = ""
    reason: str | None = None
    provider_notes: tuple[str, ...] = ()

    @property
    def allowed(self) -> bool:
        return not self.should_block


def record_fields(decision: GateDecision, original: str) -> dict:
    """Column values for the ModerationRecord attached to persisted content.

    Flagged content is held for review (``is_approved=False``) and keeps its
    original text; clean content stores no copy.
    """
    if decision.should_block:
        raise ValueError("Blocked content must never be persisted")
    return {
        "is_approved": not decision.should_flag,
        "flagged": decision.should_flag,
        "issues": list(decision.issues),
        "severity": decision.severity,
        "original_content": original if decision.should_flag else None,
    }


class ModerationGate:
    """Applies text and media policy to user submissions."""

    def __init__(
        self,
        settings: ModerationSettings | None = None,
        *,
        text_moderator: TextModerator | None = None,
        image_moderator: ImageModerator | None = None,
    ) -> None:
        self.settings = settings or ModerationSettings()
        self.text = text_moderator or TextModerator(self.settings)
        self.images = image_moderator or ImageModerator()

    # ------------------------------------------------------------------
    # Text-only decision
    # ------------------------------------------------------------------
    def _text_decision(self, content: str | None, kind: str) -> GateDecision:
        if kind not in CONTENT_KINDS:
            raise ValueError(f"Unknown content kind: {kind!r}")
        verdict = self.text.evaluate(content)
        return GateDecision(
            kind=kind,
            should_block=verdict.should_block,
            should_flag=verdict.should_flag,
            severity=verdict.severity,
            issues=verdict.issues,
            cleaned_content=verdict.cleaned_content,
            reason=REASON_GUIDELINES if verdict.should_block else None,
        )

    def moderate(
        self, content: str | None, kind: str, *, actor: object = None,
    ) -> GateDecision:
        """Text verdict for *content*.  The same rules apply to every kind."""
        decision = self._text_decision(content, kind)
        self._audit(decision, actor)
        return decision

    # ------------------------------------------------------------------
    # Full submission decision (text + media)
    # ------------------------------------------------------------------
    async def moderate_submission(
        self,
        content: str | None,
        kind: str,
        *,
        images: Sequence[str] = (),
        message_type: str = "text",
        actor: object = None,
    ) -> GateDecision:
        """Text verdict plus the media rules for *kind*."""
        if kind == "message" and message_type != "text":
            decision = await self._attachment_decision(content or "")
        else:
            decision = self._text_decision(content, kind)
            if kind == "post" and images and not decision.should_block:
                decision = await self._post_images_decision(decision, images)

        self._audit(decision, actor)
        return decision

    async def _post_images_decision(
        self, decision: GateDecision, images: Sequence[str],
    ) -> GateDecision:
        limit = self.settings.max_images_per_post
        if len(images) > limit:
            return _blocked(
                decision, ISSUE_TOO_MANY_IMAGES,
                f"Maximum {limit} images allowed per post",
            )

        refs = [img for img in images if isinstance(img, str)]
        if any(looks_explicit_name(ref) for ref in refs):
            return _blocked(decision, ISSUE_EXPLICIT_IMAGE, REASON_EXPLICIT_IMAGE)

        return await self._scan(decision, [ref for ref in refs if is_http_url(ref)])

    async def _attachment_decision(self, content: str) -> GateDecision:
        decision = GateDecision(kind="message", cleaned_content=content)
        if content and looks_explicit_name(content):
            return _blocked(decision, ISSUE_EXPLICIT_IMAGE, REASON_EXPLICIT_IMAGE)
        return await self._scan(decision, extract_image_urls(content))

    async def _scan(self, decision: GateDecision, urls: list[str]) -> GateDecision:
        if not urls:
            return decision
        verdicts = await self.images.evaluate_many(urls)

        notes: list[str] = []
        for verdict in verdicts:
            if verdict.is_explicit:
                logger.warning(
                    "Image blocked by classifier: reasons=%s score=%.2f",
                    list(verdict.reasons), verdict.score,
                )
                return _blocked(decision, ISSUE_EXPLICIT_IMAGE, REASON_EXPLICIT_IMAGE)
            if verdict.provider_failed:
                notes.extend(r for r in verdict.reasons if r not in notes)

        if notes:
            logger.info("Image classifier degraded, allowing submission: %s", notes)
            return replace(decision, provider_notes=tuple(notes))
        return decision

    # ------------------------------------------------------------------
    # Audit trail
    # ------------------------------------------------------------------
    @staticmethod
    def _audit(decision: GateDecision, actor: object) -> None:
        if decision.should_flag:
            audit_logger.info(
                "Content flagged: actor=%s kind=%s issues=%s severity=%d",
                actor, decision.kind, list(decision.issues), decision.severity,
            )
        elif decision.should_block:
            audit_logger.warning(
                "Content blocked: actor=%s kind=%s issues=%s severity=%d",
                actor, decision.kind, list(decision.issues), decision.severity,
            )


def _blocked(decision: GateDecision, issue: str, reason: str) -> GateDecision:
    issues = decision.issues if issue in decision.issues else (*decision.issues, issue)
    return replace(
        decision,
        should_block=True,
        should_flag=False,
        issues=issues,
        reason=reason,
    )
