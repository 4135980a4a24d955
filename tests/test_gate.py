"""
tests/test_gate.py — Moderation Gate
=====================================

Block / flag / allow decisions per content kind, media rules, fail-open
image scanning, and the audit log line for flagged content.
"""

from __future__ import annotations

import logging
from unittest.mock import AsyncMock

import pytest
from conftest import run_async

from steward.config import ModerationSettings
from steward.engine.gate import ModerationGate, record_fields
from steward.engine.image_moderation import ImageVerdict


def _gate(*verdicts: ImageVerdict, **settings) -> ModerationGate:
    images = AsyncMock()
    images.evaluate_many = AsyncMock(return_value=list(verdicts))
    return ModerationGate(ModerationSettings(**settings), image_moderator=images)


class TestTextDecisions:
    @pytest.mark.parametrize("kind", ["post", "comment", "message", "feedback"])
    def test_same_verdict_for_every_kind(self, kind):
        d = _gate().moderate("This is a damn good idea", kind)
        assert d.kind == kind
        assert d.should_flag
        assert d.cleaned_content == "This is a **** good idea"

    def test_block_carries_reason(self):
        d = _gate().moderate("I will kill you", "comment")
        assert d.should_block
        assert not d.allowed
        assert d.reason == "Content violates community guidelines"

    def test_clean_content(self):
        d = _gate().moderate("Great meetup yesterday", "post")
        assert d.allowed
        assert not d.should_flag
        assert d.cleaned_content == "Great meetup yesterday"

    def test_unknown_kind_rejected(self):
        with pytest.raises(ValueError):
            _gate().moderate("hi", "story")

    def test_flag_is_audited(self, caplog):
        with caplog.at_level(logging.INFO, logger="steward.audit"):
            _gate().moderate("This is a damn good idea", "post", actor=42)
        assert any(
            "flagged" in r.getMessage() and "actor=42" in r.getMessage()
            for r in caplog.records
        )

    def test_clean_content_not_audited(self, caplog):
        with caplog.at_level(logging.INFO, logger="steward.audit"):
            _gate().moderate("Great meetup yesterday", "post", actor=42)
        assert not [r for r in caplog.records if r.name == "steward.audit"]


class TestPostImages:
    def test_too_many_images(self):
        gate = _gate(max_images_per_post=2)
        d = run_async(gate.moderate_submission(
            "Look at these", "post", images=["a.png", "b.png", "c.png"],
        ))
        assert d.should_block
        assert d.issues == ("too_many_images",)
        assert d.reason == "Maximum 2 images allowed per post"
        gate.images.evaluate_many.assert_not_called()

    def test_explicit_filename_blocks_without_scan(self):
        gate = _gate()
        d = run_async(gate.moderate_submission(
            "Beach day", "post", images=["uploads/nude_beach.jpg"],
        ))
        assert d.should_block
        assert d.issues == ("explicit_image",)
        gate.images.evaluate_many.assert_not_called()

    def test_classifier_explicit_blocks(self):
        gate = _gate(ImageVerdict(is_explicit=True, score=0.4, reasons=("sexual_display",)))
        d = run_async(gate.moderate_submission(
            "Beach day", "post", images=["https://cdn.example/p1.jpg"],
        ))
        assert d.should_block
        assert "explicit_image" in d.issues

    def test_only_http_images_are_scanned(self):
        gate = _gate(ImageVerdict())
        run_async(gate.moderate_submission(
            "Beach day", "post", images=["local/p1.jpg", "https://cdn.example/p2.jpg"],
        ))
        gate.images.evaluate_many.assert_awaited_once_with(["https://cdn.example/p2.jpg"])

    def test_provider_failure_does_not_block(self):
        gate = _gate(ImageVerdict(reasons=("provider_http_503",)))
        d = run_async(gate.moderate_submission(
            "Beach day", "post", images=["https://cdn.example/p1.jpg"],
        ))
        assert d.allowed
        assert d.provider_notes == ("provider_http_503",)

    def test_blocked_text_skips_image_scan(self):
        gate = _gate(ImageVerdict())
        d = run_async(gate.moderate_submission(
            "go die", "post", images=["https://cdn.example/p1.jpg"],
        ))
        assert d.should_block
        gate.images.evaluate_many.assert_not_called()

    def test_images_ignored_for_comments(self):
        gate = _gate()
        d = run_async(gate.moderate_submission(
            "nice", "comment", images=["a.png"] * 10,
        ))
        assert d.allowed


class TestAttachmentMessages:
    def test_explicit_attachment_name(self):
        d = run_async(_gate().moderate_submission(
            "files/xxx_video.mp4", "message", message_type="file",
        ))
        assert d.should_block
        assert d.issues == ("explicit_image",)

    def test_attachment_skips_text_rules(self):
        d = run_async(_gate().moderate_submission(
            "damn_receipt.pdf", "message", message_type="file",
        ))
        assert d.allowed
        assert not d.should_flag

    def test_attachment_image_url_scanned(self):
        gate = _gate(ImageVerdict(is_explicit=True, score=0.9, reasons=("erotica",)))
        d = run_async(gate.moderate_submission(
            "https://cdn.example/pic.webp", "message", message_type="image",
        ))
        assert d.should_block
        gate.images.evaluate_many.assert_awaited_once_with(["https://cdn.example/pic.webp"])

    def test_text_message_uses_text_rules(self):
        d = run_async(_gate().moderate_submission("damn it", "message"))
        assert d.should_flag


class TestRecordFields:
    def test_flagged_record_keeps_original(self):
        d = _gate().moderate("This is a damn good idea", "post")
        fields = record_fields(d, "This is a damn good idea")
        assert fields == {
            "is_approved": False,
            "flagged": True,
            "issues": ["profanity"],
            "severity": 3,
            "original_content": "This is a damn good idea",
        }

    def test_clean_record(self):
        d = _gate().moderate("hello", "post")
        fields = record_fields(d, "hello")
        assert fields["flagged"] is False
        assert fields["is_approved"] is True
        assert fields["original_content"] is None

    def test_blocked_decision_cannot_be_recorded(self):
        d = _gate().moderate("I will kill you", "post")
        with pytest.raises(ValueError):
            record_fields(d, "I will kill you")
