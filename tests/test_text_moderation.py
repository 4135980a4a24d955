"""
tests/test_text_moderation.py — Text Moderation Engine
=======================================================

Detector behaviour, severity aggregation, block/flag thresholds and
masking of the cleaned content.
"""

from __future__ import annotations

import pytest

from steward.config import ModerationSettings
from steward.engine.text_moderation import (
    PERSONAL_INFO_MASK,
    TextModerator,
    evaluate,
    mask_term,
)


class TestCleanText:
    def test_clean_text_passes_verbatim(self):
        text = "Welcome to the community, glad to be here!"
        v = evaluate(text)
        assert v.severity == 0
        assert v.issues == ()
        assert not v.should_flag
        assert not v.should_block
        assert v.cleaned_content == text
        assert v.is_clean

    @pytest.mark.parametrize("text", ["", "   ", "\n\t"])
    def test_blank_text_is_clean(self, text):
        v = evaluate(text)
        assert v.is_clean
        assert v.cleaned_content == text

    def test_none_is_clean(self):
        v = evaluate(None)
        assert v.is_clean
        assert v.cleaned_content == ""

    def test_word_boundaries_respected(self):
        v = evaluate("Hello there, nice shell script")
        assert "profanity" not in v.issues

    def test_evaluation_is_deterministic(self):
        text = "damn, that was a stupid idea"
        assert evaluate(text) == evaluate(text)


class TestProfanity:
    def test_single_mild_word_flags_and_masks(self):
        v = evaluate("This is a damn good idea")
        assert v.issues == ("profanity",)
        assert v.severity == 3
        assert v.should_flag
        assert not v.should_block
        assert v.cleaned_content == "This is a **** good idea"

    def test_repeated_term_counts_once(self):
        assert evaluate("damn damn damn").severity == 3

    def test_second_distinct_term_adds_one(self):
        v = evaluate("damn this crap")
        assert v.severity == 4
        assert v.should_flag
        assert v.cleaned_content == "**** this ****"

    def test_three_distinct_terms_block(self):
        v = evaluate("damn crap idiot")
        assert v.severity == 5
        assert v.should_block
        assert not v.should_flag

    def test_mask_is_length_class_not_length(self):
        v = evaluate("you motherfucker")
        assert v.cleaned_content == "you ********"

    def test_case_insensitive(self):
        v = evaluate("DaMn it")
        assert v.issues[0] == "profanity"
        assert v.cleaned_content == "**** it"

    def test_extra_lexicon_terms(self):
        moderator = TextModerator(ModerationSettings(extra_profanity=("frak",)))
        v = moderator.evaluate("frak this")
        assert v.issues == ("profanity",)
        assert v.cleaned_content == "**** this"

    def test_padded_extra_terms_still_match(self):
        moderator = TextModerator(ModerationSettings(extra_profanity=(" Frak ", "\tsmeg", "  ")))
        v = moderator.evaluate("frak this smeg")
        assert v.issues == ("profanity",)
        assert v.severity == 4
        assert v.cleaned_content == "**** this ****"


class TestHardBlocks:
    def test_hate_speech_blocks(self):
        v = evaluate("I will kill you")
        assert "hate_speech" in v.issues
        assert v.should_block

    def test_hate_speech_blocks_even_with_high_threshold(self):
        moderator = TextModerator(ModerationSettings(flag_threshold=40, block_threshold=50))
        v = moderator.evaluate("just go die")
        assert v.should_block
        assert v.severity == 5

    def test_slur_inside_benign_text_blocks(self):
        v = evaluate("Thanks for organising the meetup, you retard, see you next week")
        assert v.issues == ("slur",)
        assert v.severity == 5
        assert v.should_block
        assert not v.should_flag
        assert v.cleaned_content == (
            "Thanks for organising the meetup, you ********, see you next week"
        )

    def test_slur_blocks_even_with_high_threshold(self):
        moderator = TextModerator(ModerationSettings(flag_threshold=40, block_threshold=50))
        assert moderator.evaluate("what a bunch of sluts").should_block

    def test_motherfucker_blocks(self):
        v = evaluate("you are a motherfucker")
        assert v.issues == ("slur",)
        assert v.should_block
        assert v.cleaned_content == "you are a ********"

    def test_directed_abuse_blocks(self):
        v = evaluate("fuck you bitch")
        assert v.issues == ("profanity", "slur")
        assert v.severity == 9
        assert v.should_block
        assert v.cleaned_content == "******** ********"

    @pytest.mark.parametrize("text", ["The fire retardant held", "Scunthorpe won at home"])
    def test_slur_needs_whole_word(self, text):
        assert evaluate(text).is_clean

    def test_extra_slurs_from_settings(self):
        moderator = TextModerator(ModerationSettings(extra_slurs=(" Grobnik ",)))
        v = moderator.evaluate("nice one, grobnik")
        assert v.issues == ("slur",)
        assert v.should_block
        assert v.cleaned_content == "nice one, ********"


class TestOtherDetectors:
    def test_spam_phrase(self):
        v = evaluate("Click here for free money")
        assert v.issues == ("spam",)
        assert v.should_flag

    def test_many_links_is_spam(self):
        v = evaluate("see https://a.example https://b.example https://c.example")
        assert "spam" in v.issues

    def test_two_links_are_fine(self):
        v = evaluate("see https://a.example and https://b.example")
        assert v.is_clean

    def test_long_character_run_is_spam_and_repetition(self):
        v = evaluate("wow!!!!!!!!!!!!")
        assert v.issues == ("spam", "repeated_characters")
        assert v.severity == 4

    def test_inappropriate_content(self):
        text = "selling pills behind the gym"
        v = evaluate(text)
        assert v.issues == ("inappropriate",)
        assert v.severity == 4
        assert v.should_flag
        assert v.cleaned_content == text

    def test_email_is_redacted(self):
        v = evaluate("Email me at jane@example.com")
        assert v.issues == ("personal_info",)
        assert v.cleaned_content == f"Email me at {PERSONAL_INFO_MASK}"

    def test_phone_is_redacted(self):
        v = evaluate("My number is 555-123-4567")
        assert v.cleaned_content == f"My number is {PERSONAL_INFO_MASK}"

    def test_excessive_caps_alone_does_not_flag(self):
        text = "THIS IS REALLY AWESOME NEWS"
        v = evaluate(text)
        assert v.issues == ("excessive_caps",)
        assert v.severity == 1
        assert not v.should_flag
        assert v.cleaned_content == text

    def test_short_shouting_ignored(self):
        assert evaluate("OK GO").is_clean

    def test_repeated_characters(self):
        assert evaluate("yessssss").issues == ("repeated_characters",)
        assert evaluate("sooooo").is_clean


class TestAggregation:
    def test_issues_follow_detector_order(self):
        v = evaluate("damn, email me at jane@example.com")
        assert v.issues == ("profanity", "personal_info")
        assert v.severity == 6
        assert v.should_block

    def test_severity_is_monotonic(self):
        one = evaluate("damn")
        two = evaluate("damn crap")
        three = evaluate("damn crap, mail jane@example.com")
        assert one.severity < two.severity < three.severity

    def test_custom_thresholds(self):
        moderator = TextModerator(ModerationSettings(flag_threshold=1, block_threshold=10))
        v = moderator.evaluate("THIS IS REALLY AWESOME NEWS")
        assert v.should_flag


@pytest.mark.parametrize(
    ("term", "mask"),
    [("hell", "****"), ("ab", "****"), ("idiot", "********"), ("motherfucker", "********")],
)
def test_mask_term(term, mask):
    assert mask_term(term) == mask
