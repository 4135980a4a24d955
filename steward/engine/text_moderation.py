"""
steward.engine.text_moderation — Text Moderation Engine
========================================================

Detector-registry implementation of the text classifier.  Each detector is
a pure function ``text → severity`` (0 when it does not fire) tagged with
an issue code and a *hard* flag.  A hard detector blocks on its own,
regardless of the summed severity.

Detectors run in a fixed order, so ``issues`` is deterministic:

    profanity → hate_speech → slur → spam → inappropriate
    → personal_info → excessive_caps → repeated_characters

This module is pure calculation — no database I/O, no network I/O.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass
from functools import lru_cache

from steward.config import ModerationSettings

# ---------------------------------------------------------------------------
# Issue codes
# ---------------------------------------------------------------------------
ISSUE_PROFANITY = "profanity"
ISSUE_HATE_SPEECH = "hate_speech"
ISSUE_SLUR = "slur"
ISSUE_SPAM = "spam"
ISSUE_INAPPROPRIATE = "inappropriate"
ISSUE_PERSONAL_INFO = "personal_info"
ISSUE_EXCESSIVE_CAPS = "excessive_caps"
ISSUE_REPEATED_CHARACTERS = "repeated_characters"

# ---------------------------------------------------------------------------
# Lexicons & patterns
# ---------------------------------------------------------------------------
PROFANITY_TERMS: tuple[str, ...] = (
    "damn", "hell", "crap", "stupid", "idiot", "dumb", "moron", "loser",
    "bitch", "bastard", "asshole", "shit", "fuck",
    # Drug slang treated as profanity in a community setting
    "meth", "crack", "cocaine", "heroin", "weed", "dealer",
)

HATE_SPEECH_PATTERNS: tuple[re.Pattern[str], ...] = tuple(
    re.compile(p, re.IGNORECASE) for p in (
        r"\b(?:hate|kill|die|murder|destroy)\s+(?:you|them|him|her|yourself)\b",
        r"\b(?:go\s+die|kill\s+yourself)\b",
        r"\b(?:worthless|pathetic|scum|trash)\s+(?:person|human|father|man)\b",
        r"\b(?:should\s+be\s+dead|deserve\s+to\s+die)\b",
    )
)

# Explicit slurs and directed abuse.  Any match blocks, whatever the total.
SLUR_TERMS: tuple[str, ...] = (
    "motherfucker", "cunt", "retard", "retarded", "faggot", "fag",
    "tranny", "dyke", "whore", "slut",
)

DIRECTED_ABUSE_PATTERNS: tuple[re.Pattern[str], ...] = tuple(
    re.compile(p, re.IGNORECASE) for p in (
        r"\bfuck\s+(?:you|u|off|yourself)\b",
        r"\b(?:you|u|ur)\s+(?:are\s+|r\s+)?(?:a\s+)?(?:piece\s+of\s+shit|worthless\s+bitch)\b",
        r"\bshut\s+(?:the\s+fuck\s+)?up\s+(?:bitch|bastard|asshole)\b",
    )
)

SPAM_PATTERNS: tuple[re.Pattern[str], ...] = tuple(
    re.compile(p, re.IGNORECASE) for p in (
        r"\b(?:click\s+here|free\s+money|make\s+\$\d+|guaranteed\s+income)\b",
        r"\b(?:viagra|casino|lottery|winner|crypto|bitcoin|investment)\b",
        r"\b(?:buy\s+now|limited\s+time|act\s+fast|call\s+now)\b",
        r"(.)\1{10,}",
    )
)
LINK_RE = re.compile(r"https?://\S+", re.IGNORECASE)
SPAM_LINK_COUNT = 3

INAPPROPRIATE_PATTERNS: tuple[re.Pattern[str], ...] = tuple(
    re.compile(p, re.IGNORECASE) for p in (
        r"\b(?:nude|naked|sex|porn|xxx|sexual|explicit)\b",
        r"\b(?:drug\s+deal|buy\s+weed|sell\s+drugs|selling\s+pills)\b",
        r"\b(?:illegal\s+activity|breaking\s+law|commit\s+crime)\b",
        r"\b(?:self\s+harm|suicide|cutting|overdose)\b",
    )
)

PERSONAL_INFO_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"\b\d{3}-\d{2}-\d{4}\b"),                                # SSN
    re.compile(r"\b\d{3}-\d{3}-\d{4}\b"),                                # phone
    re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b"),   # email
    re.compile(r"\b\d{4}\s?\d{4}\s?\d{4}\s?\d{4}\b"),                    # card
)
PERSONAL_INFO_MASK = "[PERSONAL INFO REMOVED]"

CAPS_RATIO = 0.7
CAPS_MIN_LETTERS = 10
REPEATED_RUN_RE = re.compile(r"(\S)\1{5,}")

# ---------------------------------------------------------------------------
# Severity weights
# ---------------------------------------------------------------------------
PROFANITY_BASE = 3
PROFANITY_EXTRA_CAP = 3
HATE_SPEECH_SEVERITY = 5
SLUR_SEVERITY = 5
SPAM_SEVERITY = 3
INAPPROPRIATE_SEVERITY = 4
PERSONAL_INFO_SEVERITY = 3
CAPS_SEVERITY = 1
REPEATED_SEVERITY = 1


# ---------------------------------------------------------------------------
# Verdict
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class ModerationVerdict:
    """Result of classifying one piece of text.

    ``cleaned_content`` equals the input exactly unless the verdict flags
    or blocks.
    """

    should_block: bool = False
    should_flag: bool = False
    severity: int = 0
    issues: tuple[str, ...] = ()
    cleaned_content: str = ""

    @property
    def is_clean(self) -> bool:
        return self.severity == 0


def mask_term(term: str) -> str:
    """Fixed-length mask that keeps the term's length class, not its length."""
    return "****" if len(term) <= 4 else "********"


def _mask_match(match: re.Match[str]) -> str:
    return mask_term(match.group(0))


def redact_personal_info(text: str) -> str:
    """Replace SSNs, phone numbers, emails and card numbers with a marker."""
    for pattern in PERSONAL_INFO_PATTERNS:
        text = pattern.sub(PERSONAL_INFO_MASK, text)
    return text


def _lexicon_re(
    builtin: tuple[str, ...], extra: tuple[str, ...], *, plurals: bool = False,
) -> re.Pattern[str]:
    terms = {t.lower() for t in builtin}
    terms.update(t.strip().lower() for t in extra if t.strip())
    # Longest first so the longer of two overlapping terms wins
    ordered = sorted(terms, key=lambda t: (-len(t), t))
    alternation = "|".join(re.escape(t) for t in ordered)
    suffix = "s?" if plurals else ""
    return re.compile(rf"\b(?:{alternation}){suffix}\b", re.IGNORECASE)


# ---------------------------------------------------------------------------
# Stateless detectors: text → severity
# ---------------------------------------------------------------------------
def _any_match(patterns: tuple[re.Pattern[str], ...], text: str) -> bool:
    return any(p.search(text) for p in patterns)


def _score_hate_speech(text: str) -> int:
    return HATE_SPEECH_SEVERITY if _any_match(HATE_SPEECH_PATTERNS, text) else 0


def _score_spam(text: str) -> int:
    if _any_match(SPAM_PATTERNS, text):
        return SPAM_SEVERITY
    if len(LINK_RE.findall(text)) >= SPAM_LINK_COUNT:
        return SPAM_SEVERITY
    return 0


def _score_inappropriate(text: str) -> int:
    return INAPPROPRIATE_SEVERITY if _any_match(INAPPROPRIATE_PATTERNS, text) else 0


def _score_personal_info(text: str) -> int:
    return PERSONAL_INFO_SEVERITY if _any_match(PERSONAL_INFO_PATTERNS, text) else 0


def _score_caps(text: str) -> int:
    letters = [c for c in text if c.isalpha()]
    if len(letters) < CAPS_MIN_LETTERS:
        return 0
    upper = sum(1 for c in letters if c.isupper())
    return CAPS_SEVERITY if upper / len(letters) >= CAPS_RATIO else 0


def _score_repeated(text: str) -> int:
    return REPEATED_SEVERITY if REPEATED_RUN_RE.search(text) else 0


# ---------------------------------------------------------------------------
# Moderator
# ---------------------------------------------------------------------------
class TextModerator:
    """Classifies text against the profanity and slur lexicons and the detectors.

    Built once at startup from :class:`ModerationSettings`; read-only after.
    """

    def __init__(self, settings: ModerationSettings | None = None) -> None:
        settings = settings or ModerationSettings()
        self.flag_threshold = settings.flag_threshold
        self.block_threshold = settings.block_threshold

        self._profanity_re = _lexicon_re(PROFANITY_TERMS, settings.extra_profanity)
        self._slur_re = _lexicon_re(SLUR_TERMS, settings.extra_slurs, plurals=True)

        self._detectors: tuple[tuple[str, Callable[[str], int], bool], ...] = (
            (ISSUE_PROFANITY, self._score_profanity, False),
            (ISSUE_HATE_SPEECH, _score_hate_speech, True),
            (ISSUE_SLUR, self._score_slur, True),
            (ISSUE_SPAM, _score_spam, False),
            (ISSUE_INAPPROPRIATE, _score_inappropriate, False),
            (ISSUE_PERSONAL_INFO, _score_personal_info, False),
            (ISSUE_EXCESSIVE_CAPS, _score_caps, False),
            (ISSUE_REPEATED_CHARACTERS, _score_repeated, False),
        )

    def profane_terms(self, text: str) -> set[str]:
        """Distinct lexicon terms present in *text* (lower-cased)."""
        return {m.group(0).lower() for m in self._profanity_re.finditer(text)}

    def _score_profanity(self, text: str) -> int:
        distinct = len(self.profane_terms(text))
        if not distinct:
            return 0
        return PROFANITY_BASE + min(distinct - 1, PROFANITY_EXTRA_CAP)

    def _score_slur(self, text: str) -> int:
        if self._slur_re.search(text) or _any_match(DIRECTED_ABUSE_PATTERNS, text):
            return SLUR_SEVERITY
        return 0

    def evaluate(self, text: str | None) -> ModerationVerdict:
        """Classify *text*.  Empty or whitespace-only text is clean."""
        if text is None or not text.strip():
            return ModerationVerdict(cleaned_content=text or "")

        severity = 0
        hard = False
        issues: list[str] = []
        for code, detector, is_hard in self._detectors:
            score = detector(text)
            if score <= 0:
                continue
            issues.append(code)
            severity += score
            hard = hard or is_hard

        should_block = hard or severity >= self.block_threshold
        should_flag = not should_block and severity >= self.flag_threshold

        cleaned = text
        if should_block or should_flag:
            cleaned = self.clean(text)

        return ModerationVerdict(
            should_block=should_block,
            should_flag=should_flag,
            severity=severity,
            issues=tuple(issues),
            cleaned_content=cleaned,
        )

    def clean(self, text: str) -> str:
        """Mask slurs, profane terms and hate phrases, redact personal information."""
        text = redact_personal_info(text)
        text = self._slur_re.sub(_mask_match, text)
        for pattern in DIRECTED_ABUSE_PATTERNS:
            text = pattern.sub(_mask_match, text)
        text = self._profanity_re.sub(_mask_match, text)
        for pattern in HATE_SPEECH_PATTERNS:
            text = pattern.sub(_mask_match, text)
        return text


@lru_cache(maxsize=1)
def default_moderator() -> TextModerator:
    """Moderator with the built-in lexicon and default thresholds."""
    return TextModerator()


def evaluate(text: str | None) -> ModerationVerdict:
    """Classify *text* with :func:`default_moderator`."""
    return default_moderator().evaluate(text)
