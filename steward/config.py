"""
steward.config — YAML Configuration Loader
===========================================

**Why this file exists:**
Moderation thresholds, media limits and notification endpoints are read
from ``config.yaml`` once at startup and never mutated afterwards, so every
request sees the same policy.  Credentials (image classifier keys, webhook
API key) never live in YAML; they come from the environment / ``.env``.

Usage::

    from steward.config import load_config

    cfg = load_config()                      # reads ./config.yaml by default
    print(cfg.moderation.block_threshold)    # 5
    print(cfg.images.configured)             # True if SIGHTENGINE_* are set
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

# Default image-classifier thresholds.  A sub-score strictly above its
# threshold marks the image explicit.
DEFAULT_IMAGE_THRESHOLDS: dict[str, float] = {
    "sexual_activity": 0.3,
    "sexual_display": 0.3,
    "erotica": 0.5,
    "suggestive": 0.8,
}

SIGHTENGINE_ENDPOINT = "https://api.sightengine.com/1.0/check.json"


# ---------------------------------------------------------------------------
# Typed settings objects: read-only after startup
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class ModerationSettings:
    """Text moderation policy."""

    flag_threshold: int = 3
    block_threshold: int = 5
    max_images_per_post: int = 5
    # Appended to the built-in profanity lexicon
    extra_profanity: tuple[str, ...] = ()
    # Appended to the built-in slur lexicon (always blocks)
    extra_slurs: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class ImageModerationSettings:
    """External visual classifier (Sightengine) settings."""

    api_user: str | None = None
    api_secret: str | None = None
    endpoint: str = SIGHTENGINE_ENDPOINT
    timeout_seconds: float = 10.0
    thresholds: dict[str, float] = field(
        default_factory=lambda: dict(DEFAULT_IMAGE_THRESHOLDS)
    )

    @property
    def configured(self) -> bool:
        return bool(self.api_user and self.api_secret)


@dataclass(frozen=True, slots=True)
class NotificationSettings:
    """Outbound webhook for platform events (level-ups, badges, flags)."""

    webhook_url: str | None = None
    api_key: str | None = None
    timeout_seconds: float = 5.0


@dataclass(frozen=True, slots=True)
class StewardConfig:
    """Immutable configuration loaded from ``config.yaml`` + environment."""

    community_name: str = "Steward Community"
    moderation: ModerationSettings = field(default_factory=ModerationSettings)
    images: ImageModerationSettings = field(default_factory=ImageModerationSettings)
    notifications: NotificationSettings = field(default_factory=NotificationSettings)


def _lexicon(words) -> tuple[str, ...]:
    """Lower-cased, trimmed, non-blank lexicon entries."""
    return tuple(
        str(word).strip().lower() for word in words or () if str(word).strip()
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def load_config(path: str | Path = "config.yaml") -> StewardConfig:
    """Read *path* and return a :class:`StewardConfig` instance.

    Tuning keys that are absent fall back to the dataclass defaults.
    Secrets are read from ``SIGHTENGINE_USER``, ``SIGHTENGINE_SECRET`` and
    ``STEWARD_WEBHOOK_API_KEY``.

    Raises
    ------
    FileNotFoundError
        If the YAML file doesn't exist.
    ValueError
        If the flag threshold is not below the block threshold.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path.resolve()}\n"
            "Hint: copy config.yaml.example → config.yaml and edit it."
        )

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh) or {}

    mod_raw = raw.get("moderation") or {}
    img_raw = raw.get("images") or {}
    notify_raw = raw.get("notifications") or {}

    moderation = ModerationSettings(
        flag_threshold=int(mod_raw.get("flag_threshold", 3)),
        block_threshold=int(mod_raw.get("block_threshold", 5)),
        max_images_per_post=int(mod_raw.get("max_images_per_post", 5)),
        extra_profanity=_lexicon(mod_raw.get("extra_profanity")),
        extra_slurs=_lexicon(mod_raw.get("extra_slurs")),
    )
    if moderation.flag_threshold >= moderation.block_threshold:
        raise ValueError(
            "moderation.flag_threshold must be lower than moderation.block_threshold"
        )

    thresholds = dict(DEFAULT_IMAGE_THRESHOLDS)
    for name, value in (img_raw.get("thresholds") or {}).items():
        if name not in DEFAULT_IMAGE_THRESHOLDS:
            raise ValueError(f"Unknown image threshold: {name!r}")
        thresholds[name] = float(value)

    images = ImageModerationSettings(
        api_user=os.getenv("SIGHTENGINE_USER") or None,
        api_secret=os.getenv("SIGHTENGINE_SECRET") or None,
        endpoint=img_raw.get("endpoint", SIGHTENGINE_ENDPOINT),
        timeout_seconds=float(img_raw.get("timeout_seconds", 10.0)),
        thresholds=thresholds,
    )

    notifications = NotificationSettings(
        webhook_url=notify_raw.get("webhook_url") or None,
        api_key=os.getenv("STEWARD_WEBHOOK_API_KEY") or None,
        timeout_seconds=float(notify_raw.get("timeout_seconds", 5.0)),
    )

    return StewardConfig(
        community_name=raw.get("community_name", "Steward Community"),
        moderation=moderation,
        images=images,
        notifications=notifications,
    )
