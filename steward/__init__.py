"""
Steward — Moderation & Gamification Core for Community Platforms
=================================================================
Decides what user-generated content may be published, who may publish it,
and how members are rewarded for taking part.  An HTTP layer calls into
these services; Steward itself owns no routes.

Package layout::

    steward/
    ├── config.py          # YAML → typed Python config (+ .env secrets)
    ├── constants.py       # Level tiers, point values, level formula
    ├── errors.py          # Domain exceptions
    ├── __main__.py        # python -m steward: bootstrap + daily maintenance
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine + async helper
    │   ├── models.py      # All ORM models
    │   └── seed.py        # Default badge catalogue
    ├── engine/
    │   ├── text_moderation.py   # Lexicon/pattern detectors → verdict
    │   ├── image_moderation.py  # Sightengine adapter (fail-open)
    │   ├── gate.py              # Block / flag / allow policy per content kind
    │   ├── standing.py          # Ban & suspension checks
    │   ├── badges.py            # Badge criteria evaluation (pure)
    │   └── rewards.py           # Reward claim rules (pure)
    └── services/
        ├── points_service.py      # Atomic points + level updates
        ├── badge_service.py       # Snapshot, evaluate, idempotent award
        ├── streak_service.py      # Login / post / event streaks
        ├── reward_service.py      # Reward redemption
        ├── moderation_service.py  # Audited admin review, sanctions & rescans
        ├── report_service.py      # Member reports & the moderator queue
        ├── audit.py               # admin_log snapshot helpers
        ├── notifier.py            # Fire-and-forget event fan-out
        └── pipeline.py            # Submission flow: standing → gate → persist → points → badges
"""

__version__ = "0.1.0"
