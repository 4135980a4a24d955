"""
steward.__main__ — Entry point for ``python -m steward``
=========================================================

Wiring:
1. Load .env (secrets).
2. Load config.yaml (soft settings).
3. Create the SQLAlchemy engine and ensure tables exist.
4. Seed the default badge catalogue (idempotent).
5. Run the daily maintenance job (reset lapsed login streaks).
6. Build the submission pipeline once to validate the wiring.

Schedule it once a day (cron, systemd timer) after deploying::

    python -m steward
"""

from __future__ import annotations

import logging
import sys

from dotenv import load_dotenv

from steward.config import load_config
from steward.database.engine import create_db_engine, get_session, init_db
from steward.services.pipeline import SubmissionPipeline
from steward.services.streak_service import reset_broken_streaks

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("steward")


def main() -> None:
    """Bootstrap the database and run maintenance."""

    # 1. Environment variables (secrets).
    load_dotenv()

    # 2. Soft configuration.
    try:
        cfg = load_config()
    except (FileNotFoundError, ValueError) as exc:
        logger.critical("%s", exc)
        sys.exit(1)
    logger.info("Config loaded — Community: %s", cfg.community_name)

    # 3. Database.
    try:
        engine = create_db_engine()
    except RuntimeError as exc:
        logger.critical("%s", exc)
        sys.exit(1)

    # 4. Tables + default badges.
    init_db(engine)

    # 5. Daily maintenance.
    with get_session(engine) as session:
        reset_broken_streaks(session)

    # 6. Wiring check.
    pipeline = SubmissionPipeline.from_config(engine, cfg)
    if not cfg.images.configured:
        logger.warning(
            "SIGHTENGINE_USER / SIGHTENGINE_SECRET not set — image scans will fail open."
        )
    if pipeline.dispatcher.webhook_url is None:
        logger.info("No notification webhook configured; in-process subscribers only.")
    logger.info("Steward ready.")


if __name__ == "__main__":
    main()
