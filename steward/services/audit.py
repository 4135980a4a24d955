"""
steward.services.audit — Admin Audit Trail Helpers
===================================================

Every admin mutation follows the same pattern inside one transaction:

  1. Read a "before" snapshot
  2. Apply the change
  3. Write an ``admin_log`` row with before/after JSON snapshots
  4. Commit
"""

from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Any

from sqlalchemy.orm import Session

from steward.database.models import AdminLog

logger = logging.getLogger(__name__)


def row_to_dict(obj: Any) -> dict | None:
    """Snapshot *obj* as a JSON-safe dict keyed by column name."""
    if obj is None:
        return None
    result = {}
    for col in obj.__table__.columns:
        val = getattr(obj, col.key, None)
        if isinstance(val, (datetime, date)):
            val = val.isoformat()
        result[col.name] = val
    return result


def log_admin_action(
    session: Session,
    *,
    actor_id: int,
    action_type: str,
    target_table: str,
    target_id: object,
    before: dict | None,
    after: dict | None,
    reason: str | None = None,
) -> None:
    """Append an ``admin_log`` row; the caller commits."""
    session.add(AdminLog(
        actor_id=actor_id,
        action_type=action_type,
        target_table=target_table,
        target_id=None if target_id is None else str(target_id),
        before_snapshot=before,
        after_snapshot=after,
        reason=reason,
    ))
    logger.info(
        "Admin %d %s %s/%s", actor_id, action_type, target_table, target_id,
    )
