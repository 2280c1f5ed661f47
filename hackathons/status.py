"""
hackathons/status.py -- Deadline-driven status sweep.

run_status_check() is the single entry point used by three callers:
  - the background loop in api/main.py (every STATUS_CHECK_INTERVAL_SECONDS)
  - POST /api/v1/admin/status-check
  - `python main.py status-check`

Each due hackathon is moved with HackathonStore.update_status(), which writes
the AUTOMATIC_TRANSITION audit entry in the same transaction. A failure on
one hackathon is logged and the sweep moves on to the next.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

from core.lifecycle import ACTIVE_STATUSES, next_automatic_transition
from core.models import AuditAction, TriggerType, utcnow
from hackathons.models import AuditEntry
from hackathons.store import HackathonStore

logger = logging.getLogger("hackafi.status")


@dataclass
class StatusCheckResult:
    processed: int = 0
    updated: int = 0
    transitions: list[dict] = field(default_factory=list)
    failed: list[int] = field(default_factory=list)


def run_status_check(store: HackathonStore, now: Optional[datetime] = None) -> StatusCheckResult:
    """Apply every automatic transition that is due at `now` (defaults to the current time)."""
    now = now or utcnow()
    result = StatusCheckResult()
    for hackathon in store.list_by_status(ACTIVE_STATUSES):
        result.processed += 1
        transition = next_automatic_transition(hackathon, now)
        if transition is None:
            continue
        audit = AuditEntry(
            hackathon_id=hackathon.id,
            action=AuditAction.AUTOMATIC_TRANSITION.value,
            from_status=transition.from_status.value,
            to_status=transition.to_status.value,
            triggered_by=TriggerType.SYSTEM.value,
            reason=transition.reason,
            metadata={"checked_at": now.isoformat()},
        )
        try:
            applied = store.update_status(hackathon.id, transition.from_status.value, audit)
        except SQLAlchemyError:
            logger.exception("Status transition failed for hackathon %d", hackathon.id)
            result.failed.append(hackathon.id)
            continue
        if not applied:
            # Someone changed the status between the read and the write.
            logger.info("Hackathon %d no longer %s, skipped", hackathon.id, transition.from_status.value)
            continue
        result.updated += 1
        result.transitions.append(
            {
                "hackathon_id": hackathon.id,
                "from_status": transition.from_status.value,
                "to_status": transition.to_status.value,
                "reason": transition.reason,
            }
        )
        logger.info(
            "Hackathon %d: %s -> %s (%s)",
            hackathon.id,
            transition.from_status.value,
            transition.to_status.value,
            transition.reason,
        )
    if result.updated:
        logger.info("Status check: %d processed, %d updated", result.processed, result.updated)
    return result
