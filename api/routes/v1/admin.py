"""
api/routes/v1/admin.py -- Operator endpoints for the status scheduler and audit log.

Routes:
  GET  /admin/status-summary  -- hackathons per status, pending automatic transitions
  POST /admin/status-check    -- run one deadline sweep now
  GET  /admin/audit           -- audit log across all hackathons, filterable

Every route requires an admin (ADMIN_ADDRESSES). The router-level dependency
applies to each handler so none can be registered unprotected by accident.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from api.models import (
    ActiveHackathonRow,
    AuditEntryResponse,
    AuditListResponse,
    StatusCheckResponse,
    StatusSummaryResponse,
)
from auth.dependencies import require_admin
from core.lifecycle import ACTIVE_STATUSES, next_automatic_transition
from core.models import AuditAction, HackathonStatus, TriggerType, utcnow
from hackathons.status import run_status_check
from hackathons.store import HackathonStore

router = APIRouter(dependencies=[Depends(require_admin)])


@router.get("/admin/status-summary", response_model=StatusSummaryResponse)
def status_summary(request: Request) -> StatusSummaryResponse:
    store: HackathonStore = request.app.state.hackathon_store
    now = utcnow()
    counts = {s.value: 0 for s in HackathonStatus}
    counts.update(store.status_counts())
    active = []
    for hackathon in store.list_by_status(ACTIVE_STATUSES):
        transition = next_automatic_transition(hackathon, now)
        active.append(
            ActiveHackathonRow(
                id=hackathon.id,
                title=hackathon.title,
                status=HackathonStatus(hackathon.status),
                pending_transition=transition.to_status if transition else None,
                reason=transition.reason if transition else None,
            )
        )
    return StatusSummaryResponse(counts=counts, active=active, checked_at=now.isoformat())


@router.post("/admin/status-check", response_model=StatusCheckResponse)
def status_check(request: Request) -> StatusCheckResponse:
    result = run_status_check(request.app.state.hackathon_store)
    return StatusCheckResponse(
        processed=result.processed,
        updated=result.updated,
        transitions=result.transitions,
        failed=result.failed,
    )


@router.get("/admin/audit", response_model=AuditListResponse)
def audit_log(
    request: Request,
    action: Optional[AuditAction] = None,
    triggered_by: Optional[TriggerType] = None,
    hackathon_id: Optional[int] = None,
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
) -> AuditListResponse:
    store: HackathonStore = request.app.state.hackathon_store
    entries, total = store.list_audit(
        hackathon_id=hackathon_id,
        action=action.value if action else None,
        triggered_by=triggered_by.value if triggered_by else None,
        limit=limit,
        offset=offset,
    )
    return AuditListResponse(
        data=[AuditEntryResponse.from_domain(e) for e in entries],
        total=total,
        limit=limit,
        offset=offset,
    )
