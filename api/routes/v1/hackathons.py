"""
api/routes/v1/hackathons.py -- Hackathon CRUD, status, participation and judge panel.

Routes (in registration order to avoid FastAPI path capture conflicts):
  POST   /hackathons                                  -- create (DRAFT)
  GET    /hackathons                                  -- filtered, paginated list
  GET    /hackathons/{id}                             -- detail (?include_participants=true)
  PATCH  /hackathons/{id}                             -- organizer edit; status change audited
  DELETE /hackathons/{id}                             -- organizer delete
  POST   /hackathons/{id}/status                      -- manual transition (organizer or admin)
  GET    /hackathons/{id}/actions                     -- actions allowed right now
  POST   /hackathons/{id}/participate                 -- register the caller
  POST   /hackathons/{id}/submission                  -- set/replace the caller's submission
  GET    /hackathons/{id}/participants                -- participant list
  POST   /hackathons/{id}/judges                      -- add judge (organizer)
  GET    /hackathons/{id}/judges                      -- judge panel
  DELETE /hackathons/{id}/judges/{judge_address}      -- remove judge (organizer)
  GET    /hackathons/{id}/audit                       -- status audit trail (organizer or admin)

Action gating:
  Every state-changing route asks core.lifecycle.deadline_error() first and
  answers 400 action_not_allowed with its explanation. Caller checks
  (organizer only, participant only) come before gating and answer 403.

Error mapping: not found 404, wrong caller 403, status/deadline violations
400, duplicates 409.
"""

from __future__ import annotations

import logging
import math
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response
from sqlalchemy.exc import IntegrityError

from api.models import (
    ActionsResponse,
    AuditEntryResponse,
    AuditListResponse,
    ErrorDetail,
    HackathonCreate,
    HackathonListResponse,
    HackathonResponse,
    HackathonUpdate,
    JudgeAddRequest,
    JudgeResponse,
    ParticipantResponse,
    ParticipateRequest,
    SortByEnum,
    SortOrderEnum,
    StatusChangeRequest,
    SubmitRequest,
)
from auth.dependencies import get_current_user
from auth.models import WalletUser
from auth.store import AuthStore
from auth.tokens import role_for
from auth.wallet import normalize_address
from core.lifecycle import InvalidTransition, allowed_actions, deadline_error, next_statuses, validate_transition
from core.models import Action, AuditAction, HackathonStatus, TriggerType, as_utc, utcnow
from hackathons.models import AuditEntry, Hackathon, Judge, Participant
from hackathons.store import HackathonStore

logger = logging.getLogger("hackafi.hackathons")

router = APIRouter()


# ---------------------------------------------------------------------------
# Helpers shared with the other hackathon-scoped routers
# ---------------------------------------------------------------------------


def get_store(request: Request) -> HackathonStore:
    return request.app.state.hackathon_store


def error(status_code: int, code: str, message: str) -> HTTPException:
    return HTTPException(status_code=status_code, detail=ErrorDetail(code=code, message=message).model_dump())


def get_hackathon_or_404(store: HackathonStore, hackathon_id: int) -> Hackathon:
    hackathon = store.get_hackathon(hackathon_id)
    if hackathon is None:
        raise error(404, "hackathon_not_found", f"Hackathon {hackathon_id} not found.")
    return hackathon


def require_action(hackathon: Hackathon, action: Action, now: datetime) -> None:
    reason = deadline_error(hackathon, action, now)
    if reason is not None:
        raise error(400, "action_not_allowed", reason)


def require_organizer(hackathon: Hackathon, user: WalletUser, what: str) -> None:
    if hackathon.organizer_address != user.address:
        raise error(403, "forbidden", f"Only the organizer can {what}.")


def is_admin(user: WalletUser) -> bool:
    return user.is_admin and role_for(user.address) == "admin"


def _check_deadlines(registration: datetime, submission: datetime, voting: datetime) -> None:
    if not registration <= submission <= voting:
        raise error(
            400,
            "invalid_deadlines",
            "Deadlines must satisfy registration <= submission <= voting.",
        )


def _client(request: Request) -> tuple[Optional[str], Optional[str]]:
    ip = request.client.host if request.client else None
    return ip, request.headers.get("User-Agent")


# ---------------------------------------------------------------------------
# POST /hackathons -- create
# ---------------------------------------------------------------------------


@router.post("/hackathons", response_model=HackathonResponse, status_code=201)
def create_hackathon(
    request: Request,
    body: HackathonCreate,
    current_user: WalletUser = Depends(get_current_user),
) -> HackathonResponse:
    """Create a hackathon owned by the caller. It starts in DRAFT."""
    now = utcnow()
    registration = as_utc(body.registration_deadline)
    submission = as_utc(body.submission_deadline)
    voting = as_utc(body.voting_deadline)
    if registration <= now:
        raise error(400, "invalid_deadlines", "Registration deadline must be in the future.")
    _check_deadlines(registration, submission, voting)

    store = get_store(request)
    hackathon_id = store.create_hackathon(
        Hackathon(
            title=body.title,
            description=body.description,
            organizer_address=current_user.address,
            registration_deadline=registration.isoformat(),
            submission_deadline=submission.isoformat(),
            voting_deadline=voting.isoformat(),
            status=HackathonStatus.DRAFT.value,
            prize_amount=body.prize_amount,
            entry_fee=body.entry_fee,
            max_participants=body.max_participants,
            cover_image_url=body.cover_image_url,
            contract_address=body.contract_address,
        )
    )
    auth_store: AuthStore = request.app.state.auth_store
    auth_store.ensure_profile(current_user.address)
    logger.info("Hackathon %d created by %s", hackathon_id, current_user.address)
    return HackathonResponse.from_domain(store.get_hackathon(hackathon_id), participant_count=0)


# ---------------------------------------------------------------------------
# GET /hackathons -- list
# ---------------------------------------------------------------------------


@router.get("/hackathons", response_model=HackathonListResponse)
def list_hackathons(
    request: Request,
    status: Optional[HackathonStatus] = None,
    organizer: Optional[str] = Query(default=None, max_length=42),
    search: Optional[str] = Query(default=None, max_length=100),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    sort_by: SortByEnum = SortByEnum.created_at,
    sort_order: SortOrderEnum = SortOrderEnum.desc,
) -> HackathonListResponse:
    """Public listing. search matches title or description, case-insensitive."""
    store = get_store(request)
    items, total = store.list_hackathons(
        status=status.value if status else None,
        organizer=organizer,
        search=search.strip() if search else None,
        page=page,
        limit=limit,
        sort_by=sort_by.value,
        sort_order=sort_order.value,
    )
    return HackathonListResponse(
        data=[HackathonResponse.from_domain(h) for h in items],
        total=total,
        page=page,
        limit=limit,
        total_pages=math.ceil(total / limit) if total else 0,
    )


# ---------------------------------------------------------------------------
# GET / PATCH / DELETE /hackathons/{id}
# ---------------------------------------------------------------------------


@router.get("/hackathons/{hackathon_id}", response_model=HackathonResponse)
def get_hackathon(request: Request, hackathon_id: int, include_participants: bool = False) -> HackathonResponse:
    store = get_store(request)
    hackathon = get_hackathon_or_404(store, hackathon_id)
    if include_participants:
        participants = store.list_participants(hackathon_id)
        return HackathonResponse.from_domain(hackathon, len(participants), participants)
    return HackathonResponse.from_domain(hackathon, store.count_participants(hackathon_id))


@router.patch("/hackathons/{hackathon_id}", response_model=HackathonResponse)
def update_hackathon(
    request: Request,
    hackathon_id: int,
    body: HackathonUpdate,
    current_user: WalletUser = Depends(get_current_user),
) -> HackathonResponse:
    """Organizer edit. Allowed in every status except COMPLETED.

    New deadlines must lie in the future and keep the ordering together with
    the deadlines that are not being changed. A status in the body is a manual
    transition: validated against the transition table and audited as
    MANUAL_OVERRIDE in the same transaction as the field changes.
    """
    store = get_store(request)
    hackathon = get_hackathon_or_404(store, hackathon_id)
    require_organizer(hackathon, current_user, "edit this hackathon")
    now = utcnow()
    require_action(hackathon, Action.EDIT, now)

    changes = body.model_dump(exclude_unset=True, exclude={"status"})
    deadline_fields = ("registration_deadline", "submission_deadline", "voting_deadline")
    if any(changes.get(f) is not None for f in deadline_fields):
        merged = {}
        for f in deadline_fields:
            if changes.get(f) is not None:
                merged[f] = as_utc(changes[f])
                if merged[f] <= now:
                    raise error(400, "invalid_deadlines", f"{f} must be in the future.")
                changes[f] = merged[f].isoformat()
            else:
                merged[f] = as_utc(getattr(hackathon, f))
        _check_deadlines(merged["registration_deadline"], merged["submission_deadline"], merged["voting_deadline"])
    # Explicit nulls on NOT NULL columns are ignored rather than written.
    required = {"title", "description", *deadline_fields}
    changes = {k: v for k, v in changes.items() if v is not None or k not in required}
    if changes.get("contract_address"):
        changes["contract_address"] = changes["contract_address"].lower()

    target = body.status
    if target is not None and target.value != hackathon.status:
        try:
            validate_transition(HackathonStatus(hackathon.status), target)
        except InvalidTransition as e:
            raise error(400, "invalid_transition", str(e)) from e
        ip, ua = _client(request)
        audit = AuditEntry(
            hackathon_id=hackathon_id,
            action=AuditAction.MANUAL_OVERRIDE.value,
            from_status=hackathon.status,
            to_status=target.value,
            triggered_by=TriggerType.ORGANIZER.value,
            reason="Status changed via hackathon update",
            user_address=current_user.address,
            metadata={"fields": sorted(changes)},
            ip_address=ip,
            user_agent=ua,
        )
        if not store.update_status(hackathon_id, hackathon.status, audit, **changes):
            raise error(409, "status_conflict", "Hackathon status changed concurrently. Reload and retry.")
        logger.info("Hackathon %d: %s -> %s by organizer edit", hackathon_id, hackathon.status, target.value)
    elif changes:
        store.update_hackathon(hackathon_id, **changes)

    return HackathonResponse.from_domain(store.get_hackathon(hackathon_id), store.count_participants(hackathon_id))


@router.delete("/hackathons/{hackathon_id}", status_code=204)
def delete_hackathon(
    request: Request,
    hackathon_id: int,
    current_user: WalletUser = Depends(get_current_user),
) -> Response:
    """Organizer delete. Refused while registration, submission or voting is open."""
    store = get_store(request)
    hackathon = get_hackathon_or_404(store, hackathon_id)
    require_organizer(hackathon, current_user, "delete this hackathon")
    require_action(hackathon, Action.DELETE, utcnow())
    store.delete_hackathon(hackathon_id)
    logger.info("Hackathon %d deleted by %s", hackathon_id, current_user.address)
    return Response(status_code=204)


# ---------------------------------------------------------------------------
# Status and actions
# ---------------------------------------------------------------------------


@router.post("/hackathons/{hackathon_id}/status", response_model=HackathonResponse)
def change_status(
    request: Request,
    hackathon_id: int,
    body: StatusChangeRequest,
    current_user: WalletUser = Depends(get_current_user),
) -> HackathonResponse:
    """Manual status transition by the organizer or an admin.

    Organizer changes are audited as MANUAL_OVERRIDE / ORGANIZER; admin
    changes on someone else's hackathon as ADMIN_INTERVENTION / ADMIN.
    """
    store = get_store(request)
    hackathon = get_hackathon_or_404(store, hackathon_id)
    if hackathon.organizer_address == current_user.address:
        action, trigger = AuditAction.MANUAL_OVERRIDE, TriggerType.ORGANIZER
    elif is_admin(current_user):
        action, trigger = AuditAction.ADMIN_INTERVENTION, TriggerType.ADMIN
    else:
        raise error(403, "forbidden", "Only the organizer or an admin can change the status.")

    try:
        validate_transition(HackathonStatus(hackathon.status), body.status)
    except InvalidTransition as e:
        raise error(400, "invalid_transition", str(e)) from e

    ip, ua = _client(request)
    audit = AuditEntry(
        hackathon_id=hackathon_id,
        action=action.value,
        from_status=hackathon.status,
        to_status=body.status.value,
        triggered_by=trigger.value,
        reason=body.reason,
        user_address=current_user.address,
        metadata={"organizer_address": hackathon.organizer_address},
        ip_address=ip,
        user_agent=ua,
    )
    if not store.update_status(hackathon_id, hackathon.status, audit):
        raise error(409, "status_conflict", "Hackathon status changed concurrently. Reload and retry.")
    logger.info(
        "Hackathon %d: %s -> %s by %s (%s)",
        hackathon_id,
        hackathon.status,
        body.status.value,
        current_user.address,
        trigger.value,
    )
    return HackathonResponse.from_domain(store.get_hackathon(hackathon_id), store.count_participants(hackathon_id))


@router.get("/hackathons/{hackathon_id}/actions", response_model=ActionsResponse)
def get_actions(request: Request, hackathon_id: int) -> ActionsResponse:
    """What can be done to this hackathon right now, and where its status can go next."""
    hackathon = get_hackathon_or_404(get_store(request), hackathon_id)
    now = utcnow()
    actions = allowed_actions(hackathon, now)
    return ActionsResponse(
        hackathon_id=hackathon_id,
        status=HackathonStatus(hackathon.status),
        allowed_actions=sorted(a.value for a in actions),
        next_statuses=list(next_statuses(HackathonStatus(hackathon.status))),
        checked_at=now.isoformat(),
    )


# ---------------------------------------------------------------------------
# Participation
# ---------------------------------------------------------------------------


@router.post("/hackathons/{hackathon_id}/participate", response_model=ParticipantResponse, status_code=201)
def participate(
    request: Request,
    hackathon_id: int,
    body: Optional[ParticipateRequest] = None,
    current_user: WalletUser = Depends(get_current_user),
) -> ParticipantResponse:
    """Register the caller. Registration must be open and before its deadline."""
    body = body or ParticipateRequest()
    store = get_store(request)
    hackathon = get_hackathon_or_404(store, hackathon_id)
    if hackathon.organizer_address == current_user.address:
        raise error(403, "organizer_cannot_participate", "The organizer cannot participate in their own hackathon.")
    require_action(hackathon, Action.REGISTER, utcnow())
    if store.get_participant_by_address(hackathon_id, current_user.address) is not None:
        raise error(409, "already_registered", "Already registered for this hackathon.")
    if hackathon.max_participants is not None and store.count_participants(hackathon_id) >= hackathon.max_participants:
        raise error(400, "hackathon_full", "Hackathon has reached its participant limit.")

    try:
        participant_id = store.add_participant(
            Participant(
                hackathon_id=hackathon_id,
                wallet_address=current_user.address,
                submission_url=body.submission_url,
                entry_fee=body.entry_fee or hackathon.entry_fee,
            )
        )
    except IntegrityError as e:
        raise error(409, "already_registered", "Already registered for this hackathon.") from e
    auth_store: AuthStore = request.app.state.auth_store
    auth_store.ensure_profile(current_user.address)
    logger.info("%s registered for hackathon %d", current_user.address, hackathon_id)
    return ParticipantResponse.from_domain(store.get_participant(participant_id))


@router.post("/hackathons/{hackathon_id}/submission", response_model=ParticipantResponse)
def submit(
    request: Request,
    hackathon_id: int,
    body: SubmitRequest,
    current_user: WalletUser = Depends(get_current_user),
) -> ParticipantResponse:
    """Set or replace the caller's submission URL before the submission deadline."""
    store = get_store(request)
    hackathon = get_hackathon_or_404(store, hackathon_id)
    participant = store.get_participant_by_address(hackathon_id, current_user.address)
    if participant is None:
        raise error(403, "not_participant", "Only registered participants can submit.")
    require_action(hackathon, Action.SUBMIT, utcnow())
    store.update_submission(participant.id, body.submission_url)
    logger.info("Participant %d submitted for hackathon %d", participant.id, hackathon_id)
    return ParticipantResponse.from_domain(store.get_participant(participant.id))


@router.get("/hackathons/{hackathon_id}/participants", response_model=list[ParticipantResponse])
def list_participants(request: Request, hackathon_id: int) -> list[ParticipantResponse]:
    store = get_store(request)
    get_hackathon_or_404(store, hackathon_id)
    return [ParticipantResponse.from_domain(p) for p in store.list_participants(hackathon_id)]


# ---------------------------------------------------------------------------
# Judge panel
# ---------------------------------------------------------------------------


@router.post("/hackathons/{hackathon_id}/judges", response_model=JudgeResponse, status_code=201)
def add_judge(
    request: Request,
    hackathon_id: int,
    body: JudgeAddRequest,
    current_user: WalletUser = Depends(get_current_user),
) -> JudgeResponse:
    """Add a judge. Closed once voting opens."""
    store = get_store(request)
    hackathon = get_hackathon_or_404(store, hackathon_id)
    require_organizer(hackathon, current_user, "manage judges")
    require_action(hackathon, Action.ADD_JUDGE, utcnow())
    try:
        judge_address = normalize_address(body.judge_address)
    except ValueError as e:
        raise error(400, "invalid_address", str(e)) from e
    if judge_address == hackathon.organizer_address:
        raise error(400, "organizer_cannot_judge", "The organizer cannot be a judge of their own hackathon.")
    if store.is_judge(hackathon_id, judge_address):
        raise error(409, "judge_exists", "Address is already a judge of this hackathon.")
    try:
        store.add_judge(Judge(hackathon_id=hackathon_id, judge_address=judge_address, added_by=current_user.address))
    except IntegrityError as e:
        raise error(409, "judge_exists", "Address is already a judge of this hackathon.") from e
    auth_store: AuthStore = request.app.state.auth_store
    auth_store.ensure_profile(judge_address)
    logger.info("Judge %s added to hackathon %d", judge_address, hackathon_id)
    judge = next(j for j in store.list_judges(hackathon_id) if j.judge_address == judge_address)
    return JudgeResponse.from_domain(judge)


@router.get("/hackathons/{hackathon_id}/judges", response_model=list[JudgeResponse])
def list_judges(request: Request, hackathon_id: int) -> list[JudgeResponse]:
    store = get_store(request)
    get_hackathon_or_404(store, hackathon_id)
    return [JudgeResponse.from_domain(j) for j in store.list_judges(hackathon_id)]


@router.delete("/hackathons/{hackathon_id}/judges/{judge_address}", status_code=204)
def remove_judge(
    request: Request,
    hackathon_id: int,
    judge_address: str,
    current_user: WalletUser = Depends(get_current_user),
) -> Response:
    """Remove a judge. Not while voting is open, and never once their votes count."""
    store = get_store(request)
    hackathon = get_hackathon_or_404(store, hackathon_id)
    require_organizer(hackathon, current_user, "manage judges")
    require_action(hackathon, Action.REMOVE_JUDGE, utcnow())
    try:
        address = normalize_address(judge_address)
    except ValueError as e:
        raise error(400, "invalid_address", str(e)) from e
    if not store.is_judge(hackathon_id, address):
        raise error(404, "judge_not_found", "Address is not a judge of this hackathon.")
    voting_over = hackathon.status in (HackathonStatus.VOTING_CLOSED.value, HackathonStatus.COMPLETED.value)
    if voting_over and store.judge_has_votes(hackathon_id, address):
        raise error(400, "judge_has_votes", "Cannot remove a judge whose votes have been counted.")
    store.remove_judge(hackathon_id, address)
    logger.info("Judge %s removed from hackathon %d", address, hackathon_id)
    return Response(status_code=204)


# ---------------------------------------------------------------------------
# Audit trail
# ---------------------------------------------------------------------------


@router.get("/hackathons/{hackathon_id}/audit", response_model=AuditListResponse)
def hackathon_audit(
    request: Request,
    hackathon_id: int,
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    current_user: WalletUser = Depends(get_current_user),
) -> AuditListResponse:
    store = get_store(request)
    hackathon = get_hackathon_or_404(store, hackathon_id)
    if hackathon.organizer_address != current_user.address and not is_admin(current_user):
        raise error(403, "forbidden", "Only the organizer or an admin can view the audit trail.")
    entries, total = store.list_audit(hackathon_id=hackathon_id, limit=limit, offset=offset)
    return AuditListResponse(
        data=[AuditEntryResponse.from_domain(e) for e in entries],
        total=total,
        limit=limit,
        offset=offset,
    )
