"""
api/routes/v1/users.py -- User profiles and the leaderboard.

Routes (in registration order -- /users/me must precede /users/{address}):
  GET   /users/me          -- caller's profile (created on first access)
  PATCH /users/me          -- update username / bio / avatar_url
  GET   /users/{address}   -- public profile, counts, participation history
  GET   /leaderboard       -- wallets ranked by wins, prize total, podiums

Profiles are keyed by lowercase wallet address. Usernames are unique; a
clash answers 409.
"""

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.exc import IntegrityError

from api.models import (
    ErrorDetail,
    LeaderboardRow,
    ParticipationHistoryRow,
    ProfileUpdate,
    UserDetailResponse,
    UserProfileResponse,
)
from auth.dependencies import get_current_user
from auth.models import WalletUser
from auth.store import AuthStore
from auth.wallet import normalize_address
from hackathons.store import HackathonStore

router = APIRouter()


@router.get("/users/me", response_model=UserProfileResponse)
def get_me(request: Request, current_user: WalletUser = Depends(get_current_user)) -> UserProfileResponse:
    store: AuthStore = request.app.state.auth_store
    return UserProfileResponse.from_domain(store.ensure_profile(current_user.address))


@router.patch("/users/me", response_model=UserProfileResponse)
def update_me(
    request: Request,
    body: ProfileUpdate,
    current_user: WalletUser = Depends(get_current_user),
) -> UserProfileResponse:
    """Update the caller's profile. Omitted fields are left unchanged."""
    store: AuthStore = request.app.state.auth_store
    store.ensure_profile(current_user.address)
    fields = body.model_dump(exclude_unset=True)
    if fields:
        try:
            store.update_profile(current_user.address, **fields)
        except IntegrityError as e:
            raise HTTPException(
                status_code=409,
                detail=ErrorDetail(code="username_taken", message="Username is already taken.").model_dump(),
            ) from e
    return UserProfileResponse.from_domain(store.get_profile(current_user.address))


@router.get("/users/{address}", response_model=UserDetailResponse)
def get_user(request: Request, address: str) -> UserDetailResponse:
    try:
        address = normalize_address(address)
    except ValueError as e:
        raise HTTPException(
            status_code=400,
            detail=ErrorDetail(code="invalid_address", message=str(e)).model_dump(),
        ) from e
    auth_store: AuthStore = request.app.state.auth_store
    store: HackathonStore = request.app.state.hackathon_store
    profile = auth_store.get_profile(address)
    if profile is None:
        raise HTTPException(
            status_code=404,
            detail=ErrorDetail(code="user_not_found", message="No profile for this address.").model_dump(),
        )

    participations = store.list_participations(address)
    hackathons = store.get_hackathons([p.hackathon_id for p in participations])
    history = [
        ParticipationHistoryRow(
            hackathon_id=p.hackathon_id,
            title=hackathons[p.hackathon_id].title,
            status=hackathons[p.hackathon_id].status,
            submission_url=p.submission_url,
            rank=p.rank,
            prize_amount=p.prize_amount,
            registered_at=p.created_at,
        )
        for p in participations
        if p.hackathon_id in hackathons
    ]
    return UserDetailResponse(
        profile=UserProfileResponse.from_domain(profile),
        counts={
            "participated": len(participations),
            "won": sum(1 for p in participations if p.rank == 1),
            "judged": store.count_judged(address),
            "organized": store.count_organized(address),
        },
        history=history,
    )


@router.get("/leaderboard", response_model=list[LeaderboardRow])
def leaderboard(request: Request, limit: int = Query(default=50, ge=1, le=100)) -> list[LeaderboardRow]:
    store: HackathonStore = request.app.state.hackathon_store
    auth_store: AuthStore = request.app.state.auth_store
    entries = store.leaderboard(limit)
    profiles = auth_store.get_profiles([e["wallet_address"] for e in entries])
    return [
        LeaderboardRow(
            rank=i,
            wallet_address=e["wallet_address"],
            username=profiles[e["wallet_address"]].username if e["wallet_address"] in profiles else None,
            wins=e["wins"],
            podiums=e["podiums"],
            participations=e["participations"],
            total_prize=str(e["total_prize"]),
        )
        for i, e in enumerate(entries, start=1)
    ]
