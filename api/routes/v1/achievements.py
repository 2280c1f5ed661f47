"""
api/routes/v1/achievements.py -- Badges earned across hackathons.

Routes:
  GET  /achievements/user/{address}          -- badges held, optionally with progress
  GET  /achievements/me                      -- the same for the caller (progress on by default)
  GET  /achievements/progress/{address}      -- progress split into earned / in progress / available
  POST /achievements/check                   -- award whatever the wallet now qualifies for (admin)
  POST /achievements/award                   -- grant one badge by hand (admin)
  GET  /achievements/stats                   -- award totals across the platform
  GET  /achievements/leaderboard/{category}  -- wallets with the most badges in a category

Badges are also checked automatically when winners are finalized; see
hackathons/achievements.py.
"""

import logging

from fastapi import APIRouter, Depends, Query, Request

from api.models import (
    AchievementAwardRequest,
    AchievementCheckRequest,
    AchievementCheckResponse,
    AchievementLeaderboardResponse,
    AchievementLeaderboardRow,
    AchievementProgressResponse,
    AchievementProgressRow,
    AchievementResponse,
    AchievementStatsResponse,
    ProgressSummary,
    UserAchievementsResponse,
)
from api.routes.v1.hackathons import error, get_store
from auth.dependencies import get_current_user, require_admin
from auth.models import WalletUser
from auth.store import AuthStore
from auth.wallet import normalize_address
from core.achievements import ACHIEVEMENTS, BY_KEY, AchievementCategory, keys_in, progress
from core.models import percent, utcnow
from hackathons.achievements import check_and_award, user_stats
from hackathons.store import HackathonStore

logger = logging.getLogger("hackafi.achievements")

router = APIRouter()

_LEADERBOARD_CAP = 50


def _address_or_400(address: str) -> str:
    try:
        return normalize_address(address)
    except ValueError as e:
        raise error(400, "invalid_address", str(e)) from e


def _user_achievements(store: HackathonStore, address: str, include_progress: bool) -> UserAchievementsResponse:
    held = store.list_achievements(address)
    rows = None
    if include_progress:
        earned = {a.achievement_key: a.earned_at for a in held}
        rows = [AchievementProgressRow.from_domain(r) for r in progress(user_stats(store, address), earned)]
    return UserAchievementsResponse(
        address=address,
        total=len(ACHIEVEMENTS),
        earned=len(held),
        achievements=[AchievementResponse.from_domain(a) for a in held],
        progress=rows,
    )


@router.get("/achievements/user/{address}", response_model=UserAchievementsResponse)
def user_achievements(
    request: Request,
    address: str,
    include_progress: bool = False,
) -> UserAchievementsResponse:
    return _user_achievements(get_store(request), _address_or_400(address), include_progress)


@router.get("/achievements/me", response_model=UserAchievementsResponse)
def my_achievements(
    request: Request,
    include_progress: bool = True,
    current_user: WalletUser = Depends(get_current_user),
) -> UserAchievementsResponse:
    return _user_achievements(get_store(request), current_user.address, include_progress)


@router.get("/achievements/progress/{address}", response_model=AchievementProgressResponse)
def achievement_progress(request: Request, address: str) -> AchievementProgressResponse:
    """Progress rows grouped for display.

    earned is newest first; in_progress is highest progress first; available
    holds the badges with no progress at all.
    """
    store = get_store(request)
    address = _address_or_400(address)
    earned_at = {a.achievement_key: a.earned_at for a in store.list_achievements(address)}
    rows = [AchievementProgressRow.from_domain(r) for r in progress(user_stats(store, address), earned_at)]

    earned = sorted((r for r in rows if r.earned), key=lambda r: r.earned_at or "", reverse=True)
    pending = [r for r in rows if not r.earned]
    in_progress = [r for r in pending if r.progress > 0]
    return AchievementProgressResponse(
        address=address,
        summary=ProgressSummary(
            total=len(rows),
            earned=len(earned),
            available=len(pending),
            in_progress=len(in_progress),
            completion_rate=percent(len(earned), len(rows)),
        ),
        earned=earned,
        in_progress=in_progress,
        available=[r for r in pending if r.progress == 0],
    )


@router.post("/achievements/check", response_model=AchievementCheckResponse)
def check_achievements(
    request: Request,
    body: AchievementCheckRequest,
    admin: WalletUser = Depends(require_admin),
) -> AchievementCheckResponse:
    address = _address_or_400(body.user_address)
    new = check_and_award(get_store(request), address, body.hackathon_id)
    logger.info("Achievement check for %s by %s: %d new", address, admin.address, len(new))
    return AchievementCheckResponse(
        user_address=address,
        hackathon_id=body.hackathon_id,
        new_achievements=new,
        checked_at=utcnow().isoformat(),
    )


@router.post("/achievements/award", response_model=AchievementResponse, status_code=201)
def award_achievement(
    request: Request,
    body: AchievementAwardRequest,
    admin: WalletUser = Depends(require_admin),
) -> AchievementResponse:
    """Grant a badge regardless of its condition. Each badge is held at most once."""
    store = get_store(request)
    address = _address_or_400(body.user_address)
    if body.achievement_key not in BY_KEY:
        raise error(400, "unknown_achievement", f"No achievement named {body.achievement_key!r}.")
    if not store.award_achievements(address, [body.achievement_key], body.hackathon_id, awarded_by=admin.address):
        raise error(409, "achievement_exists", "The wallet already holds this achievement.")
    logger.info(
        "Achievement %s awarded to %s by %s (%s)",
        body.achievement_key,
        address,
        admin.address,
        body.reason or "no reason given",
    )
    held = next(a for a in store.list_achievements(address) if a.achievement_key == body.achievement_key)
    return AchievementResponse.from_domain(held)


@router.get("/achievements/stats", response_model=AchievementStatsResponse)
def achievement_stats(request: Request) -> AchievementStatsResponse:
    store = get_store(request)
    counts = store.achievement_counts()
    return AchievementStatsResponse(
        total_awarded=sum(counts.values()),
        users_with_achievements=store.count_achievers(),
        by_achievement={d.key: counts.get(d.key, 0) for d in ACHIEVEMENTS},
    )


@router.get("/achievements/leaderboard/{category}", response_model=AchievementLeaderboardResponse)
def achievement_leaderboard(
    request: Request,
    category: str,
    limit: int = Query(default=10, ge=1),
) -> AchievementLeaderboardResponse:
    try:
        wanted = AchievementCategory(category.upper())
    except ValueError as e:
        names = ", ".join(c.value for c in AchievementCategory)
        raise error(400, "invalid_category", f"Category must be one of: {names}.") from e
    entries = get_store(request).achievement_leaderboard(keys_in(wanted), min(limit, _LEADERBOARD_CAP))
    auth_store: AuthStore = request.app.state.auth_store
    profiles = auth_store.get_profiles([address for address, _ in entries])
    return AchievementLeaderboardResponse(
        category=wanted.value,
        leaderboard=[
            AchievementLeaderboardRow(
                rank=i,
                wallet_address=address,
                username=profiles[address].username if address in profiles else None,
                avatar_url=profiles[address].avatar_url if address in profiles else None,
                achievement_count=badges,
            )
            for i, (address, badges) in enumerate(entries, start=1)
        ],
    )
