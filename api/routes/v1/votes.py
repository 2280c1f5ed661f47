"""
api/routes/v1/votes.py -- Judge votes, rankings, and winner determination.

Routes:
  POST /hackathons/{id}/votes                -- cast or replace a vote (judges)
  GET  /hackathons/{id}/results              -- live rankings + metrics
  GET  /hackathons/{id}/winners/calculate    -- podium and prize split, not persisted
  POST /hackathons/{id}/winners/finalize     -- persist ranks and prizes (organizer, once), then award badges
  GET  /hackathons/{id}/winners              -- finalized podium, or a fresh calculation
  GET  /hackathons/{id}/winners/top3         -- first/second/third place addresses

Vote validation runs through core.voting.validate_vote(); its error code and
HTTP status are passed straight through. The slowapi limit on POST /votes is
a coarse per-IP guard on top of the per-judge window inside validate_vote().

Results visibility: anyone once voting has closed; before that only the
organizer or an admin, so judges cannot see each other's running totals.
"""

from __future__ import annotations

import logging
from collections import defaultdict

from fastapi import APIRouter, Depends, HTTPException, Request, Response

from api.limiter import limiter
from api.models import (
    ErrorDetail,
    RankingMetricsResponse,
    RankingRow,
    ResultsResponse,
    Top3Response,
    VoteRequest,
    VoteResponse,
    WinnerSlot,
    WinnersResponse,
)
from api.routes.v1.hackathons import error, get_hackathon_or_404, get_store, is_admin, require_action, require_organizer
from auth.dependencies import get_current_user, try_get_current_user
from auth.models import WalletUser
from core.config import get_settings
from core.models import Action, HackathonStatus, utcnow
from core.ranking import (
    DEFAULT_DISTRIBUTION,
    ParticipantScores,
    Ranking,
    RankingMetrics,
    calculate_rankings,
    split_prize_pool,
)
from core.voting import VOTE_WINDOW, VoteContext, validate_vote
from hackathons.achievements import award_for_hackathon
from hackathons.models import Hackathon, Vote
from hackathons.store import HackathonStore

logger = logging.getLogger("hackafi.votes")

_settings = get_settings()

router = APIRouter()

_RESULTS_PUBLIC = {HackathonStatus.VOTING_CLOSED.value, HackathonStatus.COMPLETED.value}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _rank(store: HackathonStore, hackathon: Hackathon) -> tuple[list[Ranking], RankingMetrics]:
    """Load participants and votes for a hackathon and run the ranking."""
    scores: dict[int, list[int]] = defaultdict(list)
    for vote in store.list_votes(hackathon.id):
        scores[vote.participant_id].append(vote.score)
    participants = [
        ParticipantScores(
            participant_id=p.id,
            wallet_address=p.wallet_address,
            submission_url=p.submission_url,
            scores=scores.get(p.id, []),
        )
        for p in store.list_participants(hackathon.id)
    ]
    return calculate_rankings(participants, store.count_judges(hackathon.id))


def _pool(hackathon: Hackathon) -> int:
    return int(hackathon.prize_amount or 0)


def _calculated_winners(store: HackathonStore, hackathon: Hackathon) -> WinnersResponse:
    ranked, _ = _rank(store, hackathon)
    slots = split_prize_pool(ranked, _pool(hackathon))
    return WinnersResponse(
        hackathon_id=hackathon.id,
        finalized=False,
        total_pool=str(_pool(hackathon)),
        winners=[
            WinnerSlot(
                position=s.position,
                basis_points=s.basis_points,
                amount=str(s.amount),
                participant_id=s.winner.participant_id if s.winner else None,
                wallet_address=s.winner.wallet_address if s.winner else None,
                weighted_score=s.winner.weighted_score if s.winner else None,
            )
            for s in slots
        ],
    )


def _finalized_winners(store: HackathonStore, hackathon: Hackathon) -> WinnersResponse:
    ranked = store.list_ranked(hackathon.id)
    slots = []
    for position, bp in DEFAULT_DISTRIBUTION:
        winner = next((p for p in ranked if p.rank == position), None)
        slots.append(
            WinnerSlot(
                position=position,
                basis_points=bp,
                amount=(winner.prize_amount or "0") if winner else str(_pool(hackathon) * bp // 10000),
                participant_id=winner.id if winner else None,
                wallet_address=winner.wallet_address if winner else None,
            )
        )
    return WinnersResponse(hackathon_id=hackathon.id, finalized=True, total_pool=str(_pool(hackathon)), winners=slots)


def _winners(store: HackathonStore, hackathon: Hackathon) -> WinnersResponse:
    if store.is_finalized(hackathon.id):
        return _finalized_winners(store, hackathon)
    require_action(hackathon, Action.FINALIZE, utcnow())
    return _calculated_winners(store, hackathon)


# ---------------------------------------------------------------------------
# POST /hackathons/{id}/votes
# ---------------------------------------------------------------------------


@limiter.limit(_settings.vote_rate_limit)
@router.post("/hackathons/{hackathon_id}/votes", response_model=VoteResponse, status_code=201)
def cast_vote(
    request: Request,
    response: Response,
    hackathon_id: int,
    body: VoteRequest,
    current_user: WalletUser = Depends(get_current_user),
) -> VoteResponse:
    """Score a participant. A repeat vote for the same participant replaces the old one (200)."""
    store = get_store(request)
    now = utcnow()
    hackathon = store.get_hackathon(hackathon_id)
    ctx = VoteContext(hackathon=hackathon, is_judge=False, participant=None)
    if hackathon is not None:
        ctx.is_judge = store.is_judge(hackathon_id, current_user.address)
        ctx.participant = store.get_participant(body.participant_id)
        ctx.recent_votes = store.count_recent_votes(hackathon_id, current_user.address, now - VOTE_WINDOW)

    result = validate_vote(ctx, current_user.address, body.score, body.comment, now)
    if not result.ok:
        logger.info("Vote rejected for %s in hackathon %d: %s", current_user.address, hackathon_id, result.code)
        raise HTTPException(
            status_code=result.http_status,
            detail={
                **ErrorDetail(code=result.code, message=result.message).model_dump(),
                "metadata": result.metadata,
            },
        )

    vote, created = store.upsert_vote(
        Vote(
            hackathon_id=hackathon_id,
            judge_address=current_user.address,
            participant_id=body.participant_id,
            score=body.score,
            comment=body.comment or None,
        )
    )
    if not created:
        response.status_code = 200
    logger.info(
        "Vote %s by %s for participant %d in hackathon %d",
        "recorded" if created else "updated",
        current_user.address,
        body.participant_id,
        hackathon_id,
    )
    return VoteResponse.from_domain(vote, updated=not created)


# ---------------------------------------------------------------------------
# GET /hackathons/{id}/results
# ---------------------------------------------------------------------------


@router.get("/hackathons/{hackathon_id}/results", response_model=ResultsResponse)
def results(request: Request, hackathon_id: int) -> ResultsResponse:
    store = get_store(request)
    hackathon = get_hackathon_or_404(store, hackathon_id)
    if hackathon.status not in _RESULTS_PUBLIC:
        user = try_get_current_user(request)
        if user is None or (user.address != hackathon.organizer_address and not is_admin(user)):
            raise error(403, "results_hidden", "Results are visible once voting has closed.")
    ranked, metrics = _rank(store, hackathon)
    return ResultsResponse(
        hackathon_id=hackathon_id,
        status=HackathonStatus(hackathon.status),
        rankings=[
            RankingRow(
                participant_id=r.participant_id,
                wallet_address=r.wallet_address,
                submission_url=r.submission_url,
                total_votes=r.total_votes,
                average_score=r.average_score,
                weighted_score=r.weighted_score,
                normalized_score=r.normalized_score,
                consensus_score=r.consensus_score,
                variance=round(r.variance, 2),
                rank=r.rank,
                tier=r.tier,
            )
            for r in ranked
        ],
        metrics=RankingMetricsResponse(**vars(metrics)),
    )


# ---------------------------------------------------------------------------
# Winners
# ---------------------------------------------------------------------------


@router.get("/hackathons/{hackathon_id}/winners/calculate", response_model=WinnersResponse)
def calculate_winners(request: Request, hackathon_id: int) -> WinnersResponse:
    """Podium and prize split from the current votes. Nothing is written."""
    store = get_store(request)
    hackathon = get_hackathon_or_404(store, hackathon_id)
    require_action(hackathon, Action.FINALIZE, utcnow())
    return _calculated_winners(store, hackathon)


@router.post("/hackathons/{hackathon_id}/winners/finalize", response_model=WinnersResponse)
def finalize_winners(
    request: Request,
    hackathon_id: int,
    current_user: WalletUser = Depends(get_current_user),
) -> WinnersResponse:
    """Persist rank for every ranked participant and prize for the podium. One shot.

    Badges for everyone involved in the hackathon are checked afterwards.
    """
    store = get_store(request)
    hackathon = get_hackathon_or_404(store, hackathon_id)
    require_organizer(hackathon, current_user, "finalize winners")
    require_action(hackathon, Action.FINALIZE, utcnow())
    if store.is_finalized(hackathon_id):
        raise error(409, "already_finalized", "Winners have already been finalized.")

    ranked, _ = _rank(store, hackathon)
    slots = split_prize_pool(ranked, _pool(hackathon))
    prizes = {s.winner.participant_id: str(s.amount) for s in slots if s.winner is not None}
    placements = [(r.participant_id, r.rank, prizes.get(r.participant_id)) for r in ranked]
    store.finalize_winners(hackathon_id, placements)
    logger.info("Winners finalized for hackathon %d (%d ranked)", hackathon_id, len(placements))
    award_for_hackathon(store, hackathon)
    return _finalized_winners(store, hackathon)


@router.get("/hackathons/{hackathon_id}/winners", response_model=WinnersResponse)
def get_winners(request: Request, hackathon_id: int) -> WinnersResponse:
    store = get_store(request)
    return _winners(store, get_hackathon_or_404(store, hackathon_id))


@router.get("/hackathons/{hackathon_id}/winners/top3", response_model=Top3Response)
def top3(request: Request, hackathon_id: int) -> Top3Response:
    store = get_store(request)
    winners = _winners(store, get_hackathon_or_404(store, hackathon_id))
    by_position = {w.position: w.wallet_address for w in winners.winners}
    return Top3Response(
        hackathon_id=hackathon_id,
        first_place=by_position.get(1),
        second_place=by_position.get(2),
        third_place=by_position.get(3),
    )
