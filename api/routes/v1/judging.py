"""
api/routes/v1/judging.py -- Judge dashboard.

Routes:
  GET /judging/assigned                       -- hackathons the caller judges, with progress
  GET /judging/stats                          -- the caller's voting statistics
  GET /judging/hackathons/{id}/preview        -- participants with the caller's votes

All routes require authentication and act on the caller's own address.
"""

import math
from datetime import timedelta

from fastapi import APIRouter, Depends, Request

from api.models import (
    AssignedHackathon,
    AssignedResponse,
    HackathonResponse,
    JudgeStatsResponse,
    ParticipantResponse,
    PreviewResponse,
    PreviewRow,
    VotingProgress,
)
from api.routes.v1.hackathons import error, get_hackathon_or_404, get_store
from auth.dependencies import get_current_user
from auth.models import WalletUser
from core.models import as_utc, percent, round_half_up, utcnow
from hackathons.store import HackathonStore

router = APIRouter(dependencies=[Depends(get_current_user)])

_SCORE_BUCKETS = (("1-2", 1, 2), ("3-4", 3, 4), ("5-6", 5, 6), ("7-8", 7, 8), ("9-10", 9, 10))


def _progress(store: HackathonStore, hackathon_id: int, judge: str) -> VotingProgress:
    total = store.count_participants(hackathon_id)
    completed = len(store.list_votes(hackathon_id, judge_address=judge))
    return VotingProgress(
        total_participants=total,
        completed_votes=completed,
        pending_votes=max(0, total - completed),
        completion_percentage=percent(completed, total),
    )


def _priority(is_overdue: bool, days_left: int) -> str:
    if is_overdue or days_left <= 1:
        return "high"
    if days_left <= 3:
        return "medium"
    return "low"


@router.get("/judging/assigned", response_model=AssignedResponse)
def assigned(request: Request, current_user: WalletUser = Depends(get_current_user)) -> AssignedResponse:
    """Assigned hackathons ordered by voting deadline, soonest first.

    A hackathon counts as completed for the judge once every participant
    carries their vote; anything less is pending.
    """
    store = get_store(request)
    now = utcnow()
    rows = []
    for hackathon in store.list_judged_hackathons(current_user.address):
        progress = _progress(store, hackathon.id, current_user.address)
        deadline = as_utc(hackathon.voting_deadline)
        days_left = math.ceil((deadline - now) / timedelta(days=1))
        is_overdue = now > deadline
        rows.append(
            AssignedHackathon(
                hackathon=HackathonResponse.from_domain(hackathon, progress.total_participants),
                progress=progress,
                days_until_deadline=max(0, days_left),
                is_overdue=is_overdue,
                priority=_priority(is_overdue, days_left),
            )
        )
    completed = sum(1 for r in rows if r.progress.total_participants and not r.progress.pending_votes)
    return AssignedResponse(
        hackathons=rows,
        total_assigned=len(rows),
        total_pending=len(rows) - completed,
        total_completed=completed,
    )


@router.get("/judging/stats", response_model=JudgeStatsResponse)
def stats(request: Request, current_user: WalletUser = Depends(get_current_user)) -> JudgeStatsResponse:
    votes = get_store(request).list_votes_by_judge(current_user.address)
    total = len(votes)
    with_comments = sum(1 for v in votes if v.comment)
    distribution = {label: 0 for label, _, _ in _SCORE_BUCKETS}
    for vote in votes:
        for label, low, high in _SCORE_BUCKETS:
            if low <= vote.score <= high:
                distribution[label] += 1
                break
    return JudgeStatsResponse(
        total_votes=total,
        hackathons_judged=len({v.hackathon_id for v in votes}),
        average_score=round_half_up(sum(v.score for v in votes) / total, 1) if total else 0.0,
        votes_with_comments=with_comments,
        comment_percentage=percent(with_comments, total),
        last_activity=votes[0].updated_at if votes else None,
        score_distribution=distribution,
    )


@router.get("/judging/hackathons/{hackathon_id}/preview", response_model=PreviewResponse)
def preview(
    request: Request,
    hackathon_id: int,
    current_user: WalletUser = Depends(get_current_user),
) -> PreviewResponse:
    """Each participant with whether, and how, the caller has scored them."""
    store = get_store(request)
    hackathon = get_hackathon_or_404(store, hackathon_id)
    if not store.is_judge(hackathon_id, current_user.address):
        raise error(403, "not_a_judge", "Only judges of this hackathon can preview its participants.")
    votes = {v.participant_id: v for v in store.list_votes(hackathon_id, judge_address=current_user.address)}
    participants = store.list_participants(hackathon_id)
    rows = []
    for p in participants:
        vote = votes.get(p.id)
        rows.append(
            PreviewRow(
                participant=ParticipantResponse.from_domain(p),
                has_voted=vote is not None,
                current_score=vote.score if vote else None,
                current_comment=vote.comment if vote else None,
            )
        )
    return PreviewResponse(
        hackathon=HackathonResponse.from_domain(hackathon, len(participants)),
        participants=rows,
        voted_count=len(votes),
    )
