"""
core/ranking.py -- Participant ranking and prize split.

Input is plain data (ParticipantScores with their vote scores); output is a
ranked list plus summary metrics. No store access -- hackathons/ loads the
rows and the routes decide what to persist.

Scoring per eligible participant (has a submission):
  average    mean of judge scores (0 with no votes)
  weighted   average * max(0.5, votes / total_judges)
  variance   population variance of scores (0 with fewer than two votes)
  consensus  average * (1 - variance / 25)
  normalized weighted min-max scaled to 0..10 across positive weighted scores

Ordering: weighted desc, then variance asc, then vote count desc, then
average desc. Weighted scores within 0.01 of each other count as a tie and
share a rank.
"""

from __future__ import annotations

import logging
import math
import statistics
from dataclasses import dataclass, field
from functools import cmp_to_key
from typing import Optional

logger = logging.getLogger("hackafi.ranking")

_TIE_EPSILON = 0.01
_MAX_VARIANCE = 25.0

# Basis points per podium position (10000 = 100%).
DEFAULT_DISTRIBUTION: tuple[tuple[int, int], ...] = ((1, 6000), (2, 2500), (3, 1500))


@dataclass
class ParticipantScores:
    participant_id: int
    wallet_address: str
    submission_url: Optional[str]
    scores: list[int] = field(default_factory=list)


@dataclass
class Ranking:
    participant_id: int
    wallet_address: str
    submission_url: Optional[str]
    total_votes: int
    average_score: float
    weighted_score: float
    normalized_score: float
    consensus_score: float
    variance: float
    rank: int = 0
    tier: str = "participant"  # "winner" | "runner-up" | "participant"


@dataclass
class RankingMetrics:
    total_participants: int
    total_judges: int
    average_participation: float
    score_min: float
    score_max: float
    score_mean: float
    score_median: float
    score_stddev: float


@dataclass
class PrizeSlot:
    position: int
    basis_points: int
    amount: int
    winner: Optional[Ranking] = None


def minimum_votes(total_judges: int) -> int:
    """At least 30% of the judge panel (and never fewer than one vote)."""
    return max(1, math.ceil(total_judges * 0.3))


def _score(p: ParticipantScores, total_judges: int) -> Ranking:
    count = len(p.scores)
    average = sum(p.scores) / count if count else 0.0
    rate = count / total_judges if total_judges else 1.0
    weighted = average * max(0.5, rate)
    variance = statistics.pvariance(p.scores) if count > 1 else 0.0
    return Ranking(
        participant_id=p.participant_id,
        wallet_address=p.wallet_address,
        submission_url=p.submission_url,
        total_votes=count,
        average_score=average,
        weighted_score=weighted,
        normalized_score=weighted,
        consensus_score=average * (1 - variance / _MAX_VARIANCE),
        variance=variance,
    )


def _normalize(results: list[Ranking]) -> None:
    positive = [r.weighted_score for r in results if r.weighted_score > 0]
    if not positive:
        return
    low, high = min(positive), max(positive)
    spread = high - low
    for r in results:
        if spread > 0:
            r.normalized_score = (r.weighted_score - low) / spread * 10
        else:
            r.normalized_score = r.weighted_score


def _compare(a: Ranking, b: Ranking) -> float:
    # Pairwise so that scores within the epsilon always fall through to the
    # tie-breakers, wherever they sit relative to a rounding boundary.
    if abs(a.weighted_score - b.weighted_score) > _TIE_EPSILON:
        return b.weighted_score - a.weighted_score
    if abs(a.variance - b.variance) > _TIE_EPSILON:
        return a.variance - b.variance
    if a.total_votes != b.total_votes:
        return b.total_votes - a.total_votes
    return b.average_score - a.average_score


def calculate_rankings(
    participants: list[ParticipantScores],
    total_judges: int,
    min_votes: Optional[int] = None,
) -> tuple[list[Ranking], RankingMetrics]:
    """Rank eligible participants and compute distribution metrics.

    Args:
        participants: every participant of the hackathon, with vote scores.
        total_judges: size of the judge panel (drives the participation weight).
        min_votes:    exclusion threshold; defaults to minimum_votes(total_judges).
    """
    threshold = minimum_votes(total_judges) if min_votes is None else min_votes
    logger.info("Ranking %d participants with %d judges", len(participants), total_judges)

    scored = [_score(p, total_judges) for p in participants if p.submission_url]
    _normalize(scored)

    ranked = sorted((r for r in scored if r.total_votes >= threshold), key=cmp_to_key(_compare))
    for i, r in enumerate(ranked):
        if i > 0 and abs(r.weighted_score - ranked[i - 1].weighted_score) < _TIE_EPSILON:
            r.rank = ranked[i - 1].rank
        else:
            r.rank = i + 1
        r.tier = "winner" if r.rank == 1 else "runner-up" if r.rank <= 3 else "participant"
    for r in ranked:
        r.average_score = round(r.average_score, 2)
        r.weighted_score = round(r.weighted_score, 2)
        r.normalized_score = round(r.normalized_score, 2)
        r.consensus_score = round(r.consensus_score, 2)

    return ranked, _metrics(ranked, total_judges)


def _metrics(ranked: list[Ranking], total_judges: int) -> RankingMetrics:
    scores = sorted(r.weighted_score for r in ranked if r.weighted_score > 0)
    votes = [r.total_votes for r in ranked]
    return RankingMetrics(
        total_participants=len(ranked),
        total_judges=total_judges,
        average_participation=sum(votes) / len(votes) if votes else 0.0,
        score_min=scores[0] if scores else 0.0,
        score_max=scores[-1] if scores else 0.0,
        score_mean=round(statistics.fmean(scores), 2) if scores else 0.0,
        score_median=round(statistics.median(scores), 2) if scores else 0.0,
        score_stddev=round(statistics.pstdev(scores), 2) if scores else 0.0,
    )


def split_prize_pool(
    rankings: list[Ranking],
    total_pool: int,
    distribution: tuple[tuple[int, int], ...] = DEFAULT_DISTRIBUTION,
) -> list[PrizeSlot]:
    """Assign each podium position its share of the pool.

    Amounts use integer basis-point arithmetic so wei values never pass
    through a float. The winner of position p is the first ranked entry whose
    rank equals p; tied ranks can leave a later position without a winner.
    """
    slots = []
    for position, bp in distribution:
        winner = next((r for r in rankings if r.rank == position), None)
        slots.append(PrizeSlot(position=position, basis_points=bp, amount=total_pool * bp // 10000, winner=winner))
    return slots
