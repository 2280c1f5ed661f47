"""
hackathons/analytics.py -- Platform reporting for admins.

Every report reads one Dataset: the hackathons created inside a Window (and
optionally one hackathon id) plus their participants, judges and votes.
load() pulls it from the store once; the report functions below are pure.

Wei amounts are summed as Python ints and returned as integer strings so
large prize pools never lose precision. Averages and rates are rounded half
up to 2 decimals.
"""

import csv
import io
import logging
from collections import Counter, defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional

from core.lifecycle import ACTIVE_STATUSES
from core.models import MAX_SCORE, MIN_SCORE, HackathonStatus, as_utc, round_half_up, utcnow
from hackathons.models import Hackathon, Judge, Participant, Vote
from hackathons.store import HackathonStore

logger = logging.getLogger("hackafi.analytics")


class DateRange(str, Enum):
    LAST_7_DAYS = "last_7_days"
    LAST_30_DAYS = "last_30_days"
    LAST_90_DAYS = "last_90_days"
    LAST_YEAR = "last_year"
    ALL_TIME = "all_time"
    CUSTOM = "custom"


_SPAN_DAYS = {
    DateRange.LAST_7_DAYS: 7,
    DateRange.LAST_30_DAYS: 30,
    DateRange.LAST_90_DAYS: 90,
    DateRange.LAST_YEAR: 365,
}
_FALLBACK_DAYS = 30


@dataclass(frozen=True)
class Window:
    range: DateRange
    start: Optional[datetime]  # None: no lower bound
    end: datetime

    def describe(self) -> str:
        start = self.start.isoformat() if self.start else "beginning"
        return f"{start} - {self.end.isoformat()}"


def resolve_window(
    date_range: DateRange = DateRange.LAST_30_DAYS,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    now: Optional[datetime] = None,
) -> Window:
    """Turn query parameters into concrete bounds.

    Raises:
        ValueError: start is after end.
    """
    date_range = DateRange(date_range)
    start = as_utc(start) if start is not None else None
    end = as_utc(end) if end is not None else None
    if start is not None and end is not None and start > end:
        raise ValueError("start_date must not be after end_date.")

    upper = end or as_utc(now or utcnow())
    if date_range == DateRange.CUSTOM and start is not None and end is not None:
        return Window(date_range, start, end)
    if date_range == DateRange.ALL_TIME:
        return Window(date_range, None, upper)
    days = _SPAN_DAYS.get(date_range, _FALLBACK_DAYS)
    return Window(date_range, upper - timedelta(days=days), upper)


@dataclass
class Dataset:
    hackathons: list[Hackathon]
    participants: list[Participant] = field(default_factory=list)
    judges: list[Judge] = field(default_factory=list)
    votes: list[Vote] = field(default_factory=list)


def load(store: HackathonStore, window: Window, hackathon_id: Optional[int] = None) -> Dataset:
    hackathons = store.list_created_between(window.start, window.end, hackathon_id)
    ids = [h.id for h in hackathons]
    ds = Dataset(
        hackathons=hackathons,
        participants=store.list_participants_in(ids),
        judges=store.list_judges_in(ids),
        votes=store.list_votes_in(ids),
    )
    logger.debug(
        "Analytics dataset %s: %d hackathons, %d participants, %d votes",
        window.describe(),
        len(ds.hackathons),
        len(ds.participants),
        len(ds.votes),
    )
    return ds


def _wei(value: Optional[str]) -> int:
    return int(value) if value else 0


def _rate(part: float, whole: float) -> float:
    return round_half_up(part / whole * 100, 2) if whole else 0.0


def _mean(total: float, count: int) -> float:
    return round_half_up(total / count, 2) if count else 0.0


# ---------------------------------------------------------------------------
# Reports
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Overview:
    total_hackathons: int
    active_hackathons: int
    completed_hackathons: int
    total_participants: int
    total_judges: int
    total_prize_distributed: str
    average_participants_per_hackathon: float
    average_votes_per_hackathon: float
    last_updated: str


def overview(ds: Dataset, now: Optional[datetime] = None) -> Overview:
    active = {s.value for s in ACTIVE_STATUSES}
    total = len(ds.hackathons)
    return Overview(
        total_hackathons=total,
        active_hackathons=sum(1 for h in ds.hackathons if h.status in active),
        completed_hackathons=sum(1 for h in ds.hackathons if h.status == HackathonStatus.COMPLETED.value),
        total_participants=len(ds.participants),
        total_judges=len(ds.judges),
        total_prize_distributed=str(sum(_wei(p.prize_amount) for p in ds.participants)),
        average_participants_per_hackathon=_mean(len(ds.participants), total),
        average_votes_per_hackathon=_mean(len(ds.votes), total),
        last_updated=(now or utcnow()).isoformat(),
    )


@dataclass(frozen=True)
class TrendPoint:
    date: str  # YYYY-MM-DD
    value: int


@dataclass(frozen=True)
class ParticipationTrends:
    total_participations: int
    registration_trends: list[TrendPoint]
    submission_trends: list[TrendPoint]
    completion_rate: float
    average_submission_hours: float


def _per_day(timestamps: list[str]) -> list[TrendPoint]:
    days = Counter(as_utc(ts).date().isoformat() for ts in timestamps)
    return [TrendPoint(date=d, value=n) for d, n in sorted(days.items())]


def participation_trends(ds: Dataset) -> ParticipationTrends:
    submitted = [p for p in ds.participants if p.submission_url]
    hours = sum((as_utc(p.updated_at) - as_utc(p.created_at)).total_seconds() / 3600 for p in submitted)
    return ParticipationTrends(
        total_participations=len(ds.participants),
        registration_trends=_per_day([p.created_at for p in ds.participants]),
        submission_trends=_per_day([p.updated_at for p in submitted]),
        completion_rate=_rate(len(submitted), len(ds.participants)),
        average_submission_hours=_mean(hours, len(submitted)),
    )


@dataclass(frozen=True)
class ScoreBucket:
    score: int
    count: int
    percentage: float


@dataclass(frozen=True)
class JudgeParticipation:
    judge_address: str
    judge_name: Optional[str]
    total_votes: int
    average_score: float
    hackathons_judged: int
    last_vote_date: str


@dataclass(frozen=True)
class VotingStatistics:
    total_votes: int
    average_score: float
    score_distribution: list[ScoreBucket]
    judge_participation: list[JudgeParticipation]
    voting_completion: float


def voting_statistics(ds: Dataset, names: Optional[dict[str, str]] = None) -> VotingStatistics:
    """Vote counts, the 1..10 histogram and a per-judge breakdown.

    names maps wallet address to username for the judge_name column.
    voting_completion compares cast votes against one vote per judge per
    submitted participant in each hackathon.
    """
    names = names or {}
    total = len(ds.votes)
    scores = Counter(v.score for v in ds.votes)

    by_judge: dict[str, list[Vote]] = defaultdict(list)
    for vote in ds.votes:
        by_judge[vote.judge_address].append(vote)
    judges = [
        JudgeParticipation(
            judge_address=address,
            judge_name=names.get(address),
            total_votes=len(votes),
            average_score=_mean(sum(v.score for v in votes), len(votes)),
            hackathons_judged=len({v.hackathon_id for v in votes}),
            last_vote_date=max(v.created_at for v in votes),
        )
        for address, votes in by_judge.items()
    ]
    judges.sort(key=lambda j: (-j.total_votes, j.judge_address))

    panel = Counter(j.hackathon_id for j in ds.judges)
    submitted = Counter(p.hackathon_id for p in ds.participants if p.submission_url)
    expected = sum(panel[h] * submitted[h] for h in panel)

    return VotingStatistics(
        total_votes=total,
        average_score=_mean(sum(v.score for v in ds.votes), total),
        score_distribution=[
            ScoreBucket(score=s, count=scores[s], percentage=_rate(scores[s], total))
            for s in range(MIN_SCORE, MAX_SCORE + 1)
        ],
        judge_participation=judges,
        voting_completion=_rate(total, expected),
    )


@dataclass(frozen=True)
class WinnerCategory:
    rank: int
    count: int
    total_prize: str
    percentage: float


@dataclass(frozen=True)
class PrizeDistribution:
    total_prize_pool: str
    total_distributed: str
    distribution_rate: float
    winners_by_rank: list[WinnerCategory]
    average_prize_per_winner: str


def prize_distribution(ds: Dataset) -> PrizeDistribution:
    pool = sum(_wei(h.prize_amount) for h in ds.hackathons)
    winners = [p for p in ds.participants if p.prize_amount is not None]
    distributed = sum(_wei(p.prize_amount) for p in winners)

    counts: Counter = Counter()
    amounts: Counter = Counter()
    for p in winners:
        counts[p.rank] += 1
        amounts[p.rank] += _wei(p.prize_amount)
    return PrizeDistribution(
        total_prize_pool=str(pool),
        total_distributed=str(distributed),
        distribution_rate=_rate(distributed, pool),
        winners_by_rank=[
            WinnerCategory(
                rank=r,
                count=counts[r],
                total_prize=str(amounts[r]),
                percentage=_rate(amounts[r], distributed),
            )
            for r in sorted(r for r in counts if r is not None)
        ],
        average_prize_per_winner=str(distributed // len(winners)) if winners else "0",
    )


@dataclass(frozen=True)
class TimeRange:
    start: Optional[str]
    end: str
    range: str


@dataclass(frozen=True)
class Report:
    overview: Overview
    participation: ParticipationTrends
    voting: VotingStatistics
    prize_distribution: PrizeDistribution
    time_range: TimeRange


def report(ds: Dataset, window: Window, names: Optional[dict[str, str]] = None) -> Report:
    return Report(
        overview=overview(ds),
        participation=participation_trends(ds),
        voting=voting_statistics(ds, names),
        prize_distribution=prize_distribution(ds),
        time_range=TimeRange(
            start=window.start.isoformat() if window.start else None,
            end=window.end.isoformat(),
            range=window.range.value,
        ),
    )


def addresses_in(ds: Dataset) -> list[str]:
    """Every wallet the dataset mentions, for one username lookup."""
    found = [h.organizer_address for h in ds.hackathons]
    found += [p.wallet_address for p in ds.participants]
    found += [v.judge_address for v in ds.votes]
    return list(dict.fromkeys(found))


# ---------------------------------------------------------------------------
# Export
# ---------------------------------------------------------------------------


class ExportDataset(str, Enum):
    PARTICIPANTS = "participants"
    VOTES = "votes"
    HACKATHONS = "hackathons"
    WINNERS = "winners"


EXPORT_COLUMNS: dict[ExportDataset, list[str]] = {
    ExportDataset.PARTICIPANTS: [
        "hackathon_id",
        "hackathon_title",
        "wallet_address",
        "username",
        "submission_url",
        "entry_fee",
        "rank",
        "prize_amount",
        "registered_at",
        "submitted_at",
    ],
    ExportDataset.VOTES: [
        "hackathon_id",
        "hackathon_title",
        "judge_address",
        "judge_name",
        "participant_address",
        "participant_name",
        "score",
        "comment",
        "voted_at",
    ],
    ExportDataset.HACKATHONS: [
        "id",
        "title",
        "description",
        "organizer_address",
        "status",
        "prize_amount",
        "participant_count",
        "total_votes",
        "created_at",
        "completed_at",
    ],
    ExportDataset.WINNERS: [
        "hackathon_id",
        "hackathon_title",
        "rank",
        "wallet_address",
        "username",
        "submission_url",
        "average_score",
        "prize_amount",
        "completed_at",
    ],
}


def export_rows(ds: Dataset, dataset: ExportDataset, names: Optional[dict[str, str]] = None) -> list[dict]:
    """Flat rows for one export dataset, keyed by EXPORT_COLUMNS[dataset]."""
    names = names or {}
    titles = {h.id: h.title for h in ds.hackathons}
    dataset = ExportDataset(dataset)

    if dataset == ExportDataset.PARTICIPANTS:
        return [
            {
                "hackathon_id": p.hackathon_id,
                "hackathon_title": titles[p.hackathon_id],
                "wallet_address": p.wallet_address,
                "username": names.get(p.wallet_address),
                "submission_url": p.submission_url,
                "entry_fee": p.entry_fee,
                "rank": p.rank,
                "prize_amount": p.prize_amount,
                "registered_at": p.created_at,
                "submitted_at": p.updated_at if p.submission_url else None,
            }
            for p in ds.participants
        ]

    if dataset == ExportDataset.VOTES:
        wallets = {p.id: p.wallet_address for p in ds.participants}
        return [
            {
                "hackathon_id": v.hackathon_id,
                "hackathon_title": titles[v.hackathon_id],
                "judge_address": v.judge_address,
                "judge_name": names.get(v.judge_address),
                "participant_address": wallets.get(v.participant_id),
                "participant_name": names.get(wallets.get(v.participant_id, "")),
                "score": v.score,
                "comment": v.comment,
                "voted_at": v.created_at,
            }
            for v in ds.votes
        ]

    if dataset == ExportDataset.HACKATHONS:
        entrants = Counter(p.hackathon_id for p in ds.participants)
        ballots = Counter(v.hackathon_id for v in ds.votes)
        return [
            {
                "id": h.id,
                "title": h.title,
                "description": h.description,
                "organizer_address": h.organizer_address,
                "status": h.status,
                "prize_amount": h.prize_amount,
                "participant_count": entrants[h.id],
                "total_votes": ballots[h.id],
                "created_at": h.created_at,
                "completed_at": h.updated_at if h.status == HackathonStatus.COMPLETED.value else None,
            }
            for h in ds.hackathons
        ]

    finished = {h.id: h.updated_at for h in ds.hackathons}
    scores: dict[int, list[int]] = defaultdict(list)
    for v in ds.votes:
        scores[v.participant_id].append(v.score)
    return [
        {
            "hackathon_id": p.hackathon_id,
            "hackathon_title": titles[p.hackathon_id],
            "rank": p.rank,
            "wallet_address": p.wallet_address,
            "username": names.get(p.wallet_address),
            "submission_url": p.submission_url or "",
            "average_score": _mean(sum(scores[p.id]), len(scores[p.id])),
            "prize_amount": p.prize_amount or "0",
            "completed_at": finished[p.hackathon_id],
        }
        for p in sorted(
            (p for p in ds.participants if p.rank is not None),
            key=lambda p: (p.hackathon_id, p.rank),
        )
    ]


_FORMULA_PREFIXES = ("=", "+", "-", "@")


def _sanitize_csv_cell(value) -> str:
    """Neutralize spreadsheet formula injection (CWE-1236).

    Text starting with =, +, - or @ is prefixed with a tab so spreadsheet
    applications read it as text. None becomes an empty cell.
    """
    if value is None:
        return ""
    text = str(value)
    if text.startswith(_FORMULA_PREFIXES):
        return "\t" + text
    return text


def to_csv(rows: list[dict], columns: list[str]) -> str:
    """Render export rows as CSV with a header row in `columns` order."""
    buf = io.StringIO()
    writer = csv.writer(buf)
    writer.writerow(columns)
    for row in rows:
        writer.writerow([_sanitize_csv_cell(row.get(c)) for c in columns])
    return buf.getvalue()
