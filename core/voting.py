"""
core/voting.py -- Judge vote validation.

validate_vote() runs an ordered list of checks over a VoteContext the caller
has already loaded from the store; the first failing check wins. Each
failure carries a machine-readable code and the HTTP status the API layer
should answer with, so route handlers never re-derive the mapping.

Like decode_access_token() in auth/, validation never raises: it returns a
VoteValidation whose `ok` flag the caller branches on.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Optional

from core.models import MAX_COMMENT_LENGTH, MAX_SCORE, MIN_SCORE, HackathonStatus, Timeline, as_utc

VOTES_PER_WINDOW = 10
VOTE_WINDOW = timedelta(seconds=60)

_BLOCKED_WORDS = ("spam", "scam", "fake", "cheat")

# Error code -> HTTP status. Anything missing here maps to 400.
_HTTP_STATUS: dict[str, int] = {
    "HACKATHON_NOT_FOUND": 404,
    "PARTICIPANT_NOT_FOUND": 404,
    "JUDGE_NOT_AUTHORIZED": 403,
    "SELF_VOTING_PROHIBITED": 403,
    "RATE_LIMIT_EXCEEDED": 429,
}


@dataclass
class VoteContext:
    """Everything validate_vote() needs, loaded up front by the caller.

    hackathon   -- hackathon record or None if the id did not resolve
    is_judge    -- caller is on the hackathon's judge panel
    participant -- participant record or None; must belong to the hackathon
    recent_votes -- votes created by this judge in this hackathon within VOTE_WINDOW
    """

    hackathon: Any
    is_judge: bool
    participant: Any
    recent_votes: int = 0


@dataclass
class VoteValidation:
    ok: bool
    code: Optional[str] = None
    message: Optional[str] = None
    metadata: dict = field(default_factory=dict)

    @property
    def http_status(self) -> int:
        if self.ok:
            return 200
        return _HTTP_STATUS.get(self.code or "", 400)


def _fail(code: str, message: str, **metadata) -> VoteValidation:
    return VoteValidation(ok=False, code=code, message=message, metadata=metadata)


def contains_blocked_words(comment: str) -> bool:
    lowered = comment.lower()
    return any(word in lowered for word in _BLOCKED_WORDS)


def validate_vote(
    ctx: VoteContext,
    judge_address: str,
    score: int,
    comment: Optional[str],
    now: datetime,
) -> VoteValidation:
    """Validate a judge's vote. Order matters: the first failure is reported."""
    hackathon = ctx.hackathon
    if hackathon is None:
        return _fail("HACKATHON_NOT_FOUND", "Hackathon not found")

    timeline = Timeline.of(hackathon)
    if timeline.status is not HackathonStatus.VOTING_OPEN:
        return _fail(
            "INVALID_HACKATHON_STATUS",
            f"Hackathon is not in voting phase. Current status: {timeline.status.value}",
            current_status=timeline.status.value,
        )

    now = as_utc(now)
    if now < timeline.submission_deadline:
        return _fail(
            "VOTING_NOT_STARTED",
            "Voting has not started yet. Voting begins after submission deadline.",
            submission_deadline=timeline.submission_deadline.isoformat(),
        )
    if now > timeline.voting_deadline:
        return _fail(
            "VOTING_DEADLINE_PASSED",
            "Voting deadline has passed",
            voting_deadline=timeline.voting_deadline.isoformat(),
        )

    if not ctx.is_judge:
        return _fail("JUDGE_NOT_AUTHORIZED", "Only authorized judges can vote in this hackathon")

    participant = ctx.participant
    if participant is None or participant.hackathon_id != hackathon.id:
        return _fail("PARTICIPANT_NOT_FOUND", "Participant not found in this hackathon")
    if not participant.submission_url:
        return _fail(
            "NO_SUBMISSION",
            "Cannot vote for participant without submission",
            participant_id=participant.id,
        )

    if not MIN_SCORE <= score <= MAX_SCORE:
        return _fail(
            "INVALID_SCORE_RANGE",
            f"Score must be between {MIN_SCORE} and {MAX_SCORE}",
            provided_score=score,
        )
    if comment and len(comment) > MAX_COMMENT_LENGTH:
        return _fail(
            "COMMENT_TOO_LONG",
            f"Comment must not exceed {MAX_COMMENT_LENGTH} characters",
            comment_length=len(comment),
        )
    if comment and contains_blocked_words(comment):
        return _fail("INAPPROPRIATE_CONTENT", "Comment contains inappropriate content")

    if participant.wallet_address.lower() == judge_address.lower():
        return _fail("SELF_VOTING_PROHIBITED", "Judges cannot vote for their own submissions")

    if ctx.recent_votes >= VOTES_PER_WINDOW:
        return _fail(
            "RATE_LIMIT_EXCEEDED",
            "Too many votes submitted. Please wait before voting again.",
            recent_votes=ctx.recent_votes,
        )

    return VoteValidation(ok=True, metadata={"participant_id": participant.id})
