"""
hackathons/models.py -- Domain dataclasses for hackathons and their entities.

These are pure data containers with zero logic. Status and action rules live
in core/lifecycle.py; vote checks in core/voting.py; persistence in
hackathons/store.py.

All wallet addresses are lowercase. All timestamps are ISO 8601 strings in
UTC, exactly as the store writes them. Token amounts (prize_amount,
entry_fee) are integer strings in wei so they never round-trip through a
float.
"""

from dataclasses import dataclass, field
from typing import Optional


@dataclass
class Hackathon:
    """A hackathon event and its three phase deadlines.

    Deadlines always satisfy registration <= submission <= voting; the routes
    enforce it on create and update. status is a core.models.HackathonStatus
    value.

    id is None before the record is written to the database.
    """

    title: str
    description: str
    organizer_address: str
    registration_deadline: str
    submission_deadline: str
    voting_deadline: str
    status: str = "DRAFT"
    prize_amount: Optional[str] = None
    entry_fee: Optional[str] = None
    max_participants: Optional[int] = None
    cover_image_url: Optional[str] = None
    contract_address: Optional[str] = None
    id: Optional[int] = None
    created_at: str = ""  # set by store on insert
    updated_at: str = ""


@dataclass
class Participant:
    """A wallet registered for a hackathon.

    rank and prize_amount stay None until the organizer finalizes winners.
    """

    hackathon_id: int
    wallet_address: str
    submission_url: Optional[str] = None
    entry_fee: Optional[str] = None
    rank: Optional[int] = None
    prize_amount: Optional[str] = None
    id: Optional[int] = None
    created_at: str = ""
    updated_at: str = ""


@dataclass
class Judge:
    hackathon_id: int
    judge_address: str
    added_by: str
    id: Optional[int] = None
    added_at: str = ""


@dataclass
class Vote:
    """One judge's score for one participant. Unique per (hackathon, judge, participant)."""

    hackathon_id: int
    judge_address: str
    participant_id: int
    score: int
    comment: Optional[str] = None
    id: Optional[int] = None
    created_at: str = ""
    updated_at: str = ""


@dataclass
class AuditEntry:
    """Immutable record of a hackathon status change.

    action       -- core.models.AuditAction value
    triggered_by -- core.models.TriggerType value
    user_address -- None for SYSTEM transitions
    """

    hackathon_id: int
    action: str
    from_status: str
    to_status: str
    triggered_by: str
    reason: Optional[str] = None
    user_address: Optional[str] = None
    metadata: dict = field(default_factory=dict)
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    id: Optional[int] = None
    timestamp: str = ""


@dataclass
class Achievement:
    """A badge held by a wallet. achievement_key is a core.achievements catalogue key.

    hackathon_id names the hackathon whose finalization triggered the award;
    None for checks run outside a finalization. awarded_by is set only for
    manual awards by an admin.
    """

    user_address: str
    achievement_key: str
    hackathon_id: Optional[int] = None
    awarded_by: Optional[str] = None
    id: Optional[int] = None
    earned_at: str = ""
