"""
core/models.py -- Domain vocabulary shared by every layer.

Enums for hackathon status and gated actions, plus the Timeline value object
the lifecycle rules operate on. Stores and routes carry statuses around as
plain strings (the enum values), so everything here subclasses str.
"""

import math
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum

# ---------------------------------------------------------------------------
# Domain constants
# ---------------------------------------------------------------------------

# Canonical wallet address shape (EVM, 20 bytes hex). A domain rule -- not an
# API contract. Checksum validation lives in auth/wallet.py.
ADDRESS_PATTERN = r"^0x[0-9a-fA-F]{40}$"

MIN_SCORE = 1
MAX_SCORE = 10
MAX_COMMENT_LENGTH = 1000


class HackathonStatus(str, Enum):
    DRAFT = "DRAFT"
    REGISTRATION_OPEN = "REGISTRATION_OPEN"
    REGISTRATION_CLOSED = "REGISTRATION_CLOSED"
    SUBMISSION_OPEN = "SUBMISSION_OPEN"
    SUBMISSION_CLOSED = "SUBMISSION_CLOSED"
    VOTING_OPEN = "VOTING_OPEN"
    VOTING_CLOSED = "VOTING_CLOSED"
    COMPLETED = "COMPLETED"


class Action(str, Enum):
    """Things a caller may try to do to a hackathon. Gated by core.lifecycle."""

    REGISTER = "register"
    SUBMIT = "submit"
    VOTE = "vote"
    EDIT = "edit"
    ADD_JUDGE = "add_judge"
    REMOVE_JUDGE = "remove_judge"
    DELETE = "delete"
    FINALIZE = "finalize"


class AuditAction(str, Enum):
    AUTOMATIC_TRANSITION = "AUTOMATIC_TRANSITION"
    MANUAL_OVERRIDE = "MANUAL_OVERRIDE"
    ADMIN_INTERVENTION = "ADMIN_INTERVENTION"


class TriggerType(str, Enum):
    SYSTEM = "SYSTEM"
    ORGANIZER = "ORGANIZER"
    ADMIN = "ADMIN"


# ---------------------------------------------------------------------------
# Time helpers
# ---------------------------------------------------------------------------


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | str) -> datetime:
    """Coerce an ISO 8601 string or datetime into an aware UTC datetime.

    Naive values are treated as UTC; stores write aware ISO strings, but
    request bodies may omit the offset.
    """
    dt = datetime.fromisoformat(value) if isinstance(value, str) else value
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


# ---------------------------------------------------------------------------
# Number helpers
# ---------------------------------------------------------------------------


def round_half_up(value: float, digits: int = 0) -> float:
    """Round halves away from zero for positive values; round() would go to even."""
    scale = 10**digits
    return math.floor(value * scale + 0.5) / scale


def percent(part: int, whole: int) -> int:
    """Whole-number share of part in whole, 0 when whole is 0."""
    return int(round_half_up(part / whole * 100)) if whole else 0


# ---------------------------------------------------------------------------
# Value objects
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Timeline:
    """Status plus the three deadlines -- everything the lifecycle rules need."""

    status: HackathonStatus
    registration_deadline: datetime
    submission_deadline: datetime
    voting_deadline: datetime

    @classmethod
    def of(cls, hackathon) -> "Timeline":
        """Build a Timeline from any record exposing status and deadline attributes.

        Factory method so core/ never imports the hackathons/ dataclass.
        """
        return cls(
            status=HackathonStatus(hackathon.status),
            registration_deadline=as_utc(hackathon.registration_deadline),
            submission_deadline=as_utc(hackathon.submission_deadline),
            voting_deadline=as_utc(hackathon.voting_deadline),
        )
