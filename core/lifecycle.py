"""
core/lifecycle.py -- Hackathon status state machine and action gating.

Two tables drive everything here:

  _MANUAL_TRANSITIONS   -- which status an organizer/admin may move to next.
  _AUTOMATIC_RULES      -- which open phase closes on its own once its
                           deadline has passed.

allowed_actions() combines the current status with the three deadlines to
decide what a caller may do at a given instant (register, submit, vote, ...).

All functions are pure: no I/O, no clock reads. `now` is always a parameter
so the scheduler, the routes, and the tests agree on a single instant.

Layer rule: core/ imports nothing from api/, auth/, or hackathons/.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from core.models import Action, HackathonStatus, Timeline, as_utc

S = HackathonStatus


class InvalidTransition(ValueError):
    """Raised when a manual status change is not in the transition table."""

    def __init__(self, current: HackathonStatus, target: HackathonStatus) -> None:
        self.current = current
        self.target = target
        super().__init__(f"Invalid status transition from {current.value} to {target.value}")


# ---------------------------------------------------------------------------
# Manual transitions
# ---------------------------------------------------------------------------

_MANUAL_TRANSITIONS: dict[HackathonStatus, tuple[HackathonStatus, ...]] = {
    S.DRAFT: (S.REGISTRATION_OPEN,),
    S.REGISTRATION_OPEN: (S.REGISTRATION_CLOSED, S.SUBMISSION_OPEN),
    S.REGISTRATION_CLOSED: (S.SUBMISSION_OPEN,),
    S.SUBMISSION_OPEN: (S.SUBMISSION_CLOSED,),
    S.SUBMISSION_CLOSED: (S.VOTING_OPEN,),
    S.VOTING_OPEN: (S.VOTING_CLOSED,),
    S.VOTING_CLOSED: (S.COMPLETED,),
    S.COMPLETED: (),
}

# Statuses whose phase can close automatically. The scheduler only loads these.
ACTIVE_STATUSES: tuple[HackathonStatus, ...] = (
    S.REGISTRATION_OPEN,
    S.SUBMISSION_OPEN,
    S.VOTING_OPEN,
)


def next_statuses(current: HackathonStatus) -> tuple[HackathonStatus, ...]:
    return _MANUAL_TRANSITIONS[HackathonStatus(current)]


def can_transition(current: HackathonStatus, target: HackathonStatus) -> bool:
    return HackathonStatus(target) in next_statuses(current)


def validate_transition(current: HackathonStatus, target: HackathonStatus) -> None:
    if not can_transition(current, target):
        raise InvalidTransition(HackathonStatus(current), HackathonStatus(target))


# ---------------------------------------------------------------------------
# Automatic transitions
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Transition:
    from_status: HackathonStatus
    to_status: HackathonStatus
    reason: str


@dataclass(frozen=True)
class _Rule:
    from_status: HackathonStatus
    to_status: HackathonStatus
    deadline: Callable[[Timeline], datetime]
    reason: str


_AUTOMATIC_RULES: tuple[_Rule, ...] = (
    _Rule(S.REGISTRATION_OPEN, S.REGISTRATION_CLOSED, lambda t: t.registration_deadline, "Registration deadline passed"),
    _Rule(S.SUBMISSION_OPEN, S.SUBMISSION_CLOSED, lambda t: t.submission_deadline, "Submission deadline passed"),
    _Rule(S.VOTING_OPEN, S.VOTING_CLOSED, lambda t: t.voting_deadline, "Voting deadline passed"),
)


def next_automatic_transition(hackathon, now: datetime) -> Optional[Transition]:
    """Return the deadline-driven transition due at `now`, or None.

    A deadline equal to `now` has not passed yet -- the comparison is strict.
    """
    timeline = hackathon if isinstance(hackathon, Timeline) else Timeline.of(hackathon)
    now = as_utc(now)
    for rule in _AUTOMATIC_RULES:
        if rule.from_status == timeline.status and now > rule.deadline(timeline):
            return Transition(rule.from_status, rule.to_status, rule.reason)
    return None


# ---------------------------------------------------------------------------
# Action gating
# ---------------------------------------------------------------------------

# Status-only part of the gate. Deadline checks are layered on top below.
_STATUS_GATE: dict[Action, frozenset[HackathonStatus]] = {
    Action.REGISTER: frozenset({S.REGISTRATION_OPEN}),
    Action.SUBMIT: frozenset({S.REGISTRATION_OPEN, S.SUBMISSION_OPEN}),
    Action.VOTE: frozenset({S.VOTING_OPEN}),
    Action.EDIT: frozenset(set(S) - {S.COMPLETED}),
    Action.ADD_JUDGE: frozenset(set(S) - {S.VOTING_OPEN, S.VOTING_CLOSED, S.COMPLETED}),
    Action.REMOVE_JUDGE: frozenset(set(S) - {S.VOTING_OPEN}),
    Action.DELETE: frozenset(set(S) - {S.REGISTRATION_OPEN, S.SUBMISSION_OPEN, S.VOTING_OPEN}),
    Action.FINALIZE: frozenset({S.COMPLETED}),
}


def deadline_error(hackathon, action: Action, now: datetime) -> Optional[str]:
    """Explain why `action` is not permitted at `now`, or return None if it is.

    Status is checked first, then the deadlines for the time-boxed actions.
    """
    timeline = hackathon if isinstance(hackathon, Timeline) else Timeline.of(hackathon)
    now = as_utc(now)
    if timeline.status not in _STATUS_GATE[action]:
        return f"Action '{action.value}' is not permitted while hackathon is {timeline.status.value}"

    if action is Action.REGISTER and now > timeline.registration_deadline:
        return "Registration deadline has passed"
    if action is Action.SUBMIT and now > timeline.submission_deadline:
        return "Submission deadline has passed"
    if action is Action.VOTE:
        if now < timeline.submission_deadline:
            return "Voting has not started yet. Voting begins after submission deadline."
        if now > timeline.voting_deadline:
            return "Voting deadline has passed"
    return None


def is_allowed(hackathon, action: Action, now: datetime) -> bool:
    return deadline_error(hackathon, action, now) is None


def allowed_actions(hackathon, now: datetime) -> frozenset[Action]:
    """Return every action permitted for `hackathon` at `now`."""
    timeline = hackathon if isinstance(hackathon, Timeline) else Timeline.of(hackathon)
    return frozenset(a for a in Action if deadline_error(timeline, a, now) is None)
