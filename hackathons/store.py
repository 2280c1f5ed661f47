"""
hackathons/store.py -- SQLAlchemy-backed persistence layer for Hacka-Fi.

Uses SQLAlchemy Core (not ORM) so the dataclasses in hackathons/models.py
remain the authoritative domain representation. Swapping SQLite for
PostgreSQL is a connection string change, not a rewrite.

Pattern: Repository + Data Mapper. HackathonStore is the repository (one
clean interface per entity). The _row_to_* functions are the mappers. Route
handlers never touch SQL directly.

Security: all queries use bound parameters. No f-strings in SQL.

Transactions:
  update_status() changes a hackathon's status and writes its audit entry in
  one transaction. The UPDATE is conditional on the status the caller last
  saw, so a manual change racing the scheduler cannot double-apply.

  finalize_winners() clears every rank/prize in the hackathon and writes the
  new placements in one transaction.

  award_achievements() reads the badges a wallet holds and inserts the missing
  ones in one transaction; a badge is held at most once per wallet.

Usage:
    store = HackathonStore()                               # SQLite default
    store = HackathonStore("postgresql://user:pw@host/db") # PostgreSQL
    hackathon_id = store.create_hackathon(hackathon)
    store.add_participant(Participant(hackathon_id, "0xabc..."))
    vote, created = store.upsert_vote(vote)
    store.close()
"""

import json
from collections import defaultdict
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from sqlalchemy import (
    Column,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    UniqueConstraint,
    create_engine,
    event,
    func,
    select,
)
from sqlalchemy.engine import Engine

from hackathons.models import Achievement, AuditEntry, Hackathon, Judge, Participant, Vote

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).parent / 'hackafi.db'}"

SORTABLE_COLUMNS = ("created_at", "registration_deadline", "submission_deadline", "voting_deadline", "title")

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

_hackathons = Table(
    "hackathons",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("title", String(200), nullable=False),
    Column("description", Text, nullable=False),
    Column("organizer_address", String(42), nullable=False, index=True),
    Column("registration_deadline", String(32), nullable=False),
    Column("submission_deadline", String(32), nullable=False),
    Column("voting_deadline", String(32), nullable=False),
    Column("status", String(32), nullable=False, server_default="DRAFT", index=True),
    Column("prize_amount", String(78)),  # wei, integer string
    Column("entry_fee", String(78)),
    Column("max_participants", Integer),
    Column("cover_image_url", Text),
    Column("contract_address", String(42)),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

_participants = Table(
    "participants",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("hackathon_id", Integer, nullable=False, index=True),
    Column("wallet_address", String(42), nullable=False, index=True),
    Column("submission_url", Text),
    Column("entry_fee", String(78)),
    Column("rank", Integer),
    Column("prize_amount", String(78)),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
    UniqueConstraint("hackathon_id", "wallet_address", name="uq_participant"),
)

_judges = Table(
    "judges",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("hackathon_id", Integer, nullable=False, index=True),
    Column("judge_address", String(42), nullable=False, index=True),
    Column("added_by", String(42), nullable=False),
    Column("added_at", String(32), nullable=False),
    UniqueConstraint("hackathon_id", "judge_address", name="uq_judge"),
)

_votes = Table(
    "votes",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("hackathon_id", Integer, nullable=False, index=True),
    Column("judge_address", String(42), nullable=False),
    Column("participant_id", Integer, nullable=False),
    Column("score", Integer, nullable=False),
    Column("comment", Text),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
    UniqueConstraint("hackathon_id", "judge_address", "participant_id", name="uq_vote"),
)

_audit = Table(
    "hackathon_audit_log",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("hackathon_id", Integer, nullable=False, index=True),
    Column("action", String(32), nullable=False),
    Column("from_status", String(32), nullable=False),
    Column("to_status", String(32), nullable=False),
    Column("reason", Text),
    Column("triggered_by", String(16), nullable=False),
    Column("user_address", String(42)),
    Column("metadata", Text),  # JSON object serialized as text
    Column("ip_address", String(45)),
    Column("user_agent", Text),
    Column("timestamp", String(32), nullable=False),
)

_achievements = Table(
    "user_achievements",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_address", String(42), nullable=False, index=True),
    Column("achievement_key", String(64), nullable=False, index=True),
    Column("hackathon_id", Integer),
    Column("awarded_by", String(42)),
    Column("earned_at", String(32), nullable=False),
    UniqueConstraint("user_address", "achievement_key", name="uq_user_achievement"),
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class HackathonStore:
    def __init__(self, db_url: str = _DEFAULT_DB_URL) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            # FastAPI runs sync handlers in a thread pool; one connection may
            # be touched from several threads.
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite") and ":memory:" not in db_url and "mode=memory" not in db_url:
            event.listen(self.engine, "connect", _set_wal_mode)
        metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Hackathons
    # ------------------------------------------------------------------

    def create_hackathon(self, hackathon: Hackathon) -> int:
        """Insert a new hackathon and return its assigned ID."""
        now = _now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(
                _hackathons.insert().values(
                    title=hackathon.title,
                    description=hackathon.description,
                    organizer_address=hackathon.organizer_address.lower(),
                    registration_deadline=hackathon.registration_deadline,
                    submission_deadline=hackathon.submission_deadline,
                    voting_deadline=hackathon.voting_deadline,
                    status=hackathon.status,
                    prize_amount=hackathon.prize_amount,
                    entry_fee=hackathon.entry_fee,
                    max_participants=hackathon.max_participants,
                    cover_image_url=hackathon.cover_image_url,
                    contract_address=hackathon.contract_address,
                    created_at=now,
                    updated_at=now,
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_hackathon(self, hackathon_id: int) -> Optional[Hackathon]:
        """Fetch a single hackathon by ID. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_hackathons.select().where(_hackathons.c.id == hackathon_id)).fetchone()
        return _row_to_hackathon(row) if row is not None else None

    def get_hackathons(self, ids: list[int]) -> dict[int, Hackathon]:
        """Bulk fetch keyed by ID -- avoids one query per history row."""
        if not ids:
            return {}
        with self.engine.connect() as conn:
            rows = conn.execute(_hackathons.select().where(_hackathons.c.id.in_(set(ids)))).fetchall()
        return {r.id: _row_to_hackathon(r) for r in rows}

    def list_hackathons(
        self,
        status: Optional[str] = None,
        organizer: Optional[str] = None,
        search: Optional[str] = None,
        page: int = 1,
        limit: int = 10,
        sort_by: str = "created_at",
        sort_order: str = "desc",
    ) -> tuple[list[Hackathon], int]:
        """Return one page of hackathons plus the total matching count.

        search matches title or description, case-insensitive. LIKE wildcards
        in the search term are escaped.
        """
        conditions = []
        if status:
            conditions.append(_hackathons.c.status == status)
        if organizer:
            conditions.append(_hackathons.c.organizer_address == organizer.lower())
        if search:
            term = search.lower()
            conditions.append(
                func.lower(_hackathons.c.title).contains(term, autoescape=True)
                | func.lower(_hackathons.c.description).contains(term, autoescape=True)
            )

        column = _hackathons.c[sort_by if sort_by in SORTABLE_COLUMNS else "created_at"]
        order = column.asc() if sort_order == "asc" else column.desc()

        stmt = _hackathons.select().where(*conditions).order_by(order, _hackathons.c.id)
        count_stmt = select(func.count()).select_from(_hackathons).where(*conditions)
        with self.engine.connect() as conn:
            total = conn.execute(count_stmt).scalar() or 0
            rows = conn.execute(stmt.limit(limit).offset((page - 1) * limit)).fetchall()
        return [_row_to_hackathon(r) for r in rows], total

    def list_by_status(self, statuses) -> list[Hackathon]:
        """Return every hackathon whose status is in `statuses`, oldest first."""
        values = [getattr(s, "value", s) for s in statuses]
        with self.engine.connect() as conn:
            rows = conn.execute(
                _hackathons.select().where(_hackathons.c.status.in_(values)).order_by(_hackathons.c.id)
            ).fetchall()
        return [_row_to_hackathon(r) for r in rows]

    def status_counts(self) -> dict[str, int]:
        with self.engine.connect() as conn:
            rows = conn.execute(
                select(_hackathons.c.status, func.count()).group_by(_hackathons.c.status)
            ).fetchall()
        return {status: count for status, count in rows}

    def count_organized(self, address: str) -> int:
        with self.engine.connect() as conn:
            return (
                conn.execute(
                    select(func.count())
                    .select_from(_hackathons)
                    .where(_hackathons.c.organizer_address == address.lower())
                ).scalar()
                or 0
            )

    def update_hackathon(self, hackathon_id: int, **fields) -> bool:
        """Update mutable fields on a hackathon. Never touches status.

        Returns True if a row was updated, False if hackathon_id was not found.
        """
        fields.pop("status", None)
        with self.engine.connect() as conn:
            result = conn.execute(
                _hackathons.update().where(_hackathons.c.id == hackathon_id).values(updated_at=_now_iso(), **fields)
            )
            conn.commit()
        return result.rowcount > 0

    def update_status(self, hackathon_id: int, from_status: str, audit: AuditEntry, **fields) -> bool:
        """Move a hackathon to audit.to_status and record the audit entry.

        Both writes share one transaction. The UPDATE only matches while the
        stored status still equals from_status; if another writer got there
        first, nothing is written and False is returned.

        Extra keyword fields are applied in the same UPDATE (used by the edit
        route when a body carries both a status and other changes).
        """
        now = _now_iso()
        fields.pop("status", None)
        with self.engine.begin() as conn:
            result = conn.execute(
                _hackathons.update()
                .where((_hackathons.c.id == hackathon_id) & (_hackathons.c.status == from_status))
                .values(status=audit.to_status, updated_at=now, **fields)
            )
            if result.rowcount == 0:
                return False
            conn.execute(
                _audit.insert().values(
                    hackathon_id=hackathon_id,
                    action=audit.action,
                    from_status=from_status,
                    to_status=audit.to_status,
                    reason=audit.reason,
                    triggered_by=audit.triggered_by,
                    user_address=audit.user_address,
                    metadata=json.dumps(audit.metadata or {}),
                    ip_address=audit.ip_address,
                    user_agent=audit.user_agent,
                    timestamp=now,
                )
            )
        return True

    def delete_hackathon(self, hackathon_id: int) -> bool:
        """Delete a hackathon with its participants, judges and votes.

        Audit entries are kept so the admin trail survives the deletion.
        """
        with self.engine.begin() as conn:
            conn.execute(_votes.delete().where(_votes.c.hackathon_id == hackathon_id))
            conn.execute(_judges.delete().where(_judges.c.hackathon_id == hackathon_id))
            conn.execute(_participants.delete().where(_participants.c.hackathon_id == hackathon_id))
            result = conn.execute(_hackathons.delete().where(_hackathons.c.id == hackathon_id))
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Participants
    # ------------------------------------------------------------------

    def add_participant(self, participant: Participant) -> int:
        """Register a wallet for a hackathon and return the participant ID.

        Raises sqlalchemy.exc.IntegrityError if the wallet is already
        registered -- caller maps it to 409.
        """
        now = _now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(
                _participants.insert().values(
                    hackathon_id=participant.hackathon_id,
                    wallet_address=participant.wallet_address.lower(),
                    submission_url=participant.submission_url,
                    entry_fee=participant.entry_fee,
                    created_at=now,
                    updated_at=now,
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_participant(self, participant_id: int) -> Optional[Participant]:
        with self.engine.connect() as conn:
            row = conn.execute(_participants.select().where(_participants.c.id == participant_id)).fetchone()
        return _row_to_participant(row) if row is not None else None

    def get_participant_by_address(self, hackathon_id: int, address: str) -> Optional[Participant]:
        with self.engine.connect() as conn:
            row = conn.execute(
                _participants.select().where(
                    (_participants.c.hackathon_id == hackathon_id)
                    & (_participants.c.wallet_address == address.lower())
                )
            ).fetchone()
        return _row_to_participant(row) if row is not None else None

    def list_participants(self, hackathon_id: int) -> list[Participant]:
        """Return all participants of a hackathon in registration order."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                _participants.select()
                .where(_participants.c.hackathon_id == hackathon_id)
                .order_by(_participants.c.id)
            ).fetchall()
        return [_row_to_participant(r) for r in rows]

    def count_participants(self, hackathon_id: int, with_submission: bool = False) -> int:
        stmt = select(func.count()).select_from(_participants).where(_participants.c.hackathon_id == hackathon_id)
        if with_submission:
            stmt = stmt.where(_participants.c.submission_url.is_not(None))
        with self.engine.connect() as conn:
            return conn.execute(stmt).scalar() or 0

    def list_participations(self, address: str) -> list[Participant]:
        """Every participant row for a wallet, newest first."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                _participants.select()
                .where(_participants.c.wallet_address == address.lower())
                .order_by(_participants.c.id.desc())
            ).fetchall()
        return [_row_to_participant(r) for r in rows]

    def update_submission(self, participant_id: int, submission_url: str) -> bool:
        with self.engine.connect() as conn:
            result = conn.execute(
                _participants.update()
                .where(_participants.c.id == participant_id)
                .values(submission_url=submission_url, updated_at=_now_iso())
            )
            conn.commit()
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Winners
    # ------------------------------------------------------------------

    def is_finalized(self, hackathon_id: int) -> bool:
        """True once any participant of the hackathon carries a rank."""
        with self.engine.connect() as conn:
            row = conn.execute(
                select(_participants.c.id)
                .where((_participants.c.hackathon_id == hackathon_id) & (_participants.c.rank.is_not(None)))
                .limit(1)
            ).fetchone()
        return row is not None

    def finalize_winners(self, hackathon_id: int, placements: list[tuple[int, int, Optional[str]]]) -> None:
        """Persist final ranks and prizes.

        placements is a list of (participant_id, rank, prize_amount). Existing
        ranks in the hackathon are cleared first; both steps share a
        transaction so readers never see a half-written podium.
        """
        now = _now_iso()
        with self.engine.begin() as conn:
            conn.execute(
                _participants.update()
                .where(_participants.c.hackathon_id == hackathon_id)
                .values(rank=None, prize_amount=None, updated_at=now)
            )
            for participant_id, rank, prize in placements:
                conn.execute(
                    _participants.update()
                    .where(
                        (_participants.c.id == participant_id) & (_participants.c.hackathon_id == hackathon_id)
                    )
                    .values(rank=rank, prize_amount=prize, updated_at=now)
                )

    def list_ranked(self, hackathon_id: Optional[int] = None) -> list[Participant]:
        """Participants with a finalized rank, best first."""
        stmt = _participants.select().where(_participants.c.rank.is_not(None))
        if hackathon_id is not None:
            stmt = stmt.where(_participants.c.hackathon_id == hackathon_id)
        with self.engine.connect() as conn:
            rows = conn.execute(stmt.order_by(_participants.c.rank, _participants.c.id)).fetchall()
        return [_row_to_participant(r) for r in rows]

    def leaderboard(self, limit: int = 50) -> list[dict]:
        """Aggregate finalized placements per wallet.

        Ordered by wins (rank 1), then total prize (wei), then podium
        finishes (rank <= 3). prize_amount is summed in Python because it is
        an integer string that can exceed any SQL integer type.
        """
        totals: dict[str, dict] = defaultdict(lambda: {"wins": 0, "podiums": 0, "total_prize": 0, "participations": 0})
        with self.engine.connect() as conn:
            rows = conn.execute(
                select(_participants.c.wallet_address, _participants.c.rank, _participants.c.prize_amount)
            ).fetchall()
        for address, rank, prize in rows:
            entry = totals[address]
            entry["participations"] += 1
            if rank is None:
                continue
            if rank == 1:
                entry["wins"] += 1
            if rank <= 3:
                entry["podiums"] += 1
            if prize:
                entry["total_prize"] += int(prize)
        ranked = [
            {"wallet_address": address, **stats}
            for address, stats in totals.items()
            if stats["podiums"] or stats["total_prize"]
        ]
        ranked.sort(key=lambda e: (-e["wins"], -e["total_prize"], -e["podiums"], e["wallet_address"]))
        return ranked[:limit]

    # ------------------------------------------------------------------
    # Judges
    # ------------------------------------------------------------------

    def add_judge(self, judge: Judge) -> int:
        """Add a judge to a hackathon's panel and return the judge row ID.

        Raises sqlalchemy.exc.IntegrityError on a duplicate (hackathon, judge).
        """
        with self.engine.connect() as conn:
            result = conn.execute(
                _judges.insert().values(
                    hackathon_id=judge.hackathon_id,
                    judge_address=judge.judge_address.lower(),
                    added_by=judge.added_by.lower(),
                    added_at=_now_iso(),
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def remove_judge(self, hackathon_id: int, judge_address: str) -> bool:
        with self.engine.connect() as conn:
            result = conn.execute(
                _judges.delete().where(
                    (_judges.c.hackathon_id == hackathon_id) & (_judges.c.judge_address == judge_address.lower())
                )
            )
            conn.commit()
        return result.rowcount > 0

    def list_judges(self, hackathon_id: int) -> list[Judge]:
        with self.engine.connect() as conn:
            rows = conn.execute(
                _judges.select().where(_judges.c.hackathon_id == hackathon_id).order_by(_judges.c.id)
            ).fetchall()
        return [_row_to_judge(r) for r in rows]

    def is_judge(self, hackathon_id: int, address: str) -> bool:
        with self.engine.connect() as conn:
            row = conn.execute(
                select(_judges.c.id).where(
                    (_judges.c.hackathon_id == hackathon_id) & (_judges.c.judge_address == address.lower())
                )
            ).fetchone()
        return row is not None

    def count_judges(self, hackathon_id: int) -> int:
        with self.engine.connect() as conn:
            return (
                conn.execute(
                    select(func.count()).select_from(_judges).where(_judges.c.hackathon_id == hackathon_id)
                ).scalar()
                or 0
            )

    def list_judged_hackathons(self, address: str) -> list[Hackathon]:
        """Hackathons where `address` sits on the panel, soonest voting deadline first."""
        stmt = (
            _hackathons.select()
            .join(_judges, _judges.c.hackathon_id == _hackathons.c.id)
            .where(_judges.c.judge_address == address.lower())
            .order_by(_hackathons.c.voting_deadline)
        )
        with self.engine.connect() as conn:
            rows = conn.execute(stmt).fetchall()
        return [_row_to_hackathon(r) for r in rows]

    def count_judged(self, address: str) -> int:
        with self.engine.connect() as conn:
            return (
                conn.execute(
                    select(func.count()).select_from(_judges).where(_judges.c.judge_address == address.lower())
                ).scalar()
                or 0
            )

    # ------------------------------------------------------------------
    # Votes
    # ------------------------------------------------------------------

    def upsert_vote(self, vote: Vote) -> tuple[Vote, bool]:
        """Insert a vote, or update score/comment if this judge already scored this participant.

        Returns (stored_vote, created).
        """
        now = _now_iso()
        key = (
            (_votes.c.hackathon_id == vote.hackathon_id)
            & (_votes.c.judge_address == vote.judge_address.lower())
            & (_votes.c.participant_id == vote.participant_id)
        )
        with self.engine.begin() as conn:
            existing = conn.execute(_votes.select().where(key)).fetchone()
            if existing is None:
                conn.execute(
                    _votes.insert().values(
                        hackathon_id=vote.hackathon_id,
                        judge_address=vote.judge_address.lower(),
                        participant_id=vote.participant_id,
                        score=vote.score,
                        comment=vote.comment,
                        created_at=now,
                        updated_at=now,
                    )
                )
            else:
                conn.execute(_votes.update().where(key).values(score=vote.score, comment=vote.comment, updated_at=now))
            row = conn.execute(_votes.select().where(key)).fetchone()
        return _row_to_vote(row), existing is None

    def list_votes(self, hackathon_id: int, judge_address: Optional[str] = None) -> list[Vote]:
        stmt = _votes.select().where(_votes.c.hackathon_id == hackathon_id)
        if judge_address:
            stmt = stmt.where(_votes.c.judge_address == judge_address.lower())
        with self.engine.connect() as conn:
            rows = conn.execute(stmt.order_by(_votes.c.id)).fetchall()
        return [_row_to_vote(r) for r in rows]

    def list_votes_by_judge(self, judge_address: str) -> list[Vote]:
        """Every vote a judge has cast, most recently touched first."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                _votes.select()
                .where(_votes.c.judge_address == judge_address.lower())
                .order_by(_votes.c.updated_at.desc())
            ).fetchall()
        return [_row_to_vote(r) for r in rows]

    def count_recent_votes(self, hackathon_id: int, judge_address: str, since: datetime) -> int:
        """Votes this judge created or changed in this hackathon at or after `since`."""
        with self.engine.connect() as conn:
            return (
                conn.execute(
                    select(func.count())
                    .select_from(_votes)
                    .where(
                        (_votes.c.hackathon_id == hackathon_id)
                        & (_votes.c.judge_address == judge_address.lower())
                        & (_votes.c.updated_at >= since.astimezone(timezone.utc).isoformat())
                    )
                ).scalar()
                or 0
            )

    def judge_has_votes(self, hackathon_id: int, judge_address: str) -> bool:
        with self.engine.connect() as conn:
            row = conn.execute(
                select(_votes.c.id)
                .where((_votes.c.hackathon_id == hackathon_id) & (_votes.c.judge_address == judge_address.lower()))
                .limit(1)
            ).fetchone()
        return row is not None

    # ------------------------------------------------------------------
    # Audit log
    # ------------------------------------------------------------------

    def list_audit(
        self,
        hackathon_id: Optional[int] = None,
        action: Optional[str] = None,
        triggered_by: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[AuditEntry], int]:
        """Return audit entries newest first, plus the total matching count."""
        conditions = []
        if hackathon_id is not None:
            conditions.append(_audit.c.hackathon_id == hackathon_id)
        if action:
            conditions.append(_audit.c.action == action)
        if triggered_by:
            conditions.append(_audit.c.triggered_by == triggered_by)
        with self.engine.connect() as conn:
            total = conn.execute(select(func.count()).select_from(_audit).where(*conditions)).scalar() or 0
            rows = conn.execute(
                _audit.select()
                .where(*conditions)
                .order_by(_audit.c.timestamp.desc(), _audit.c.id.desc())
                .limit(limit)
                .offset(offset)
            ).fetchall()
        return [_row_to_audit(r) for r in rows], total

    # ------------------------------------------------------------------
    # Achievements
    # ------------------------------------------------------------------

    def award_achievements(
        self,
        address: str,
        keys: list[str],
        hackathon_id: Optional[int] = None,
        awarded_by: Optional[str] = None,
    ) -> list[str]:
        """Record every key the wallet does not hold yet and return those keys.

        Keys already held are skipped silently; the first award and its
        hackathon_id are left as they were.
        """
        address = address.lower()
        now = _now_iso()
        with self.engine.begin() as conn:
            held = set(
                conn.execute(
                    select(_achievements.c.achievement_key).where(_achievements.c.user_address == address)
                ).scalars()
            )
            new = [k for k in dict.fromkeys(keys) if k not in held]
            for key in new:
                conn.execute(
                    _achievements.insert().values(
                        user_address=address,
                        achievement_key=key,
                        hackathon_id=hackathon_id,
                        awarded_by=awarded_by.lower() if awarded_by else None,
                        earned_at=now,
                    )
                )
        return new

    def list_achievements(self, address: str) -> list[Achievement]:
        """Badges held by a wallet, most recently earned first."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                _achievements.select()
                .where(_achievements.c.user_address == address.lower())
                .order_by(_achievements.c.earned_at.desc(), _achievements.c.id.desc())
            ).fetchall()
        return [_row_to_achievement(r) for r in rows]

    def achievement_counts(self) -> dict[str, int]:
        """Holders per achievement key."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                select(_achievements.c.achievement_key, func.count()).group_by(_achievements.c.achievement_key)
            ).fetchall()
        return {key: count for key, count in rows}

    def count_achievers(self) -> int:
        """Wallets holding at least one badge."""
        with self.engine.connect() as conn:
            return (
                conn.execute(select(func.count(func.distinct(_achievements.c.user_address)))).scalar() or 0
            )

    def achievement_leaderboard(self, keys: list[str], limit: int = 10) -> list[tuple[str, int]]:
        """(address, badges held among `keys`), most badges first."""
        if not keys:
            return []
        count = func.count().label("badges")
        with self.engine.connect() as conn:
            rows = conn.execute(
                select(_achievements.c.user_address, count)
                .where(_achievements.c.achievement_key.in_(keys))
                .group_by(_achievements.c.user_address)
                .order_by(count.desc(), _achievements.c.user_address)
                .limit(limit)
            ).fetchall()
        return [(address, badges) for address, badges in rows]

    # ------------------------------------------------------------------
    # Analytics
    # ------------------------------------------------------------------

    def list_created_between(
        self,
        start: Optional[datetime],
        end: datetime,
        hackathon_id: Optional[int] = None,
    ) -> list[Hackathon]:
        """Hackathons created in [start, end], oldest first. start=None means no lower bound."""
        conditions = [_hackathons.c.created_at <= end.astimezone(timezone.utc).isoformat()]
        if start is not None:
            conditions.append(_hackathons.c.created_at >= start.astimezone(timezone.utc).isoformat())
        if hackathon_id is not None:
            conditions.append(_hackathons.c.id == hackathon_id)
        with self.engine.connect() as conn:
            rows = conn.execute(_hackathons.select().where(*conditions).order_by(_hackathons.c.id)).fetchall()
        return [_row_to_hackathon(r) for r in rows]

    def list_participants_in(self, hackathon_ids: list[int]) -> list[Participant]:
        if not hackathon_ids:
            return []
        with self.engine.connect() as conn:
            rows = conn.execute(
                _participants.select()
                .where(_participants.c.hackathon_id.in_(set(hackathon_ids)))
                .order_by(_participants.c.id)
            ).fetchall()
        return [_row_to_participant(r) for r in rows]

    def list_judges_in(self, hackathon_ids: list[int]) -> list[Judge]:
        if not hackathon_ids:
            return []
        with self.engine.connect() as conn:
            rows = conn.execute(
                _judges.select().where(_judges.c.hackathon_id.in_(set(hackathon_ids))).order_by(_judges.c.id)
            ).fetchall()
        return [_row_to_judge(r) for r in rows]

    def list_votes_in(self, hackathon_ids: list[int]) -> list[Vote]:
        if not hackathon_ids:
            return []
        with self.engine.connect() as conn:
            rows = conn.execute(
                _votes.select().where(_votes.c.hackathon_id.in_(set(hackathon_ids))).order_by(_votes.c.id)
            ).fetchall()
        return [_row_to_vote(r) for r in rows]

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def ping(self) -> bool:
        """Cheap connectivity check for the health endpoint."""
        with self.engine.connect() as conn:
            conn.execute(select(1))
        return True

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_hackathon(row) -> Hackathon:
    return Hackathon(
        id=row.id,
        title=row.title,
        description=row.description,
        organizer_address=row.organizer_address,
        registration_deadline=row.registration_deadline,
        submission_deadline=row.submission_deadline,
        voting_deadline=row.voting_deadline,
        status=row.status,
        prize_amount=row.prize_amount,
        entry_fee=row.entry_fee,
        max_participants=row.max_participants,
        cover_image_url=row.cover_image_url,
        contract_address=row.contract_address,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _row_to_participant(row) -> Participant:
    return Participant(
        id=row.id,
        hackathon_id=row.hackathon_id,
        wallet_address=row.wallet_address,
        submission_url=row.submission_url,
        entry_fee=row.entry_fee,
        rank=row.rank,
        prize_amount=row.prize_amount,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _row_to_judge(row) -> Judge:
    return Judge(
        id=row.id,
        hackathon_id=row.hackathon_id,
        judge_address=row.judge_address,
        added_by=row.added_by,
        added_at=row.added_at,
    )


def _row_to_vote(row) -> Vote:
    return Vote(
        id=row.id,
        hackathon_id=row.hackathon_id,
        judge_address=row.judge_address,
        participant_id=row.participant_id,
        score=row.score,
        comment=row.comment,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _row_to_audit(row) -> AuditEntry:
    return AuditEntry(
        id=row.id,
        hackathon_id=row.hackathon_id,
        action=row.action,
        from_status=row.from_status,
        to_status=row.to_status,
        reason=row.reason,
        triggered_by=row.triggered_by,
        user_address=row.user_address,
        metadata=json.loads(row._mapping["metadata"] or "{}"),
        ip_address=row.ip_address,
        user_agent=row.user_agent,
        timestamp=row.timestamp,
    )


def _row_to_achievement(row) -> Achievement:
    return Achievement(
        id=row.id,
        user_address=row.user_address,
        achievement_key=row.achievement_key,
        hackathon_id=row.hackathon_id,
        awarded_by=row.awarded_by,
        earned_at=row.earned_at,
    )
