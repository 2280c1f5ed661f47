"""
auth/store.py -- SQLAlchemy Core persistence layer for auth entities.

Pattern: Repository + Data Mapper (same as hackathons/store.py).
AuthStore is the repository; _row_to_profile / _row_to_challenge are the
mappers. Route and dependency code never touches SQL directly.

Tables:
  auth_nonces    -- at most one outstanding sign-in challenge per address
  user_profiles  -- public profile keyed by lowercase wallet address

Security:
  All queries use bound parameters. No f-strings in SQL.

  consume_challenge() deletes the row keyed on the nonce it just read. Only
  the request whose DELETE actually removes the row gets the challenge back,
  so two concurrent logins can never both redeem the same nonce.

DB path: auth/hackafi_auth.db unless DATABASE_URL is set.

Layer rule: no imports from api/ or hackathons/.
"""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

from sqlalchemy import Column, MetaData, String, Table, Text, create_engine, event, select
from sqlalchemy.engine import Engine

from auth.models import NonceChallenge, UserProfile

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).parent / 'hackafi_auth.db'}"

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_nonces = Table(
    "auth_nonces",
    _metadata,
    Column("address", String(42), primary_key=True),
    Column("nonce", String(64), nullable=False),
    Column("message", Text, nullable=False),
    Column("expires_at", String(32), nullable=False),
)

_profiles = Table(
    "user_profiles",
    _metadata,
    Column("wallet_address", String(42), primary_key=True),
    Column("username", String(50), unique=True),
    Column("bio", Text),
    Column("avatar_url", Text),
    Column("created_at", String(32), nullable=False),
    Column("last_login", String(32)),
)


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety (per connection)."""
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class AuthStore:
    """Repository for sign-in challenges and user profiles.

    Usage:
        store = AuthStore()
        store.save_challenge(generate_challenge(address, 300))
        challenge = store.consume_challenge(address)
        store.ensure_profile(address)
        store.close()
    """

    def __init__(self, db_url: str = _DEFAULT_DB_URL) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite") and ":memory:" not in db_url and "mode=memory" not in db_url:
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Sign-in challenges
    # ------------------------------------------------------------------

    def save_challenge(self, challenge: NonceChallenge) -> None:
        """Store a challenge, replacing any outstanding one for the same address."""
        with self.engine.begin() as conn:
            conn.execute(_nonces.delete().where(_nonces.c.address == challenge.address))
            conn.execute(
                _nonces.insert().values(
                    address=challenge.address,
                    nonce=challenge.nonce,
                    message=challenge.message,
                    expires_at=challenge.expires_at,
                )
            )

    def consume_challenge(self, address: str) -> NonceChallenge | None:
        """Remove and return the outstanding challenge for `address`.

        Returns None if there is none, if it has expired, or if a concurrent
        request consumed it first. Expired rows are deleted either way.
        """
        address = address.lower()
        with self.engine.begin() as conn:
            row = conn.execute(_nonces.select().where(_nonces.c.address == address)).fetchone()
            if row is None:
                return None
            deleted = conn.execute(
                _nonces.delete().where((_nonces.c.address == address) & (_nonces.c.nonce == row.nonce))
            ).rowcount
        if deleted == 0:
            return None
        challenge = _row_to_challenge(row)
        if datetime.fromisoformat(challenge.expires_at) <= datetime.now(timezone.utc):
            return None
        return challenge

    def purge_expired_challenges(self) -> int:
        """Delete expired challenges. Returns number of rows removed."""
        with self.engine.begin() as conn:
            result = conn.execute(_nonces.delete().where(_nonces.c.expires_at <= _now_iso()))
        return result.rowcount

    # ------------------------------------------------------------------
    # Profiles
    # ------------------------------------------------------------------

    def get_profile(self, address: str) -> UserProfile | None:
        with self.engine.connect() as conn:
            row = conn.execute(_profiles.select().where(_profiles.c.wallet_address == address.lower())).fetchone()
        return _row_to_profile(row) if row is not None else None

    def get_profiles(self, addresses: list[str]) -> dict[str, UserProfile]:
        """Bulk lookup keyed by address -- avoids one query per leaderboard row."""
        if not addresses:
            return {}
        wanted = {a.lower() for a in addresses}
        with self.engine.connect() as conn:
            rows = conn.execute(_profiles.select().where(_profiles.c.wallet_address.in_(wanted))).fetchall()
        return {r.wallet_address: _row_to_profile(r) for r in rows}

    def ensure_profile(self, address: str) -> UserProfile:
        """Return the profile for `address`, creating an empty one if missing."""
        existing = self.get_profile(address)
        if existing is not None:
            return existing
        with self.engine.begin() as conn:
            conn.execute(_profiles.insert().values(wallet_address=address.lower(), created_at=_now_iso()))
        return self.get_profile(address)

    def update_profile(self, address: str, **fields) -> bool:
        """Update username / bio / avatar_url.

        Raises sqlalchemy.exc.IntegrityError if the username is taken.
        Returns True if a row was updated.
        """
        with self.engine.begin() as conn:
            result = conn.execute(
                _profiles.update().where(_profiles.c.wallet_address == address.lower()).values(**fields)
            )
        return result.rowcount > 0

    def update_last_login(self, address: str) -> None:
        with self.engine.begin() as conn:
            conn.execute(
                _profiles.update().where(_profiles.c.wallet_address == address.lower()).values(last_login=_now_iso())
            )

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


def _row_to_profile(row) -> UserProfile:
    return UserProfile(
        wallet_address=row.wallet_address,
        username=row.username,
        bio=row.bio,
        avatar_url=row.avatar_url,
        created_at=row.created_at,
        last_login=row.last_login,
    )


def _row_to_challenge(row) -> NonceChallenge:
    return NonceChallenge(
        address=row.address,
        nonce=row.nonce,
        message=row.message,
        expires_at=row.expires_at,
    )
