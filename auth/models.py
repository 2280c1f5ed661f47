"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Mirrors the approach
in hackathons/models.py -- dataclasses own domain shape; stores and routes do
the work.

Layer rule: no imports from api/ or hackathons/.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class WalletUser:
    """The authenticated caller, rebuilt from JWT claims on every request.

    address is always lowercase. role is derived from ADMIN_ADDRESSES at
    token-issue time and re-checked by require_admin().
    """

    address: str
    role: str = "user"  # "admin" | "user"

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


@dataclass
class NonceChallenge:
    """A one-time sign-in challenge issued to a wallet address.

    message embeds the nonce and is the exact text the wallet must sign.
    The challenge is consumed (deleted) on the first login attempt that
    references it, whether or not the signature checks out.
    """

    address: str
    nonce: str
    message: str
    expires_at: str  # ISO 8601
    expires_in: int = 0  # seconds, as reported to the client at issue time


@dataclass
class UserProfile:
    """Public profile keyed by wallet address.

    Created lazily: on first login, when the address registers for a
    hackathon, or when it is added as a judge.
    """

    wallet_address: str
    username: str | None = None
    bio: str | None = None
    avatar_url: str | None = None
    created_at: str | None = None
    last_login: str | None = None
