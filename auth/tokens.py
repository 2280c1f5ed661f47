"""
auth/tokens.py -- JWT issue/verify and the auth cookie helper.

Security design decisions:
  JWT: python-jose with HS256. Tokens are signed with SECRET_KEY and carry
       the lowercase wallet address (sub + address), role, iat, and exp.
       Verification returns None on any failure -- route layer turns that
       into a 401.

  Lifetime: JWT_EXPIRES_IN uses the compact "30m" / "12h" / "1d" grammar.
       parse_expires_in() converts it to seconds; anything unparseable falls
       back to one day rather than minting a token that never expires.

  Role: "admin" when the address is listed in ADMIN_ADDRESSES at issue time.
       require_admin() re-checks the live setting, so removing an address
       from the list revokes admin rights without waiting for expiry.

Layer rule: no imports from api/ or hackathons/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt

from core.config import get_settings

logger = logging.getLogger("hackafi.auth")

_settings = get_settings()

_ALGORITHM = "HS256"
_DEFAULT_EXPIRES_SECONDS = 86400

_UNIT_SECONDS = {"s": 1, "m": 60, "h": 3600, "d": 86400}
_EXPIRES_RE = re.compile(r"^(\d+)([smhd])$")


def parse_expires_in(value: str) -> int:
    """Convert "90s" / "30m" / "12h" / "1d" to seconds. Falls back to one day."""
    match = _EXPIRES_RE.match(value.strip()) if value else None
    if match is None:
        return _DEFAULT_EXPIRES_SECONDS
    return int(match.group(1)) * _UNIT_SECONDS[match.group(2)]


def token_lifetime() -> int:
    return parse_expires_in(_settings.jwt_expires_in)


def role_for(address: str) -> str:
    return "admin" if address.lower() in get_settings().admin_address_set else "user"


# ---------------------------------------------------------------------------
# JWT encode / decode
# ---------------------------------------------------------------------------


def create_access_token(address: str, role: str, expire_seconds: int = 0) -> str:
    """Encode a signed JWT for a verified wallet.

    Args:
        address:        Wallet address; stored lowercase as sub and address.
        role:           "admin" or "user".
        expire_seconds: Token lifetime. If 0 (default), uses JWT_EXPIRES_IN.
    """
    duration = expire_seconds if expire_seconds > 0 else token_lifetime()
    now = datetime.now(timezone.utc)
    payload = {
        "sub": address.lower(),
        "address": address.lower(),
        "role": role,
        "iat": now,
        "exp": now + timedelta(seconds=duration),
    }
    return jwt.encode(payload, _settings.secret_key, algorithm=_ALGORITHM)


def decode_access_token(token: str) -> dict | None:
    """Decode and verify a JWT. Returns the payload dict or None on any failure."""
    try:
        payload = jwt.decode(token, _settings.secret_key, algorithms=[_ALGORITHM])
    except JWTError:
        return None
    if not payload.get("sub") or not payload.get("address") or "role" not in payload:
        return None
    return payload


# ---------------------------------------------------------------------------
# Cookie helper
# ---------------------------------------------------------------------------


def set_auth_cookie(response, token: str, expire_seconds: int = 0) -> None:
    """Write the JWT as an httpOnly cookie on the response.

    httponly=True: JS cannot read the cookie.
    samesite="lax": not sent on cross-site POST.
    secure: only sent over HTTPS when SECURE_COOKIES=true.
    max_age: matches the JWT expiry so both expire together.
    """
    duration = expire_seconds if expire_seconds > 0 else token_lifetime()
    response.set_cookie(
        "access_token",
        value=token,
        httponly=True,
        samesite="lax",
        secure=_settings.secure_cookies,
        max_age=duration,
    )
