"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

Two token sources are checked in priority order:
  1. Authorization: Bearer <token> header -- wallets and API clients.
  2. JWT cookie ("access_token") -- set by POST /auth/login for browsers.

Both converge on a WalletUser rebuilt from the verified JWT claims. No store
lookup is needed: the signature on the token is the proof of identity.

try_get_current_user() is the soft variant (returns None on failure).
get_current_user() wraps it and raises HTTP 401 if unauthenticated.
require_admin() wraps get_current_user() and raises HTTP 403 if not admin.

Layer rule: no imports from api/ or hackathons/.
  auth/dependencies.py may import from fastapi (for HTTPException/Request)
  because this module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from fastapi import HTTPException, Request

from auth.models import WalletUser
from auth.tokens import decode_access_token, role_for


def _extract_token(request: Request) -> str | None:
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        return auth_header[7:].strip() or None
    return request.cookies.get("access_token") or None


def try_get_current_user(request: Request) -> WalletUser | None:
    """Attempt to authenticate the request via Bearer header or cookie.

    Returns the WalletUser on success, None on any failure.
    Never raises -- callers that need a hard 401 should use get_current_user().
    """
    token = _extract_token(request)
    if not token:
        return None
    payload = decode_access_token(token)
    if payload is None:
        return None
    return WalletUser(address=payload["address"].lower(), role=payload["role"])


def get_current_user(request: Request) -> WalletUser:
    """Require authentication. Raises HTTP 401 if the request is not authenticated.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(user: WalletUser = Depends(get_current_user)): ...
    """
    user = try_get_current_user(request)
    if user is None:
        raise HTTPException(
            status_code=401,
            detail={"code": "unauthorized", "message": "Authentication required."},
        )
    return user


def require_admin(request: Request) -> WalletUser:
    """Require admin role. Raises HTTP 401 if unauthenticated, HTTP 403 if not admin.

    The token's role claim must say admin AND the address must still be listed
    in ADMIN_ADDRESSES, so dropping an address revokes access immediately.
    """
    user = get_current_user(request)
    if not user.is_admin or role_for(user.address) != "admin":
        raise HTTPException(
            status_code=403,
            detail={"code": "forbidden", "message": "Admin access required."},
        )
    return user
