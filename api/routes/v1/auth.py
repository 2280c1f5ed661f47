"""
api/routes/v1/auth.py -- Wallet sign-in REST endpoints.

Routes:
  POST /api/v1/auth/nonce    -- issue a one-time challenge for an address
  POST /api/v1/auth/login    -- verify the signed challenge; returns JWT + sets cookie
  POST /api/v1/auth/logout   -- clears cookie; 200
  GET  /api/v1/auth/profile  -- current wallet identity (requires auth)
  GET  /api/v1/auth/verify   -- token validity check (requires auth)

Security:
  POST /nonce and POST /login share AUTH_RATE_LIMIT per client IP.
  Challenges are single use: login consumes the stored challenge before the
  signature is checked, so a failed attempt burns the nonce too.
  invalid_nonce and invalid_signature are distinct codes; neither reveals
  whether the address has an account.
  Cache-Control: no-store on every response that carries a token or nonce.
"""

from __future__ import annotations

import hmac
import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse

from api.limiter import limiter
from api.models import ErrorDetail, LoginRequest, LoginResponse, MeResponse, NonceRequest, NonceResponse, VerifyResponse
from auth.dependencies import get_current_user
from auth.models import WalletUser
from auth.store import AuthStore
from auth.tokens import create_access_token, role_for, set_auth_cookie, token_lifetime
from auth.wallet import generate_challenge, normalize_address, verify_signature
from core.config import get_settings

logger = logging.getLogger("hackafi.auth")

_settings = get_settings()

# Auth policy:
# - POST /api/v1/auth/nonce:    public, rate limited
# - POST /api/v1/auth/login:    public, rate limited
# - POST /api/v1/auth/logout:   public -- clearing a cookie needs no prior auth
# - GET  /api/v1/auth/profile:  requires auth (get_current_user)
# - GET  /api/v1/auth/verify:   requires auth (get_current_user)
router = APIRouter()


def _bad_address(exc: ValueError) -> HTTPException:
    return HTTPException(
        status_code=400,
        detail=ErrorDetail(code="invalid_address", message=str(exc)).model_dump(),
    )


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@limiter.limit(_settings.auth_rate_limit)
@router.post("/auth/nonce", response_model=NonceResponse)
def issue_nonce(request: Request, body: NonceRequest) -> JSONResponse:
    """Issue a sign-in challenge. Any earlier challenge for the address is replaced."""
    try:
        address = normalize_address(body.address)
    except ValueError as e:
        raise _bad_address(e) from e
    store: AuthStore = request.app.state.auth_store
    challenge = generate_challenge(address, _settings.nonce_ttl_seconds)
    store.save_challenge(challenge)
    logger.info("Nonce issued for %s", address)
    resp = JSONResponse(
        content=NonceResponse(
            address=challenge.address,
            nonce=challenge.nonce,
            message=challenge.message,
            expires_in=challenge.expires_in,
        ).model_dump()
    )
    resp.headers["Cache-Control"] = "no-store"
    return resp


@limiter.limit(_settings.auth_rate_limit)
@router.post("/auth/login", response_model=LoginResponse)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Exchange a signed challenge for a JWT.

    Order matters:
      1. consume the stored challenge (missing/expired/mismatched -> invalid_nonce)
      2. recover the signer (wrong key or garbage -> invalid_signature)
      3. ensure a profile exists and stamp last_login
      4. issue the token
    """
    try:
        address = normalize_address(body.address)
    except ValueError as e:
        raise _bad_address(e) from e
    store: AuthStore = request.app.state.auth_store

    challenge = store.consume_challenge(address)
    if challenge is None or not hmac.compare_digest(challenge.message.encode(), body.message.encode()):
        logger.info("Login rejected for %s: invalid nonce", address)
        raise HTTPException(
            status_code=401,
            detail=ErrorDetail(
                code="invalid_nonce",
                message="Sign-in challenge is missing, expired, or does not match. Request a new nonce.",
            ).model_dump(),
        )

    if not verify_signature(address, body.message, body.signature):
        logger.info("Login rejected for %s: invalid signature", address)
        raise HTTPException(
            status_code=401,
            detail=ErrorDetail(code="invalid_signature", message="Signature does not match address.").model_dump(),
        )

    store.ensure_profile(address)
    store.update_last_login(address)

    role = role_for(address)
    expires_in = token_lifetime()
    token = create_access_token(address, role, expires_in)
    logger.info("Login succeeded for %s (role=%s)", address, role)
    resp = JSONResponse(
        content=LoginResponse(
            access_token=token,
            token_type="bearer",  # noqa: S106 # nosec B106 -- OAuth token type, not a password
            expires_in=expires_in,
            address=address,
            role=role,
        ).model_dump()
    )
    set_auth_cookie(resp, token, expires_in)
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.post("/auth/logout")
async def logout() -> JSONResponse:
    """Clear the JWT cookie. Bearer tokens stay valid until they expire."""
    resp = JSONResponse(content={"message": "Logged out."})
    resp.delete_cookie("access_token")
    return resp


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.get("/auth/profile", response_model=MeResponse)
def profile(request: Request, current_user: WalletUser = Depends(get_current_user)) -> MeResponse:
    """Return identity information for the authenticated wallet."""
    store: AuthStore = request.app.state.auth_store
    user_profile = store.get_profile(current_user.address)
    return MeResponse(
        address=current_user.address,
        role=current_user.role,
        username=user_profile.username if user_profile else None,
    )


@router.get("/auth/verify", response_model=VerifyResponse)
async def verify(current_user: WalletUser = Depends(get_current_user)) -> VerifyResponse:
    """Cheap check for clients deciding whether to re-run the sign-in flow."""
    return VerifyResponse(valid=True, address=current_user.address)
