"""
tests/conftest.py -- Shared test fixtures for Hacka-Fi integration tests.

This module provides:
  - WALLETS: deterministic eth_account keys for every role used in tests
  - _make_test_stores(): creates isolated in-memory DBs for auth + hackathons
  - _patch_lifespan(): wires test stores into app.state, bypassing real startup
  - api_client: TestClient plus the two stores behind it
  - tokens: a JWT per test wallet, issued directly (no sign-in round trip)
  - sign_in(): the real nonce -> personal_sign -> login flow
  - make_hackathon(): inserts a hackathon straight into the store with any
    status and deadlines, including ones in the past

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs route handlers in a thread pool. Plain :memory: DBs
are per-connection and would present a blank schema to each worker thread.
The named URI format (file:name?mode=memory&cache=shared&uri=true) shares
one in-memory instance across all connections in the same process.

Environment must be set before any core/auth/api import: get_settings() is
cached on first call and route modules read rate limits at import time.
"""

from __future__ import annotations

import asyncio
import os
from collections.abc import Generator
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from typing import Optional

from eth_account import Account
from eth_account.messages import encode_defunct

WALLETS = {
    "admin": Account.from_key("0x" + "11" * 32),
    "organizer": Account.from_key("0x" + "22" * 32),
    "alice": Account.from_key("0x" + "33" * 32),
    "bob": Account.from_key("0x" + "44" * 32),
    "judge1": Account.from_key("0x" + "55" * 32),
    "judge2": Account.from_key("0x" + "66" * 32),
    "outsider": Account.from_key("0x" + "77" * 32),
}

# CRITICAL: Set env before any auth/core import.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("ADMIN_ADDRESSES", WALLETS["admin"].address)
os.environ.setdefault("AUTH_RATE_LIMIT", "1000/minute")
os.environ.setdefault("VOTE_RATE_LIMIT", "1000/minute")
os.environ.setdefault("RPC_URL", "")

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from api.main import app  # noqa: E402
from auth.store import AuthStore  # noqa: E402
from auth.tokens import create_access_token, role_for  # noqa: E402
from hackathons.models import Hackathon  # noqa: E402
from hackathons.store import HackathonStore  # noqa: E402


def address_of(name: str) -> str:
    return WALLETS[name].address.lower()


def sign(name: str, message: str) -> str:
    """personal_sign `message` with a test wallet; returns 0x-prefixed hex."""
    signed = WALLETS[name].sign_message(encode_defunct(text=message))
    return "0x" + bytes(signed.signature).hex()


def auth(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def sign_in(client: TestClient, name: str) -> dict:
    """Run the full wallet sign-in flow. Returns the login response body.

    The login cookie is dropped afterwards so later requests in the module
    authenticate only through the headers they pass explicitly.
    """
    address = WALLETS[name].address
    nonce = client.post("/api/v1/auth/nonce", json={"address": address}).json()
    resp = client.post(
        "/api/v1/auth/login",
        json={"address": address, "message": nonce["message"], "signature": sign(name, nonce["message"])},
    )
    client.cookies.clear()
    assert resp.status_code == 200, resp.text
    return resp.json()


def iso(delta: timedelta) -> str:
    return (datetime.now(timezone.utc) + delta).isoformat()


def make_hackathon(
    store: HackathonStore,
    status: str = "DRAFT",
    registration: timedelta = timedelta(days=1),
    submission: timedelta = timedelta(days=2),
    voting: timedelta = timedelta(days=3),
    organizer: str = "organizer",
    prize_amount: Optional[str] = None,
    max_participants: Optional[int] = None,
    title: str = "Test Hackathon",
) -> Hackathon:
    """Insert a hackathon directly. Deadlines are offsets from now."""
    hackathon_id = store.create_hackathon(
        Hackathon(
            title=title,
            description="Build something on-chain.",
            organizer_address=address_of(organizer),
            registration_deadline=iso(registration),
            submission_deadline=iso(submission),
            voting_deadline=iso(voting),
            status=status,
            prize_amount=prize_amount,
            max_participants=max_participants,
        )
    )
    return store.get_hackathon(hackathon_id)


# ---------------------------------------------------------------------------
# Store helpers
# ---------------------------------------------------------------------------


def _make_test_stores(db_suffix: str) -> tuple[HackathonStore, AuthStore]:
    """Create isolated named shared-memory SQLite stores for test isolation.

    Args:
        db_suffix: Unique string appended to the DB name so test modules
                   don't share state.
    """
    hackathon_url = f"sqlite:///file:test_hackafi_{db_suffix}?mode=memory&cache=shared&uri=true"
    auth_url = f"sqlite:///file:test_auth_{db_suffix}?mode=memory&cache=shared&uri=true"
    return HackathonStore(hackathon_url), AuthStore(auth_url)


def _patch_lifespan(hackathon_store: HackathonStore, auth_store: AuthStore):
    """Return an async context manager that replaces the real lifespan.

    The status_task is a long-sleeping coroutine so shutdown's .cancel() has a
    real asyncio.Task to act on; tests drive status checks explicitly.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.hackathon_store = hackathon_store
        app.state.auth_store = auth_store
        app.state.status_task = asyncio.create_task(asyncio.sleep(99999))
        yield
        app.state.status_task.cancel()

    return test_lifespan


# ---------------------------------------------------------------------------
# Module-scoped fixtures -- one TestClient per test module for speed
# ---------------------------------------------------------------------------


@pytest.fixture(scope="module")
def api_client(request) -> Generator[tuple[TestClient, HackathonStore, AuthStore], None, None]:
    """Yield (client, hackathon_store, auth_store) for API integration tests.

    The TestClient uses the real FastAPI app with a patched lifespan so tests
    hit real route handlers but use isolated in-memory stores.
    """
    hackathon_store, auth_store = _make_test_stores(request.module.__name__.rsplit(".", 1)[-1])
    app.router.lifespan_context = _patch_lifespan(hackathon_store, auth_store)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, hackathon_store, auth_store

    hackathon_store.close()
    auth_store.close()


@pytest.fixture(scope="module")
def tokens() -> dict[str, str]:
    """One-hour JWT per test wallet, keyed by wallet name."""
    return {
        name: create_access_token(acct.address.lower(), role_for(acct.address), expire_seconds=3600)
        for name, acct in WALLETS.items()
    }
