"""
auth/wallet.py -- Wallet address handling, sign-in challenges, and signature checks.

Sign-in flow:
  1. Client asks for a challenge: generate_challenge(address) returns a random
     nonce and the exact message to sign. The store keeps it for
     NONCE_TTL_SECONDS.
  2. Wallet signs the message with personal_sign (EIP-191).
  3. Client posts address + message + signature. The stored challenge is
     consumed, the message must match it byte for byte, and
     verify_signature() must recover the claimed address.
  4. auth/tokens.py issues the JWT.

Signature recovery is delegated entirely to eth_account -- no hand-rolled
secp256k1 here.

Layer rule: no imports from api/ or hackathons/.
"""

from __future__ import annotations

import logging
import re
import secrets
from datetime import datetime, timedelta, timezone

from eth_account import Account
from eth_account.messages import encode_defunct
from eth_utils import is_checksum_address

from auth.models import NonceChallenge
from core.models import ADDRESS_PATTERN

logger = logging.getLogger("hackafi.auth")

_ADDRESS_RE = re.compile(ADDRESS_PATTERN)

_MESSAGE_TEMPLATE = (
    "Welcome to Hacka-Fi!\n\n"
    "Click to sign in and accept the Terms of Service.\n\n"
    "This request will not trigger a blockchain transaction or cost any gas fees.\n\n"
    "Wallet address:\n{address}\n\n"
    "Nonce:\n{nonce}"
)


def normalize_address(address: str) -> str:
    """Validate an EVM address and return it lowercase.

    All-lowercase and all-uppercase hex are accepted as-is. Mixed case is an
    EIP-55 checksum claim and must verify -- a typo in a checksummed address
    is caught here instead of locking the user out of their own account.

    Raises ValueError for anything else.
    """
    if not isinstance(address, str) or not _ADDRESS_RE.match(address):
        raise ValueError("Invalid wallet address. Expected 0x followed by 40 hex characters.")
    body = address[2:]
    if body != body.lower() and body != body.upper() and not is_checksum_address(address):
        raise ValueError("Wallet address checksum does not match.")
    return address.lower()


def build_sign_message(address: str, nonce: str) -> str:
    return _MESSAGE_TEMPLATE.format(address=address.lower(), nonce=nonce)


def generate_challenge(address: str, ttl_seconds: int) -> NonceChallenge:
    """Create a fresh challenge for `address`. Persisting it is the caller's job.

    secrets.token_hex(16) gives 128 bits -- enough that a nonce is never
    reissued within its five-minute lifetime.
    """
    normalized = normalize_address(address)
    nonce = secrets.token_hex(16)
    expires_at = datetime.now(timezone.utc) + timedelta(seconds=ttl_seconds)
    return NonceChallenge(
        address=normalized,
        nonce=nonce,
        message=build_sign_message(normalized, nonce),
        expires_at=expires_at.isoformat(),
        expires_in=ttl_seconds,
    )


def recover_signer(message: str, signature: str) -> str | None:
    """Return the lowercase address that produced `signature` over `message`, or None."""
    try:
        signer = Account.recover_message(encode_defunct(text=message), signature=signature)
    except Exception as e:  # eth_account raises several unrelated types for bad input
        logger.debug("Signature recovery failed: %s", e)
        return None
    return signer.lower()


def verify_signature(address: str, message: str, signature: str) -> bool:
    """Return True if `signature` is `address`'s personal_sign over `message`.

    Never raises. Malformed addresses, messages, or signatures return False.
    """
    try:
        expected = normalize_address(address)
    except ValueError:
        return False
    signer = recover_signer(message, signature)
    valid = signer == expected
    logger.debug("Signature verification for %s: %s", expected, valid)
    return valid
