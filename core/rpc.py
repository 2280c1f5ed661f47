"""
core/rpc.py -- JSON-RPC health check for the configured EVM chain endpoint.

Used by the health endpoint only. Hacka-Fi never writes to the chain; this
module answers "is the node we point wallets at reachable, and which chain
is it?".

Returns None on any network or protocol failure so callers can report
"error" without a try/except of their own.
"""

import logging
from typing import Any, Optional

import requests

logger = logging.getLogger("hackafi.rpc")

# Module-level session shared across calls for connection pooling.
# max_redirects=3 -- an RPC endpoint has no business redirecting further.
_session = requests.Session()
_session.max_redirects = 3


def _call(rpc_url: str, method: str, timeout: float) -> Any:
    resp = _session.post(
        rpc_url,
        json={"jsonrpc": "2.0", "id": 1, "method": method, "params": []},
        timeout=timeout,
    )
    resp.raise_for_status()
    body = resp.json()
    if "error" in body:
        raise ValueError(f"{method} failed: {body['error']}")
    return body["result"]


def fetch_chain_status(rpc_url: str, timeout: float = 5.0) -> Optional[dict[str, int]]:
    """Return {"chain_id": int, "block_number": int} or None if the node is unreachable."""
    try:
        chain_id = int(_call(rpc_url, "eth_chainId", timeout), 16)
        block_number = int(_call(rpc_url, "eth_blockNumber", timeout), 16)
    except (requests.RequestException, ValueError, KeyError, TypeError) as e:
        logger.warning("Chain RPC check failed for %s: %s", rpc_url, e)
        return None
    return {"chain_id": chain_id, "block_number": block_number}
