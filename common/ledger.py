# common/ledger.py
"""
Thin read-only view of the Solana ledger.

Only what payment verification needs: fetch one confirmed transaction and
turn it into (address, lamport delta) pairs. Transactions are handled as the
RPC JSON shape (camelCase keys) so that legacy, v0 and jsonParsed responses
go through the same code.
"""
from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional, Tuple

from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Confirmed
from solders.pubkey import Pubkey
from solders.signature import Signature

from common.settings import get_settings

logger = logging.getLogger("carmommy")

LAMPORTS_PER_SOL = 1_000_000_000


class LedgerClient:
    def __init__(self, rpc_url: str):
        self.rpc_url = rpc_url

    async def fetch_transaction(self, signature: str) -> Optional[Dict[str, Any]]:
        """Return the confirmed transaction as RPC JSON, or None if the node doesn't know it."""
        async with AsyncClient(self.rpc_url, commitment=Confirmed) as client:
            resp = await client.get_transaction(
                Signature.from_string(signature),
                encoding="json",
                commitment=Confirmed,
                max_supported_transaction_version=0,
            )
        if resp.value is None:
            return None
        return json.loads(resp.value.to_json())


def get_ledger() -> LedgerClient:
    return LedgerClient(get_settings().solana_rpc_url)


def parse_address(address: str) -> Optional[Pubkey]:
    try:
        return Pubkey.from_string(address)
    except Exception:
        return None


def account_keys(tx: Dict[str, Any]) -> List[str]:
    """
    Ordered account addresses, aligned with meta.preBalances / meta.postBalances.

    json encoding: message.accountKeys is a list of base58 strings holding the
    static keys only; v0 transactions get meta.loadedAddresses appended
    (writable first, then readonly).
    jsonParsed encoding: message.accountKeys is a list of {pubkey, source, ...}
    objects that already includes the loaded addresses.
    """
    message = (tx.get("transaction") or {}).get("message") or {}
    raw_keys = message.get("accountKeys") or []

    if any(isinstance(k, dict) for k in raw_keys):
        return [k["pubkey"] if isinstance(k, dict) else k for k in raw_keys]

    keys = list(raw_keys)
    version = tx.get("version")
    if version is not None and version != "legacy":
        loaded = ((tx.get("meta") or {}).get("loadedAddresses")) or {}
        keys.extend(loaded.get("writable") or [])
        keys.extend(loaded.get("readonly") or [])
    return keys


def balance_deltas(tx: Dict[str, Any]) -> List[Tuple[str, int]]:
    meta = tx.get("meta") or {}
    pre = meta.get("preBalances") or []
    post = meta.get("postBalances") or []
    return [(key, after - before) for key, before, after in zip(account_keys(tx), pre, post)]
