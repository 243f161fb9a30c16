from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Dict, Optional

CHAIN_ID_BY_NAME: Dict[str, int] = {
    "ethereum": 1,
    "sepolia": 11155111,
    "zksync": 324,
    "zksync-sepolia": 300,
    "localhost-l1": 9,
    "localhost-l2": 270,
}


@dataclass(frozen=True)
class NetworkEndpoint:
    """Chain identity plus RPC entry point. Shared, never owned by a wallet."""

    name: str
    chain_id: int
    rpc_url: str


def chain_id_for(chain: str) -> int:
    c = (chain or "").strip().lower()
    if c in CHAIN_ID_BY_NAME:
        return CHAIN_ID_BY_NAME[c]
    raise ValueError(f"Unsupported chain: {chain}")


def _env(name: str) -> Optional[str]:
    v = os.getenv(name)
    if v is None:
        return None
    v = v.strip()
    return v or None


def _env_key(chain: str) -> str:
    return (chain or "").strip().upper().replace("-", "_")


def rpc_url_for(chain: str) -> str:
    """
    Resolve RPC URL for a chain.

    Env precedence (chain=zksync-sepolia -> ZKSYNC_SEPOLIA):
    - EVM_RPC_URL_<CHAIN>
    - RPC_URL_<CHAIN>
    """
    key = _env_key(chain)
    url = _env(f"EVM_RPC_URL_{key}") or _env(f"RPC_URL_{key}")
    if not url:
        raise ValueError(f"Missing RPC URL for chain '{chain}'. Set EVM_RPC_URL_{key} (or RPC_URL_{key}).")
    return url


def endpoint_for(chain: str, rpc_url: Optional[str] = None) -> NetworkEndpoint:
    name = (chain or "").strip().lower()
    return NetworkEndpoint(name=name, chain_id=chain_id_for(name), rpc_url=rpc_url or rpc_url_for(name))
