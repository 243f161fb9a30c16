from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from errors import BridgeError, Stage, stage_errors
from providers.base import L1Provider, L2Provider
from transactions.utils import checksum, is_hex_address


@dataclass(frozen=True)
class BridgeContractSet:
    """Bridge entry points for one (L1, L2) pairing. Read-only once resolved."""

    mailbox: str
    erc20_l1: str
    erc20_l2: str
    weth_l1: Optional[str] = None
    weth_l2: Optional[str] = None


@dataclass(frozen=True)
class BridgeContext:
    """
    Everything a fee estimate or a build needs about where it runs.

    `sender` is the L1 account paying for bridging transactions; `wallet_address`
    is the wallet's logical L2 address (the default receiver and refund recipient).
    """

    l1: L1Provider
    l2: L2Provider
    contracts: BridgeContractSet
    sender: str
    wallet_address: str


def _optional_address(v: Optional[str]) -> Optional[str]:
    if not v or not is_hex_address(v):
        return None
    return checksum(v)


class BridgeContractResolver:
    """
    Resolves and caches the bridge contract set per (L1 chain id, L2 chain id).

    One resolver may be shared by many wallets; concurrent first lookups for the
    same pairing hit the node once.
    """

    def __init__(self, preset: Optional[Dict[Tuple[Optional[int], int], BridgeContractSet]] = None) -> None:
        self._cache: Dict[Tuple[Optional[int], int], BridgeContractSet] = dict(preset or {})
        self._lock = asyncio.Lock()

    def cached(self, l1_chain_id: Optional[int], l2_chain_id: int) -> Optional[BridgeContractSet]:
        return self._cache.get((l1_chain_id, l2_chain_id))

    async def resolve(self, l2: L2Provider, l1: Optional[L1Provider] = None) -> BridgeContractSet:
        with stage_errors(Stage.ESTIMATE):
            key = (await l1.chain_id() if l1 is not None else None, await l2.chain_id())
            hit = self._cache.get(key)
            if hit is not None:
                return hit
            async with self._lock:
                hit = self._cache.get(key)
                if hit is None:
                    hit = await self._fetch(l2)
                    self._cache[key] = hit
                return hit

    async def _fetch(self, l2: L2Provider) -> BridgeContractSet:
        mailbox = await l2.main_contract_address()
        bridges = await l2.bridge_contracts()
        erc20_l1 = _optional_address(bridges.get("l1Erc20DefaultBridge"))
        erc20_l2 = _optional_address(bridges.get("l2Erc20DefaultBridge"))
        if not is_hex_address(mailbox) or erc20_l1 is None or erc20_l2 is None:
            raise BridgeError(
                "L2 node did not report usable bridge contracts",
                stage=Stage.ESTIMATE,
                data={"mailbox": mailbox, "bridges": bridges},
            )
        return BridgeContractSet(
            mailbox=checksum(mailbox),
            erc20_l1=erc20_l1,
            erc20_l2=erc20_l2,
            weth_l1=_optional_address(bridges.get("l1WethBridge")),
            weth_l2=_optional_address(bridges.get("l2WethBridge")),
        )
