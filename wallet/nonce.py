from __future__ import annotations

import asyncio
from typing import Dict, Set, Tuple

from errors import NonceConflictError, Stage, stage_errors
from providers.base import L1Provider

_Key = Tuple[int, str]


class NonceManager:
    """
    In-process nonce bookkeeping per (chain id, sender).

    `acquire` hands out N, N+1, ... under a per-sender lock, starting from the
    node's pending count. `claim` marks a nonce as about to be signed; a nonce
    can be claimed once, so two submissions with the same caller-supplied nonce
    fail fast with `NonceConflictError`. `release` returns a nonce whose
    transaction never reached the node.
    """

    def __init__(self) -> None:
        self._locks: Dict[_Key, asyncio.Lock] = {}
        self._reserved: Dict[_Key, Set[int]] = {}
        self._used: Dict[_Key, Set[int]] = {}

    @staticmethod
    def _key(chain_id: int, address: str) -> _Key:
        return (int(chain_id), address.strip().lower())

    def _lock(self, key: _Key) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        return lock

    async def acquire(self, provider: L1Provider, chain_id: int, address: str) -> int:
        key = self._key(chain_id, address)
        async with self._lock(key):
            with stage_errors(Stage.BUILD):
                on_chain = await provider.get_transaction_count(address, "pending")
            reserved = self._reserved.setdefault(key, set())
            used = self._used.setdefault(key, set())
            # anything below the node's count is settled
            reserved.difference_update({n for n in reserved if n < on_chain})
            used.difference_update({n for n in used if n < on_chain})
            nonce = on_chain
            while nonce in reserved or nonce in used:
                nonce += 1
            reserved.add(nonce)
            return nonce

    async def claim(self, chain_id: int, address: str, nonce: int) -> None:
        key = self._key(chain_id, address)
        async with self._lock(key):
            used = self._used.setdefault(key, set())
            if nonce in used:
                raise NonceConflictError(
                    f"Nonce {nonce} is already in use for {address}",
                    data={"chain_id": chain_id, "address": address, "nonce": nonce},
                )
            self._reserved.setdefault(key, set()).discard(nonce)
            used.add(nonce)

    async def release(self, chain_id: int, address: str, nonce: int) -> None:
        key = self._key(chain_id, address)
        async with self._lock(key):
            self._reserved.get(key, set()).discard(nonce)
            self._used.get(key, set()).discard(nonce)
