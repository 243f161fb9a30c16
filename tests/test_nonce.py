import asyncio

import pytest
from conftest import FakeL1

from errors import NonceConflictError
from wallet import NonceManager

SENDER = "0x36615Cf349d7F6344891B1e7CA7C72883F5dc049"


def test_concurrent_acquire_hands_out_distinct_nonces():
    l1 = FakeL1()
    l1.pending_nonce = 7
    manager = NonceManager()

    async def go():
        return await asyncio.gather(*(manager.acquire(l1, 9, SENDER) for _ in range(3)))

    assert sorted(asyncio.run(go())) == [7, 8, 9]


def test_claim_twice_conflicts():
    manager = NonceManager()

    async def go():
        await manager.claim(9, SENDER, 4)
        await manager.claim(9, SENDER.lower(), 4)

    with pytest.raises(NonceConflictError):
        asyncio.run(go())


def test_claim_is_scoped_per_chain():
    manager = NonceManager()

    async def go():
        await manager.claim(9, SENDER, 4)
        await manager.claim(270, SENDER, 4)

    asyncio.run(go())


def test_release_makes_nonce_available_again():
    l1 = FakeL1()
    manager = NonceManager()

    async def go():
        first = await manager.acquire(l1, 9, SENDER)
        await manager.claim(9, SENDER, first)
        await manager.release(9, SENDER, first)
        return first, await manager.acquire(l1, 9, SENDER)

    first, again = asyncio.run(go())
    assert first == again == 0


def test_settled_nonces_are_forgotten():
    l1 = FakeL1()
    manager = NonceManager()

    async def go():
        n = await manager.acquire(l1, 9, SENDER)
        await manager.claim(9, SENDER, n)
        l1.pending_nonce = 1
        return await manager.acquire(l1, 9, SENDER)

    assert asyncio.run(go()) == 1
