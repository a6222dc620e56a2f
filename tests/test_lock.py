"""
Tests for the per-auction placement lock
"""
import asyncio

import pytest

from live_bid_sync.infrastructure.lock import AuctionLock


@pytest.mark.asyncio
async def test_second_holder_is_queued():
    lock = AuctionLock()
    order = []
    release = asyncio.Event()

    async def first():
        async with lock.lock("A") as queued:
            order.append(("first", queued))
            await release.wait()

    async def second():
        async with lock.lock("A") as queued:
            order.append(("second", queued))

    first_task = asyncio.create_task(first())
    await asyncio.sleep(0)
    second_task = asyncio.create_task(second())
    await asyncio.sleep(0.01)

    assert order == [("first", False)]
    assert lock.is_locked("A")

    release.set()
    await asyncio.gather(first_task, second_task)

    assert order == [("first", False), ("second", True)]
    assert not lock.is_locked("A")


@pytest.mark.asyncio
async def test_idle_locks_are_dropped():
    lock = AuctionLock()

    async with lock.lock("A"):
        pass

    assert lock._locks == {}


@pytest.mark.asyncio
async def test_different_auctions_are_independent():
    lock = AuctionLock()

    async with lock.lock("A"):
        async with lock.lock("B") as queued:
            assert queued is False
