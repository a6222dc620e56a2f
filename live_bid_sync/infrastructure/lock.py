"""
Per-auction placement lock

Serializes bid placements per auction so at most one optimistic bid is in
flight for an auction. Placements on different auctions never wait on
each other.
"""
import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict

from live_bid_sync.core.logging_config import get_logger

logger = get_logger(__name__)


class AuctionLock:
    """In-process lock keyed by auction id (event loop scoped)"""

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}
        # holders + waiters, so idle locks can be dropped
        self._users: Dict[str, int] = {}

    def is_locked(self, auction_id: str) -> bool:
        lock = self._locks.get(str(auction_id))
        return lock is not None and lock.locked()

    @asynccontextmanager
    async def lock(self, auction_id: str) -> AsyncIterator[bool]:
        """
        Context manager for easy usage
        
        Yields True when the caller had to queue behind another placement.
        
        Usage:
            async with auction_lock.lock(auction_id) as queued:
                await place()
        """
        auction_id = str(auction_id)
        lock = self._locks.setdefault(auction_id, asyncio.Lock())
        queued = lock.locked()

        if queued:
            logger.info("Bid placement queued behind in-flight bid", auction_id=auction_id)

        self._users[auction_id] = self._users.get(auction_id, 0) + 1
        try:
            async with lock:
                yield queued
        finally:
            self._users[auction_id] -= 1
            if self._users[auction_id] == 0:
                del self._users[auction_id]
                del self._locks[auction_id]
