"""
Bid Snapshot Cache - fast reload without trusting stale data

Characteristics:
- Per-auction entry: confirmed bids + winning bid + cached_at
- TTL bounded (SETEX), entries expire on their own
- Everything loaded from here is stale until revalidated over HTTP
- Redis failures are logged and ignored (the cache is an optimization)
"""
import json
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, List, Optional

import redis.asyncio as redis
from pydantic import ValidationError

from live_bid_sync.core.config import Settings, get_settings
from live_bid_sync.core.logging_config import get_logger
from live_bid_sync.models.bid import Bid

logger = get_logger(__name__)


@dataclass
class CachedAuctionBids:
    """A persisted snapshot read back from the cache"""
    auction_id: str
    bids: List[Bid]
    winning_bid: Optional[Bid]
    cached_at: datetime

    def age_seconds(self, now: Optional[datetime] = None) -> float:
        now = now or datetime.now(timezone.utc)
        return (now - self.cached_at).total_seconds()


class BidSnapshotCache:
    """
    Cache for per-auction bid lists
    
    Usage:
        cache = BidSnapshotCache(redis_client)
        await cache.save("42", bids, winning)
        cached = await cache.load("42")  # None on miss
    """

    def __init__(self, redis_client: redis.Redis, ttl: int = 300):
        """
        Initialize cache
        
        Args:
            redis_client: Async Redis connection
            ttl: Time to live in seconds
        """
        self.redis = redis_client
        self.ttl = ttl

        # Metrics
        self.hits = 0
        self.misses = 0
        self.errors = 0

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "BidSnapshotCache":
        settings = settings or get_settings()
        client = redis.from_url(settings.REDIS_URL, encoding="utf-8", decode_responses=True)
        return cls(client, ttl=settings.BID_CACHE_TTL)

    def _make_key(self, auction_id: str) -> str:
        """Generate cache key"""
        return f"auction_bids:{auction_id}"

    async def load(self, auction_id: str) -> Optional[CachedAuctionBids]:
        """Read a snapshot; None on miss, on Redis failure or on a corrupt entry"""
        cache_key = self._make_key(auction_id)

        try:
            cached_data = await self.redis.get(cache_key)
        except redis.RedisError as e:
            self.errors += 1
            logger.warning("Bid cache unavailable", auction_id=auction_id, error=str(e))
            return None

        if not cached_data:
            self.misses += 1
            logger.debug("Bid cache miss", auction_id=auction_id)
            return None

        try:
            data = json.loads(cached_data)
            snapshot = CachedAuctionBids(
                auction_id=str(auction_id),
                bids=[Bid.model_validate(raw) for raw in data["bids"]],
                winning_bid=Bid.model_validate(data["winning_bid"]) if data.get("winning_bid") else None,
                cached_at=datetime.fromisoformat(data["cached_at"]),
            )
        except (ValueError, KeyError, TypeError, ValidationError) as e:
            self.errors += 1
            logger.warning("Discarding corrupt bid cache entry", auction_id=auction_id, error=str(e))
            await self.invalidate(auction_id)
            return None

        self.hits += 1
        logger.debug(
            "Bid cache hit",
            auction_id=auction_id,
            bids=len(snapshot.bids),
            age_seconds=round(snapshot.age_seconds(), 1),
            hit_rate=round(self.get_hit_rate(), 3),
        )
        return snapshot

    async def save(self, auction_id: str, bids: List[Bid], winning_bid: Optional[Bid]) -> None:
        """Persist confirmed bids and the winning bid for ``auction_id``"""
        entry = {
            "bids": [bid.to_wire() for bid in bids],
            "winning_bid": winning_bid.to_wire() if winning_bid else None,
            "cached_at": datetime.now(timezone.utc).isoformat(),
        }

        try:
            await self.redis.setex(self._make_key(auction_id), self.ttl, json.dumps(entry))
        except redis.RedisError as e:
            self.errors += 1
            logger.warning("Bid cache write failed", auction_id=auction_id, error=str(e))
            return

        logger.debug("Bid cache set", auction_id=auction_id, bids=len(bids))

    async def invalidate(self, auction_id: str) -> None:
        """Remove from cache"""
        try:
            deleted = await self.redis.delete(self._make_key(auction_id))
        except redis.RedisError as e:
            self.errors += 1
            logger.warning("Bid cache invalidate failed", auction_id=auction_id, error=str(e))
            return

        if deleted:
            logger.debug("Bid cache invalidated", auction_id=auction_id)

    async def close(self) -> None:
        await self.redis.aclose()

    def get_hit_rate(self) -> float:
        """Calculate cache hit rate"""
        total = self.hits + self.misses
        if total == 0:
            return 0.0
        return self.hits / total

    def get_stats(self) -> Dict:
        """Get cache statistics"""
        return {
            "cache_type": "auction_bids",
            "hits": self.hits,
            "misses": self.misses,
            "errors": self.errors,
            "hit_rate": self.get_hit_rate(),
            "ttl_seconds": self.ttl,
        }
