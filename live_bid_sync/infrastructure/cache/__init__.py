"""
Cache Infrastructure

Persisted per-auction bid snapshots for fast reloads.
"""
from live_bid_sync.infrastructure.cache.bid_cache import BidSnapshotCache, CachedAuctionBids

__all__ = [
    "BidSnapshotCache",
    "CachedAuctionBids",
]
