"""
Bid State Services
"""
from live_bid_sync.services.bidding_store import BiddingStore
from live_bid_sync.services.reconciliation import AuctionBidState

__all__ = [
    "AuctionBidState",
    "BiddingStore",
]
