"""
Wire Models
"""
from live_bid_sync.models.auction import AuctionSnapshot
from live_bid_sync.models.bid import (
    AnyBid,
    Bid,
    Bidder,
    BidHistory,
    BidStatus,
    PendingBid,
    PlaceBidRequest,
)
from live_bid_sync.models.events import (
    INBOUND_EVENTS,
    AuctionUpdate,
    EventName,
    InvalidEventError,
    OutbidNotification,
    ParticipantsCount,
    TimeRemaining,
    parse_event,
)

__all__ = [
    "AnyBid",
    "AuctionSnapshot",
    "AuctionUpdate",
    "Bid",
    "Bidder",
    "BidHistory",
    "BidStatus",
    "EventName",
    "INBOUND_EVENTS",
    "InvalidEventError",
    "OutbidNotification",
    "ParticipantsCount",
    "PendingBid",
    "PlaceBidRequest",
    "TimeRemaining",
    "parse_event",
]
