"""
Auction Snapshot Model
"""
from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import ConfigDict

from live_bid_sync.models.base import WireModel


class AuctionSnapshot(WireModel):
    """
    Client-observed auction state
    
    Mutated only by ``auctionUpdate``/``timeRemaining`` events (shallow,
    last-write-wins) or by a confirmed bid raising the price. Unknown
    fields from the server are kept.
    """

    model_config = ConfigDict(extra="allow")

    auction_id: str
    current_price: Optional[Decimal] = None
    end_time: Optional[datetime] = None
    status: Optional[str] = None
    time_remaining: Optional[float] = None
    timestamp: Optional[datetime] = None
