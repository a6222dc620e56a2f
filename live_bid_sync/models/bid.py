"""
Bid Models

A bid is either confirmed (carries the server-assigned ``id``) or pending
(a local optimistic placement carrying only a ``local_id``). The two are
distinct types so promotion and rollback never depend on a magic id.
"""
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Optional, Union

from pydantic import Field, field_serializer, field_validator, model_validator

from live_bid_sync.models.base import WireModel


class BidStatus(str, Enum):
    """Bid status enum"""
    PLACED = "PLACED"
    OUTBID = "OUTBID"
    WINNING = "WINNING"
    WON = "WON"
    LOST = "LOST"


class Bidder(WireModel):
    """Public identity of the user behind a bid"""
    id: Optional[str] = None
    name: str = "Unknown bidder"
    email: Optional[str] = None


class BidHistory(WireModel):
    """Price context recorded when the bid was placed"""
    bid_time: Optional[datetime] = None
    previous_price: Decimal = Decimal("0")

    @field_serializer("previous_price", when_used="json")
    def _price_as_number(self, price: Decimal) -> float:
        return float(price)


class _BidFields(WireModel):
    auction_id: str
    bidder_id: Optional[str] = None
    bidder: Optional[Bidder] = None
    amount: Decimal
    status: BidStatus = BidStatus.PLACED
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    bid_history: Optional[BidHistory] = None

    @field_serializer("amount", when_used="json")
    def _amount_as_number(self, amount: Decimal) -> float:
        return float(amount)


class Bid(_BidFields):
    """
    Server-confirmed bid
    
    ``id``, ``amount``, ``auction_id`` and ``bidder_id`` never change once
    confirmed; only ``status`` may be reassigned by later server data.
    """
    id: str

    @model_validator(mode="before")
    @classmethod
    def _normalize_event_shape(cls, data: Any) -> Any:
        """
        Accept the shape the live channel emits
        
        ``newBid`` events carry ``timestamp`` instead of ``createdAt`` and
        the bidder id only inside ``bidder``.
        """
        if not isinstance(data, dict):
            return data

        data = dict(data)
        if "createdAt" not in data and "created_at" not in data and data.get("timestamp"):
            data["createdAt"] = data["timestamp"]

        bidder = data.get("bidder")
        has_bidder_id = data.get("bidderId") is not None or data.get("bidder_id") is not None
        if not has_bidder_id and isinstance(bidder, dict) and bidder.get("id") is not None:
            data["bidderId"] = bidder["id"]

        return data


class PendingBid(_BidFields):
    """
    Optimistic, locally synthesized bid awaiting server confirmation
    
    Never sent to the server and never persisted.
    """
    local_id: str = Field(default_factory=lambda: f"pending-{uuid.uuid4()}")
    status: BidStatus = BidStatus.PLACED

    @field_validator("status")
    @classmethod
    def _always_placed(cls, status: BidStatus) -> BidStatus:
        if status != BidStatus.PLACED:
            raise ValueError("a pending bid is always PLACED")
        return status

    @classmethod
    def optimistic(
        cls,
        auction_id: str,
        amount: Decimal,
        previous_price: Decimal,
        bidder: Optional[Bidder] = None,
    ) -> "PendingBid":
        """Synthesize the optimistic record for a placement that is about to be sent"""
        now = datetime.now(timezone.utc)
        return cls(
            auction_id=auction_id,
            amount=amount,
            bidder_id=bidder.id if bidder else None,
            bidder=bidder,
            created_at=now,
            updated_at=now,
            bid_history=BidHistory(bid_time=now, previous_price=previous_price),
        )


AnyBid = Union[Bid, PendingBid]


class PlaceBidRequest(WireModel):
    """Request body for POST /auctions/{id}/bids"""
    amount: Decimal = Field(gt=0, allow_inf_nan=False)

    @field_serializer("amount", when_used="json")
    def _amount_as_number(self, amount: Decimal) -> float:
        return float(amount)

    @field_validator("amount", mode="before")
    @classmethod
    def _must_be_number(cls, value: Any) -> Any:
        # bool is an int subclass and strings would be coerced; both are rejected
        if isinstance(value, bool) or not isinstance(value, (int, float, Decimal)):
            raise ValueError("must be a number")
        return value
