"""
Live Channel Events

Inbound (server -> client):
- newBid            a confirmed Bid
- auctionUpdate     partial auction fields, merged into the snapshot
- outbid            informational alert for the previous leader
- participantsCount number of clients in the auction room
- timeRemaining     countdown tick

Outbound (client -> server):
- joinAuction / leaveAuction   payload is the auction id string
- newBid                       full Bid, client-originated broadcast

Every inbound payload embeds its ``auctionId``; that key is what the
event router demultiplexes on.
"""
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional, Type

from pydantic import ConfigDict, ValidationError, model_validator

from live_bid_sync.models.base import WireModel
from live_bid_sync.models.bid import Bid


class EventName:
    """Socket.IO event names shared with the auction server"""
    JOIN_AUCTION = "joinAuction"
    LEAVE_AUCTION = "leaveAuction"
    NEW_BID = "newBid"
    AUCTION_UPDATE = "auctionUpdate"
    OUTBID = "outbid"
    PARTICIPANTS_COUNT = "participantsCount"
    TIME_REMAINING = "timeRemaining"


INBOUND_EVENTS = (
    EventName.NEW_BID,
    EventName.AUCTION_UPDATE,
    EventName.OUTBID,
    EventName.PARTICIPANTS_COUNT,
    EventName.TIME_REMAINING,
)


class AuctionUpdate(WireModel):
    """
    ``auctionUpdate`` payload
    
    Only the fields the server actually sent are merged; ``last_bid`` is
    carried through to the reconciliation policy as a confirmed bid.
    """

    model_config = ConfigDict(extra="allow")

    auction_id: str
    current_price: Optional[Decimal] = None
    time_remaining: Optional[float] = None
    end_time: Optional[datetime] = None
    status: Optional[str] = None
    timestamp: Optional[datetime] = None
    last_bid: Optional[Bid] = None

    @model_validator(mode="before")
    @classmethod
    def _last_bid_inherits_auction(cls, data: Any) -> Any:
        # lastBid is often sent without its own auctionId
        if isinstance(data, dict) and isinstance(data.get("lastBid"), dict):
            last_bid = data["lastBid"]
            if last_bid.get("auctionId") is None and last_bid.get("auction_id") is None:
                auction_id = data.get("auctionId", data.get("auction_id"))
                data = {**data, "lastBid": {**last_bid, "auctionId": auction_id}}
        return data

    def snapshot_fields(self) -> Dict[str, Any]:
        """Fields to shallow-merge into the cached AuctionSnapshot"""
        fields = {
            name: getattr(self, name)
            for name in self.model_fields_set
            if name not in ("auction_id", "last_bid")
        }
        fields.update(self.model_extra or {})
        return fields


class OutbidNotification(WireModel):
    """``outbid`` payload"""
    auction_id: str
    new_bid_amount: Optional[Decimal] = None
    message: str = "You have been outbid!"
    timestamp: Optional[datetime] = None

    @model_validator(mode="before")
    @classmethod
    def _amount_from_nested_bid(cls, data: Any) -> Any:
        # the server may send {"newBid": {"amount": ..., "bidder": ...}}
        if isinstance(data, dict) and data.get("newBidAmount") is None:
            nested = data.get("newBid")
            if isinstance(nested, dict) and nested.get("amount") is not None:
                data = {**data, "newBidAmount": nested["amount"]}
        return data


class ParticipantsCount(WireModel):
    """``participantsCount`` payload"""
    auction_id: str
    count: int = 0


class TimeRemaining(WireModel):
    """``timeRemaining`` payload"""
    auction_id: str
    time_remaining: float
    timestamp: Optional[datetime] = None


EVENT_MODELS: Dict[str, Type[WireModel]] = {
    EventName.NEW_BID: Bid,
    EventName.AUCTION_UPDATE: AuctionUpdate,
    EventName.OUTBID: OutbidNotification,
    EventName.PARTICIPANTS_COUNT: ParticipantsCount,
    EventName.TIME_REMAINING: TimeRemaining,
}


class InvalidEventError(ValueError):
    """An inbound payload did not match its event contract"""


def parse_event(event: str, payload: Any) -> WireModel:
    """
    Parse a raw inbound payload into its typed event model
    
    Raises:
        InvalidEventError: unknown event name or malformed payload
    """
    model = EVENT_MODELS.get(event)
    if model is None:
        raise InvalidEventError(f"Unknown event: {event}")

    try:
        return model.model_validate(payload)
    except ValidationError as e:
        raise InvalidEventError(f"Malformed {event} payload: {e}") from e
