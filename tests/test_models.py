"""
Tests for wire models and live event parsing
"""
import math
from decimal import Decimal

import pytest
from pydantic import ValidationError

from live_bid_sync.models import (
    AuctionUpdate,
    Bid,
    BidStatus,
    OutbidNotification,
    PendingBid,
    PlaceBidRequest,
)
from live_bid_sync.models.events import EventName, InvalidEventError, TimeRemaining, parse_event
from tests.conftest import bid_payload


def test_bid_parses_camel_case_and_normalizes_ids():
    """Numeric ids from the server become strings"""
    bid = Bid.model_validate(bid_payload(3, 90, auction_id=7, bidder_id=12))

    assert bid.id == "3"
    assert bid.auction_id == "7"
    assert bid.bidder_id == "12"
    assert bid.amount == Decimal("90")
    assert bid.status == BidStatus.PLACED


def test_bid_accepts_live_event_shape():
    """newBid events carry timestamp and bidder.id instead of createdAt/bidderId"""
    bid = Bid.model_validate({
        "id": "b1",
        "auctionId": "A",
        "amount": 120.5,
        "bidder": {"id": "u9", "name": "Ada"},
        "timestamp": "2024-05-01T12:00:00Z",
    })

    assert bid.bidder_id == "u9"
    assert bid.bidder.name == "Ada"
    assert bid.created_at is not None
    assert bid.created_at.year == 2024


def test_bid_to_wire_is_camel_case():
    bid = Bid.model_validate(bid_payload("b1", 42.5, bidHistory={"bidTime": "2024-05-01T12:00:00Z", "previousPrice": 40}))

    wire = bid.to_wire()

    assert wire["auctionId"] == "A"
    assert wire["amount"] == 42.5
    assert wire["status"] == "PLACED"
    assert wire["bidHistory"]["previousPrice"] == 40.0
    assert "auction_id" not in wire


def test_pending_bid_is_distinct_from_confirmed():
    pending = PendingBid.optimistic("A", Decimal("90"), previous_price=Decimal("80"))

    assert pending.local_id.startswith("pending-")
    assert not hasattr(pending, "id")
    assert pending.status == BidStatus.PLACED
    assert pending.bid_history.previous_price == Decimal("80")
    assert not isinstance(pending, Bid)


def test_pending_bid_is_always_placed():
    with pytest.raises(ValidationError):
        PendingBid(auction_id="A", amount=Decimal("10"), status=BidStatus.WINNING)


def test_pending_bids_get_unique_local_ids():
    first = PendingBid.optimistic("A", Decimal("1"), Decimal("0"))
    second = PendingBid.optimistic("A", Decimal("1"), Decimal("0"))

    assert first.local_id != second.local_id


@pytest.mark.parametrize("amount", [0, -5, "100", True, None, float("nan"), math.inf])
def test_place_bid_request_rejects_invalid_amounts(amount):
    with pytest.raises(ValidationError):
        PlaceBidRequest(amount=amount)


@pytest.mark.parametrize("amount", [1, 10.5, Decimal("99.99")])
def test_place_bid_request_accepts_positive_numbers(amount):
    request = PlaceBidRequest(amount=amount)

    assert request.amount > 0
    assert request.to_wire() == {"amount": float(amount)}


def test_auction_update_only_reports_sent_fields():
    update = AuctionUpdate.model_validate({
        "auctionId": "A",
        "currentPrice": 150,
        "bidCount": 4,
    })

    fields = update.snapshot_fields()

    assert fields == {"current_price": Decimal("150"), "bidCount": 4}


def test_auction_update_last_bid_inherits_auction_id():
    update = AuctionUpdate.model_validate({
        "auctionId": "A",
        "currentPrice": 150,
        "lastBid": {"id": "b7", "amount": 150},
    })

    assert update.last_bid.auction_id == "A"
    assert update.last_bid.id == "b7"
    assert "last_bid" not in update.snapshot_fields()


def test_outbid_amount_from_nested_new_bid():
    notification = OutbidNotification.model_validate({
        "auctionId": "A",
        "newBid": {"amount": 200, "bidder": {"name": "Grace"}},
    })

    assert notification.new_bid_amount == Decimal("200")
    assert notification.message == "You have been outbid!"


def test_parse_event_returns_typed_models():
    tick = parse_event(EventName.TIME_REMAINING, {"auctionId": 5, "timeRemaining": 30})

    assert isinstance(tick, TimeRemaining)
    assert tick.auction_id == "5"
    assert tick.time_remaining == 30


def test_parse_event_rejects_missing_auction_id():
    with pytest.raises(InvalidEventError):
        parse_event(EventName.NEW_BID, {"id": "b1", "amount": 10})


def test_parse_event_rejects_unknown_event():
    with pytest.raises(InvalidEventError):
        parse_event("auctionEnded", {"auctionId": "A"})
