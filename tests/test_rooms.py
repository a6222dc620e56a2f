"""
Tests for room membership and event registration
"""
import pytest

from live_bid_sync.infrastructure.connection import ConnectionManager
from live_bid_sync.infrastructure.rooms import AuctionRooms
from live_bid_sync.models.events import EventName
from tests.conftest import bid_payload, make_bid, wait_until


@pytest.mark.asyncio
async def test_join_and_leave_emit_auction_id(rooms, client_factory):
    assert await rooms.join_auction_room("A")
    assert await rooms.leave_auction_room("A")

    assert client_factory.latest.emitted == [
        (EventName.JOIN_AUCTION, "A"),
        (EventName.LEAVE_AUCTION, "A"),
    ]
    assert rooms.joined_rooms == set()


@pytest.mark.asyncio
async def test_join_while_disconnected_is_a_logged_no_op(settings, client_factory):
    manager = ConnectionManager(settings, client_factory=client_factory)
    rooms = AuctionRooms(manager)

    assert await rooms.join_auction_room("A") is False
    assert rooms.joined_rooms == set()
    assert client_factory.clients == []


@pytest.mark.asyncio
async def test_joins_are_not_queued_for_later(settings, client_factory):
    manager = ConnectionManager(settings, client_factory=client_factory)
    rooms = AuctionRooms(manager)

    await rooms.join_auction_room("A")
    await manager.connect()

    assert client_factory.latest.emitted == []
    await manager.disconnect()


@pytest.mark.asyncio
async def test_duplicate_join_emits_twice_but_delivers_once(rooms, client_factory):
    seen = []
    await rooms.join_auction_room("A")
    await rooms.join_auction_room("A")
    rooms.on_new_bid(seen.append, "A")
    rooms.on_new_bid(seen.append, "A")

    await client_factory.latest.trigger(EventName.NEW_BID, bid_payload("1", 50))

    assert client_factory.latest.emitted.count((EventName.JOIN_AUCTION, "A")) == 2
    assert len(seen) == 1


@pytest.mark.asyncio
async def test_rooms_are_rejoined_after_reconnect(rooms, connection, client_factory):
    await rooms.join_auction_room("A")
    await rooms.join_auction_room("B")
    await rooms.leave_auction_room("B")

    await client_factory.latest.drop("io server disconnect")
    await wait_until(lambda: client_factory.latest.emitted)

    assert client_factory.latest.emitted == [(EventName.JOIN_AUCTION, "A")]


@pytest.mark.asyncio
async def test_emit_new_bid_sends_wire_shape(rooms, client_factory):
    bid = make_bid("7", 75)

    assert await rooms.emit_new_bid(bid)

    event, data = client_factory.latest.emitted[-1]
    assert event == EventName.NEW_BID
    assert data["id"] == "7"
    assert data["auctionId"] == "A"
    assert data["amount"] == 75.0


@pytest.mark.asyncio
async def test_off_helpers_detach_callbacks(rooms, client_factory):
    seen = []
    rooms.on_outbid(seen.append, "A")
    rooms.off_outbid(seen.append, "A")

    await client_factory.latest.trigger(EventName.OUTBID, {"auctionId": "A", "newBidAmount": 99})

    assert seen == []


@pytest.mark.asyncio
async def test_off_auction_leaves_other_auctions_alone(rooms, client_factory):
    seen = []
    rooms.on_auction_update(seen.append, "A")
    rooms.on_auction_update(seen.append, "B")

    rooms.off_auction("A")
    await client_factory.latest.trigger(EventName.AUCTION_UPDATE, {"auctionId": "A", "currentPrice": 10})
    await client_factory.latest.trigger(EventName.AUCTION_UPDATE, {"auctionId": "B", "currentPrice": 20})

    assert [update.auction_id for update in seen] == ["B"]


@pytest.mark.asyncio
async def test_remove_listeners_detaches_everything(rooms, client_factory):
    seen = []
    rooms.on_new_bid(seen.append)
    rooms.on_auction_update(seen.append, "A")
    rooms.on_outbid(seen.append, "A")
    rooms.on_participants_count(seen.append, "A")
    rooms.on_time_remaining(seen.append, "A")

    rooms.remove_listeners()
    client = client_factory.latest
    await client.trigger(EventName.NEW_BID, bid_payload("1", 10))
    await client.trigger(EventName.AUCTION_UPDATE, {"auctionId": "A", "status": "ENDED"})
    await client.trigger(EventName.OUTBID, {"auctionId": "A"})
    await client.trigger(EventName.PARTICIPANTS_COUNT, {"auctionId": "A", "count": 3})
    await client.trigger(EventName.TIME_REMAINING, {"auctionId": "A", "timeRemaining": 5})

    assert seen == []
