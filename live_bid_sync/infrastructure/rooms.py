"""
Auction Rooms

Join/leave semantics per auction and event registration on top of the
live connection.

Nothing here raises on a missing connection: joins, leaves and emits log a
warning and return False. Joins are never queued for later delivery, but
rooms joined while connected are re-joined after a reconnection because
the server forgets membership with the old session.
"""
from typing import Optional, Set

from live_bid_sync.core.exceptions import NotConnectedError
from live_bid_sync.core.logging_config import get_logger
from live_bid_sync.infrastructure.connection import ConnectionManager
from live_bid_sync.infrastructure.router import EventCallback
from live_bid_sync.models.bid import Bid
from live_bid_sync.models.events import INBOUND_EVENTS, EventName

logger = get_logger(__name__)


class AuctionRooms:
    """
    Room subscription layer
    
    ``on_*`` without an ``auction_id`` attaches a global callback that sees
    every auction's events (callers filter on ``auction_id`` themselves).
    With an ``auction_id`` the router filters for them.
    """

    def __init__(self, connection: ConnectionManager):
        self.connection = connection
        self.router = connection.router
        self.joined_rooms: Set[str] = set()

        connection.add_reconnect_hook(self._rejoin_rooms)

    # ========================================================================
    # ROOMS
    # ========================================================================

    async def join_auction_room(self, auction_id: str) -> bool:
        """
        Ask the server to add this client to the auction's room
        
        Joining an already joined room sends the join again; the server
        treats it as a no-op.
        """
        auction_id = str(auction_id)
        sent = await self._emit(
            EventName.JOIN_AUCTION,
            auction_id,
            "WebSocket is not connected. Cannot join auction room.",
        )
        if sent:
            self.joined_rooms.add(auction_id)
            logger.info("Joined auction room", auction_id=auction_id)
        return sent

    async def leave_auction_room(self, auction_id: str) -> bool:
        """Ask the server to remove this client from the auction's room"""
        auction_id = str(auction_id)
        sent = await self._emit(
            EventName.LEAVE_AUCTION,
            auction_id,
            "WebSocket is not connected. Cannot leave auction room.",
        )
        # Forget the room either way so it is not re-joined on reconnect
        self.joined_rooms.discard(auction_id)
        if sent:
            logger.info("Left auction room", auction_id=auction_id)
        return sent

    async def emit_new_bid(self, bid: Bid) -> bool:
        """Broadcast a confirmed bid to the auction room (client-originated flows)"""
        sent = await self._emit(
            EventName.NEW_BID,
            bid.to_wire(),
            "WebSocket is not connected. Cannot emit new bid.",
        )
        if sent:
            logger.info("Emitted new bid", auction_id=bid.auction_id, bid_id=bid.id)
        return sent

    async def _emit(self, event: str, data, not_connected_message: str) -> bool:
        try:
            await self.connection.emit(event, data)
        except NotConnectedError:
            logger.warning(not_connected_message, event=event)
            return False
        return True

    async def _rejoin_rooms(self) -> None:
        for auction_id in sorted(self.joined_rooms):
            if await self._emit(
                EventName.JOIN_AUCTION,
                auction_id,
                "WebSocket is not connected. Cannot re-join auction room.",
            ):
                logger.info("Re-joined auction room", auction_id=auction_id)

    # ========================================================================
    # LISTENERS
    # ========================================================================

    def on_new_bid(self, callback: EventCallback, auction_id: Optional[str] = None) -> None:
        self.router.add(EventName.NEW_BID, callback, auction_id)

    def on_auction_update(self, callback: EventCallback, auction_id: Optional[str] = None) -> None:
        self.router.add(EventName.AUCTION_UPDATE, callback, auction_id)

    def on_outbid(self, callback: EventCallback, auction_id: Optional[str] = None) -> None:
        self.router.add(EventName.OUTBID, callback, auction_id)

    def on_participants_count(self, callback: EventCallback, auction_id: Optional[str] = None) -> None:
        self.router.add(EventName.PARTICIPANTS_COUNT, callback, auction_id)

    def on_time_remaining(self, callback: EventCallback, auction_id: Optional[str] = None) -> None:
        self.router.add(EventName.TIME_REMAINING, callback, auction_id)

    def off_new_bid(self, callback: EventCallback, auction_id: Optional[str] = None) -> None:
        self.router.remove(EventName.NEW_BID, callback, auction_id)

    def off_auction_update(self, callback: EventCallback, auction_id: Optional[str] = None) -> None:
        self.router.remove(EventName.AUCTION_UPDATE, callback, auction_id)

    def off_outbid(self, callback: EventCallback, auction_id: Optional[str] = None) -> None:
        self.router.remove(EventName.OUTBID, callback, auction_id)

    def off_participants_count(self, callback: EventCallback, auction_id: Optional[str] = None) -> None:
        self.router.remove(EventName.PARTICIPANTS_COUNT, callback, auction_id)

    def off_time_remaining(self, callback: EventCallback, auction_id: Optional[str] = None) -> None:
        self.router.remove(EventName.TIME_REMAINING, callback, auction_id)

    def off_auction(self, auction_id: str) -> None:
        """Detach every callback keyed to one auction, leaving others intact"""
        self.router.remove_auction(auction_id)

    def remove_listeners(self) -> None:
        """Detach every callback for every auction (full teardown)"""
        self.router.clear(INBOUND_EVENTS)
        logger.info("Removed all WebSocket listeners")
