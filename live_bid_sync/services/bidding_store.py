"""
Bidding Store - single source of truth for live bid state

Handles:
- Hard refresh of an auction's bids and winning bid over HTTP
- Optimistic placement with promotion or rollback
- Merging live events for subscribed auctions
- Seeding from / writing back to the persisted bid cache

Flow for a placement:
    place_bid(A, 90)
      → validate amount (raises BidValidationError, no network)
      → wait for A's placement lock (one optimistic bid per auction)
      → show optimistic bid
      → POST /auctions/A/bids (bounded timeout)
      → success: promote   |   failure/timeout: rollback + bid_error
      → result discarded if A was unsubscribed meanwhile

The HTTP response and the ``newBid`` event for the same bid may arrive in
either order; both paths merge idempotently by id.
"""
import asyncio
from typing import Callable, Dict, List, Optional, Set

from pydantic import ValidationError

from live_bid_sync.core.config import Settings, get_settings
from live_bid_sync.core.exceptions import AuctionApiError, BidValidationError
from live_bid_sync.core.logging_config import get_logger
from live_bid_sync.infrastructure.api_client import AuctionApiClient
from live_bid_sync.infrastructure.cache import BidSnapshotCache
from live_bid_sync.infrastructure.lock import AuctionLock
from live_bid_sync.infrastructure.rooms import AuctionRooms
from live_bid_sync.models.auction import AuctionSnapshot
from live_bid_sync.models.bid import AnyBid, Bid, Bidder, PendingBid, PlaceBidRequest
from live_bid_sync.models.events import (
    AuctionUpdate,
    OutbidNotification,
    ParticipantsCount,
    TimeRemaining,
)
from live_bid_sync.services import reconciliation
from live_bid_sync.services.reconciliation import AuctionBidState

logger = get_logger(__name__)

OutbidListener = Callable[[OutbidNotification], None]

PLACEMENT_TIMEOUT_MESSAGE = "Bid placement timed out. Please try again."
NOT_SUBSCRIBED_MESSAGE = "Subscribe to the auction before placing a bid."


class BiddingStore:
    """
    Client-side bid state per auction
    
    Usage:
        store = BiddingStore(api, rooms, cache=cache)
        await store.subscribe_to_auction("42")
        await store.place_bid("42", 150)
        store.get_winning_bid("42")
    """

    def __init__(
        self,
        api: AuctionApiClient,
        rooms: AuctionRooms,
        cache: Optional[BidSnapshotCache] = None,
        settings: Optional[Settings] = None,
        current_bidder: Optional[Bidder] = None,
    ):
        """
        Args:
            api: REST collaborator for fetches and placements
            rooms: Room subscription layer delivering live events
            cache: Persisted bid cache, None to disable
            settings: Application settings (placement timeout)
            current_bidder: Identity shown on optimistic bids
        """
        self.api = api
        self.rooms = rooms
        self.cache = cache
        self.settings = settings or get_settings()
        self.current_bidder = current_bidder

        self.bid_error: Optional[str] = None

        self._auctions: Dict[str, AuctionBidState] = {}
        self._subscribed: Set[str] = set()
        self._placing: Set[str] = set()
        self._placement_lock = AuctionLock()
        self._outbid_listeners: List[OutbidListener] = []

    # ========================================================================
    # READ ACCESS
    # ========================================================================

    def get_bids(self, auction_id: str) -> List[AnyBid]:
        """Bids in arrival order, optimistic bid last"""
        state = self._auctions.get(str(auction_id))
        return state.all_bids() if state else []

    def get_display_bids(self, auction_id: str) -> List[AnyBid]:
        """Bids ordered for display: amount descending, newest first on ties"""
        def sort_key(bid: AnyBid):
            created = bid.created_at.timestamp() if bid.created_at else 0.0
            return (bid.amount, created)

        return sorted(self.get_bids(auction_id), key=sort_key, reverse=True)

    def get_winning_bid(self, auction_id: str) -> Optional[AnyBid]:
        state = self._auctions.get(str(auction_id))
        return state.visible_winning_bid() if state else None

    def get_snapshot(self, auction_id: str) -> Optional[AuctionSnapshot]:
        state = self._auctions.get(str(auction_id))
        return state.snapshot if state else None

    def get_participants(self, auction_id: str) -> int:
        state = self._auctions.get(str(auction_id))
        return state.participants if state else 0

    def get_last_outbid(self, auction_id: str) -> Optional[OutbidNotification]:
        state = self._auctions.get(str(auction_id))
        return state.last_outbid if state else None

    def is_stale(self, auction_id: str) -> bool:
        state = self._auctions.get(str(auction_id))
        return bool(state and state.stale)

    def is_placing_bid(self, auction_id: Optional[str] = None) -> bool:
        if auction_id is None:
            return bool(self._placing)
        return str(auction_id) in self._placing

    def is_subscribed(self, auction_id: str) -> bool:
        return str(auction_id) in self._subscribed

    def clear_bid_error(self) -> None:
        self.bid_error = None

    def add_outbid_listener(self, listener: OutbidListener) -> None:
        if listener not in self._outbid_listeners:
            self._outbid_listeners.append(listener)

    # ========================================================================
    # HTTP REFRESH
    # ========================================================================

    async def fetch_auction_bids(self, auction_id: str) -> bool:
        """
        Replace the cached bid list with the server's (hard refresh)
        
        Returns False on failure or when the auction is not (or no longer)
        subscribed; the response is then discarded.
        """
        auction_id = str(auction_id)

        try:
            page = await self.api.get_auction_bids(auction_id)
        except AuctionApiError as e:
            logger.error("Failed to fetch auction bids", auction_id=auction_id, error=e.message)
            self.bid_error = "Failed to fetch bids. Please try again."
            return False

        state = self._auctions.get(auction_id)
        if state is None:
            logger.info("Discarding fetched bids for unsubscribed auction", auction_id=auction_id)
            return False

        reconciliation.replace_bids(state, page.bids)
        logger.info("Fetched auction bids", auction_id=auction_id, bids=len(state.bids))
        await self._persist(state)
        return True

    async def fetch_winning_bid(self, auction_id: str) -> bool:
        """Replace the cached winning bid with the server's"""
        auction_id = str(auction_id)

        try:
            winning_bid = await self.api.get_winning_bid(auction_id)
        except AuctionApiError as e:
            logger.error("Failed to fetch winning bid", auction_id=auction_id, error=e.message)
            self.bid_error = "Failed to fetch winning bid. Please try again."
            return False

        state = self._auctions.get(auction_id)
        if state is None:
            logger.info("Discarding fetched winning bid for unsubscribed auction", auction_id=auction_id)
            return False

        reconciliation.replace_winning_bid(state, winning_bid)
        await self._persist(state)
        return True

    async def refresh(self, auction_id: str) -> bool:
        """Revalidate bids and winning bid; clears the stale flag on success"""
        auction_id = str(auction_id)
        if not await self.fetch_auction_bids(auction_id):
            return False
        if not await self.fetch_winning_bid(auction_id):
            return False

        state = self._auctions.get(auction_id)
        if state is not None:
            state.stale = False
        return True

    # ========================================================================
    # PLACEMENT
    # ========================================================================

    async def place_bid(self, auction_id: str, amount) -> Optional[Bid]:
        """
        Place a bid with an optimistic local update
        
        Args:
            auction_id: Auction to bid on
            amount: Positive number
            
        Returns:
            The confirmed bid, or None when the placement failed (see
            ``bid_error``), the auction is not subscribed, or it was
            unsubscribed meanwhile
            
        Raises:
            BidValidationError: amount is not a positive number
        """
        auction_id = str(auction_id)
        request = self._validate_amount(amount)

        async with self._placement_lock.lock(auction_id):
            state = self._auctions.get(auction_id)
            if state is None:
                logger.warning("Cannot place bid on unsubscribed auction", auction_id=auction_id)
                self.bid_error = NOT_SUBSCRIBED_MESSAGE
                return None

            self._placing.add(auction_id)
            self.bid_error = None

            pending = PendingBid.optimistic(
                auction_id=auction_id,
                amount=request.amount,
                previous_price=state.winning_amount,
                bidder=self.current_bidder,
            )
            reconciliation.apply_pending(state, pending)
            logger.info("Optimistic bid shown", auction_id=auction_id, amount=str(request.amount))

            confirmed: Optional[Bid] = None
            try:
                confirmed = await asyncio.wait_for(
                    self.api.place_bid(auction_id, request.amount),
                    timeout=self.settings.BID_PLACEMENT_TIMEOUT,
                )
            except asyncio.TimeoutError:
                self._rollback(auction_id, state, pending, PLACEMENT_TIMEOUT_MESSAGE)
                return None
            except AuctionApiError as e:
                self._rollback(auction_id, state, pending, e.message)
                return None
            finally:
                self._placing.discard(auction_id)
                if confirmed is None:
                    # unexpected errors and cancellation leave no optimistic bid behind
                    reconciliation.rollback_pending(state, pending)

            if self._auctions.get(auction_id) is not state:
                logger.info(
                    "Discarding placement result for unsubscribed auction",
                    auction_id=auction_id,
                    bid_id=confirmed.id,
                )
                return None

            reconciliation.promote_pending(state, pending, confirmed)
            logger.info("Bid confirmed", auction_id=auction_id, bid_id=confirmed.id, amount=str(confirmed.amount))
            await self._persist(state)
            return confirmed

    def _rollback(self, auction_id: str, state: AuctionBidState, pending: PendingBid, message: str) -> None:
        reconciliation.rollback_pending(state, pending)

        if self._auctions.get(auction_id) is not state:
            logger.info("Discarding failed placement for unsubscribed auction", auction_id=auction_id)
            return

        self.bid_error = message
        logger.warning("Bid placement failed, optimistic bid rolled back", auction_id=auction_id, error=message)

    @staticmethod
    def _validate_amount(amount) -> PlaceBidRequest:
        try:
            return PlaceBidRequest(amount=amount)
        except ValidationError as e:
            error = e.errors()[0]
            message = error["msg"]
            if error["type"] == "greater_than":
                message = "Bid amount must be a positive number"
            raise BidValidationError("amount", message) from None

    # ========================================================================
    # SUBSCRIPTIONS
    # ========================================================================

    async def subscribe_to_auction(self, auction_id: str, revalidate: bool = True) -> None:
        """
        Start tracking an auction
        
        State is seeded from the persisted cache (marked stale), the room is
        joined, live events are routed here, then the state is revalidated
        over HTTP.
        """
        auction_id = str(auction_id)

        if auction_id not in self._subscribed:
            self._subscribed.add(auction_id)
            state = self._state_for(auction_id)
            await self._seed_from_cache(state)

            self.rooms.on_new_bid(self._handle_new_bid, auction_id)
            self.rooms.on_auction_update(self._handle_auction_update, auction_id)
            self.rooms.on_outbid(self._handle_outbid, auction_id)
            self.rooms.on_participants_count(self._handle_participants, auction_id)
            self.rooms.on_time_remaining(self._handle_time_remaining, auction_id)

        await self.rooms.join_auction_room(auction_id)

        if revalidate:
            await self.refresh(auction_id)

    async def unsubscribe_from_auction(self, auction_id: str) -> None:
        """
        Stop tracking an auction
        
        Live events for it stop mutating state immediately. Its state is
        written to the cache and freed; in-flight placements are discarded
        when they complete.
        """
        auction_id = str(auction_id)

        self.rooms.off_auction(auction_id)
        self._subscribed.discard(auction_id)
        state = self._auctions.pop(auction_id, None)

        await self.rooms.leave_auction_room(auction_id)

        if state is not None:
            await self._persist(state)

    async def close(self) -> None:
        """Unsubscribe from everything"""
        for auction_id in list(self._subscribed):
            await self.unsubscribe_from_auction(auction_id)

    # ========================================================================
    # LIVE EVENT HANDLERS
    # ========================================================================

    def _handle_new_bid(self, bid: Bid) -> None:
        state = self._auctions.get(bid.auction_id)
        if state is None:
            return
        if reconciliation.merge_confirmed_bid(state, bid):
            logger.info("New bid", auction_id=bid.auction_id, bid_id=bid.id, amount=str(bid.amount))

    def _handle_auction_update(self, update: AuctionUpdate) -> None:
        state = self._auctions.get(update.auction_id)
        if state is not None:
            reconciliation.apply_auction_update(state, update)

    def _handle_time_remaining(self, tick: TimeRemaining) -> None:
        state = self._auctions.get(tick.auction_id)
        if state is not None:
            reconciliation.apply_time_remaining(state, tick)

    def _handle_participants(self, message: ParticipantsCount) -> None:
        state = self._auctions.get(message.auction_id)
        if state is not None:
            reconciliation.apply_participants(state, message)

    def _handle_outbid(self, notification: OutbidNotification) -> None:
        state = self._auctions.get(notification.auction_id)
        if state is None:
            return

        reconciliation.record_outbid(state, notification)
        logger.info(
            "Outbid",
            auction_id=notification.auction_id,
            new_bid_amount=str(notification.new_bid_amount) if notification.new_bid_amount is not None else None,
        )
        for listener in list(self._outbid_listeners):
            try:
                listener(notification)
            except Exception:
                logger.exception("Outbid listener failed", auction_id=notification.auction_id)

    # ========================================================================
    # STATE + CACHE
    # ========================================================================

    def _state_for(self, auction_id: str) -> AuctionBidState:
        state = self._auctions.get(auction_id)
        if state is None:
            state = AuctionBidState.empty(auction_id)
            self._auctions[auction_id] = state
        return state

    async def _seed_from_cache(self, state: AuctionBidState) -> None:
        if self.cache is None:
            return

        cached = await self.cache.load(state.auction_id)
        if cached is None:
            return

        reconciliation.replace_bids(state, cached.bids)
        reconciliation.replace_winning_bid(state, cached.winning_bid)
        state.stale = True
        logger.info(
            "Seeded auction from cache",
            auction_id=state.auction_id,
            bids=len(state.bids),
            age_seconds=round(cached.age_seconds(), 1),
        )

    async def _persist(self, state: AuctionBidState) -> None:
        if self.cache is None:
            return
        await self.cache.save(state.auction_id, state.bids, state.winning_bid)
