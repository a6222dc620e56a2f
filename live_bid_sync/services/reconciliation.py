"""
Reconciliation Policy

Rules for merging optimistic placements and inbound server data into one
auction's state. All functions mutate an ``AuctionBidState`` by replacing
its attributes (never by mutating a list or model in place), so readers
holding an earlier list or snapshot never see it change under them.

Rules:
1. Confirmed bids are idempotent by id: a second delivery never duplicates.
2. The confirmed winning bid only moves up: max(incoming, current).
3. An optimistic bid lives outside the confirmed list. It is shown as the
   winner only while it beats the confirmed winner, and it is removed
   either by promotion (server bid merged) or by rollback.
4. Snapshot updates are last-write-wins, no version check.
5. Bid status changes only come from server data; the client never moves
   a bid to OUTBID/WINNING/WON/LOST itself.
"""
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable, List, Optional

from live_bid_sync.models.auction import AuctionSnapshot
from live_bid_sync.models.bid import AnyBid, Bid, PendingBid
from live_bid_sync.models.events import (
    AuctionUpdate,
    OutbidNotification,
    ParticipantsCount,
    TimeRemaining,
)


@dataclass
class AuctionBidState:
    """Everything the client knows about one subscribed auction"""
    auction_id: str
    snapshot: AuctionSnapshot
    bids: List[Bid] = field(default_factory=list)
    pending: Optional[PendingBid] = None
    winning_bid: Optional[Bid] = None
    participants: int = 0
    last_outbid: Optional[OutbidNotification] = None
    # Seeded from the persisted cache and not yet revalidated
    stale: bool = False

    @classmethod
    def empty(cls, auction_id: str) -> "AuctionBidState":
        return cls(auction_id=auction_id, snapshot=AuctionSnapshot(auction_id=auction_id))

    @property
    def winning_amount(self) -> Decimal:
        return self.winning_bid.amount if self.winning_bid else Decimal("0")

    def all_bids(self) -> List[AnyBid]:
        """Confirmed bids in arrival order, then the optimistic bid if any"""
        if self.pending is None:
            return list(self.bids)
        return [*self.bids, self.pending]

    def visible_winning_bid(self) -> Optional[AnyBid]:
        """The winner to display: the optimistic bid while it beats the confirmed one"""
        if self.pending is not None and self.pending.amount > self.winning_amount:
            return self.pending
        return self.winning_bid


# ============================================================================
# CONFIRMED BIDS
# ============================================================================

def merge_confirmed_bid(state: AuctionBidState, bid: Bid) -> bool:
    """
    Insert a confirmed bid, idempotent by id
    
    A repeated id keeps the list length unchanged; if the server data
    explicitly carries a new status, only the status is reassigned.
    
    Returns:
        True when the bid was new to the list
    """
    for index, existing in enumerate(state.bids):
        if existing.id != bid.id:
            continue

        if "status" in bid.model_fields_set and bid.status != existing.status:
            updated = existing.model_copy(
                update={"status": bid.status, "updated_at": bid.updated_at or existing.updated_at}
            )
            state.bids = [*state.bids[:index], updated, *state.bids[index + 1:]]
            if state.winning_bid is not None and state.winning_bid.id == updated.id:
                state.winning_bid = updated
            existing = updated

        _raise_winning_bid(state, existing)
        return False

    state.bids = [*state.bids, bid]
    _raise_winning_bid(state, bid)
    _raise_current_price(state, bid.amount)
    return True


def replace_bids(state: AuctionBidState, bids: Iterable[Bid]) -> None:
    """Hard refresh: the fetched list replaces the cached one, and the winner is recomputed from it"""
    unique: List[Bid] = []
    seen = set()
    for bid in bids:
        if bid.id in seen:
            continue
        seen.add(bid.id)
        unique.append(bid)

    state.bids = unique
    state.winning_bid = None
    for bid in unique:
        _raise_winning_bid(state, bid)


def replace_winning_bid(state: AuctionBidState, bid: Optional[Bid]) -> None:
    """
    Take the server's answer for the highest confirmed bid
    
    The answer may predate a live bid already merged here, so the winner
    never ends up below the confirmed list's maximum.
    """
    state.winning_bid = bid
    for confirmed in state.bids:
        _raise_winning_bid(state, confirmed)
    if state.winning_bid is not None:
        _raise_current_price(state, state.winning_bid.amount)


def _raise_winning_bid(state: AuctionBidState, bid: Bid) -> None:
    if state.winning_bid is None or bid.amount > state.winning_bid.amount:
        state.winning_bid = bid


def _raise_current_price(state: AuctionBidState, amount: Decimal) -> None:
    current = state.snapshot.current_price
    if current is None or amount > current:
        state.snapshot = state.snapshot.model_copy(update={"current_price": amount})


# ============================================================================
# OPTIMISTIC BIDS
# ============================================================================

def apply_pending(state: AuctionBidState, pending: PendingBid) -> None:
    """Show an optimistic bid; only one may be pending per auction"""
    if state.pending is not None:
        raise RuntimeError(f"auction {state.auction_id} already has a pending bid")
    state.pending = pending


def promote_pending(state: AuctionBidState, pending: PendingBid, confirmed: Bid) -> None:
    """Replace the optimistic bid with the server's record"""
    if state.pending is pending:
        state.pending = None
    merge_confirmed_bid(state, confirmed)


def rollback_pending(state: AuctionBidState, pending: PendingBid) -> None:
    """Drop the optimistic bid; confirmed data is left exactly as it is"""
    if state.pending is pending:
        state.pending = None


# ============================================================================
# AUCTION EVENTS
# ============================================================================

def apply_auction_update(state: AuctionBidState, update: AuctionUpdate) -> None:
    """Shallow last-write-wins merge into the snapshot; ``lastBid`` merges as a bid"""
    fields = update.snapshot_fields()
    if fields:
        state.snapshot = AuctionSnapshot.model_validate({**state.snapshot.model_dump(), **fields})

    if update.last_bid is not None and update.last_bid.auction_id == state.auction_id:
        merge_confirmed_bid(state, update.last_bid)


def apply_time_remaining(state: AuctionBidState, tick: TimeRemaining) -> None:
    state.snapshot = state.snapshot.model_copy(update={"time_remaining": tick.time_remaining})


def apply_participants(state: AuctionBidState, message: ParticipantsCount) -> None:
    state.participants = message.count


def record_outbid(state: AuctionBidState, notification: OutbidNotification) -> None:
    """Outbid alerts are informational; bid data is not touched"""
    state.last_outbid = notification
