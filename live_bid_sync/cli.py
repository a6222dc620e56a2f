"""
Command Line Interface

Usage:
    python run.py watch 42
    python run.py bid 42 150.00
    python run.py active-bids
"""
import argparse
import asyncio
from decimal import Decimal, InvalidOperation
from typing import List, Optional

from live_bid_sync.core.config import Settings, get_settings
from live_bid_sync.core.exceptions import AuctionApiError, BidValidationError
from live_bid_sync.core.logging_config import get_logger, setup_logging
from live_bid_sync.infrastructure.api_client import AuctionApiClient
from live_bid_sync.infrastructure.cache import BidSnapshotCache
from live_bid_sync.infrastructure.connection import ConnectionManager
from live_bid_sync.infrastructure.rooms import AuctionRooms
from live_bid_sync.models.bid import AnyBid
from live_bid_sync.models.events import AuctionUpdate, OutbidNotification
from live_bid_sync.services.bidding_store import BiddingStore

logger = get_logger(__name__)


def _format_bid(bid: AnyBid) -> str:
    bidder = bid.bidder.name if bid.bidder else (bid.bidder_id or "?")
    bid_id = getattr(bid, "id", None) or getattr(bid, "local_id", "?")
    return f"{bid_id:>12}  {bid.amount:>12}  {bid.status.value:<8}  {bidder}"


class LiveBidSession:
    """Wires connection, rooms, HTTP client, cache and store together"""

    def __init__(self, settings: Settings):
        self.settings = settings
        self.connection = ConnectionManager(settings)
        self.rooms = AuctionRooms(self.connection)
        self.api = AuctionApiClient(settings)
        self.cache = BidSnapshotCache.from_settings(settings) if settings.BID_CACHE_ENABLED else None
        self.store = BiddingStore(self.api, self.rooms, cache=self.cache, settings=settings)

    async def __aenter__(self) -> "LiveBidSession":
        await self.connection.connect()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.store.close()
        await self.connection.disconnect()
        await self.api.close()
        if self.cache is not None:
            await self.cache.close()


async def watch(settings: Settings, auction_id: str) -> None:
    """Follow one auction until interrupted"""
    async with LiveBidSession(settings) as session:
        store = session.store

        def on_update(update: AuctionUpdate) -> None:
            snapshot = store.get_snapshot(auction_id)
            logger.info(
                "Auction updated",
                auction_id=auction_id,
                current_price=str(snapshot.current_price) if snapshot and snapshot.current_price else None,
                status=snapshot.status if snapshot else None,
            )

        def on_outbid(notification: OutbidNotification) -> None:
            print(f"!! {notification.message}")

        store.add_outbid_listener(on_outbid)
        session.rooms.on_auction_update(on_update, auction_id)

        await store.subscribe_to_auction(auction_id)
        if store.bid_error:
            print(store.bid_error)

        for bid in store.get_display_bids(auction_id):
            print(_format_bid(bid))

        logger.info("Watching auction", auction_id=auction_id, participants=store.get_participants(auction_id))
        await asyncio.Event().wait()


async def place(settings: Settings, auction_id: str, amount: Decimal) -> int:
    """Place one bid and report the outcome; returns a process exit code"""
    async with LiveBidSession(settings) as session:
        store = session.store
        await store.subscribe_to_auction(auction_id)

        try:
            bid = await store.place_bid(auction_id, amount)
        except BidValidationError as e:
            print(f"Invalid bid: {e.message}")
            return 2

        if bid is None:
            print(f"Bid failed: {store.bid_error}")
            return 1

        print(f"Bid accepted: {_format_bid(bid)}")
        winning = store.get_winning_bid(auction_id)
        if winning is not None:
            print(f"Winning bid: {_format_bid(winning)}")
        return 0


async def active_bids(settings: Settings) -> int:
    """List the user's bids on active auctions"""
    async with AuctionApiClient(settings) as api:
        try:
            page = await api.get_user_active_bids()
        except AuctionApiError as e:
            print(e.message)
            return 1

    for bid in page.bids:
        print(f"{bid.auction_id:>8}  {_format_bid(bid)}")
    if not page.bids:
        print("No active bids")
    return 0


def _amount(value: str) -> Decimal:
    try:
        return Decimal(value)
    except InvalidOperation:
        raise argparse.ArgumentTypeError(f"not a number: {value}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Live auction bid client")
    commands = parser.add_subparsers(dest="command", required=True)

    watch_parser = commands.add_parser("watch", help="Follow an auction's live bids")
    watch_parser.add_argument("auction_id", help="Auction id")

    bid_parser = commands.add_parser("bid", help="Place a bid")
    bid_parser.add_argument("auction_id", help="Auction id")
    bid_parser.add_argument("amount", type=_amount, help="Bid amount")

    commands.add_parser("active-bids", help="List your bids on active auctions")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    settings = get_settings()
    setup_logging(settings)

    try:
        if args.command == "watch":
            asyncio.run(watch(settings, args.auction_id))
            return 0
        if args.command == "bid":
            return asyncio.run(place(settings, args.auction_id, args.amount))
        return asyncio.run(active_bids(settings))
    except KeyboardInterrupt:
        logger.info("Interrupted")
        return 130
