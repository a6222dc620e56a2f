import asyncio
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional

import pytest
import pytest_asyncio
import redis.asyncio as redis
import socketio

from live_bid_sync.core.config import Settings
from live_bid_sync.core.exceptions import BidPlacementError
from live_bid_sync.infrastructure.api_client import BidPage
from live_bid_sync.infrastructure.connection import ConnectionManager
from live_bid_sync.infrastructure.rooms import AuctionRooms
from live_bid_sync.models.bid import Bid


def bid_payload(bid_id, amount, auction_id="A", **extra) -> Dict[str, Any]:
    """Server-shaped bid JSON"""
    payload = {
        "id": bid_id,
        "auctionId": auction_id,
        "bidderId": extra.pop("bidder_id", "u1"),
        "amount": amount,
        "status": "PLACED",
        "createdAt": "2024-05-01T12:00:00Z",
    }
    payload.update(extra)
    return payload


def make_bid(bid_id, amount, auction_id="A", **extra) -> Bid:
    return Bid.model_validate(bid_payload(bid_id, amount, auction_id, **extra))


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    """Poll until ``predicate`` holds or fail the test"""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            pytest.fail("condition not reached in time")
        await asyncio.sleep(0.005)


# ============================================================================
# SOCKET.IO CLIENT DOUBLE
# ============================================================================

class FakeSocketClient:
    """Stands in for socketio.AsyncClient"""

    def __init__(self, factory: "FakeClientFactory"):
        self.factory = factory
        self.handlers: Dict[str, Callable] = {}
        self.connected = False
        self.connect_calls: List[Dict[str, Any]] = []
        self.emitted: List[tuple] = []
        self.disconnect_calls = 0

    def on(self, event: str, handler: Callable) -> None:
        self.handlers[event] = handler

    async def connect(self, url: str, **kwargs) -> None:
        self.connect_calls.append({"url": url, **kwargs})
        if self.factory.failures_left > 0:
            self.factory.failures_left -= 1
            raise socketio.exceptions.ConnectionError("Connection refused")
        self.connected = True
        await self.trigger("connect")

    async def disconnect(self) -> None:
        self.disconnect_calls += 1
        if self.connected:
            self.connected = False
            await self.trigger("disconnect", "client disconnect")

    async def emit(self, event: str, data: Any = None) -> None:
        if not self.connected:
            raise socketio.exceptions.BadNamespaceError("/ is not a connected namespace.")
        self.emitted.append((event, data))

    async def trigger(self, event: str, *args) -> None:
        handler = self.handlers.get(event)
        if handler is not None:
            await handler(*args)

    async def drop(self, reason: str = "transport close") -> None:
        """Simulate the connection going away under the client"""
        self.connected = False
        await self.trigger("disconnect", reason)


class FakeClientFactory:
    def __init__(self):
        self.clients: List[FakeSocketClient] = []
        self.failures_left = 0

    def __call__(self) -> FakeSocketClient:
        client = FakeSocketClient(self)
        self.clients.append(client)
        return client

    @property
    def latest(self) -> FakeSocketClient:
        return self.clients[-1]

    def all_emitted(self) -> List[tuple]:
        return [item for client in self.clients for item in client.emitted]


# ============================================================================
# REST API DOUBLE
# ============================================================================

class FakeAuctionApi:
    """Stands in for AuctionApiClient"""

    def __init__(self):
        self.bids: Dict[str, List[Bid]] = {}
        self.winning: Dict[str, Optional[Bid]] = {}
        self.fetch_error: Optional[Exception] = None
        self.place_result: Optional[Bid] = None
        self.place_error: Optional[Exception] = None
        # When set, place_bid waits for it before answering
        self.place_gate: Optional[asyncio.Event] = None
        self.placed: List[tuple] = []
        self.next_id = 100

    async def get_auction_bids(self, auction_id: str) -> BidPage:
        if self.fetch_error:
            raise self.fetch_error
        return BidPage(bids=list(self.bids.get(auction_id, [])))

    async def get_winning_bid(self, auction_id: str) -> Optional[Bid]:
        if self.fetch_error:
            raise self.fetch_error
        return self.winning.get(auction_id)

    async def place_bid(self, auction_id: str, amount: Decimal) -> Bid:
        self.placed.append((auction_id, amount))
        if self.place_gate is not None:
            await self.place_gate.wait()
        if self.place_error is not None:
            raise self.place_error
        if self.place_result is not None:
            return self.place_result
        self.next_id += 1
        return make_bid(str(self.next_id), amount, auction_id)

    async def get_user_active_bids(self) -> BidPage:
        return BidPage(bids=[bid for bids in self.bids.values() for bid in bids])

    def reject(self, message: str = "Bid amount must be higher than current price") -> None:
        self.place_error = BidPlacementError(message, status_code=400)


# ============================================================================
# REDIS DOUBLE
# ============================================================================

class FakeRedis:
    """In-memory subset of redis.asyncio.Redis used by the bid cache"""

    def __init__(self):
        self.data: Dict[str, str] = {}
        self.ttls: Dict[str, int] = {}
        self.down = False
        self.closed = False

    def _check(self) -> None:
        if self.down:
            raise redis.ConnectionError("Error 111 connecting to localhost:6379")

    async def get(self, key: str) -> Optional[str]:
        self._check()
        return self.data.get(key)

    async def setex(self, key: str, ttl: int, value: str) -> bool:
        self._check()
        self.data[key] = value
        self.ttls[key] = ttl
        return True

    async def delete(self, key: str) -> int:
        self._check()
        existed = key in self.data
        self.data.pop(key, None)
        self.ttls.pop(key, None)
        return int(existed)

    async def aclose(self) -> None:
        self.closed = True


# ============================================================================
# FIXTURES
# ============================================================================

@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        ENVIRONMENT="test",
        RECONNECTION_ATTEMPTS=3,
        RECONNECTION_DELAY=0.01,
        RECONNECTION_DELAY_MAX=0.02,
        RANDOMIZATION_FACTOR=0.0,
        BID_PLACEMENT_TIMEOUT=0.5,
        BID_CACHE_ENABLED=False,
        AUTH_TOKEN="test-token",
    )


@pytest.fixture
def client_factory() -> FakeClientFactory:
    return FakeClientFactory()


@pytest.fixture
def fake_api() -> FakeAuctionApi:
    return FakeAuctionApi()


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest_asyncio.fixture
async def connection(settings, client_factory):
    """Connected manager over the fake Socket.IO client"""
    manager = ConnectionManager(settings, client_factory=client_factory)
    await manager.connect()
    yield manager
    await manager.disconnect()


@pytest.fixture
def rooms(connection) -> AuctionRooms:
    return AuctionRooms(connection)
