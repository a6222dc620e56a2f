"""
Live Connection Manager

Owns the single persistent Socket.IO connection to the auction server.
All auctions multiplex over it.

Lifecycle:
┌──────────────┐  connect()   ┌───────────┐
│ no handle    │ ───────────→ │ connected │
└──────────────┘              └─────┬─────┘
       ↑                            │ unexpected disconnect
       │ disconnect() /             ↓
       │ attempts exhausted   ┌──────────────┐
       └───────────────────── │ reconnecting │ (bounded, backoff + jitter)
                              └──────────────┘

Policies:
- connect() is idempotent: a second call logs a warning, never opens a
  second connection
- a network drop reconnects with backoff; a server-initiated disconnect
  reconnects immediately (the transport would otherwise stay down)
- an explicit disconnect() never triggers reconnection
- problems are logged, never raised to the caller; poll ``is_connected``
"""
import asyncio
import contextlib
from typing import Any, Awaitable, Callable, List, Optional

import socketio

from live_bid_sync.core.config import Settings, get_settings
from live_bid_sync.core.exceptions import NotConnectedError
from live_bid_sync.core.logging_config import get_logger
from live_bid_sync.infrastructure.backoff import ReconnectBackoff
from live_bid_sync.infrastructure.router import EventRouter
from live_bid_sync.models.events import INBOUND_EVENTS

logger = get_logger(__name__)

# python-socketio and the JavaScript client word these differently
SERVER_DISCONNECT_REASONS = {"server disconnect", "io server disconnect"}
CLIENT_DISCONNECT_REASONS = {"client disconnect", "io client disconnect"}

ReconnectHook = Callable[[], Awaitable[None]]


def default_client_factory() -> socketio.AsyncClient:
    """
    Build the Socket.IO client
    
    The library's own reconnection is off: ConnectionManager runs the
    bounded sequence itself so every attempt is logged and rooms can be
    re-joined afterwards.
    """
    return socketio.AsyncClient(reconnection=False, logger=False, engineio_logger=False)


class ConnectionManager:
    """
    Manages the live connection to the auction server
    
    Usage:
        connection = ConnectionManager()
        await connection.connect()
        await connection.emit("joinAuction", "42")
        ...
        await connection.disconnect()
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        client_factory: Optional[Callable[[], Any]] = None,
        router: Optional[EventRouter] = None,
        backoff: Optional[ReconnectBackoff] = None,
    ):
        """
        Initialize connection manager
        
        Args:
            settings: Application settings (URL, transports, reconnection)
            client_factory: Builds a Socket.IO-compatible client
            router: Receives every inbound auction event
            backoff: Reconnection delay policy
        """
        self.settings = settings or get_settings()
        self.client_factory = client_factory or default_client_factory
        self.router = router or EventRouter()
        self.backoff = backoff or ReconnectBackoff(
            max_attempts=self.settings.RECONNECTION_ATTEMPTS,
            initial_delay=self.settings.RECONNECTION_DELAY,
            max_delay=self.settings.RECONNECTION_DELAY_MAX,
            randomization_factor=self.settings.RANDOMIZATION_FACTOR,
        )

        self._client: Optional[Any] = None
        self._connected = False
        self._closing = False
        self._reconnect_task: Optional[asyncio.Task] = None
        self._reconnect_hooks: List[ReconnectHook] = []

        # Statistics
        self.connect_count = 0
        self.reconnect_count = 0
        self.messages_received = 0
        self.messages_sent = 0

    # ========================================================================
    # STATE
    # ========================================================================

    @property
    def client(self) -> Optional[Any]:
        """The underlying Socket.IO client, None when no connection exists"""
        return self._client

    @property
    def is_connected(self) -> bool:
        return self._connected

    @property
    def is_reconnecting(self) -> bool:
        return self._reconnect_task is not None and not self._reconnect_task.done()

    def add_reconnect_hook(self, hook: ReconnectHook) -> None:
        """Run ``hook`` after every successful reconnection"""
        if hook not in self._reconnect_hooks:
            self._reconnect_hooks.append(hook)

    # ========================================================================
    # LIFECYCLE
    # ========================================================================

    async def connect(self) -> None:
        """
        Establish the connection if none exists
        
        A failed first attempt starts the bounded reconnection sequence
        instead of raising.
        """
        if self._client is not None:
            logger.warning("WebSocket is already connected", url=self.settings.SOCKET_URL)
            return

        self._closing = False
        client = self._new_client()

        logger.info("Connecting to auction server", url=self.settings.SOCKET_URL)

        if not await self._open(client):
            self._schedule_reconnect()

    async def disconnect(self) -> None:
        """Tear down the connection and clear the handle (no-op if absent)"""
        if self._client is None:
            return

        self._closing = True
        await self._cancel_reconnect()

        client = self._client
        self._client = None
        self._connected = False

        try:
            await client.disconnect()
        except Exception as e:
            logger.warning("Error while closing WebSocket", error=str(e))

        logger.info("WebSocket disconnected")

    async def emit(self, event: str, data: Any) -> None:
        """
        Send an event to the server
        
        Raises:
            NotConnectedError: no live connection
        """
        if self._client is None or not self._connected:
            raise NotConnectedError(f"Cannot emit {event}: not connected")

        try:
            await self._client.emit(event, data)
        except socketio.exceptions.SocketIOError as e:
            raise NotConnectedError(f"Cannot emit {event}: {e}") from e

        self.messages_sent += 1

    # ========================================================================
    # INTERNALS
    # ========================================================================

    def _new_client(self) -> Any:
        client = self.client_factory()
        self._register_handlers(client)
        self._client = client
        return client

    def _register_handlers(self, client: Any) -> None:
        # Events from a client that is no longer the handle are ignored
        async def on_connect() -> None:
            if client is self._client:
                await self._on_connect()

        async def on_disconnect(reason: Optional[str] = None) -> None:
            if client is self._client:
                await self._on_disconnect(reason)

        client.on("connect", on_connect)
        client.on("disconnect", on_disconnect)
        client.on("connect_error", self._on_connect_error)
        client.on("error", self._on_error)

        for event in INBOUND_EVENTS:
            client.on(event, self._make_dispatcher(event))

    def _make_dispatcher(self, event: str) -> Callable[..., Awaitable[None]]:
        async def dispatch(payload: Any = None) -> None:
            self.messages_received += 1
            await self.router.dispatch(event, payload)

        return dispatch

    async def _open(self, client: Any) -> bool:
        """Single connection attempt; True when the handshake completed"""
        try:
            await client.connect(
                self.settings.SOCKET_URL,
                headers=self.settings.auth_headers(),
                transports=self.settings.SOCKET_TRANSPORTS,
                socketio_path=self.settings.SOCKET_PATH,
                wait_timeout=self.settings.CONNECT_WAIT_TIMEOUT,
            )
        except (socketio.exceptions.ConnectionError, ValueError) as e:
            # ValueError: the engine is still closing the previous session
            logger.error("WebSocket error", error=str(e))
            return False

        return True

    async def _on_connect(self) -> None:
        self._connected = True
        self.connect_count += 1
        logger.info("Connected to WebSocket server", url=self.settings.SOCKET_URL)

    async def _on_disconnect(self, reason: Optional[str] = None) -> None:
        self._connected = False
        logger.info("Disconnected from WebSocket server", reason=reason)

        if self._closing or reason in CLIENT_DISCONNECT_REASONS:
            return

        if reason in SERVER_DISCONNECT_REASONS:
            logger.info("Server disconnected the client. Attempting to reconnect...")
            self._schedule_reconnect(immediate=True)
        else:
            self._schedule_reconnect()

    async def _on_connect_error(self, data: Any = None) -> None:
        logger.error("WebSocket connection error", error=data)

    async def _on_error(self, data: Any = None) -> None:
        logger.error("WebSocket error", error=data)

    def _schedule_reconnect(self, immediate: bool = False) -> None:
        if self.is_reconnecting:
            return
        self._reconnect_task = asyncio.create_task(self._reconnect_loop(immediate))

    async def _cancel_reconnect(self) -> None:
        task = self._reconnect_task
        self._reconnect_task = None

        if task is None or task.done() or task is asyncio.current_task():
            return

        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    async def _reconnect_loop(self, immediate: bool) -> None:
        """
        Bounded reconnection sequence
        
        A fresh client is used for the sequence; the dead one is dropped.
        After the last failed attempt the handle is cleared so a later
        connect() can start over.
        """
        client = self._new_client()
        max_attempts = self.backoff.max_attempts

        for attempt in range(1, max_attempts + 1):
            if immediate and attempt == 1:
                delay = 0.0
            else:
                delay = self.backoff.get_delay(attempt - 1)

            logger.info(
                "Attempting to reconnect",
                attempt=attempt,
                max_attempts=max_attempts,
                delay_seconds=round(delay, 2),
            )
            await asyncio.sleep(delay)

            if self._closing or self._client is not client:
                return

            if await self._open(client):
                self.reconnect_count += 1
                logger.info("WebSocket reconnected", attempts=attempt)
                await self._run_reconnect_hooks()
                return

        logger.error("WebSocket reconnection failed", attempts=max_attempts)
        if self._client is client:
            self._client = None

    async def _run_reconnect_hooks(self) -> None:
        for hook in list(self._reconnect_hooks):
            try:
                await hook()
            except Exception:
                logger.exception("Reconnect hook failed")

    def get_stats(self) -> dict:
        """Connection statistics"""
        return {
            "connected": self._connected,
            "reconnecting": self.is_reconnecting,
            "connect_count": self.connect_count,
            "reconnect_count": self.reconnect_count,
            "messages_received": self.messages_received,
            "messages_sent": self.messages_sent,
            "events_dropped": self.router.events_dropped,
        }
