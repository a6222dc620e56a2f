"""
Typed Event Router

The live channel does not filter by room on the client side: every event
for every joined auction arrives on the same connection. The router parses
each payload into its typed model once, then demultiplexes on the embedded
``auctionId`` so keyed subscribers only ever see their own auction.

Two kinds of routes:
- keyed:  callback registered for (event, auction_id), filtered here
- global: callback registered for an event only, sees every auction and
          must filter by ``auction_id`` itself
"""
import inspect
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Union

from live_bid_sync.core.logging_config import get_logger
from live_bid_sync.models.events import INBOUND_EVENTS, InvalidEventError, parse_event

logger = get_logger(__name__)

EventCallback = Callable[[Any], Union[None, Awaitable[None]]]


class EventRouter:
    """Demultiplexes inbound live events to subscribers by auction id"""

    def __init__(self):
        # event -> callbacks seeing every auction
        self._global: Dict[str, List[EventCallback]] = {}
        # event -> auction_id -> callbacks
        self._keyed: Dict[str, Dict[str, List[EventCallback]]] = {}

        # Statistics
        self.events_dispatched = 0
        self.events_dropped = 0

    def add(self, event: str, callback: EventCallback, auction_id: Optional[str] = None) -> None:
        """
        Register a callback
        
        Registering the same callback twice for the same route is a no-op,
        so a callback never fires twice for one server event.
        """
        if auction_id is None:
            callbacks = self._global.setdefault(event, [])
        else:
            callbacks = self._keyed.setdefault(event, {}).setdefault(str(auction_id), [])

        if callback not in callbacks:
            callbacks.append(callback)

    def remove(
        self,
        event: str,
        callback: Optional[EventCallback] = None,
        auction_id: Optional[str] = None,
    ) -> None:
        """
        Unregister one callback, or every callback on the route when
        ``callback`` is None
        """
        if auction_id is None:
            routes = self._global
            key = event
        else:
            routes = self._keyed.get(event, {})
            key = str(auction_id)

        if key not in routes:
            return

        if callback is None:
            del routes[key]
            return

        routes[key] = [cb for cb in routes[key] if cb != callback]
        if not routes[key]:
            del routes[key]

    def remove_auction(self, auction_id: str) -> None:
        """Drop every keyed route for one auction"""
        auction_id = str(auction_id)
        for by_auction in self._keyed.values():
            by_auction.pop(auction_id, None)

    def clear(self, events: Iterable[str] = INBOUND_EVENTS) -> None:
        """Drop all routes (global and keyed) for the given events"""
        for event in events:
            self._global.pop(event, None)
            self._keyed.pop(event, None)

    def route_count(self, event: str, auction_id: Optional[str] = None) -> int:
        """Number of callbacks that would see ``event`` for ``auction_id``"""
        count = len(self._global.get(event, []))
        if auction_id is not None:
            count += len(self._keyed.get(event, {}).get(str(auction_id), []))
        return count

    async def dispatch(self, event: str, payload: Any) -> None:
        """
        Parse and deliver one inbound event
        
        Malformed payloads are logged and dropped. A failing callback is
        logged and does not stop delivery to the others.
        """
        try:
            message = parse_event(event, payload)
        except InvalidEventError as e:
            self.events_dropped += 1
            logger.warning("Dropping malformed live event", event=event, error=str(e))
            return

        auction_id = message.auction_id
        callbacks = list(self._global.get(event, []))
        callbacks += self._keyed.get(event, {}).get(auction_id, [])

        self.events_dispatched += 1

        for callback in callbacks:
            try:
                result = callback(message)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception(
                    "Live event callback failed",
                    event=event,
                    auction_id=auction_id,
                )
