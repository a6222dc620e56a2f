"""
Auction REST API Client

Request/response collaborator for bid history, winning bid and placement.
Every response uses the envelope ``{"success", "data", "message"}``; errors
carry a human-readable ``message`` that is surfaced as-is.
"""
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Optional, Type

import httpx
from pydantic import ValidationError

from live_bid_sync.core.config import Settings, get_settings
from live_bid_sync.core.exceptions import AuctionApiError, BidPlacementError
from live_bid_sync.core.logging_config import get_logger
from live_bid_sync.models.bid import Bid, PlaceBidRequest

logger = get_logger(__name__)


@dataclass
class BidPage:
    """One page of an auction's bid history"""
    bids: List[Bid]
    pagination: Dict[str, Any] = field(default_factory=dict)


class AuctionApiClient:
    """
    Async client for the auction REST API
    
    Example:
        ```python
        async with AuctionApiClient() as api:
            page = await api.get_auction_bids("42")
            bid = await api.place_bid("42", Decimal("150"))
        ```
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Args:
            settings: Application settings (base URL, timeout, credentials)
            http_client: Pre-built client; owned by the caller when given
        """
        self.settings = settings or get_settings()
        self._client = http_client
        self._owns_client = http_client is None

    async def __aenter__(self) -> "AuctionApiClient":
        self._ensure_client()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            # Cookies persist on the client; the bearer token rides every request
            self._client = httpx.AsyncClient(
                base_url=self.settings.API_BASE_URL,
                timeout=httpx.Timeout(self.settings.API_TIMEOUT),
                headers=self.settings.auth_headers(),
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    # ========================================================================
    # ENDPOINTS
    # ========================================================================

    async def get_auction_bids(self, auction_id: str) -> BidPage:
        """GET /auctions/{id}/bids"""
        data = await self._request(
            "GET",
            f"/auctions/{auction_id}/bids",
            fallback_message="Failed to fetch bids. Please try again.",
        )
        return self._parse_page(data)

    async def get_winning_bid(self, auction_id: str) -> Optional[Bid]:
        """GET /auctions/{id}/winning-bid (None when the auction has no bids)"""
        data = await self._request(
            "GET",
            f"/auctions/{auction_id}/winning-bid",
            fallback_message="Failed to fetch winning bid. Please try again.",
        )
        if not data:
            return None
        return self._parse_bid(data)

    async def place_bid(self, auction_id: str, amount: Decimal) -> Bid:
        """
        POST /auctions/{id}/bids
        
        Raises:
            BidPlacementError: the server refused the bid or was unreachable
        """
        body = PlaceBidRequest(amount=amount).to_wire()
        data = await self._request(
            "POST",
            f"/auctions/{auction_id}/bids",
            json=body,
            error_cls=BidPlacementError,
            fallback_message="Failed to place bid. Please try again.",
        )
        bid = self._parse_bid(data, error_cls=BidPlacementError)
        logger.info("Bid accepted by server", auction_id=bid.auction_id, bid_id=bid.id, amount=str(bid.amount))
        return bid

    async def get_user_active_bids(self) -> BidPage:
        """GET /auctions/users/active-bids (requires credentials)"""
        data = await self._request(
            "GET",
            "/auctions/users/active-bids",
            fallback_message="Failed to fetch active bids. Please try again.",
        )
        return self._parse_page(data)

    async def get_bid(self, bid_id: str) -> Bid:
        """GET /auctions/bids/{bidId}"""
        data = await self._request(
            "GET",
            f"/auctions/bids/{bid_id}",
            fallback_message="Failed to fetch bid. Please try again.",
        )
        return self._parse_bid(data)

    # ========================================================================
    # INTERNALS
    # ========================================================================

    async def _request(
        self,
        method: str,
        path: str,
        json: Optional[Dict[str, Any]] = None,
        error_cls: Type[AuctionApiError] = AuctionApiError,
        fallback_message: str = "Auction API request failed",
    ) -> Any:
        client = self._ensure_client()

        try:
            response = await client.request(method, path, json=json)
        except httpx.TimeoutException as e:
            logger.warning("Auction API timeout", method=method, path=path)
            raise error_cls(f"{fallback_message} (request timed out)") from e
        except httpx.HTTPError as e:
            logger.warning("Auction API unreachable", method=method, path=path, error=str(e))
            raise error_cls(fallback_message) from e

        if response.is_error:
            message = self._error_message(response) or fallback_message
            logger.warning(
                "Auction API error",
                method=method,
                path=path,
                status_code=response.status_code,
                message=message,
            )
            raise error_cls(message, status_code=response.status_code)

        try:
            body = response.json()
        except ValueError as e:
            raise error_cls(fallback_message, status_code=response.status_code) from e

        if isinstance(body, dict) and "data" in body:
            return body["data"]
        return body

    @staticmethod
    def _error_message(response: httpx.Response) -> Optional[str]:
        try:
            body = response.json()
        except ValueError:
            return None
        if isinstance(body, dict):
            return body.get("message") or body.get("error")
        return None

    @staticmethod
    def _parse_bid(data: Any, error_cls: Type[AuctionApiError] = AuctionApiError) -> Bid:
        try:
            return Bid.model_validate(data)
        except ValidationError as e:
            raise error_cls(f"Unexpected bid payload from auction API: {e.error_count()} errors") from e

    @classmethod
    def _parse_page(cls, data: Any) -> BidPage:
        # data is either a bare list or {"bids": [...], "pagination": {...}}
        if isinstance(data, dict):
            raw_bids = data.get("bids") or []
            pagination = data.get("pagination") or {}
        else:
            raw_bids = data or []
            pagination = {}

        return BidPage(
            bids=[cls._parse_bid(raw) for raw in raw_bids],
            pagination=pagination,
        )
