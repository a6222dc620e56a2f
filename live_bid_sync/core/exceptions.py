"""
Error taxonomy

Connection problems never surface as exceptions (they are logged and
recovered). Validation errors are raised to the caller. API errors are
raised by the HTTP client and turned into store state by the bidding store.
"""
from typing import Optional


class LiveBidSyncError(Exception):
    """Base class for all errors raised by this package"""


class BidValidationError(LiveBidSyncError):
    """A bid was rejected locally, before any network call"""

    def __init__(self, field: str, message: str):
        self.field = field
        self.message = message
        super().__init__(f"{field}: {message}")


class AuctionApiError(LiveBidSyncError):
    """The auction REST API failed or answered with an error"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.message = message
        self.status_code = status_code
        super().__init__(message)


class BidPlacementError(AuctionApiError):
    """The server refused a bid (outbid race, auction closed, below increment)"""


class NotConnectedError(LiveBidSyncError):
    """An emit was attempted without a live connection"""
