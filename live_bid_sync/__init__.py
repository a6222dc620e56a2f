"""
Live Bid Sync

Real-time bid synchronization for live auctions: one Socket.IO connection,
per-auction rooms, and an optimistic bid store reconciled against the server.
"""

__version__ = "1.0.0"
