"""
Infrastructure: live connection, rooms, HTTP API, locks and cache.
"""
