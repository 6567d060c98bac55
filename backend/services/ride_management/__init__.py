"""
Ride management service - requests and pickups.

This module handles:
    - Creating ride requests
    - Querying open requests and past dispatches
    - Recording pickups
"""

from .request_book import (
    OpenRequest,
    create_ride_request,
    open_requests_in,
    lock_open_requests,
    find_dispatched_request,
    was_dispatched,
    has_pickup,
)
from .pickup import record_pickup

__all__ = [
    "OpenRequest",
    "create_ride_request",
    "open_requests_in",
    "lock_open_requests",
    "find_dispatched_request",
    "was_dispatched",
    "has_pickup",
    "record_pickup",
]
