"""
Services package - Business logic layer.

This package contains the dispatch business logic operating on Django models,
decoupled from the HTTP and task layers.

Modules:
    - ride_management: Ride requests, dispatch lookups and pickups
    - matching: Client ranking and area dispatch
"""

from .matching import (
    DispatchResult,
    dispatch,
    dispatch_area,
)
from .ride_management import (
    create_ride_request,
    open_requests_in,
    find_dispatched_request,
    was_dispatched,
    has_pickup,
    record_pickup,
)

__all__ = [
    # Matching
    "DispatchResult",
    "dispatch",
    "dispatch_area",
    # Ride management
    "create_ride_request",
    "open_requests_in",
    "find_dispatched_request",
    "was_dispatched",
    "has_pickup",
    "record_pickup",
]
