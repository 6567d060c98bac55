"""
Request book: open ride requests and their dispatch/pickup history.

This module handles:
    - Creating ride requests against the place registry
    - Listing open requests inside an area
    - Looking up which request a driver was dispatched to for a client
    - Checking whether a pickup was already recorded
"""

import logging
from dataclasses import dataclass
from typing import List, Optional

from django.utils import timezone

from common.exceptions import DispatchNotFoundError, UnknownPlaceError, store_errors
from common.utils import Box, Point, contains
from rides.models import Dispatch, Pickup, Place, RideRequest

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OpenRequest:
    request_id: int
    client_id: int
    location: Point


def create_ride_request(
    client_id: int,
    source: str,
    at=None,
    destination: Optional[str] = None,
) -> RideRequest:
    """
    Create a new ride request from a named place.
    
    Args:
        client_id: Requesting client's user id
        source: Name of the pickup place
        at: Request time (defaults to now)
        destination: Optional name of the drop-off place
    
    Returns:
        The created RideRequest
    
    Raises:
        UnknownPlaceError: If source or destination is not a registered place
    """
    with store_errors():
        places = Place.objects.in_bulk([name for name in (source, destination) if name])
        missing = [name for name in (source, destination) if name and name not in places]
        if missing:
            raise UnknownPlaceError(f"Unknown place(s): {', '.join(missing)}")

        ride = RideRequest.objects.create(
            client_id=client_id,
            source=places[source],
            destination=places.get(destination) if destination else None,
            requested_at=at or timezone.now(),
        )

    logger.info("Client %s requested ride %s from %s", client_id, ride.id, source)
    return ride


def open_requests_in(box: Box, as_of) -> List[OpenRequest]:
    """
    Requests made at or before as_of, not yet dispatched or picked up,
    whose source lies in box. Oldest first.
    """
    with store_errors():
        pending = list(
            RideRequest.objects
            .filter(requested_at__lte=as_of, dispatch__isnull=True, pickup__isnull=True)
            .select_related("source")
            .order_by("requested_at", "id")
        )

    return [
        OpenRequest(ride.id, ride.client_id, ride.source_location)
        for ride in pending
        if contains(box, ride.source_location)
    ]


def lock_open_requests(requests: List[OpenRequest]) -> List[OpenRequest]:
    """Lock request rows and keep those nobody dispatched since the snapshot."""
    ids = sorted(r.request_id for r in requests)
    with store_errors():
        list(
            RideRequest.objects.select_for_update()
            .filter(id__in=ids)
            .order_by("id")
            .values_list("id", flat=True)
        )
        still_open = set(
            RideRequest.objects
            .filter(id__in=ids, dispatch__isnull=True, pickup__isnull=True)
            .values_list("id", flat=True)
        )
    return [r for r in requests if r.request_id in still_open]


def find_dispatched_request(
    driver_id: int,
    client_id: int,
    not_after,
    awaiting_pickup: bool = False,
) -> int:
    """
    Find a request of client_id that driver_id was dispatched to.

    Only dispatches at or before not_after count. The earliest match wins.

    Raises:
        DispatchNotFoundError: If no such dispatch exists
    """
    dispatches = Dispatch.objects.filter(
        driver_id=driver_id,
        request__client_id=client_id,
        dispatched_at__lte=not_after,
    )
    if awaiting_pickup:
        dispatches = dispatches.filter(request__pickup__isnull=True)

    with store_errors():
        request_id = (
            dispatches.order_by("dispatched_at", "id")
            .values_list("request_id", flat=True)
            .first()
        )

    if request_id is None:
        raise DispatchNotFoundError(
            f"Driver {driver_id} was not dispatched to client {client_id} by {not_after}"
        )
    return request_id


def was_dispatched(driver_id: int, client_id: int, before) -> Optional[int]:
    """Request id the driver was dispatched to for the client, or None."""
    try:
        return find_dispatched_request(driver_id, client_id, before)
    except DispatchNotFoundError:
        return None


def has_pickup(driver_id: int, client_id: int, at) -> bool:
    """True if a pickup at exactly `at` exists for this driver/client pair."""
    with store_errors():
        return Pickup.objects.filter(
            picked_up_at=at,
            request__client_id=client_id,
            request__dispatch__driver_id=driver_id,
        ).exists()
