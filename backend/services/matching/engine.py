"""
Area dispatch.

One call assigns available drivers to open requests inside an area at a
single moment:
    1. Snapshot open requests and available drivers in the area
    2. Rank requests by their client's billing total (highest first)
    3. Give each request the nearest driver still in the pool
    4. Record all dispatches in one transaction

Client priority dominates distance; the matching is greedy, not a global
minimum of total distance.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from django.conf import settings
from django.db import IntegrityError, transaction
from django.utils import timezone

from common.exceptions import (
    ConflictError,
    ConnectivityError,
    NoEligibleEntityError,
    store_errors,
)
from common.utils import Box, planar_distance
from drivers.services import AvailableDriver, currently_available, lock_available
from rides.models import Dispatch
from services.ride_management.request_book import (
    OpenRequest,
    lock_open_requests,
    open_requests_in,
)
from .ranking import billing_totals, rank_requests

logger = logging.getLogger(__name__)


@dataclass
class DispatchResult:
    """Result object for area dispatch."""
    success: bool
    assignments: List[Dispatch] = field(default_factory=list)
    message: str = ""
    error_code: Optional[str] = None
    extra: Optional[Dict[str, Any]] = None


def _snapshot(box: Box, at) -> Tuple[List[OpenRequest], List[AvailableDriver]]:
    requests = open_requests_in(box, at)
    if not requests:
        raise NoEligibleEntityError("No open requests in area")

    drivers = currently_available(box, at)
    if not drivers:
        raise NoEligibleEntityError("No available drivers in area")

    return requests, drivers


def _claim(requests, drivers, at):
    """Lock the snapshot rows; anything gone since means a concurrent dispatch won."""
    locked_drivers = lock_available(drivers, at)
    if len(locked_drivers) != len(drivers):
        taken = sorted({d.driver_id for d in drivers} - {d.driver_id for d in locked_drivers})
        raise ConflictError(f"Drivers {taken} were dispatched concurrently")

    locked_requests = lock_open_requests(requests)
    if len(locked_requests) != len(requests):
        taken = sorted({r.request_id for r in requests} - {r.request_id for r in locked_requests})
        raise ConflictError(f"Requests {taken} were dispatched concurrently")


def match(ranked_requests: List[OpenRequest], drivers: List[AvailableDriver], at) -> List[Dispatch]:
    """
    Greedy nearest-driver assignment in request priority order.

    A driver leaves the pool once assigned. Equal distances go to the
    driver listed first in drivers.
    """
    pool = list(drivers)
    records: List[Dispatch] = []

    for request in ranked_requests:
        if not pool:
            break

        nearest = min(pool, key=lambda driver: planar_distance(request.location, driver.location))
        records.append(Dispatch(
            request_id=request.request_id,
            driver_id=nearest.driver_id,
            car_x=nearest.location.x,
            car_y=nearest.location.y,
            dispatched_at=at,
        ))
        pool.remove(nearest)

    return records


def dispatch(box: Box, at) -> List[Dispatch]:
    """
    Dispatch drivers to open requests in box, all at time `at`.
    
    Args:
        box: Area holding both the request sources and the drivers
        at: Time recorded on every dispatch of this call
    
    Returns:
        The Dispatch records written, in assignment order. Empty when the
        area has no open requests or no available drivers.
    
    Raises:
        ConflictError: If a concurrent dispatch claimed a driver or request
        ConnectivityError: If the store cannot be reached
    """
    with store_errors(), transaction.atomic():
        try:
            requests, drivers = _snapshot(box, at)
        except NoEligibleEntityError as exc:
            logger.info("Nothing to dispatch in %s at %s: %s", box, at, exc)
            return []

        _claim(requests, drivers, at)

        totals = billing_totals(r.client_id for r in requests)
        records = match(rank_requests(requests, totals), drivers, at)

        try:
            with transaction.atomic():
                Dispatch.objects.bulk_create(records)
        except IntegrityError as exc:
            raise ConflictError(f"Dispatch write conflicted: {exc}") from exc

        client_by_request = {r.request_id: r.client_id for r in requests}
        transaction.on_commit(lambda: _notify_dispatched(records, client_by_request))

    logger.info(
        "Dispatched %d of %d request(s) with %d driver(s) in %s at %s",
        len(records), len(requests), len(drivers), box, at
    )
    return records


def dispatch_area(box: Box, at=None, max_retries: Optional[int] = None) -> DispatchResult:
    """
    Run dispatch, retrying from the snapshot step after conflicts.
    
    Args:
        box: Area to dispatch
        at: Dispatch time (defaults to now)
        max_retries: Extra attempts after a conflict (defaults to DISPATCH_MAX_RETRIES)
    
    Returns:
        DispatchResult; connectivity failures and exhausted retries come back
        as success=False rather than raising
    """
    at = at or timezone.now()
    if max_retries is None:
        max_retries = settings.DISPATCH_MAX_RETRIES
    attempts = max_retries + 1

    for attempt in range(1, attempts + 1):
        try:
            records = dispatch(box, at)
        except ConflictError as exc:
            logger.warning("Dispatch conflict (attempt %d/%d): %s", attempt, attempts, exc)
            continue
        except ConnectivityError as exc:
            logger.error("Dispatch in %s failed: %s", box, exc)
            return DispatchResult(
                success=False,
                message=str(exc),
                error_code="connectivity",
                extra={"attempts": attempt},
            )

        return DispatchResult(
            success=True,
            assignments=records,
            message=f"Dispatched {len(records)} driver(s)",
            extra={"attempts": attempt},
        )

    return DispatchResult(
        success=False,
        message="Dispatch kept conflicting with concurrent dispatches",
        error_code="conflict",
        extra={"attempts": attempts},
    )


# ===================== Helper Functions =====================

def _notify_dispatched(records: List[Dispatch], client_by_request: Dict[int, int]):
    """Tell each dispatched driver and client about their match."""
    from realtime.notifications import notify_dispatch_event

    for record in records:
        try:
            notify_dispatch_event("ride_dispatched", record, client_by_request[record.request_id])
        except Exception:
            logger.exception("Failed to notify dispatch of request %s", record.request_id)
