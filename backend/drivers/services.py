"""
Availability ledger.

A driver is available from their latest declaration until the next dispatch
that names them. Both logs are append-only, so "currently available" is always
computed, never stored.
"""

import logging
from dataclasses import dataclass
from typing import List

from django.db.models import Exists, OuterRef, Subquery

from common.exceptions import store_errors
from common.utils import Box, Point, contains
from drivers.models import Availability
from rides.models import Dispatch

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AvailableDriver:
    driver_id: int
    location: Point
    declaration_id: int


def declare_available(driver_id: int, at, location: Point) -> Availability:
    """
    Record that a driver is available at a location.

    Every declaration is accepted; earlier ones are simply superseded.

    Raises:
        ConnectivityError: If the store cannot be reached
    """
    with store_errors():
        declaration = Availability.objects.create(
            driver_id=driver_id,
            declared_at=at,
            x=float(location.x),
            y=float(location.y),
        )

    logger.info(
        "Driver %s declared available at (%s, %s) at %s",
        driver_id, declaration.x, declaration.y, at
    )
    return declaration


def _current_declarations(as_of):
    """Latest declaration per driver at or before as_of, minus superseded ones."""
    latest = (
        Availability.objects
        .filter(driver=OuterRef("driver"), declared_at__lte=as_of)
        .order_by("-declared_at", "-id")
    )
    # A dispatch at the very instant of a declaration supersedes it
    superseding = Dispatch.objects.filter(
        driver=OuterRef("driver"),
        dispatched_at__gte=OuterRef("declared_at"),
        dispatched_at__lte=as_of,
    )
    return (
        Availability.objects
        .filter(declared_at__lte=as_of, id=Subquery(latest.values("id")[:1]))
        .filter(~Exists(superseding))
        .order_by("driver_id")
    )


def currently_available(box: Box, as_of) -> List[AvailableDriver]:
    """
    Drivers free to be dispatched inside box as of a moment.

    Args:
        box: Area to search
        as_of: Moment of evaluation; later declarations and dispatches are ignored

    Returns:
        AvailableDriver list ordered by driver id
    """
    with store_errors():
        declarations = list(_current_declarations(as_of))

    return [
        AvailableDriver(d.driver_id, d.location, d.id)
        for d in declarations
        if contains(box, d.location)
    ]


def lock_available(drivers: List[AvailableDriver], as_of) -> List[AvailableDriver]:
    """
    Lock the declarations behind drivers and keep those still current.

    Must run inside a transaction. A driver dropping out means another
    dispatch (or a newer declaration) got there after the snapshot.
    """
    ids = sorted(d.declaration_id for d in drivers)
    with store_errors():
        list(
            Availability.objects.select_for_update()
            .filter(id__in=ids)
            .order_by("id")
            .values_list("id", flat=True)
        )
        current = set(
            _current_declarations(as_of)
            .filter(id__in=ids)
            .values_list("id", flat=True)
        )
    return [d for d in drivers if d.declaration_id in current]
