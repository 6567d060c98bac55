"""Recording pickups against earlier dispatches."""

import logging

from django.db import IntegrityError, transaction

from common.exceptions import DispatchNotFoundError, store_errors
from rides.models import Pickup
from .request_book import find_dispatched_request, has_pickup

logger = logging.getLogger(__name__)


def record_pickup(driver_id: int, client_id: int, at) -> bool:
    """
    Record that a driver picked up a client.

    Args:
        driver_id: Driver's user id
        client_id: Client's user id
        at: Pickup time

    Returns:
        True if a pickup was newly recorded. False if it was already
        recorded or the driver was never dispatched to this client.

    Raises:
        ConnectivityError: If the store cannot be reached
    """
    with store_errors(), transaction.atomic():
        if has_pickup(driver_id, client_id, at):
            logger.debug("Pickup of client %s by driver %s at %s already recorded",
                         client_id, driver_id, at)
            return False

        try:
            request_id = find_dispatched_request(driver_id, client_id, at, awaiting_pickup=True)
        except DispatchNotFoundError:
            logger.info("No dispatch of driver %s to client %s at or before %s",
                        driver_id, client_id, at)
            return False

        try:
            with transaction.atomic():
                Pickup.objects.create(request_id=request_id, picked_up_at=at)
        except IntegrityError:
            # A concurrent call recorded this request's pickup first
            logger.info("Pickup for request %s recorded concurrently", request_id)
            return False

    logger.info("Recorded pickup of request %s (driver %s, client %s) at %s",
                request_id, driver_id, client_id, at)
    return True
