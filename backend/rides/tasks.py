"""Celery tasks for scheduled dispatch."""

from celery import shared_task
from django.conf import settings
from django.utils import timezone
from django.utils.dateparse import parse_datetime
import logging

from common.utils import Box

logger = logging.getLogger(__name__)


@shared_task(bind=True, max_retries=3, default_retry_delay=5)
def dispatch_area_task(self, nw=None, se=None, at=None):
    """
    Celery task to dispatch drivers inside an area.
    
    Scheduled by the orchestration layer (e.g. celery beat). Corners are
    [x, y] pairs; without them DISPATCH_DEFAULT_AREA is used. `at` is an
    ISO timestamp, defaulting to the time the task runs. A timestamp without an
    offset is read in TIME_ZONE; an unparseable one raises ValueError.
    
    Returns a list of {request_id, driver_id} dicts for the assignments made.
    """
    from services.matching import dispatch_area

    if nw is None or se is None:
        nw_x, nw_y, se_x, se_y = settings.DISPATCH_DEFAULT_AREA
    else:
        (nw_x, nw_y), (se_x, se_y) = nw, se
    box = Box.from_corners(nw_x, nw_y, se_x, se_y)

    when = None
    if at:
        when = parse_datetime(at)
        if when is None:
            raise ValueError(f"Invalid dispatch timestamp: {at}")
        if timezone.is_naive(when):
            when = timezone.make_aware(when)

    result = dispatch_area(box, when)

    if result.success:
        logger.info(f"Dispatch task for {box} made {len(result.assignments)} assignment(s)")
        return [
            {"request_id": d.request_id, "driver_id": d.driver_id}
            for d in result.assignments
        ]

    if result.error_code == "connectivity":
        logger.warning(f"Dispatch task for {box} could not reach the store, retrying")
        raise self.retry(exc=RuntimeError(result.message))

    logger.error(f"Dispatch task for {box} gave up: {result.message}")
    return []
