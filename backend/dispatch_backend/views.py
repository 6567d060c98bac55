"""
Service status for monitoring.

Reports on what a dispatch call depends on: the store, the Celery broker
and its workers (scheduled dispatch), and the channel layer used for
dispatch notifications.
"""

import asyncio
import logging

import redis
from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer
from django.conf import settings
from django.db.models import Max
from django.utils import timezone
from rest_framework import status
from rest_framework.decorators import api_view, authentication_classes, permission_classes
from rest_framework.permissions import AllowAny
from rest_framework.response import Response

from common.exceptions import ConnectivityError, store_errors
from rides.models import Dispatch, RideRequest
from .celery import app as celery_app

logger = logging.getLogger(__name__)

PROBE_TIMEOUT = 3


def _check_store():
    with store_errors():
        last = Dispatch.objects.aggregate(last=Max("dispatched_at"))["last"]
        open_count = RideRequest.objects.filter(dispatch__isnull=True, pickup__isnull=True).count()
    return {
        "status": "healthy",
        "open_requests": open_count,
        "last_dispatch_at": last.isoformat() if last else None,
    }


def _check_broker():
    client = redis.Redis.from_url(settings.CELERY_BROKER_URL, socket_timeout=PROBE_TIMEOUT)
    client.ping()
    return {"status": "healthy"}


def _check_workers():
    replies = celery_app.control.ping(timeout=1) or []
    if not replies:
        return {"status": "unhealthy: no dispatch worker replied", "workers": 0}
    return {"status": "healthy", "workers": len(replies)}


async def _channel_round_trip(layer):
    channel = await layer.new_channel()
    await layer.send(channel, {"type": "health.ping"})
    return await asyncio.wait_for(layer.receive(channel), PROBE_TIMEOUT)


def _check_channels():
    layer = get_channel_layer()
    if layer is None:
        return {"status": "unhealthy: no channel layer"}
    message = async_to_sync(_channel_round_trip)(layer)
    if message.get("type") != "health.ping":
        return {"status": "unhealthy: channel layer returned an unexpected message"}
    return {"status": "healthy"}


CHECKS = (
    ("database", _check_store, (ConnectivityError,)),
    ("broker", _check_broker, (redis.RedisError, OSError)),
    ("workers", _check_workers, (Exception,)),
    ("channels", _check_channels, (Exception,)),
)


@api_view(["GET"])
@authentication_classes([])
@permission_classes([AllowAny])
def health_check(request):
    """Health check endpoint; 503 when any dependency of dispatch is down"""
    health_status = {
        "status": "healthy",
        "timestamp": timezone.now().isoformat(),
        "services": {},
    }

    for name, check, failures in CHECKS:
        try:
            result = check()
        except failures as e:
            logger.warning(f"Health check '{name}' failed: {e}")
            result = {"status": f"unhealthy: {e}"}

        health_status["services"][name] = result
        if result["status"] != "healthy":
            health_status["status"] = "unhealthy"

    status_code = (
        status.HTTP_200_OK
        if health_status["status"] == "healthy"
        else status.HTTP_503_SERVICE_UNAVAILABLE
    )
    return Response(health_status, status=status_code)
