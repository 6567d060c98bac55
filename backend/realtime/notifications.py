"""
Notification helpers for sending channel-layer messages to connected clients.

Drivers listen on driver_<driver_id> and clients on user_<client_id>.
"""

from __future__ import annotations

import logging
from typing import Dict, Any

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer

logger = logging.getLogger(__name__)


def _send(group: str, payload: Dict[str, Any]) -> bool:
    channel_layer = get_channel_layer()
    if channel_layer is None:
        logger.warning("No channel layer available for %s", group)
        return False

    logger.debug("WS -> %s: %s", group, payload)
    async_to_sync(channel_layer.group_send)(group, payload)
    return True


def notify_dispatch_event(
    event_type: str,
    dispatch,
    client_id: int,
    message: str = "",
    extra: Dict[str, Any] = None,
) -> bool:
    """
    Send a dispatch event to both the driver and the client it matched.
    
    Args:
        event_type: Handler name in consumer (ride_dispatched)
        dispatch: Dispatch model instance
        client_id: Client's user ID
        message: Optional message to include
        extra: Additional payload data
    
    Returns:
        True if both groups were sent to, False otherwise
    """
    payload = {
        "type": event_type,
        "request_id": dispatch.request_id,
        "driver_id": dispatch.driver_id,
        "client_id": client_id,
        "location": {"x": dispatch.car_x, "y": dispatch.car_y},
        "dispatched_at": dispatch.dispatched_at.isoformat(),
        **(extra or {}),
    }

    if message:
        payload["message"] = message

    sent_driver = _send(f"driver_{dispatch.driver_id}", payload)
    sent_client = _send(f"user_{client_id}", payload)
    return sent_driver and sent_client
