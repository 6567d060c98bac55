"""
Realtime notifications over the Channels layer.

Usage:
    from realtime.notifications import notify_dispatch_event
"""
