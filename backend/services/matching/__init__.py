"""
Driver matching and area dispatch.

This module handles:
    - Ranking clients by billing total
    - Greedy nearest-driver assignment inside an area
    - Retrying dispatch after concurrent conflicts
"""

from .ranking import billing_totals, rank_clients, rank_requests
from .engine import DispatchResult, dispatch, dispatch_area, match

__all__ = [
    "billing_totals",
    "rank_clients",
    "rank_requests",
    "DispatchResult",
    "dispatch",
    "dispatch_area",
    "match",
]
