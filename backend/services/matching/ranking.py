"""
Client priority for dispatch.

Clients are served in descending order of what they have been billed so far.
Clients with no billing history are ranked with a total of zero, after
everyone who has been billed.
"""

from decimal import Decimal
from typing import Dict, Iterable, List, Sequence

from django.db.models import Sum

from common.exceptions import store_errors
from rides.models import Billed


def billing_totals(client_ids: Iterable[int]) -> Dict[int, Decimal]:
    """Total billed per client; clients never billed map to 0."""
    client_ids = list(client_ids)
    totals = {client_id: Decimal("0") for client_id in client_ids}

    with store_errors():
        rows = (
            Billed.objects
            .filter(request__client_id__in=client_ids)
            .values("request__client_id")
            .annotate(total=Sum("amount"))
        )
        for row in rows:
            totals[row["request__client_id"]] = row["total"]

    return totals


def rank_clients(client_ids: Sequence[int], totals: Dict[int, Decimal]) -> List[int]:
    """
    Order clients by billing total, highest first.

    The sort is stable: clients with equal totals keep their input order.
    Duplicates in client_ids are dropped after their first occurrence.
    """
    unique_ids = list(dict.fromkeys(client_ids))
    return sorted(unique_ids, key=lambda client_id: totals.get(client_id, 0), reverse=True)


def rank_requests(requests, totals: Dict[int, Decimal]) -> list:
    """
    Order open requests by their client's rank.

    A client with several open requests has them served oldest first,
    in the order given.
    """
    by_client: Dict[int, list] = {}
    for request in requests:
        by_client.setdefault(request.client_id, []).append(request)

    ranked = []
    for client_id in rank_clients([r.client_id for r in requests], totals):
        ranked.extend(by_client[client_id])
    return ranked
