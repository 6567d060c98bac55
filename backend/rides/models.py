from django.db import models
from django.conf import settings

from common.utils import Point


class Place(models.Model):
    """Named location registry; requests refer to places by name."""

    name = models.CharField(max_length=100, primary_key=True)
    x = models.FloatField()
    y = models.FloatField()

    class Meta:
        db_table = 'places'
        ordering = ['name']

    @property
    def location(self) -> Point:
        return Point(self.x, self.y)

    def __str__(self):
        return f"{self.name} ({self.x}, {self.y})"


class RideRequest(models.Model):
    """
    A client's request for a ride. Immutable once created.

    The lifecycle is derived from the dispatch and pickup records that
    reference it: OPEN -> DISPATCHED -> PICKED_UP.
    """

    STATE_OPEN = 'open'
    STATE_DISPATCHED = 'dispatched'
    STATE_PICKED_UP = 'picked_up'

    client = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name='ride_requests',
        limit_choices_to={'role': 'client'},
    )

    source = models.ForeignKey(
        Place,
        on_delete=models.PROTECT,
        related_name='departures',
    )
    destination = models.ForeignKey(
        Place,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='arrivals',
    )

    requested_at = models.DateTimeField()

    class Meta:
        db_table = 'ride_requests'
        ordering = ['requested_at', 'id']

    @property
    def source_location(self) -> Point:
        return self.source.location

    @property
    def state(self) -> str:
        if hasattr(self, 'pickup'):
            return self.STATE_PICKED_UP
        if hasattr(self, 'dispatch'):
            return self.STATE_DISPATCHED
        return self.STATE_OPEN

    def __str__(self):
        return f"Request #{self.id} - {self.client} from {self.source_id}"


class Dispatch(models.Model):
    """A driver assigned to a request. Append-only; one per request."""

    request = models.OneToOneField(
        RideRequest,
        on_delete=models.PROTECT,
        related_name='dispatch',
    )

    driver = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name='dispatches',
        limit_choices_to={'role': 'driver'},
    )

    # Where the car was when it got dispatched
    car_x = models.FloatField()
    car_y = models.FloatField()

    dispatched_at = models.DateTimeField()

    class Meta:
        db_table = 'dispatches'
        ordering = ['dispatched_at', 'id']
        indexes = [
            models.Index(fields=['driver', 'dispatched_at'], name='dispatch_driver_time_idx'),
        ]

    @property
    def car_location(self) -> Point:
        return Point(self.car_x, self.car_y)

    def __str__(self):
        return f"Dispatch request #{self.request_id} -> driver {self.driver_id}"


class Pickup(models.Model):
    """Confirmation that the dispatched driver collected the client."""

    request = models.OneToOneField(
        RideRequest,
        on_delete=models.PROTECT,
        related_name='pickup',
    )

    picked_up_at = models.DateTimeField()

    class Meta:
        db_table = 'pickups'
        ordering = ['picked_up_at', 'id']

    def __str__(self):
        return f"Pickup request #{self.request_id} at {self.picked_up_at}"


class Billed(models.Model):
    """Amount billed for a request. Written by billing, only read here."""

    request = models.OneToOneField(
        RideRequest,
        on_delete=models.PROTECT,
        related_name='billing',
    )

    amount = models.DecimalField(max_digits=10, decimal_places=2)

    class Meta:
        db_table = 'billings'

    def __str__(self):
        return f"Billed request #{self.request_id}: {self.amount}"
