from django.db import models
from django.conf import settings

from common.utils import Point

User = settings.AUTH_USER_MODEL


class Availability(models.Model):
    """
    A driver's declaration that they can take a ride, and where they are.

    Declarations are append-only. The latest one is superseded by any
    dispatch of the same driver at or after its declared time.
    """

    driver = models.ForeignKey(
        User,
        on_delete=models.PROTECT,
        related_name='availability_declarations',
        limit_choices_to={'role': 'driver'},
    )

    declared_at = models.DateTimeField()
    x = models.FloatField()
    y = models.FloatField()

    class Meta:
        db_table = 'driver_availability'
        ordering = ['declared_at', 'id']
        verbose_name_plural = 'availability'
        indexes = [
            models.Index(fields=['driver', 'declared_at'], name='avail_driver_time_idx'),
        ]

    @property
    def location(self) -> Point:
        return Point(self.x, self.y)

    def __str__(self):
        return f"Driver {self.driver_id} available at ({self.x}, {self.y}) since {self.declared_at}"
