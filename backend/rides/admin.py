"""Tells what to show in the Django admin interface for rides app"""

from django.contrib import admin
from .models import Billed, Dispatch, Pickup, Place, RideRequest


class AppendOnlyAdmin(admin.ModelAdmin):
    """Event tables are written by the dispatch services only; the admin just reads them."""

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(Place)
class PlaceAdmin(admin.ModelAdmin):
    list_display = ("name", "x", "y")
    search_fields = ("name",)


@admin.register(RideRequest)
class RideRequestAdmin(AppendOnlyAdmin):
    """Ride Request admin"""
    list_display = ['id', 'client', 'source', 'destination', 'requested_at', 'state']
    search_fields = ['client__username', 'source__name']
    date_hierarchy = 'requested_at'


@admin.register(Dispatch)
class DispatchAdmin(AppendOnlyAdmin):
    list_display = ("request", "driver", "car_x", "car_y", "dispatched_at")
    list_filter = ("dispatched_at",)
    search_fields = ("request__id", "driver__username")


@admin.register(Pickup)
class PickupAdmin(AppendOnlyAdmin):
    list_display = ("request", "picked_up_at")
    search_fields = ("request__id",)


@admin.register(Billed)
class BilledAdmin(AppendOnlyAdmin):
    list_display = ("request", "amount")
    search_fields = ("request__client__username",)
