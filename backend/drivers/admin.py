from django.contrib import admin
from drivers.models import Availability


@admin.register(Availability)
class AvailabilityAdmin(admin.ModelAdmin):
    """Admin panel for availability declarations (read-only history)"""

    list_display = [
        "driver",
        "declared_at",
        "x",
        "y",
    ]

    list_filter = [
        "declared_at",
    ]

    search_fields = [
        "driver__username",
    ]

    ordering = ("-declared_at",)

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
