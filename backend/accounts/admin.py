from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin
from django.db.models import Count, Max

from accounts.models import User


@admin.register(User)
class UserAdmin(BaseUserAdmin):
    """Drivers and clients, with their dispatch history at a glance"""

    list_display = ("username", "role", "dispatch_count", "last_dispatched_at", "ride_request_count", "is_active")
    list_filter = ("role", "is_active")
    search_fields = ("username", "phone_number")
    ordering = ("role", "username")

    fieldsets = BaseUserAdmin.fieldsets + (("Role", {"fields": ("role", "phone_number")}),)
    add_fieldsets = BaseUserAdmin.add_fieldsets + (("Role", {"fields": ("role", "phone_number")}),)

    def get_queryset(self, request):
        return super().get_queryset(request).annotate(
            _dispatch_count=Count("dispatches", distinct=True),
            _last_dispatched_at=Max("dispatches__dispatched_at"),
            _ride_request_count=Count("ride_requests", distinct=True),
        )

    @admin.display(description="Dispatches", ordering="_dispatch_count")
    def dispatch_count(self, obj):
        return obj._dispatch_count

    @admin.display(description="Last dispatched", ordering="_last_dispatched_at")
    def last_dispatched_at(self, obj):
        return obj._last_dispatched_at

    @admin.display(description="Requests", ordering="_ride_request_count")
    def ride_request_count(self, obj):
        return obj._ride_request_count
