from django.urls import path
from .views import DeclareAvailableView

urlpatterns = [
    path("<int:driver_id>/available/", DeclareAvailableView.as_view(), name="driver-available"),
]
