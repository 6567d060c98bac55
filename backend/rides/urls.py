from django.urls import path
from . import views

app_name = 'rides'

urlpatterns = [
    path('requests/', views.create_request, name='create-request'),
    path('dispatch/', views.dispatch_drivers, name='dispatch'),
    path('pickup/', views.pickup, name='pickup'),
    path('was-dispatched/', views.dispatch_lookup, name='was-dispatched'),
]
