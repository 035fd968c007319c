"""
Notifications App URL Configuration
"""

from django.urls import path
from . import views

urlpatterns = [
    path('tokens/', views.tokens_view, name='push-tokens'),
    path('devices/setup/', views.device_setup_view, name='device-setup'),
    path('notifications/store-events/', views.store_event_view, name='notifications-store-events'),
    path('notifications/received/', views.received_view, name='notifications-received'),
    path('notifications/log/', views.log_view, name='notifications-log'),
]
