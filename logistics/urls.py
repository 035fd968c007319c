"""
Logistics App URLs
"""

from django.urls import path

from .views import DeliveryEstimateAPIView

urlpatterns = [
    path('delivery/estimate/', DeliveryEstimateAPIView.as_view(), name='delivery-estimate'),
]
