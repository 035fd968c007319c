"""
Orders App URL Configuration
"""

from django.urls import path
from . import views

urlpatterns = [
    path('orders/<str:order_key>/status/', views.order_status, name='order-status'),
    path('orders/<str:order_key>/items/status/', views.update_item_status, name='order-item-status'),
    path('orders/<str:order_key>/step/', views.transition_step, name='order-step'),
]
