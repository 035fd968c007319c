"""
BAZAAR Main URL Configuration
"""

from django.contrib import admin
from django.urls import path, include
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import AllowAny
from rest_framework.response import Response


# ===========================================
# ADMIN SITE CUSTOMIZATION
# ===========================================
admin.site.site_header = "Bazaar Control Tower"
admin.site.site_title = "Bazaar Admin"
admin.site.index_title = "Orders & Notifications"


@api_view(['GET'])
@permission_classes([AllowAny])
def api_root(request):
    """API Root endpoint with available routes."""
    return Response({
        'name': 'Bazaar API',
        'version': '1.0.0',
        'endpoints': {
            'orders': {
                'item_status': '/api/orders/<order_key>/items/status/',
                'step': '/api/orders/<order_key>/step/',
            },
            'tokens': '/api/tokens/',
            'device_setup': '/api/devices/setup/',
            'notifications': {
                'store_events': '/api/notifications/store-events/',
                'received': '/api/notifications/received/',
                'log': '/api/notifications/log/',
            },
            'delivery_estimate': '/api/delivery/estimate/',
        }
    })


urlpatterns = [
    # Admin
    path('admin/', admin.site.urls),

    # API Root
    path('api/', api_root, name='api-root'),

    # App URLs
    path('api/', include('orders.urls')),
    path('api/', include('notifications.urls')),
    path('api/', include('logistics.urls')),
]
