"""
Logistics App Views - Delivery estimation API
"""

import logging

from django.conf import settings
from rest_framework import permissions, status
from rest_framework.response import Response
from rest_framework.views import APIView

from .serializers import DeliveryEstimateRequestSerializer
from .services.estimator import EstimateOptions, delivery_estimator
from .services.routing import GeoPoint

logger = logging.getLogger(__name__)


class DeliveryEstimateAPIView(APIView):
    """
    Delivery fee shown at checkout.

    POST /api/delivery/estimate/

    Request body:
    {
        "customer_lat": 33.51, "customer_lng": 36.29,
        "items": [{"seller_key": "s1", "seller_lat": 33.5, "seller_lng": 36.3,
                   "price": 120, "quantity": 2, "heavy_load": false}],
        "weather": "normal", "location_zone": "city", "eta_type": "normal",
        "vehicle": "bike", "driver_rating": 4.8
    }

    Response:
    {
        "cost": 42.5, "distance_km": 3.1,
        "route": [...], "legs": [...], "breakdown": {...}, "error": null
    }
    """

    permission_classes = [permissions.AllowAny]

    def post(self, request):
        serializer = DeliveryEstimateRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        depot = GeoPoint(settings.DELIVERY_DEPOT_LAT, settings.DELIVERY_DEPOT_LNG, key='depot', name='Office')
        customer = GeoPoint(data['customer_lat'], data['customer_lng'], key='customer', name='Customer')
        options = EstimateOptions(
            weather=data['weather'],
            location_zone=data['location_zone'],
            eta_type=data['eta_type'],
            vehicle=data['vehicle'],
            driver_rating=data['driver_rating'],
        )

        estimate = delivery_estimator.estimate_cart(depot, customer, data['items'], options)
        if estimate.error:
            logger.warning(f"[ESTIMATOR] Returning zero quote: {estimate.error}")

        return Response(estimate.to_dict(), status=status.HTTP_200_OK)
