"""
Logistics App Serializers - Delivery estimation
"""

from rest_framework import serializers


class CartItemSerializer(serializers.Serializer):
    """One cart line as sent by the checkout page."""

    product_key = serializers.CharField(max_length=64, required=False, allow_blank=True)
    seller_key = serializers.CharField(max_length=64, required=False, allow_blank=True)
    seller_name = serializers.CharField(max_length=255, required=False, allow_blank=True)
    seller_lat = serializers.FloatField(required=False, allow_null=True)
    seller_lng = serializers.FloatField(required=False, allow_null=True)
    price = serializers.DecimalField(max_digits=12, decimal_places=2, required=False, default=0)
    quantity = serializers.IntegerField(min_value=1, required=False, default=1)
    heavy_load = serializers.BooleanField(required=False, default=False)


class DeliveryEstimateRequestSerializer(serializers.Serializer):
    """Payload of POST /api/delivery/estimate/."""

    customer_lat = serializers.FloatField(min_value=-90, max_value=90)
    customer_lng = serializers.FloatField(min_value=-180, max_value=180)
    items = CartItemSerializer(many=True)

    weather = serializers.CharField(max_length=32, required=False, default='normal')
    location_zone = serializers.CharField(max_length=32, required=False, default='city')
    eta_type = serializers.CharField(max_length=32, required=False, default='normal')
    vehicle = serializers.CharField(max_length=32, required=False, default='bike')
    driver_rating = serializers.FloatField(min_value=0, max_value=5, required=False, default=5.0)
