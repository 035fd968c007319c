"""
ORDERS App - Django Admin Configuration
"""

from django.contrib import admin

from .ledger import status_codec
from .models import Order, OrderItem, OrderStep, SupplierDelivery


class OrderItemInline(admin.TabularInline):
    model = OrderItem
    extra = 0
    readonly_fields = ('product_key', 'seller_key', 'quantity', 'note')


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    list_display = ('order_key', 'buyer_key', 'total_amount', 'current_step', 'created_at')
    search_fields = ('order_key', 'buyer_key')
    readonly_fields = ('status_ledger', 'created_at', 'updated_at')
    inlines = [OrderItemInline]

    @admin.display(description="Step")
    def current_step(self, obj):
        step_id = status_codec.decode(obj.status_ledger).step_id
        step = OrderStep.from_ledger(step_id)
        return step.label if step is not None else step_id


@admin.register(SupplierDelivery)
class SupplierDeliveryAdmin(admin.ModelAdmin):
    list_display = ('seller_key', 'delivery_key', 'is_active', 'created_at')
    list_filter = ('is_active',)
    search_fields = ('seller_key', 'delivery_key')
