"""
ORDERS App - Orders, Items & Courier Relations for BAZAAR

Handles: Orders, their items and the encoded status ledger,
plus the seller → courier relation used to address notifications.
"""

from decimal import Decimal
from django.db import models


class OrderStep(models.IntegerChoices):
    """Order-wide lifecycle stage stored at the head of the ledger."""
    REVIEW = 0, 'Review'
    CONFIRMED = 1, 'Confirmed'
    SHIPPED = 2, 'Shipped'
    DELIVERED = 3, 'Delivered'
    CANCELLED = 31, 'Cancelled'
    REJECTED = 32, 'Rejected'
    RETURNED = 33, 'Returned'

    @property
    def event_key(self) -> str:
        """Notification event fired when this step becomes active."""
        return f"step-{self.name.lower()}"

    @classmethod
    def from_ledger(cls, step_id: str):
        """Map a ledger step id ('2') back to a step, None if unknown."""
        try:
            return cls(int(step_id))
        except (TypeError, ValueError):
            return None


class ItemStatus(models.TextChoices):
    """Per-item status kept in the ledger overlay."""
    PENDING = 'pending', 'Pending'
    CONFIRMED = 'confirmed', 'Confirmed'
    SHIPPED = 'shipped', 'Shipped'
    DELIVERED = 'delivered', 'Delivered'
    RETURNED = 'returned', 'Returned'
    CANCELLED = 'cancelled', 'Cancelled'
    REJECTED = 'rejected', 'Rejected'

    @property
    def step(self) -> OrderStep:
        """Step whose event announces an item reaching this status."""
        return ITEM_STATUS_STEPS[self.value]


ITEM_STATUS_STEPS = {
    ItemStatus.PENDING.value: OrderStep.REVIEW,
    ItemStatus.CONFIRMED.value: OrderStep.CONFIRMED,
    ItemStatus.SHIPPED.value: OrderStep.SHIPPED,
    ItemStatus.DELIVERED.value: OrderStep.DELIVERED,
    ItemStatus.CANCELLED.value: OrderStep.CANCELLED,
    ItemStatus.REJECTED.value: OrderStep.REJECTED,
    ItemStatus.RETURNED.value: OrderStep.RETURNED,
}


class Order(models.Model):
    """
    A checkout order.

    `status_ledger` holds the encoded StatusRecord (see orders.ledger):
    the order-wide step, when it was entered, and per-item overrides.
    Orders are never deleted, only transitioned.
    """

    order_key = models.CharField(max_length=64, unique=True, verbose_name="Order key")
    buyer_key = models.CharField(max_length=64, db_index=True, verbose_name="Buyer")
    total_amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal('0.00'),
        verbose_name="Total amount"
    )
    status_ledger = models.TextField(blank=True, default='', verbose_name="Status ledger")

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = "Order"
        verbose_name_plural = "Orders"
        ordering = ['-created_at']

    def __str__(self):
        return f"Order #{self.order_key}"


class OrderItem(models.Model):
    """A line of an order. Immutable once the order exists."""

    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name='items')
    product_key = models.CharField(max_length=64, verbose_name="Product")
    seller_key = models.CharField(max_length=64, db_index=True, verbose_name="Seller")
    quantity = models.PositiveIntegerField(default=1)
    note = models.TextField(blank=True, default='')

    class Meta:
        verbose_name = "Order item"
        verbose_name_plural = "Order items"
        unique_together = ['order', 'product_key']

    def __str__(self):
        return f"{self.product_key} x{self.quantity} ({self.order.order_key})"


class SupplierDelivery(models.Model):
    """Courier serving a seller. Only active rows receive order notifications."""

    seller_key = models.CharField(max_length=64, verbose_name="Seller")
    delivery_key = models.CharField(max_length=64, verbose_name="Courier")
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name = "Seller courier"
        verbose_name_plural = "Seller couriers"
        unique_together = ['seller_key', 'delivery_key']
        indexes = [
            models.Index(fields=['seller_key', 'is_active'], name='orders_seller_active_idx'),
        ]

    def __str__(self):
        state = "active" if self.is_active else "inactive"
        return f"{self.seller_key} → {self.delivery_key} ({state})"
