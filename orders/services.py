"""
ORDERS App - Ledger Service

Applies item-level and order-wide status changes to the ledger and
hands the resulting notification events to the background fan-out.

Ledger writes happen under a row lock; notifications are submitted only
once the transaction has committed, so a rolled-back update never
notifies anyone.
"""

import logging
from collections import OrderedDict
from typing import Dict, Iterable, List, Optional, Sequence

from django.db import transaction

from .exceptions import OrderNotFoundError
from .ledger import StatusRecord, status_codec
from .models import ITEM_STATUS_STEPS, ItemStatus, Order, OrderStep

logger = logging.getLogger(__name__)


# Activating a step also reports items that were individually pulled out of the flow
SUB_STEP_EVENTS = {
    OrderStep.REVIEW: (OrderStep.CANCELLED, ItemStatus.CANCELLED),
    OrderStep.CONFIRMED: (OrderStep.REJECTED, ItemStatus.REJECTED),
    OrderStep.DELIVERED: (OrderStep.RETURNED, ItemStatus.RETURNED),
}

# Items in these states no longer follow the order-wide step
DETACHED_ITEM_STATUSES = {
    ItemStatus.CANCELLED.value,
    ItemStatus.REJECTED.value,
    ItemStatus.RETURNED.value,
}


class OrderLedgerService:
    """Status transitions for orders and their items."""

    codec = status_codec

    @classmethod
    def _locked_order(cls, order_key: str) -> Order:
        try:
            return Order.objects.select_for_update().get(order_key=order_key)
        except Order.DoesNotExist:
            raise OrderNotFoundError(order_key)

    @classmethod
    def update_item_statuses(
        cls,
        order_key: str,
        changes: Sequence[Dict[str, str]],
        actor_key: str,
        actor_tokens: Iterable[str] = ()
    ) -> StatusRecord:
        """
        Override the status of one or more items of an order.

        Args:
            order_key: Order to update
            changes: [{'product_key': ..., 'status': ...}, ...]
            actor_key: User performing the change (never notified)
            actor_tokens: Push tokens held by the acting device

        Returns:
            The decoded ledger after the update

        Raises:
            OrderNotFoundError: Unknown order
            ValueError: Unknown product or status
        """
        by_status: "OrderedDict[str, List[str]]" = OrderedDict()

        with transaction.atomic():
            order = cls._locked_order(order_key)
            product_keys = set(order.items.values_list('product_key', flat=True))

            ledger = order.status_ledger
            for change in changes:
                product_key = change['product_key']
                new_status = change['status']
                if product_key not in product_keys:
                    raise ValueError(f"Product {product_key} is not part of order {order_key}")
                if new_status not in ITEM_STATUS_STEPS:
                    raise ValueError(f"Unknown item status: {new_status}")

                ledger = cls.codec.update_item_status(ledger, product_key, new_status)
                by_status.setdefault(new_status, []).append(product_key)

            order.status_ledger = ledger
            order.save(update_fields=['status_ledger', 'updated_at'])

        logger.info(
            f"[LEDGER] Order {order_key}: {len(changes)} item(s) updated by {actor_key}"
        )

        for new_status, products in by_status.items():
            step = ITEM_STATUS_STEPS[new_status]
            cls._submit_step_event(
                order_key,
                step,
                [{'product_key': key, 'status': new_status} for key in products],
                actor_key,
                actor_tokens,
            )

        return cls.codec.decode(ledger)

    @classmethod
    def transition_step(
        cls,
        order_key: str,
        step: OrderStep,
        actor_key: str,
        actor_tokens: Iterable[str] = ()
    ) -> StatusRecord:
        """
        Move the whole order to a new step.

        Every item still following the order is announced with the step
        event; items individually cancelled/rejected/returned are announced
        with the matching sub-step event.
        """
        step = OrderStep(step)

        with transaction.atomic():
            order = cls._locked_order(order_key)
            order.status_ledger = cls.codec.set_step(order.status_ledger, step.value)
            order.save(update_fields=['status_ledger', 'updated_at'])
            record = cls.codec.decode(order.status_ledger)
            product_keys = list(order.items.values_list('product_key', flat=True))

        logger.info(f"[LEDGER] Order {order_key} entered step {step.label} (by {actor_key})")

        following = [
            {'product_key': key, 'status': record.item_status(key) or ''}
            for key in product_keys
            if record.item_status(key) not in DETACHED_ITEM_STATUSES
        ]
        if following:
            cls._submit_step_event(order_key, step, following, actor_key, actor_tokens)

        sub_step = SUB_STEP_EVENTS.get(step)
        if sub_step:
            sub_event_step, item_status = sub_step
            detached = [
                {'product_key': key, 'status': item_status.value}
                for key in product_keys
                if record.item_status(key) == item_status.value
            ]
            if detached:
                cls._submit_step_event(order_key, sub_event_step, detached, actor_key, actor_tokens)

        return record

    @classmethod
    def record_purchase(cls, order_key: str, actor_tokens: Iterable[str] = ()) -> None:
        """Announce a freshly placed order once its rows are committed."""
        from notifications.tasks import dispatch_purchase_notifications

        tokens = list(actor_tokens)
        transaction.on_commit(
            lambda: dispatch_purchase_notifications.delay(order_key, tokens)
        )

    @staticmethod
    def _submit_step_event(
        order_key: str,
        step: OrderStep,
        changes: List[Dict[str, str]],
        actor_key: Optional[str],
        actor_tokens: Iterable[str]
    ) -> None:
        # Import here to avoid circular imports
        from notifications.tasks import dispatch_step_notifications

        tokens = list(actor_tokens)
        transaction.on_commit(
            lambda: dispatch_step_notifications.delay(
                step.event_key, step.label, order_key, changes, actor_key, tokens
            )
        )
