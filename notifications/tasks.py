"""
NOTIFICATIONS App - Celery Tasks

Background submission of the notification fan-out and of device setup.
Callers get an AsyncResult they may observe or ignore; the work runs
to completion either way.

The engine only raises before its first push goes out, so a retry
never notifies the same device twice.
"""

import logging
from typing import Dict, List, Optional

from celery import shared_task

logger = logging.getLogger(__name__)


# ===========================================
# FAN-OUT TASKS
# ===========================================

@shared_task(
    bind=True,
    max_retries=3,
    default_retry_delay=30
)
def dispatch_step_notifications(
    self,
    event_key: str,
    step_label: str,
    order_key: str,
    changes: List[Dict[str, str]],
    actor_key: Optional[str],
    actor_tokens: Optional[List[str]] = None
):
    """
    Announce an order step / item status change (async).

    Args:
        event_key: e.g. 'step-confirmed'
        step_label: Step name used in the message
        order_key: Order concerned
        changes: [{'product_key': ..., 'status': ...}]
        actor_key: User who made the change
        actor_tokens: Push tokens held by the acting device

    Returns:
        DispatchReport as a dict, None if the order vanished
    """
    from orders.models import Order
    from .services.dispatch import get_dispatch_engine
    from .services.relevance import ItemChange, snapshot_order

    try:
        order = Order.objects.prefetch_related('items').get(order_key=order_key)
    except Order.DoesNotExist:
        logger.warning(f"[TASK] Order {order_key} not found, '{event_key}' dropped")
        return None

    try:
        report = get_dispatch_engine().notify_on_step_activation(
            event_key,
            step_label,
            snapshot_order(order),
            [ItemChange(change['product_key'], change.get('status', '')) for change in changes],
            actor_key,
            actor_tokens or (),
        )
        return report.to_dict()

    except Exception as e:
        logger.error(f"[TASK] Error dispatching '{event_key}' for order {order_key}: {e}")
        raise self.retry(exc=e)


@shared_task(
    bind=True,
    max_retries=3,
    default_retry_delay=30
)
def dispatch_purchase_notifications(self, order_key: str, actor_tokens: Optional[List[str]] = None):
    """Announce a new order to its sellers and the administrators (async)."""
    from orders.models import Order
    from .services.dispatch import get_dispatch_engine
    from .services.relevance import snapshot_order

    try:
        order = Order.objects.prefetch_related('items').get(order_key=order_key)
    except Order.DoesNotExist:
        logger.warning(f"[TASK] Order {order_key} not found, purchase not announced")
        return None

    try:
        return get_dispatch_engine().notify_purchase(snapshot_order(order), actor_tokens or ()).to_dict()
    except Exception as e:
        logger.error(f"[TASK] Error announcing purchase {order_key}: {e}")
        raise self.retry(exc=e)


@shared_task(
    bind=True,
    max_retries=3,
    default_retry_delay=30
)
def dispatch_store_notification(
    self,
    event_key: str,
    seller_key: str,
    actor_key: Optional[str],
    product_name: str = ''
):
    """Catalogue event for a seller and the administrators (async)."""
    from .services.dispatch import get_dispatch_engine

    try:
        return get_dispatch_engine().notify_store_event(
            event_key, seller_key, actor_key, product_name
        ).to_dict()
    except Exception as e:
        logger.error(f"[TASK] Error dispatching store event '{event_key}': {e}")
        raise self.retry(exc=e)


# ===========================================
# DEVICE SETUP
# ===========================================

@shared_task
def setup_device(session_key: str, user_key: Optional[str], token: str, platform: str) -> bool:
    """Register a session's device; retries happen inside the service."""
    from .services.setup import DeviceSetupService

    return DeviceSetupService().setup(session_key, user_key, token, platform)
