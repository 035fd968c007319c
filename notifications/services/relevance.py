"""
NOTIFICATIONS App - Recipient Relevance

Pure computation of who must hear about an order change:
the buyer, the sellers of the changed items, the couriers serving
those sellers, and the administrators. The acting user is removed
from every role.

No database or network access here; `courier_directory` is the
separate loader for the seller → courier relation.
"""

from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Iterable, Iterator, Mapping, Optional, Set, Tuple

ROLE_BUYER = 'buyer'
ROLE_SELLER = 'seller'
ROLE_DELIVERY = 'delivery'
ROLE_ADMIN = 'admin'

ROLES = (ROLE_BUYER, ROLE_SELLER, ROLE_DELIVERY, ROLE_ADMIN)


@dataclass(frozen=True)
class ItemSnapshot:
    product_key: str
    seller_key: str
    quantity: int = 1


@dataclass(frozen=True)
class OrderSnapshot:
    order_key: str
    buyer_key: str
    items: Tuple[ItemSnapshot, ...] = ()

    @property
    def seller_keys(self) -> Set[str]:
        return {item.seller_key for item in self.items}


@dataclass(frozen=True)
class ItemChange:
    product_key: str
    new_status: str = ''


@dataclass(frozen=True)
class Recipients:
    buyer_keys: FrozenSet[str] = field(default_factory=frozenset)
    seller_keys: FrozenSet[str] = field(default_factory=frozenset)
    delivery_keys: FrozenSet[str] = field(default_factory=frozenset)
    admin_keys: FrozenSet[str] = field(default_factory=frozenset)

    def for_role(self, role: str) -> FrozenSet[str]:
        return getattr(self, f"{role}_keys")

    def by_role(self) -> Iterator[Tuple[str, FrozenSet[str]]]:
        for role in ROLES:
            yield role, self.for_role(role)

    @property
    def is_empty(self) -> bool:
        return not any(keys for _, keys in self.by_role())


class RelevanceResolver:
    """Computes the role-partitioned recipients of an order event."""

    def resolve(
        self,
        order: OrderSnapshot,
        changed_items: Iterable[ItemChange],
        actor_key: Optional[str],
        couriers_by_seller: Optional[Mapping[str, Iterable[str]]] = None,
        admin_keys: Iterable[str] = ()
    ) -> Recipients:
        """
        Args:
            order: Order with its items
            changed_items: Items whose status changed (unknown products ignored)
            actor_key: User who caused the change
            couriers_by_seller: Active couriers of each seller
            admin_keys: Administrators to always include

        Returns:
            Recipients, none of which contains actor_key
        """
        couriers_by_seller = couriers_by_seller or {}
        changed = {change.product_key for change in changed_items}

        affected_sellers = {
            item.seller_key
            for item in order.items
            if item.product_key in changed and item.seller_key
        }

        couriers: Set[str] = set()
        for seller_key in affected_sellers:
            couriers.update(couriers_by_seller.get(seller_key, ()))

        def without_actor(keys: Iterable[str]) -> FrozenSet[str]:
            return frozenset(key for key in keys if key and key != actor_key)

        return Recipients(
            buyer_keys=without_actor([order.buyer_key]),
            seller_keys=without_actor(affected_sellers),
            delivery_keys=without_actor(couriers),
            admin_keys=without_actor(admin_keys),
        )


def courier_directory(seller_keys: Iterable[str]) -> Dict[str, Set[str]]:
    """Active couriers per seller, loaded in one query."""
    from orders.models import SupplierDelivery

    directory: Dict[str, Set[str]] = {}
    keys = set(seller_keys)
    if not keys:
        return directory

    rows = SupplierDelivery.objects.filter(
        seller_key__in=keys,
        is_active=True
    ).values_list('seller_key', 'delivery_key')
    for seller_key, delivery_key in rows:
        directory.setdefault(seller_key, set()).add(delivery_key)
    return directory


def snapshot_order(order) -> OrderSnapshot:
    """Build a snapshot from an orders.Order instance."""
    return OrderSnapshot(
        order_key=order.order_key,
        buyer_key=order.buyer_key,
        items=tuple(
            ItemSnapshot(item.product_key, item.seller_key, item.quantity)
            for item in order.items.all()
        ),
    )


relevance_resolver = RelevanceResolver()
