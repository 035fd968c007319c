"""
NOTIFICATIONS App - Dispatch Engine

Fan-out of an order event to everyone concerned.

Architecture:
    notify_on_step_activation(event, order, changed items, actor)
        → RelevanceResolver: buyer / sellers / couriers / admins, minus actor
        → NotificationConfigStore: is the event enabled for the role?
        → TokenRegistry: push tokens of the role's users
        → drop the actor device's own tokens
        → PushProvider.send_batch (concurrent, best effort)
        → NotificationInbox: one 'sent' entry for the whole call

Per-token delivery failures are logged, never raised. Nothing is
raised once a batch has been sent.
"""

import logging
from dataclasses import dataclass, field, asdict
from typing import Dict, Iterable, Mapping, Optional, Set, Tuple

from django.conf import settings
from django.db import DatabaseError

from ..providers import PushProvider, get_push_provider
from .config import NotificationConfigStore, notification_config
from .inbox import NotificationInbox, notification_inbox
from .messages import MessageCatalog, message_catalog, order_reference
from .relevance import (
    ROLE_ADMIN,
    ROLE_SELLER,
    ItemChange,
    OrderSnapshot,
    RelevanceResolver,
    courier_directory,
    relevance_resolver,
)
from .tokens import TokenRegistry, is_valid_token, token_registry

logger = logging.getLogger(__name__)

SKIP_DISABLED = 'disabled'
SKIP_NO_TOKENS = 'no_tokens'
SKIP_SELF_ONLY = 'self_only'
SKIP_ERROR = 'error'


@dataclass
class RoleDispatch:
    recipients: int = 0
    tokens: int = 0
    sent: int = 0
    failed: int = 0


@dataclass
class DispatchReport:
    """Outcome of one fan-out call."""
    event_key: str
    order_key: Optional[str] = None
    roles: Dict[str, RoleDispatch] = field(default_factory=dict)
    skipped: Dict[str, str] = field(default_factory=dict)
    log_entry_id: Optional[int] = None

    @property
    def sent(self) -> int:
        return sum(role.sent for role in self.roles.values())

    @property
    def failed(self) -> int:
        return sum(role.failed for role in self.roles.values())

    @property
    def targeted(self) -> int:
        return sum(role.tokens for role in self.roles.values())

    def to_dict(self) -> dict:
        data = asdict(self)
        data.update({'sent': self.sent, 'failed': self.failed, 'targeted': self.targeted})
        return data


class DispatchEngine:
    """
    Orchestrates order notifications.

    Every collaborator can be injected; defaults are the process-wide
    instances configured from settings.
    """

    def __init__(
        self,
        resolver: Optional[RelevanceResolver] = None,
        registry: Optional[TokenRegistry] = None,
        config: Optional[NotificationConfigStore] = None,
        messages: Optional[MessageCatalog] = None,
        provider: Optional[PushProvider] = None,
        inbox: Optional[NotificationInbox] = None,
        couriers=courier_directory,
        admin_keys: Optional[Iterable[str]] = None,
        guest_key: Optional[str] = None
    ):
        self.resolver = resolver or relevance_resolver
        self.registry = registry or token_registry
        self.config = config or notification_config
        self.messages = messages or message_catalog
        self.provider = provider or get_push_provider()
        self.inbox = inbox or notification_inbox
        self.couriers = couriers
        self.admin_keys = list(settings.NOTIFICATION_ADMIN_KEYS if admin_keys is None else admin_keys)
        self.guest_key = settings.GUEST_USER_KEY if guest_key is None else guest_key

    def is_anonymous(self, actor_key: Optional[str]) -> bool:
        return not actor_key or actor_key == self.guest_key

    # ============================================
    # Entry points
    # ============================================

    def notify_on_step_activation(
        self,
        event_key: str,
        step_label: str,
        order: OrderSnapshot,
        changed_items: Iterable[ItemChange],
        actor_key: Optional[str],
        actor_tokens: Iterable[str] = ()
    ) -> DispatchReport:
        """
        Announce an order step (or item status) change.

        Args:
            event_key: Notification event, e.g. 'step-confirmed'
            step_label: Human readable step name for the templates
            order: Order snapshot
            changed_items: Items concerned by the change
            actor_key: User who made the change (never notified)
            actor_tokens: Web and native tokens held by the acting device

        Returns:
            DispatchReport
        """
        report = DispatchReport(event_key=event_key, order_key=order.order_key)

        if self.is_anonymous(actor_key):
            logger.info(f"[DISPATCH] Anonymous actor, '{event_key}' not dispatched")
            return report

        changed_items = list(changed_items)
        affected_sellers = {
            item.seller_key
            for item in order.items
            if item.product_key in {change.product_key for change in changed_items}
        }
        recipients = self.resolver.resolve(
            order,
            changed_items,
            actor_key,
            couriers_by_seller=self.couriers(affected_sellers) if affected_sellers else {},
            admin_keys=self.admin_keys,
        )

        context = {
            'order_ref': order_reference(order.order_key),
            'step_name': step_label,
        }
        self._fan_out(report, recipients.by_role(), actor_tokens, context, related_party={
            'order_key': order.order_key,
            'actor_key': actor_key,
        })
        return report

    def notify_purchase(self, order: OrderSnapshot, actor_tokens: Iterable[str] = ()) -> DispatchReport:
        """New order placed by its buyer: every seller of the order hears about it."""
        return self.notify_on_step_activation(
            'purchase',
            'Purchase',
            order,
            [ItemChange(item.product_key) for item in order.items],
            order.buyer_key,
            actor_tokens,
        )

    def notify_store_event(
        self,
        event_key: str,
        seller_key: str,
        actor_key: Optional[str],
        product_name: str = '',
        actor_tokens: Iterable[str] = ()
    ) -> DispatchReport:
        """Catalogue event (product added/accepted/updated): seller and admins only."""
        report = DispatchReport(event_key=event_key)
        if self.is_anonymous(actor_key):
            return report

        def others(keys):
            return {key for key in keys if key and key != actor_key}

        roles = [
            (ROLE_SELLER, others([seller_key])),
            (ROLE_ADMIN, others(self.admin_keys)),
        ]
        self._fan_out(report, roles, actor_tokens, {'product_name': product_name}, related_party={
            'seller_key': seller_key,
            'actor_key': actor_key,
        })
        return report

    # ============================================
    # Fan-out
    # ============================================

    def _fan_out(
        self,
        report: DispatchReport,
        roles: Iterable,
        actor_tokens: Iterable[str],
        context: Mapping[str, str],
        related_party: Dict[str, Optional[str]]
    ) -> None:
        """
        Push to each role in turn, then write the 'sent' audit entry.

        Errors raised before the first batch went out propagate so the
        caller may retry. Once a batch has been sent, errors are logged
        and the remaining roles still go out: a retry would push the
        same message twice.
        """
        own_tokens: Set[str] = {token for token in actor_tokens if is_valid_token(token)}
        event_key = report.event_key
        party = {key: value for key, value in related_party.items() if value}
        first_message = None

        for role, keys in roles:
            try:
                message = self._dispatch_role(report, role, keys, own_tokens, context, party)
            except Exception as e:
                if not report.roles:
                    raise
                logger.error(f"[DISPATCH] '{event_key}' → {role}: aborted after delivery started: {e}")
                report.skipped[role] = SKIP_ERROR
                continue
            if first_message is None:
                first_message = message

        if first_message is None:
            logger.info(f"[DISPATCH] '{event_key}': nobody to notify ({report.skipped or 'no recipients'})")
            return

        try:
            entry = self.inbox.record_sent(
                first_message[0],
                first_message[1],
                related_party=party,
                payload={
                    'event': event_key,
                    'roles': {role: asdict(outcome) for role, outcome in report.roles.items()},
                },
            )
        except DatabaseError as e:
            logger.error(f"[DISPATCH] '{event_key}': {report.sent} pushes sent but audit entry not stored: {e}")
            return
        report.log_entry_id = entry.pk

    def _dispatch_role(
        self,
        report: DispatchReport,
        role: str,
        keys,
        own_tokens: Set[str],
        context: Mapping[str, str],
        party: Dict[str, str]
    ) -> Optional[Tuple[str, str]]:
        """Send one role's batch. Returns the rendered message, None when skipped."""
        event_key = report.event_key
        if not keys:
            return None

        if not self.config.is_enabled(event_key, role):
            report.skipped[role] = SKIP_DISABLED
            return None

        tokens = self.registry.resolve(keys)
        if not tokens:
            report.skipped[role] = SKIP_NO_TOKENS
            return None

        targets = [token for token in tokens if token not in own_tokens]
        if not targets:
            report.skipped[role] = SKIP_SELF_ONLY
            return None

        title, body = self.messages.render(event_key, role, **context)
        results = self.provider.send_batch(
            targets, title, body, data={'event': event_key, 'role': role, **party}
        )
        outcome = RoleDispatch(recipients=len(keys), tokens=len(targets))
        outcome.sent = sum(1 for result in results if result.success)
        outcome.failed = len(results) - outcome.sent
        report.roles[role] = outcome
        self._log_outcome(event_key, role, outcome, results)
        return title, body

    @staticmethod
    def _log_outcome(event_key: str, role: str, outcome: RoleDispatch, results) -> None:
        if outcome.failed == 0:
            logger.info(f"[DISPATCH] '{event_key}' → {role}: {outcome.sent} sent")
            return

        for result in results:
            if not result.success:
                logger.error(
                    f"[DISPATCH] '{event_key}' → {role}: token {result.token[:12]}… failed: {result.error}"
                )

        if outcome.sent:
            logger.warning(
                f"[DISPATCH] '{event_key}' → {role}: partial delivery, "
                f"{outcome.sent}/{outcome.tokens} succeeded"
            )
        else:
            logger.error(f"[DISPATCH] '{event_key}' → {role}: all {outcome.tokens} sends failed")


_default_engine: Optional[DispatchEngine] = None


def get_dispatch_engine() -> DispatchEngine:
    """Process-wide engine built from settings."""
    global _default_engine
    if _default_engine is None:
        _default_engine = DispatchEngine()
    return _default_engine
