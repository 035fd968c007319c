"""
NOTIFICATIONS App - Event/Role Configuration

Decides whether an event is announced to a role. The configuration
document looks like:

    {
        "step-confirmed": {"category": "step", "buyer": true, "seller": true,
                           "delivery": true, "admin": true},
        "item-accepted": {"category": "store", "seller": true, "admin": true}
    }

Resolution order:
1. Remote document (NOTIFICATION_CONFIG_URL)
2. Local document (NOTIFICATION_CONFIG_PATH)
3. CRITICAL_DEFAULTS for events that must not go silent
4. Enabled, with a warning

The loaded document is kept for the life of the store instance;
call invalidate() after editing it.
"""

import json
import logging
from typing import Dict, Optional

import requests
from django.conf import settings

from .relevance import ROLE_ADMIN, ROLE_BUYER, ROLE_DELIVERY, ROLE_SELLER

logger = logging.getLogger(__name__)

CATEGORY_STEP = 'step'
CATEGORY_STORE = 'store'

STORE_ROLES = {ROLE_ADMIN, ROLE_SELLER}

CRITICAL_DEFAULTS: Dict[str, Dict[str, bool]] = {
    'purchase': {ROLE_BUYER: False, ROLE_SELLER: True, ROLE_DELIVERY: False, ROLE_ADMIN: True},
}

# Store events exist even when the document forgets them
STORE_EVENTS = {
    'new-item-added': {'category': CATEGORY_STORE, ROLE_ADMIN: True, ROLE_SELLER: True},
    'item-accepted': {'category': CATEGORY_STORE, ROLE_ADMIN: True, ROLE_SELLER: True},
    'item-updated': {'category': CATEGORY_STORE, ROLE_ADMIN: True, ROLE_SELLER: True},
}


class NotificationConfigStore:
    """Process-scoped cache of the notification configuration document."""

    def __init__(self, url: Optional[str] = None, path: Optional[str] = None, timeout: Optional[int] = None):
        self.url = url if url is not None else settings.NOTIFICATION_CONFIG_URL
        self.path = path if path is not None else settings.NOTIFICATION_CONFIG_PATH
        self.timeout = timeout or settings.NOTIFICATION_CONFIG_TIMEOUT
        self._config: Optional[dict] = None
        self._loaded = False

    # ============================================
    # Lifecycle
    # ============================================

    def load(self) -> Optional[dict]:
        """Fetch the document (remote, then local). None when neither is readable."""
        config = self._fetch_remote() or self._read_local()
        if config is not None:
            for event_key, defaults in STORE_EVENTS.items():
                config.setdefault(event_key, dict(defaults))
        else:
            logger.warning("[NOTIF_CONFIG] No configuration available, using built-in defaults")

        self._config = config
        self._loaded = True
        return config

    def invalidate(self) -> None:
        self._config = None
        self._loaded = False

    @property
    def config(self) -> Optional[dict]:
        if not self._loaded:
            self.load()
        return self._config

    def _fetch_remote(self) -> Optional[dict]:
        if not self.url:
            return None
        try:
            response = requests.get(self.url, timeout=self.timeout)
            response.raise_for_status()
            data = response.json()
        except (requests.RequestException, ValueError) as e:
            logger.warning(f"[NOTIF_CONFIG] Remote configuration unavailable: {e}")
            return None

        if not isinstance(data, dict):
            logger.warning("[NOTIF_CONFIG] Remote configuration is not an object, ignoring it")
            return None

        logger.info(f"[NOTIF_CONFIG] Loaded remote configuration ({len(data)} events)")
        return data

    def _read_local(self) -> Optional[dict]:
        if not self.path:
            return None
        try:
            with open(self.path, encoding='utf-8') as handle:
                data = json.load(handle)
        except (OSError, ValueError) as e:
            logger.warning(f"[NOTIF_CONFIG] Local configuration unreadable ({self.path}): {e}")
            return None

        if not isinstance(data, dict):
            return None

        logger.info(f"[NOTIF_CONFIG] Loaded local configuration ({len(data)} events)")
        return data

    # ============================================
    # Queries
    # ============================================

    def category(self, event_key: str) -> str:
        entry = (self.config or {}).get(event_key) or STORE_EVENTS.get(event_key) or {}
        return entry.get('category', CATEGORY_STEP)

    def is_enabled(self, event_key: str, role: str) -> bool:
        """
        Whether `event_key` is announced to `role`.

        Store events only ever reach admins and sellers.
        """
        if self.category(event_key) == CATEGORY_STORE and role not in STORE_ROLES:
            return False

        entry = (self.config or {}).get(event_key)
        if isinstance(entry, dict) and isinstance(entry.get(role), bool):
            return entry[role]

        critical = CRITICAL_DEFAULTS.get(event_key, {})
        if role in critical:
            return critical[role]

        logger.warning(
            f"[NOTIF_CONFIG] No setting for '{event_key}' / {role}, notifying by default"
        )
        return True


notification_config = NotificationConfigStore()
