"""
NOTIFICATIONS App - Device Setup

Registers a device with the push provider and stores its token,
once per session:
- guests are never registered
- overlapping calls for the same session collapse into one
- up to PUSH_SETUP_MAX_ATTEMPTS attempts, waiting attempt × backoff between them
"""

import logging
import time
from typing import Callable, Optional

from django.conf import settings
from django.core.cache import cache

from ..exceptions import InvalidPushTokenError
from ..providers import PushProvider, get_push_provider
from .tokens import TokenRegistry, is_valid_token, token_registry

logger = logging.getLogger(__name__)


class DeviceSetupService:
    """Provider registration + token storage for a session's device."""

    DONE_KEY = 'push_setup_done:{session}'
    IN_FLIGHT_KEY = 'push_setup_in_flight:{session}'

    def __init__(
        self,
        provider: Optional[PushProvider] = None,
        registry: Optional[TokenRegistry] = None,
        sleep: Callable[[float], None] = time.sleep,
        max_attempts: Optional[int] = None,
        backoff_seconds: Optional[int] = None
    ):
        self.provider = provider or get_push_provider()
        self.registry = registry or token_registry
        self.sleep = sleep
        self.max_attempts = max_attempts or settings.PUSH_SETUP_MAX_ATTEMPTS
        self.backoff_seconds = settings.PUSH_SETUP_BACKOFF_SECONDS if backoff_seconds is None else backoff_seconds

    def is_done(self, session_key: str) -> bool:
        return bool(cache.get(self.DONE_KEY.format(session=session_key)))

    def setup(self, session_key: str, user_key: Optional[str], token: str, platform: str) -> bool:
        """
        Register the device of a session.

        Returns:
            True when the device is registered (now or earlier in the session)
        """
        if not user_key or user_key == settings.GUEST_USER_KEY:
            logger.info("[PUSH_SETUP] Guest session, skipping device setup")
            return False

        if not is_valid_token(token):
            logger.warning(f"[PUSH_SETUP] No usable token for {user_key}, skipping device setup")
            return False

        if self.is_done(session_key):
            return True

        in_flight_key = self.IN_FLIGHT_KEY.format(session=session_key)
        lock_ttl = self.max_attempts * (self.max_attempts + 1) * max(self.backoff_seconds, 1) + 60
        if not cache.add(in_flight_key, True, timeout=lock_ttl):
            logger.info(f"[PUSH_SETUP] Setup already running for session {session_key[:8]}")
            return False

        try:
            return self._attempt(session_key, user_key, token, platform)
        finally:
            cache.delete(in_flight_key)

    def _attempt(self, session_key: str, user_key: str, token: str, platform: str) -> bool:
        for attempt in range(1, self.max_attempts + 1):
            try:
                self.provider.register_device(token, platform)
                self.registry.upsert(user_key, token, platform)
            except InvalidPushTokenError as e:
                logger.warning(f"[PUSH_SETUP] Unusable token for {user_key}: {e}")
                return False
            except Exception as e:
                logger.error(
                    f"[PUSH_SETUP] Attempt {attempt}/{self.max_attempts} failed for {user_key}: {e}"
                )
                if attempt < self.max_attempts:
                    self.sleep(attempt * self.backoff_seconds)
                continue

            cache.set(
                self.DONE_KEY.format(session=session_key),
                True,
                timeout=settings.PUSH_SETUP_SESSION_TTL
            )
            logger.info(f"[PUSH_SETUP] Device registered for {user_key} on attempt {attempt}")
            return True

        logger.warning(
            f"[PUSH_SETUP] Giving up after {self.max_attempts} attempts for {user_key}; "
            f"no push for this session"
        )
        return False
