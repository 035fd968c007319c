"""
NOTIFICATIONS App - Push Token Registry

Keeps the user ↔ device-token pairing one-to-one:
- a user re-registering replaces their previous token
- a device reused by another account moves to that account
"""

import logging
from typing import Dict, Iterable, List

from django.db import DatabaseError, transaction
from django.db.models import Q

from ..exceptions import InvalidPushTokenError, TokenRegistryError
from ..models import PushPlatform, PushToken

logger = logging.getLogger(__name__)

# Placeholders browsers/WebViews hand over when no token exists
SENTINEL_TOKENS = {'', 'undefined', 'null', 'none'}


def is_valid_token(token) -> bool:
    if not isinstance(token, str):
        return False
    return token.strip().lower() not in SENTINEL_TOKENS


class TokenRegistry:
    """Storage of the active push token of each user."""

    def upsert(self, user_key: str, token: str, platform: str = PushPlatform.WEB) -> PushToken:
        """
        Register `token` as the only token of `user_key`.

        Runs as one transaction: drop the user's previous token, drop any
        other owner of this token, insert the new pair. Rows touched are
        locked first so concurrent upserts on the same user or token
        serialize.

        Raises:
            InvalidPushTokenError: Token missing or a placeholder value
            TokenRegistryError: Database failure (nothing was changed)
        """
        if not is_valid_token(token):
            raise InvalidPushTokenError(f"Refusing to register placeholder token {token!r}")
        if not user_key:
            raise InvalidPushTokenError("A user key is required to register a token")

        token = token.strip()

        try:
            with transaction.atomic():
                list(
                    PushToken.objects.select_for_update()
                    .filter(Q(user_key=user_key) | Q(token=token))
                    .values_list('pk', flat=True)
                )
                PushToken.objects.filter(user_key=user_key).delete()
                PushToken.objects.filter(token=token).delete()
                entry = PushToken.objects.create(user_key=user_key, token=token, platform=platform)
        except DatabaseError as e:
            logger.error(f"[TOKENS] Upsert failed for {user_key}, rolled back: {e}")
            raise TokenRegistryError(f"Could not register token for {user_key}") from e

        logger.info(f"[TOKENS] Registered {platform} token for {user_key}")
        return entry

    def revoke(self, user_key: str) -> bool:
        """Forget the user's token. Returns False when there was none."""
        try:
            deleted, _ = PushToken.objects.filter(user_key=user_key).delete()
        except DatabaseError as e:
            logger.error(f"[TOKENS] Revoke failed for {user_key}: {e}")
            raise TokenRegistryError(f"Could not revoke token for {user_key}") from e

        if deleted:
            logger.info(f"[TOKENS] Revoked token for {user_key}")
        return bool(deleted)

    def resolve_map(self, user_keys: Iterable[str]) -> Dict[str, str]:
        """{user_key: token} for the keys that have a token, in one query."""
        keys = {key for key in user_keys if key}
        if not keys:
            return {}
        return dict(
            PushToken.objects.filter(user_key__in=keys).values_list('user_key', 'token')
        )

    def resolve(self, user_keys: Iterable[str]) -> List[str]:
        """Tokens of the given users; users without a token are skipped."""
        return list(self.resolve_map(user_keys).values())


token_registry = TokenRegistry()
