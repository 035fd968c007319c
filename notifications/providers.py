"""
NOTIFICATIONS App - Push Provider Channels

Every channel exposes the same contract (send / send_batch /
register_device), so the dispatch engine never knows which one is active:

- NullPushProvider: no delivery, used when push is switched off
- ChannelsPushProvider: native bridge, the app's WebSocket receives the push
- FCMHttpProvider: signed requests to the FCM HTTP v1 API

The active channel is chosen with settings.PUSH_PROVIDER.
"""

import hashlib
import logging
import threading
import time
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

import jwt
import requests
from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer
from django.conf import settings

from .exceptions import ProviderError

logger = logging.getLogger(__name__)


@dataclass
class SendResult:
    token: str
    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None


class PushProvider(ABC):
    """Capability interface of a push delivery channel."""

    name = 'abstract'

    @abstractmethod
    def send(self, token: str, title: str, body: str, data: Optional[Dict[str, Any]] = None) -> SendResult:
        """Deliver one push. Must not raise for per-token failures."""

    def send_batch(
        self,
        tokens: Sequence[str],
        title: str,
        body: str,
        data: Optional[Dict[str, Any]] = None
    ) -> List[SendResult]:
        """
        Deliver the same push to several tokens concurrently.

        Best effort: a failing token yields a failed SendResult and the
        others still go out. Results keep the order of `tokens`.
        """
        tokens = list(tokens)
        if not tokens:
            return []

        def deliver(token: str) -> SendResult:
            try:
                return self.send(token, title, body, data)
            except Exception as e:
                logger.error(f"[PUSH] {self.name} raised for token {token[:12]}…: {e}")
                return SendResult(token=token, success=False, error=str(e))

        workers = max(1, min(settings.PUSH_SEND_WORKERS, len(tokens)))
        if workers == 1:
            return [deliver(token) for token in tokens]

        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix='push') as pool:
            return list(pool.map(deliver, tokens))

    def register_device(self, token: str, platform: str) -> bool:
        """Make the device known to the channel. Raises ProviderError on failure."""
        return True


# ============================================
# Null object
# ============================================

class NullPushProvider(PushProvider):
    """Accepts every push and delivers nothing."""

    name = 'null'

    def send(self, token, title, body, data=None):
        logger.debug(f"[PUSH] Null provider dropped '{title}' for {token[:12]}…")
        return SendResult(token=token, success=True)


# ============================================
# Native bridge (Django Channels)
# ============================================

def device_group_name(token: str) -> str:
    """Channel-layer group of the WebSocket opened by the device holding `token`."""
    digest = hashlib.sha256(token.encode('utf-8')).hexdigest()[:32]
    return f"push_{digest}"


class ChannelsPushProvider(PushProvider):
    """
    Push through the app's WebSocket connection.

    The mobile shell keeps a socket open (see DevicePushConsumer) and
    shows a system notification for every `push.message` it receives.
    """

    name = 'channels'

    def __init__(self, channel_layer=None):
        self._channel_layer = channel_layer

    @property
    def channel_layer(self):
        if self._channel_layer is None:
            self._channel_layer = get_channel_layer()
        return self._channel_layer

    def send(self, token, title, body, data=None):
        channel_layer = self.channel_layer
        if not channel_layer:
            logger.warning("[PUSH] No channel layer configured")
            return SendResult(token=token, success=False, error='no channel layer')

        try:
            async_to_sync(channel_layer.group_send)(
                device_group_name(token),
                {
                    'type': 'push.message',
                    'title': title,
                    'body': body,
                    'data': data or {},
                }
            )
        except Exception as e:
            logger.error(f"[PUSH] Bridge send failed for {token[:12]}…: {e}")
            return SendResult(token=token, success=False, error=str(e))

        return SendResult(token=token, success=True)


# ============================================
# Signed requests (FCM HTTP v1)
# ============================================

class FCMHttpProvider(PushProvider):
    """
    FCM HTTP v1 client authenticated with a service account.

    A short-lived RS256 assertion is exchanged for an OAuth access token,
    reused until five minutes before it expires.
    """

    name = 'fcm'

    TOKEN_URL = 'https://oauth2.googleapis.com/token'
    SCOPE = 'https://www.googleapis.com/auth/firebase.messaging'
    SEND_URL = 'https://fcm.googleapis.com/v1/projects/{project_id}/messages:send'
    ASSERTION_LIFETIME = 3600
    EXPIRY_MARGIN = 300

    def __init__(
        self,
        project_id: Optional[str] = None,
        client_email: Optional[str] = None,
        private_key: Optional[str] = None,
        timeout: Optional[int] = None,
        session: Optional[requests.Session] = None
    ):
        self.project_id = project_id or settings.FCM_PROJECT_ID
        self.client_email = client_email or settings.FCM_CLIENT_EMAIL
        self.private_key = private_key or settings.FCM_PRIVATE_KEY
        self.timeout = timeout or settings.FCM_SEND_TIMEOUT
        self.session = session or requests.Session()

        self._access_token: Optional[str] = None
        self._expires_at = 0.0
        self._lock = threading.Lock()

    def _build_assertion(self, now: int) -> str:
        claims = {
            'iss': self.client_email,
            'scope': self.SCOPE,
            'aud': self.TOKEN_URL,
            'iat': now,
            'exp': now + self.ASSERTION_LIFETIME,
        }
        return jwt.encode(claims, self.private_key, algorithm='RS256')

    def get_access_token(self) -> str:
        """
        Cached OAuth token, refreshed when close to expiry.

        Raises:
            ProviderError: Credentials missing or token exchange failed
        """
        with self._lock:
            if self._access_token and time.time() < self._expires_at - self.EXPIRY_MARGIN:
                return self._access_token

            if not (self.project_id and self.client_email and self.private_key):
                raise ProviderError("Missing FCM_PROJECT_ID, FCM_CLIENT_EMAIL or FCM_PRIVATE_KEY")

            now = int(time.time())
            try:
                assertion = self._build_assertion(now)
                response = self.session.post(
                    self.TOKEN_URL,
                    data={
                        'grant_type': 'urn:ietf:params:oauth:grant-type:jwt-bearer',
                        'assertion': assertion,
                    },
                    timeout=self.timeout
                )
                response.raise_for_status()
                payload = response.json()
            except (requests.RequestException, ValueError, jwt.PyJWTError) as e:
                raise ProviderError(f"OAuth token exchange failed: {e}") from e

            if not payload.get('access_token'):
                raise ProviderError("OAuth response carried no access_token")

            self._access_token = payload['access_token']
            self._expires_at = now + int(payload.get('expires_in', self.ASSERTION_LIFETIME))
            logger.info("[FCM] Access token refreshed")
            return self._access_token

    def _post_message(self, message: Dict[str, Any], validate_only: bool = False) -> Dict[str, Any]:
        access_token = self.get_access_token()
        body: Dict[str, Any] = {'message': message}
        if validate_only:
            body['validate_only'] = True

        response = self.session.post(
            self.SEND_URL.format(project_id=self.project_id),
            headers={
                'Authorization': f"Bearer {access_token}",
                'Content-Type': 'application/json',
            },
            json=body,
            timeout=self.timeout
        )
        response.raise_for_status()
        return response.json()

    def send(self, token, title, body, data=None):
        message = {
            'token': token,
            'notification': {'title': title, 'body': body},
            # FCM only accepts string values in data
            'data': {str(key): str(value) for key, value in (data or {}).items()},
        }
        try:
            result = self._post_message(message)
        except (ProviderError, requests.RequestException, ValueError) as e:
            logger.error(f"[FCM] Send failed for {token[:12]}…: {e}")
            return SendResult(token=token, success=False, error=str(e))

        message_id = result.get('name')
        logger.info(f"[FCM] Message sent: ID={message_id}")
        return SendResult(token=token, success=True, message_id=message_id)

    def register_device(self, token, platform):
        """Dry-run a message to check the token is accepted by FCM."""
        try:
            self._post_message({'token': token, 'data': {'check': '1'}}, validate_only=True)
        except requests.RequestException as e:
            raise ProviderError(f"FCM rejected {platform} token: {e}") from e
        return True


# ============================================
# Selection
# ============================================

PROVIDERS = {
    NullPushProvider.name: NullPushProvider,
    ChannelsPushProvider.name: ChannelsPushProvider,
    FCMHttpProvider.name: FCMHttpProvider,
}


def get_push_provider(name: Optional[str] = None) -> PushProvider:
    """Instantiate the configured provider channel (null object when unknown)."""
    name = (name or settings.PUSH_PROVIDER or '').lower()
    provider_class = PROVIDERS.get(name)
    if provider_class is None:
        logger.warning(f"[PUSH] Unknown PUSH_PROVIDER '{name}', notifications disabled")
        provider_class = NullPushProvider
    return provider_class()
