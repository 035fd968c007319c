"""
NOTIFICATIONS App - Push Tokens & Notification Log

PushToken keeps one device token per user and one user per token.
NotificationLog records what was sent and what devices received.
"""

from django.db import models
from django.utils import timezone


class PushPlatform(models.TextChoices):
    WEB = 'web', 'Web'
    ANDROID = 'android', 'Android'
    IOS = 'ios', 'iOS'


class PushToken(models.Model):
    """
    Active push token of a user.

    Both columns are unique: a user has at most one device registered,
    and a device (token) belongs to at most one user.
    """

    user_key = models.CharField(max_length=64, unique=True, verbose_name="User")
    token = models.CharField(max_length=512, unique=True, verbose_name="Push token")
    platform = models.CharField(
        max_length=16,
        choices=PushPlatform.choices,
        default=PushPlatform.WEB
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = "Push token"
        verbose_name_plural = "Push tokens"

    def __str__(self):
        return f"{self.user_key} ({self.platform}) {self.token[:12]}…"


class LogType(models.TextChoices):
    SENT = 'sent', 'Sent'
    RECEIVED = 'received', 'Received'


class LogStatus(models.TextChoices):
    UNREAD = 'unread', 'Unread'
    READ = 'read', 'Read'
    FAILED = 'failed', 'Failed'


class NotificationLog(models.Model):
    """
    Append-only notification history.

    A received push is stored at most once per provider message id.
    """

    message_id = models.CharField(max_length=255, blank=True, default='')
    type = models.CharField(max_length=16, choices=LogType.choices)
    owner_key = models.CharField(max_length=64, blank=True, default='', db_index=True)
    title = models.CharField(max_length=255, blank=True, default='')
    body = models.TextField(blank=True, default='')
    timestamp = models.DateTimeField(default=timezone.now)
    status = models.CharField(
        max_length=16,
        choices=LogStatus.choices,
        default=LogStatus.UNREAD
    )
    related_party = models.JSONField(default=dict, blank=True)
    payload = models.JSONField(null=True, blank=True)

    class Meta:
        verbose_name = "Notification log entry"
        verbose_name_plural = "Notification log"
        ordering = ['-timestamp']
        indexes = [
            models.Index(fields=['timestamp'], name='notif_log_timestamp_idx'),
            models.Index(fields=['type'], name='notif_log_type_idx'),
            models.Index(fields=['status'], name='notif_log_status_idx'),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=['message_id'],
                condition=models.Q(type='received'),
                name='unique_received_message_id',
            ),
        ]

    def __str__(self):
        return f"[{self.type}] {self.title} ({self.message_id or '-'})"
