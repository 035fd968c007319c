"""
NOTIFICATIONS App - Django Admin Configuration
"""

from django.contrib import admin

from .models import NotificationLog, PushToken


@admin.register(PushToken)
class PushTokenAdmin(admin.ModelAdmin):
    list_display = ('user_key', 'platform', 'short_token', 'updated_at')
    list_filter = ('platform',)
    search_fields = ('user_key', 'token')
    readonly_fields = ('created_at', 'updated_at')

    @admin.display(description="Token")
    def short_token(self, obj):
        return f"{obj.token[:24]}…"


@admin.register(NotificationLog)
class NotificationLogAdmin(admin.ModelAdmin):
    list_display = ('timestamp', 'type', 'status', 'owner_key', 'title', 'message_id')
    list_filter = ('type', 'status')
    search_fields = ('message_id', 'owner_key', 'title')
    readonly_fields = (
        'message_id', 'type', 'owner_key', 'title', 'body',
        'timestamp', 'related_party', 'payload',
    )
    date_hierarchy = 'timestamp'
