import django.utils.timezone
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
    ]

    operations = [
        migrations.CreateModel(
            name='PushToken',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('user_key', models.CharField(max_length=64, unique=True, verbose_name='User')),
                ('token', models.CharField(max_length=512, unique=True, verbose_name='Push token')),
                ('platform', models.CharField(choices=[('web', 'Web'), ('android', 'Android'), ('ios', 'iOS')], default='web', max_length=16)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'verbose_name': 'Push token',
                'verbose_name_plural': 'Push tokens',
            },
        ),
        migrations.CreateModel(
            name='NotificationLog',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('message_id', models.CharField(blank=True, default='', max_length=255)),
                ('type', models.CharField(choices=[('sent', 'Sent'), ('received', 'Received')], max_length=16)),
                ('owner_key', models.CharField(blank=True, db_index=True, default='', max_length=64)),
                ('title', models.CharField(blank=True, default='', max_length=255)),
                ('body', models.TextField(blank=True, default='')),
                ('timestamp', models.DateTimeField(default=django.utils.timezone.now)),
                ('status', models.CharField(choices=[('unread', 'Unread'), ('read', 'Read'), ('failed', 'Failed')], default='unread', max_length=16)),
                ('related_party', models.JSONField(blank=True, default=dict)),
                ('payload', models.JSONField(blank=True, null=True)),
            ],
            options={
                'verbose_name': 'Notification log entry',
                'verbose_name_plural': 'Notification log',
                'ordering': ['-timestamp'],
                'indexes': [
                    models.Index(fields=['timestamp'], name='notif_log_timestamp_idx'),
                    models.Index(fields=['type'], name='notif_log_type_idx'),
                    models.Index(fields=['status'], name='notif_log_status_idx'),
                ],
                'constraints': [
                    models.UniqueConstraint(condition=models.Q(('type', 'received')), fields=('message_id',), name='unique_received_message_id'),
                ],
            },
        ),
    ]
