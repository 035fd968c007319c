from decimal import Decimal

import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
    ]

    operations = [
        migrations.CreateModel(
            name='Order',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('order_key', models.CharField(max_length=64, unique=True, verbose_name='Order key')),
                ('buyer_key', models.CharField(db_index=True, max_length=64, verbose_name='Buyer')),
                ('total_amount', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=12, verbose_name='Total amount')),
                ('status_ledger', models.TextField(blank=True, default='', verbose_name='Status ledger')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'verbose_name': 'Order',
                'verbose_name_plural': 'Orders',
                'ordering': ['-created_at'],
            },
        ),
        migrations.CreateModel(
            name='SupplierDelivery',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('seller_key', models.CharField(max_length=64, verbose_name='Seller')),
                ('delivery_key', models.CharField(max_length=64, verbose_name='Courier')),
                ('is_active', models.BooleanField(default=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
            ],
            options={
                'verbose_name': 'Seller courier',
                'verbose_name_plural': 'Seller couriers',
                'indexes': [models.Index(fields=['seller_key', 'is_active'], name='orders_seller_active_idx')],
                'unique_together': {('seller_key', 'delivery_key')},
            },
        ),
        migrations.CreateModel(
            name='OrderItem',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('product_key', models.CharField(max_length=64, verbose_name='Product')),
                ('seller_key', models.CharField(db_index=True, max_length=64, verbose_name='Seller')),
                ('quantity', models.PositiveIntegerField(default=1)),
                ('note', models.TextField(blank=True, default='')),
                ('order', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='items', to='orders.order')),
            ],
            options={
                'verbose_name': 'Order item',
                'verbose_name_plural': 'Order items',
                'unique_together': {('order', 'product_key')},
            },
        ),
    ]
