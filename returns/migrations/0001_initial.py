from django.db import migrations, models
import django.db.models.deletion


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name='Order',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('order_number', models.CharField(db_index=True, max_length=50, unique=True)),
                ('email', models.EmailField(blank=True, max_length=254)),
                ('fulfillment_status', models.CharField(choices=[('not_fulfilled', 'Not Fulfilled'), ('partially_fulfilled', 'Partially Fulfilled'), ('fulfilled', 'Fulfilled'), ('partially_shipped', 'Partially Shipped'), ('shipped', 'Shipped'), ('partially_returned', 'Partially Returned'), ('returned', 'Returned'), ('canceled', 'Canceled'), ('requires_action', 'Requires Action')], default='not_fulfilled', max_length=30)),
                ('payment_status', models.CharField(choices=[('not_paid', 'Not Paid'), ('awaiting', 'Awaiting'), ('captured', 'Captured'), ('partially_refunded', 'Partially Refunded'), ('refunded', 'Refunded'), ('canceled', 'Canceled'), ('requires_action', 'Requires Action')], default='not_paid', max_length=30)),
                ('tax_rate', models.DecimalField(decimal_places=2, default=0, max_digits=5)),
                ('total', models.IntegerField(default=0)),
                ('paid_total', models.IntegerField(default=0)),
                ('refunded_total', models.IntegerField(default=0)),
                ('canceled_at', models.DateTimeField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'db_table': 'orders',
                'ordering': ['-created_at'],
            },
        ),
        migrations.CreateModel(
            name='ProductVariant',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('sku', models.CharField(max_length=100, unique=True)),
                ('title', models.CharField(max_length=255)),
                ('inventory_quantity', models.IntegerField(default=0)),
                ('manage_inventory', models.BooleanField(default=True)),
            ],
            options={
                'db_table': 'product_variants',
            },
        ),
        migrations.CreateModel(
            name='ReturnReason',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('value', models.CharField(max_length=50, unique=True)),
                ('label', models.CharField(max_length=200)),
                ('description', models.TextField(blank=True)),
            ],
            options={
                'db_table': 'return_reasons',
                'ordering': ['value'],
            },
        ),
        migrations.CreateModel(
            name='ShippingOption',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(max_length=200)),
                ('provider_id', models.CharField(default='manual', max_length=50)),
                ('amount', models.IntegerField(default=0)),
                ('is_return', models.BooleanField(default=False)),
                ('data', models.JSONField(blank=True, default=dict)),
            ],
            options={
                'db_table': 'shipping_options',
            },
        ),
        migrations.CreateModel(
            name='ClaimOrder',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('canceled_at', models.DateTimeField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('order', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='claims', to='returns.order')),
            ],
            options={
                'db_table': 'claim_orders',
            },
        ),
        migrations.CreateModel(
            name='Swap',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('canceled_at', models.DateTimeField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('order', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='swaps', to='returns.order')),
            ],
            options={
                'db_table': 'swaps',
            },
        ),
        migrations.CreateModel(
            name='LineItem',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('title', models.CharField(max_length=255)),
                ('unit_price', models.IntegerField()),
                ('quantity', models.PositiveIntegerField()),
                ('returned_quantity', models.PositiveIntegerField(blank=True, default=0, null=True)),
                ('metadata', models.JSONField(blank=True, default=dict)),
                ('claim_order', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.CASCADE, related_name='additional_items', to='returns.claimorder')),
                ('order', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.CASCADE, related_name='items', to='returns.order')),
                ('swap', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.CASCADE, related_name='additional_items', to='returns.swap')),
                ('variant', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='line_items', to='returns.productvariant')),
            ],
            options={
                'db_table': 'line_items',
                'ordering': ['id'],
            },
        ),
        migrations.CreateModel(
            name='Return',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('status', models.CharField(choices=[('requested', 'Requested'), ('received', 'Received'), ('requires_action', 'Requires Action'), ('canceled', 'Canceled')], default='requested', max_length=30)),
                ('refund_amount', models.IntegerField(default=0)),
                ('shipping_data', models.JSONField(blank=True, null=True)),
                ('received_at', models.DateTimeField(blank=True, null=True)),
                ('metadata', models.JSONField(blank=True, default=dict)),
                ('no_notification', models.BooleanField(blank=True, null=True)),
                ('idempotency_key', models.CharField(blank=True, max_length=100, null=True, unique=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('claim_order', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.CASCADE, related_name='returns', to='returns.claimorder')),
                ('order', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.CASCADE, related_name='returns', to='returns.order')),
                ('swap', models.OneToOneField(blank=True, null=True, on_delete=django.db.models.deletion.CASCADE, related_name='return_order', to='returns.swap')),
            ],
            options={
                'db_table': 'returns',
                'ordering': ['-created_at'],
                'indexes': [models.Index(fields=['status', 'created_at'], name='return_status_created_idx')],
            },
        ),
        migrations.CreateModel(
            name='ReturnStatusHistory',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('from_status', models.CharField(blank=True, max_length=30)),
                ('to_status', models.CharField(max_length=30)),
                ('changed_by', models.CharField(default='system', max_length=100)),
                ('comment', models.TextField(blank=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('return_order', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='status_history', to='returns.return')),
            ],
            options={
                'db_table': 'return_status_history',
                'ordering': ['created_at', 'id'],
                'indexes': [models.Index(fields=['return_order', 'created_at'], name='status_history_return_idx')],
            },
        ),
        migrations.CreateModel(
            name='ShippingMethod',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('price', models.IntegerField(default=0)),
                ('data', models.JSONField(blank=True, default=dict)),
                ('order', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.CASCADE, related_name='shipping_methods', to='returns.order')),
                ('return_order', models.OneToOneField(blank=True, db_column='return_id', null=True, on_delete=django.db.models.deletion.CASCADE, related_name='shipping_method', to='returns.return')),
                ('shipping_option', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='shipping_methods', to='returns.shippingoption')),
            ],
            options={
                'db_table': 'shipping_methods',
            },
        ),
        migrations.CreateModel(
            name='ReturnItem',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('quantity', models.PositiveIntegerField()),
                ('is_requested', models.BooleanField(default=True)),
                ('requested_quantity', models.PositiveIntegerField(blank=True, null=True)),
                ('received_quantity', models.PositiveIntegerField(blank=True, null=True)),
                ('note', models.TextField(blank=True, null=True)),
                ('metadata', models.JSONField(blank=True, default=dict)),
                ('no_notification', models.BooleanField(blank=True, null=True)),
                ('item', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='return_items', to='returns.lineitem')),
                ('reason', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='return_items', to='returns.returnreason')),
                ('return_order', models.ForeignKey(db_column='return_id', on_delete=django.db.models.deletion.CASCADE, related_name='items', to='returns.return')),
            ],
            options={
                'db_table': 'return_items',
                'ordering': ['id'],
                'constraints': [models.UniqueConstraint(fields=('return_order', 'item'), name='unique_return_line_item')],
            },
        ),
    ]
