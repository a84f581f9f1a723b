# Generated manually for ledger app

import uuid
import django.db.models.deletion
import django.utils.timezone
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('spaces', '0002_seed_defaults'),
    ]

    operations = [
        migrations.CreateModel(
            name='Transaction',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('kind', models.CharField(choices=[('expense', 'Expense'), ('income', 'Income'), ('settlement', 'Settlement'), ('forgiveness', 'Forgiveness'), ('product_refund', 'Product refund')], default='expense', max_length=20)),
                ('name', models.CharField(max_length=200)),
                ('amount', models.BigIntegerField()),
                ('split_method', models.CharField(choices=[('equal', 'Equal'), ('percentage', 'Percentage'), ('dynamic', 'Dynamic'), ('none', 'None')], default='equal', max_length=20)),
                ('splits', models.JSONField(blank=True, default=dict)),
                ('participants', models.JSONField(blank=True, default=list)),
                ('links', models.JSONField(blank=True, default=list)),
                ('legacy_parent_id', models.UUIDField(blank=True, db_index=True, null=True)),
                ('category', models.CharField(blank=True, max_length=100)),
                ('payment_mode', models.CharField(blank=True, max_length=50)),
                ('description', models.TextField(blank=True)),
                ('timestamp', models.DateTimeField(default=django.utils.timezone.now)),
                ('cached_net_amount', models.BigIntegerField(blank=True, null=True)),
                ('cached_has_refunds', models.BooleanField(default=False)),
                ('last_refund_at', models.DateTimeField(blank=True, null=True)),
                ('is_deleted', models.BooleanField(default=False)),
                ('deleted_at', models.DateTimeField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('payer', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='payments', to='spaces.participant')),
                ('space', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='transactions', to='spaces.space')),
            ],
            options={
                'db_table': 'transactions',
                'ordering': ['-timestamp', '-created_at'],
                'indexes': [
                    models.Index(fields=['space', 'is_deleted', 'timestamp'], name='txn_space_active_idx'),
                    models.Index(fields=['kind', 'timestamp'], name='txn_kind_idx'),
                    models.Index(fields=['payer', 'timestamp'], name='txn_payer_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='TransactionLink',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('parent_id', models.UUIDField(db_index=True)),
                ('allocated_amount', models.BigIntegerField()),
                ('position', models.PositiveSmallIntegerField(default=0)),
                ('child', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='link_rows', to='ledger.transaction')),
            ],
            options={
                'db_table': 'transaction_links',
                'ordering': ['child', 'position'],
            },
        ),
    ]
