from django.db import models
from django.utils import timezone
import uuid


class TransactionKind(models.TextChoices):
    EXPENSE = 'expense', 'Expense'
    INCOME = 'income', 'Income'
    SETTLEMENT = 'settlement', 'Settlement'
    FORGIVENESS = 'forgiveness', 'Forgiveness'
    PRODUCT_REFUND = 'product_refund', 'Product refund'


class SplitMethod(models.TextChoices):
    EQUAL = 'equal', 'Equal'
    PERCENTAGE = 'percentage', 'Percentage'
    DYNAMIC = 'dynamic', 'Dynamic'
    NONE = 'none', 'None'


REPAYMENT_KINDS = (TransactionKind.SETTLEMENT, TransactionKind.FORGIVENESS)

# Kinds whose cached net amount is maintained from their children
SUMMARY_KINDS = (TransactionKind.EXPENSE, TransactionKind.PRODUCT_REFUND)


class Transaction(models.Model):
    """
    A single ledger record (expense, income, settlement, forgiveness or refund).

    Amounts are signed integers in minor currency units. Expenses and
    settlements are positive, product refunds are stored negative.

    ``links`` holds ``{"parent_id": str, "allocated_amount": int}`` entries
    describing how much of each parent's debt this record resolves. The
    cached net fields are maintained on parents by the store adapter.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    space = models.ForeignKey(
        'spaces.Space',
        on_delete=models.PROTECT,
        related_name='transactions'
    )

    kind = models.CharField(
        max_length=20,
        choices=TransactionKind.choices,
        default=TransactionKind.EXPENSE
    )
    name = models.CharField(max_length=200)

    # Financial details
    amount = models.BigIntegerField()
    payer = models.ForeignKey(
        'spaces.Participant',
        on_delete=models.PROTECT,
        related_name='payments'
    )
    split_method = models.CharField(
        max_length=20,
        choices=SplitMethod.choices,
        default=SplitMethod.EQUAL
    )
    splits = models.JSONField(default=dict, blank=True)
    participants = models.JSONField(default=list, blank=True)

    # Parent references
    links = models.JSONField(default=list, blank=True)
    legacy_parent_id = models.UUIDField(null=True, blank=True, db_index=True)

    # Metadata
    category = models.CharField(max_length=100, blank=True)
    payment_mode = models.CharField(max_length=50, blank=True)
    description = models.TextField(blank=True)
    timestamp = models.DateTimeField(default=timezone.now)

    # Cached parent summary
    cached_net_amount = models.BigIntegerField(null=True, blank=True)
    cached_has_refunds = models.BooleanField(default=False)
    last_refund_at = models.DateTimeField(null=True, blank=True)

    # Soft delete
    is_deleted = models.BooleanField(default=False)
    deleted_at = models.DateTimeField(null=True, blank=True)

    # Timestamps
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'transactions'
        indexes = [
            models.Index(fields=['space', 'is_deleted', 'timestamp'], name='txn_space_active_idx'),
            models.Index(fields=['kind', 'timestamp'], name='txn_kind_idx'),
            models.Index(fields=['payer', 'timestamp'], name='txn_payer_idx'),
        ]
        ordering = ['-timestamp', '-created_at']

    def __str__(self):
        return f"{self.name} - {self.amount} ({self.get_kind_display()})"

    @property
    def is_repayment(self):
        return self.kind in REPAYMENT_KINDS

    @property
    def counterpart(self):
        """The single other party of a settlement or forgiveness record."""
        return self.participants[0] if self.participants else None

    @property
    def parent_ids(self):
        """Ordered, de-duplicated ids of every parent this record references."""
        ids = []
        for link in self.links or []:
            parent_id = str(link.get('parent_id', ''))
            if parent_id and parent_id not in ids:
                ids.append(parent_id)
        if self.legacy_parent_id and str(self.legacy_parent_id) not in ids:
            ids.append(str(self.legacy_parent_id))
        return ids

    def get_link(self, parent_id):
        """Return the first link entry pointing at ``parent_id``, if any."""
        parent_id = str(parent_id)
        for link in self.links or []:
            if str(link.get('parent_id')) == parent_id:
                return link
        return None


class TransactionLink(models.Model):
    """
    Index of ``Transaction.links`` used to find children of a parent.

    Rows are rewritten by the store adapter whenever the owning transaction
    is written. ``parent_id`` is not a foreign key: a link may point at a
    record the store cannot resolve.
    """

    child = models.ForeignKey(
        Transaction,
        on_delete=models.CASCADE,
        related_name='link_rows'
    )
    parent_id = models.UUIDField(db_index=True)
    allocated_amount = models.BigIntegerField()
    position = models.PositiveSmallIntegerField(default=0)

    class Meta:
        db_table = 'transaction_links'
        ordering = ['child', 'position']

    def __str__(self):
        return f"{self.child_id} -> {self.parent_id} ({self.allocated_amount})"
