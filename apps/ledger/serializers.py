"""
Serializers for ledger app.

This module contains:
1. Model serializers - Transaction output
2. Draft serializers - Unsaved records exchanged with the planner
3. Input serializers - Query parameter and action body validation
"""

from rest_framework import serializers

from .models import Transaction, TransactionKind, SplitMethod
from .services.planner import DraftLink, TransactionDraft


LINKABLE_ROLES = (
    TransactionKind.SETTLEMENT,
    TransactionKind.FORGIVENESS,
    TransactionKind.PRODUCT_REFUND,
)


# =============================================================================
# Model Serializers
# =============================================================================

class TransactionSerializer(serializers.ModelSerializer):
    """Main serializer for transactions."""

    payer_name = serializers.CharField(source='payer.name', read_only=True)
    parent_ids = serializers.ListField(child=serializers.CharField(), read_only=True)

    class Meta:
        model = Transaction
        fields = [
            'id',
            'space',
            'kind',
            'name',
            'amount',
            'payer',
            'payer_name',
            'split_method',
            'splits',
            'participants',
            'links',
            'parent_ids',
            'legacy_parent_id',
            'category',
            'payment_mode',
            'description',
            'timestamp',
            'cached_net_amount',
            'cached_has_refunds',
            'last_refund_at',
            'is_deleted',
            'deleted_at',
            'created_at',
            'updated_at',
        ]
        read_only_fields = fields


class TransactionListSerializer(serializers.ModelSerializer):
    """Lightweight serializer for history lists."""

    class Meta:
        model = Transaction
        fields = [
            'id',
            'space',
            'kind',
            'name',
            'amount',
            'payer',
            'category',
            'timestamp',
            'cached_net_amount',
            'is_deleted',
        ]


# =============================================================================
# Draft Serializers
# =============================================================================

class DraftLinkSerializer(serializers.Serializer):
    """One parent linked on a draft."""

    parent_id = serializers.UUIDField()
    allocated_amount = serializers.IntegerField()
    basis = serializers.IntegerField(required=False, default=0)
    max_allocatable = serializers.IntegerField(required=False, allow_null=True, default=None)
    relation = serializers.CharField(required=False, allow_blank=True, default='')
    parent_name = serializers.CharField(required=False, allow_blank=True, default='')


class TransactionDraftSerializer(serializers.Serializer):
    """
    An unsaved record as the user is editing it.

    ``amount`` is a positive magnitude; signs are applied when the draft is
    saved. ``split_shares`` holds percentages or exact amounts depending on
    ``split_method``.
    """

    kind = serializers.ChoiceField(choices=TransactionKind.choices, default=TransactionKind.EXPENSE)
    name = serializers.CharField(max_length=200, required=False, allow_blank=True, default='')
    amount = serializers.IntegerField(min_value=0, required=False, default=0)
    payer = serializers.CharField(max_length=64, required=False, default='me')
    participants = serializers.ListField(
        child=serializers.CharField(max_length=64),
        required=False,
        default=list
    )
    split_method = serializers.ChoiceField(choices=SplitMethod.choices, default=SplitMethod.EQUAL)
    split_shares = serializers.DictField(
        child=serializers.DecimalField(max_digits=14, decimal_places=4),
        required=False,
        default=dict
    )
    include_me = serializers.BooleanField(required=False, default=True)
    include_payer = serializers.BooleanField(required=False, default=False)
    links = DraftLinkSerializer(many=True, required=False, default=list)
    category = serializers.CharField(max_length=100, required=False, allow_blank=True, default='')
    payment_mode = serializers.CharField(max_length=50, required=False, allow_blank=True, default='')
    description = serializers.CharField(required=False, allow_blank=True, default='')
    timestamp = serializers.DateTimeField(required=False, allow_null=True, default=None)
    space = serializers.CharField(source='space_id', max_length=64, required=False, allow_null=True, default=None)
    transaction_id = serializers.UUIDField(required=False, allow_null=True, default=None)

    @staticmethod
    def build_draft(data) -> TransactionDraft:
        """Build a TransactionDraft from validated data."""
        data = dict(data)
        links = [
            DraftLink(
                parent_id=str(link['parent_id']),
                allocated_amount=link['allocated_amount'],
                basis=link.get('basis', 0),
                max_allocatable=link.get('max_allocatable'),
                relation=link.get('relation', ''),
                parent_name=link.get('parent_name', ''),
            )
            for link in data.pop('links', [])
        ]
        transaction_id = data.pop('transaction_id', None)

        return TransactionDraft(
            links=links,
            transaction_id=str(transaction_id) if transaction_id else None,
            participants=list(data.pop('participants', [])),
            split_shares=dict(data.pop('split_shares', {})),
            **data,
        )

    def to_draft(self) -> TransactionDraft:
        return self.build_draft(self.validated_data)


class DraftInputSerializer(serializers.Serializer):
    """Base for planner actions that take a draft."""

    draft = TransactionDraftSerializer()

    def to_draft(self) -> TransactionDraft:
        return TransactionDraftSerializer.build_draft(self.validated_data['draft'])


class AttachLinkInputSerializer(DraftInputSerializer):
    """
    Validate input for linking a parent to a draft.

    ``role`` defaults to the draft's kind.
    """

    parent_id = serializers.UUIDField()
    role = serializers.ChoiceField(choices=LINKABLE_ROLES, required=False)


class ReallocateInputSerializer(DraftInputSerializer):
    """Validate input for spreading a new total over the draft's links."""

    amount = serializers.IntegerField(min_value=0)


class UpdateAllocationInputSerializer(DraftInputSerializer):
    """Validate input for editing one link's allocation."""

    parent_id = serializers.UUIDField()
    allocated_amount = serializers.IntegerField()


class RemoveLinkInputSerializer(DraftInputSerializer):
    """Validate input for removing a link from a draft."""

    parent_id = serializers.UUIDField()


class EligibleParentsInputSerializer(DraftInputSerializer):
    """
    Validate input for listing parents a draft can link to.

    ``counterpart`` narrows candidates to one participant.
    """

    counterpart = serializers.CharField(max_length=64, required=False, allow_blank=True)


class DraftResultSerializer(serializers.Serializer):
    """Response serializer for planner actions."""
    draft = TransactionDraftSerializer()
    flipped = serializers.BooleanField()


class LinkCandidateSerializer(serializers.Serializer):
    """Response serializer for one linkable parent."""
    parent_id = serializers.CharField()
    parent_name = serializers.CharField(source='parent.name')
    parent_kind = serializers.CharField(source='parent.kind')
    parent_amount = serializers.IntegerField(source='parent.amount')
    timestamp = serializers.DateTimeField(source='parent.timestamp')
    counterpart = serializers.CharField(allow_null=True)
    relation = serializers.CharField()
    outstanding = serializers.IntegerField()
    is_continuation = serializers.BooleanField()
    is_credit = serializers.BooleanField()


# =============================================================================
# Input Serializers (Query Parameter Validation)
# =============================================================================

class TransactionFilterSerializer(serializers.Serializer):
    """
    Validate query parameters for transaction filtering.

    Query Parameters:
        space (str): Filter by space id
        kind (str): Filter by transaction kind
        date_from (date): Filter transactions from this date
        date_to (date): Filter transactions to this date
        include_deleted (bool): Include soft-deleted transactions
    """

    space = serializers.SlugField(max_length=64, required=False)
    kind = serializers.ChoiceField(choices=TransactionKind.choices, required=False)
    date_from = serializers.DateField(required=False)
    date_to = serializers.DateField(required=False)
    include_deleted = serializers.BooleanField(required=False, default=False)

    def validate(self, attrs):
        """Validate date range."""
        date_from = attrs.get('date_from')
        date_to = attrs.get('date_to')

        if date_from and date_to:
            if date_from > date_to:
                raise serializers.ValidationError({
                    'date_to': 'End date must be after start date'
                })

        return attrs


class OutstandingQuerySerializer(serializers.Serializer):
    """
    Validate query parameters for the outstanding amount.

    Query Parameters:
        debtor (str): Participant whose remaining debt is computed
    """

    debtor = serializers.CharField(max_length=64)


class MoveInputSerializer(serializers.Serializer):
    """Validate input for moving a transaction to another space."""

    space = serializers.SlugField(max_length=64)
