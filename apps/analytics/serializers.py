"""
Serializers for analytics app.

This module contains:
1. Input serializers - Query parameter validation
2. Response serializers - API documentation and output formatting

Input Serializers:
    SpaceQuerySerializer - Validates the optional space parameter
    SuggestionQuerySerializer - Validates settlement suggestion parameters

Response Serializers:
    BalancesResponseSerializer - Net balances and totals
    SuggestionsResponseSerializer - Suggested settlement payments
    HealthResponseSerializer - Data-health report
    DashboardResponseSerializer - Dashboard summary
"""

from rest_framework import serializers

from .analytics import VALID_SCOPES, SCOPE_ME


# =============================================================================
# Input Serializers (Query Parameter Validation)
# =============================================================================

class SpaceQuerySerializer(serializers.Serializer):
    """
    Validate the space query parameter.

    Query Parameters:
        space (str): Space id; all spaces when omitted
    """

    space = serializers.SlugField(
        max_length=64,
        required=False,
        allow_blank=True,
        help_text='Space id (all spaces when omitted)'
    )


class SuggestionQuerySerializer(SpaceQuerySerializer):
    """
    Validate query parameters for settlement suggestions.

    Query Parameters:
        space (str): Space id
        scope (str): 'me' for the primary user's debts, 'everyone' for all
        threshold (int): Ignore positions within this many minor units of zero
    """

    scope = serializers.ChoiceField(
        choices=VALID_SCOPES,
        default=SCOPE_ME,
        help_text="Netting scope: 'me' or 'everyone'"
    )
    threshold = serializers.IntegerField(
        min_value=0,
        required=False,
        help_text='Materiality threshold in minor units'
    )


# =============================================================================
# Response Serializers (API Documentation)
# =============================================================================

class CategoryTotalSerializer(serializers.Serializer):
    """Nested serializer for one category total."""
    label = serializers.CharField()
    value = serializers.IntegerField()


class BalancesResponseSerializer(serializers.Serializer):
    """Response serializer for net balances."""
    space = serializers.CharField(allow_null=True)
    currency = serializers.CharField()
    net_balance = serializers.DictField(child=serializers.IntegerField())
    net_position = serializers.IntegerField()
    total_paid_by_me = serializers.IntegerField()
    total_my_share = serializers.IntegerField()
    paid_by_others = serializers.IntegerField()
    total_expenditure = serializers.IntegerField()
    category_totals = serializers.DictField(child=serializers.IntegerField())
    category_chart = CategoryTotalSerializer(many=True)
    monthly_income = serializers.IntegerField()


class SuggestedTransferSerializer(serializers.Serializer):
    """Nested serializer for a single suggested payment."""
    from_id = serializers.CharField()
    from_name = serializers.CharField()
    to_id = serializers.CharField()
    to_name = serializers.CharField()
    amount = serializers.IntegerField()


class SuggestionsResponseSerializer(serializers.Serializer):
    """Response serializer for settlement suggestions."""
    space = serializers.CharField(allow_null=True)
    scope = serializers.CharField()
    positions = serializers.DictField(child=serializers.IntegerField())
    suggestions = SuggestedTransferSerializer(many=True)
    unmatched = serializers.DictField(child=serializers.IntegerField())


class HealthResponseSerializer(serializers.Serializer):
    """Response serializer for the data-health report."""
    space = serializers.CharField(allow_null=True)
    orphaned_links = serializers.ListField(child=serializers.DictField())
    missing_category = serializers.ListField(child=serializers.DictField())
    missing_payment_mode = serializers.ListField(child=serializers.DictField())
    negative_net_amounts = serializers.ListField(child=serializers.DictField())
    unknown_participants = serializers.ListField(child=serializers.DictField())
    split_mismatches = serializers.ListField(child=serializers.DictField())
    stale_summaries = serializers.ListField(child=serializers.DictField())
    total = serializers.IntegerField()


class DashboardResponseSerializer(serializers.Serializer):
    """Response serializer for dashboard summary."""
    space = serializers.CharField(allow_null=True)
    currency = serializers.CharField()
    balances = BalancesResponseSerializer()
    owed_to_me = serializers.IntegerField()
    i_owe = serializers.IntegerField()
    suggestions = SuggestedTransferSerializer(many=True)
    health_issues = serializers.IntegerField()
    transaction_count = serializers.IntegerField()


class ErrorSerializer(serializers.Serializer):
    """Standard error response serializer."""
    error = serializers.CharField()
